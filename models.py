"""
Record types shared by every extraction strategy.

Every strategy returns a ParseResult whose records are one of the
ExtractedRecord specialisations below. Field names are snake_case in Python
and camelCase once serialised for the HTTP/CLI surface.
"""

import uuid
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

DIRECTIONS = ('debit', 'credit')


def new_record_id(prefix: str = 'rec') -> str:
    """Process-unique id, never derived from document content."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.capitalize() for part in rest)


def _serialise(obj) -> Dict[str, Any]:
    data = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if value is None:
            continue
        if isinstance(value, list):
            value = list(value)
        data[_camel(f.name)] = value
    return data


@dataclass
class ExtractedRecord:
    """Common shape of every extracted fact."""

    description: str = ''
    amount: float = 0.0
    date: str = ''
    category: str = ''
    confidence: Optional[float] = None
    warnings: List[str] = field(default_factory=list)
    source_snippet: str = ''
    id: str = ''

    PLACEHOLDER = 'Extracted item'
    ID_PREFIX = 'rec'

    def __post_init__(self):
        self.description = (self.description or '').strip() or self.PLACEHOLDER
        if self.amount is None:
            self.amount = 0.0
        self.amount = float(self.amount)
        if self.amount < 0:
            raise ValueError(
                f"amount must be non-negative, got {self.amount}; record the sign as a direction")
        if not self.id:
            self.id = new_record_id(self.ID_PREFIX)

    def add_warning(self, message: str):
        if message not in self.warnings:
            self.warnings.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return _serialise(self)


@dataclass
class Transaction(ExtractedRecord):
    direction: str = 'debit'
    balance: Optional[float] = None
    bank_category: Optional[str] = None
    reference: Optional[str] = None
    counterparty: Optional[str] = None
    source: str = 'csv'

    PLACEHOLDER = 'Statement item'
    ID_PREFIX = 'statement'

    def __post_init__(self):
        super().__post_init__()
        if self.direction not in DIRECTIONS:
            raise ValueError(f"direction must be one of {DIRECTIONS}, got {self.direction!r}")


@dataclass
class QuoteLineItem(ExtractedRecord):
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    notes: Optional[str] = None

    PLACEHOLDER = 'Quote item'
    ID_PREFIX = 'item'

    @property
    def signed_amount(self) -> float:
        """Discount lines reduce the quote; everything else adds to it."""
        return -self.amount if self.notes == 'discount' else self.amount


@dataclass
class SurveyTask(ExtractedRecord):
    impact: str = ''
    timeframe: str = 'Short term'
    priority: str = 'short'
    condition_rating: Optional[int] = None
    page_reference: Optional[str] = None
    recommended_contractor: Optional[str] = None

    PLACEHOLDER = 'Survey flagged issue'
    ID_PREFIX = 'task'

    @property
    def title(self) -> str:
        return self.description

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['title'] = self.description
        return data


@dataclass
class EmailFact(ExtractedRecord):
    kind: str = 'contact'
    price_type: Optional[str] = None
    date_type: Optional[str] = None
    name: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None

    PLACEHOLDER = 'Email detail'
    ID_PREFIX = 'email'


@dataclass
class ExtractedQuote:
    """Quote-level aggregate; its line items travel as the result records."""

    contractor_name: str = 'Unknown Contractor'
    company: Optional[str] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    quote_date: Optional[str] = None
    valid_until: Optional[str] = None
    reference: Optional[str] = None
    subtotal: float = 0.0
    vat_rate: Optional[float] = None
    vat_amount: Optional[float] = None
    total: float = 0.0
    labour_total: float = 0.0
    materials_total: float = 0.0
    fixtures_total: float = 0.0
    other_total: float = 0.0
    confidence: float = 0.0
    source_file_name: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return _serialise(self)


@dataclass
class ParseResult:
    """Uniform envelope returned by every strategy."""

    success: bool = False
    records: List[ExtractedRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: str, **metadata) -> 'ParseResult':
        return cls(success=False, errors=[error], metadata=dict(metadata))

    def add_warning(self, message: str):
        if message not in self.warnings:
            self.warnings.append(message)

    def derive_date_range(self):
        """Set startDate/endDate from the dated records."""
        dates = sorted(r.date for r in self.records if r.date)
        if dates:
            self.metadata['startDate'] = dates[0]
            self.metadata['endDate'] = dates[-1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'records': [record.to_dict() for record in self.records],
            'errors': list(self.errors),
            'warnings': list(self.warnings),
            'metadata': dict(self.metadata),
        }
