"""
Quote Parser Module - Extract contractor quotes from PDF text

Pulls contractor details, totals and itemised lines out of estimate/quote
PDFs. Line items become QuoteLineItem records; the quote-level aggregate
(contractor, totals, category breakdown) travels in metadata['quote'].

Quote text from PDF decoders often loses the spaces between table columns,
e.g. 'Bathroom preparation£700.007.0020.00%£4,900.00', so several table
row grammars are tried before falling back to simple 'description £amount'
lines.
"""

import os
import re
import sys
from datetime import date, timedelta
from typing import Dict, List, Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from config import CONFIDENCE_MEDIUM, CONFIDENCE_CEILING, MIN_PDF_TEXT_LENGTH
from models import ExtractedQuote, ParseResult, QuoteLineItem
from classifiers.classification_engine import ClassificationEngine
from classifiers.keyword_classifier import DEFAULT_CLASSIFIER
from .patterns import (extract_company_name, extract_contact_names, extract_emails,
                       extract_phones, extract_postcode_address, extract_reference,
                       extract_vat_amount, detect_vat_rate, parse_date_string, parse_number, to_iso)
from .pdf_parser import INSUFFICIENT_TEXT_ERROR, extract_pdf_text
from .text_reconstruction import normalize_text

NO_QUOTE_ERROR = 'Could not extract quote information from the PDF'

LABELLED_PHONE = re.compile(r'(?:\bT|Tel|Phone|Mobile|Call)[:\s]*([0-9\s\-+()]{10,})', re.I)
QUOTE_DATE = (
    re.compile(r'(?:Date|Dated)[:\s]*(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4})', re.I),
    re.compile(r'(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4})'),
)
VALID_UNTIL = re.compile(r'(?:Valid\s*(?:until|to|for)|Expires?|Expiry)[:\s]*(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4})', re.I)
VALID_FOR_DAYS = re.compile(r'Valid\s*for[:\s]*(\d+)\s*days?', re.I)

TOTAL_PATTERNS = (
    re.compile(r'(?:Grand\s*)?Total[:\s]*£\s*([\d,]+\.?\d*)', re.I),
    re.compile(r'(?:Amount\s*Due|Balance\s*Due|Invoice\s*Total)[:\s]*£?\s*([\d,]+\.?\d*)', re.I),
)
PRIORITY_SUBTOTAL_PATTERNS = (
    re.compile(r'Exc\s*VAT[:\s]*£\s*([\d,]+\.?\d*)', re.I),
    re.compile(r'Ex\s*VAT[:\s]*£\s*([\d,]+\.?\d*)', re.I),
    re.compile(r'Net\s*Total[:\s]*£?\s*([\d,]+\.?\d*)', re.I),
    re.compile(r'Total\s*(?:ex|excl?|excluding|before)\s*VAT[:\s]*£?\s*([\d,]+\.?\d*)', re.I),
    re.compile(r'(?:excl?|excluding)\s*VAT[:\s]*£\s*([\d,]+\.?\d*)', re.I),
)
FALLBACK_SUBTOTAL = re.compile(r'Sub\s*-?\s*total[:\s]*£\s*([\d,]+\.?\d*)', re.I)

TABLE_SIGNALS = (
    re.compile(r'Unit\s*price|Quantity|Total\s*\(exc\s*VAT\)', re.I),
    re.compile(r'UnitpriceQuantity|DescriptionUnit|VAT\s*\(%?\)', re.I),
    re.compile(r'£[\d,]+\.\d{2}\d+\.\d{2}\d+\.\d{2}%£[\d,]+\.\d{2}'),
)

NO_SPACE_ROW = re.compile(r'^(.+?)£(-?[\d,]+\.\d{2})(\d+\.\d{2})(\d+\.\d{2})%£(-?[\d,]+\.\d{2})$')
NO_DESCRIPTION_ROW = re.compile(r'^£(-?[\d,]+\.\d{2})(\d+\.\d{2})(\d+\.\d{2})%£(-?[\d,]+\.\d{2})$')
SPACED_ROW = re.compile(r'^(.+?)\s+£([\d,]+\.?\d*)\s+([\d.]+)\s+[\d.]+%\s+£([\d,]+\.?\d*)$')
PRICE_ONLY_ROW = re.compile(r'^£([\d,]+\.?\d*)\s+([\d.]+)\s+[\d.]+%\s+£([\d,]+\.?\d*)$')
DESCRIPTION_AMOUNT_ROW = re.compile(r'^(.+?)\s+£([\d,]+\.?\d*)$')
SIMPLE_ROW = re.compile(r'^(.+?)\s+£?\s*([\d,]+\.?\d{0,2})\s*$')

TABLE_HEADER_LINE = re.compile(
    r'^(Description|Unit\s*price|Quantity|VAT|Sub\s*total|Total|Exc\s*VAT|About\s*Us|Installation\s*Service)', re.I)
SUMMARY_DESCRIPTION = re.compile(r'^(sub\s*-?\s*total|total|exc\s*vat|inc\s*vat|grand\s*total|vat|description|amount)', re.I)
VAT_LINE = re.compile(r'^VAT\s*(@|at)?\s*\d*%?', re.I)
QUANTITY_PREFIX = re.compile(r'^(\d+(?:\.\d+)?)\s*[x×]\s*(.+)$', re.I)
QUANTITY_UNITS = re.compile(r'\((\d+)\s*(?:m²|m2|sqm|pcs?|units?|hrs?|hours?)\)', re.I)
PRICE_FRAGMENT = re.compile(r'^[£\d\s.\-%,]+$')
LABEL_LINE = re.compile(r'^(tel|phone|mobile|fax|call|date|dated|ref|reference|quote\s*(?:no|number)|invoice|valid|page)\b', re.I)

MARKETING_PATTERNS = (
    re.compile(r'worth\s*$', re.I),
    re.compile(r'worth\s*£', re.I),
    re.compile(r'£[\d,]+\.?\d*\s*worth', re.I),
    re.compile(r'worth\s+of', re.I),
    re.compile(r"that'?s\s+worth", re.I),
    re.compile(r'free\s+.*worth', re.I),
    re.compile(r'\b(complimentary|bonus|included|no\s*charge|FOC)\b', re.I),
)
NOTE_PATTERN = re.compile(r'^\(.*\)$|^\(?this\s+is\s+', re.I)


def is_marketing_line(text: str) -> bool:
    """Promotional copy such as 'free upgrade worth £500' is never a charge."""
    return any(pattern.search(text) for pattern in MARKETING_PATTERNS)


def _amount(value: str) -> float:
    number = parse_number(value)
    return number if number is not None else 0.0


class QuoteParser:
    """Parse contractor quote PDFs into line items plus a quote aggregate"""

    def __init__(self, engine: ClassificationEngine = None, debug: bool = False):
        self.engine = engine or ClassificationEngine(debug=debug)
        self.classifier = DEFAULT_CLASSIFIER
        self.debug = debug

    def parse(self, data: bytes, filename: str = '') -> ParseResult:
        """
        Extract a quote from PDF bytes.

        Args:
            data: Raw PDF bytes
            filename: Original file name, recorded on the quote

        Returns:
            ParseResult whose records are QuoteLineItems
        """
        text = extract_pdf_text(data, debug=self.debug)
        if len(text.strip()) < MIN_PDF_TEXT_LENGTH:
            result = ParseResult.failure(INSUFFICIENT_TEXT_ERROR, sourceType='pdf')
            result.add_warning('Try a text-based PDF or manually enter the quote details.')
            return result
        return self.parse_text(text, filename)

    def parse_text(self, text: str, filename: str = 'manual-entry') -> ParseResult:
        """Extract a quote from already-decoded text."""
        result = ParseResult(metadata={'sourceType': 'pdf', 'fileName': filename})

        contractor = self.extract_contractor(text)
        reference = extract_reference(text)
        dates = self.extract_dates(text)
        totals = self.extract_totals(text)
        items = [item for item in self.extract_line_items(text) if not is_marketing_line(item.description)]

        if not totals.get('total') and not items:
            result.errors.append(NO_QUOTE_ERROR)
            result.add_warning('Ensure the PDF contains pricing information with pound symbols (£)')
            return result

        confidence = self._quote_confidence(contractor, reference, totals, items)
        category_totals = self.category_totals(items)
        items_sum = round(sum(item.signed_amount for item in items), 2)
        total = totals.get('total') or items_sum
        subtotal = totals.get('subtotal') or items_sum or (total - (totals.get('vat_amount') or 0))

        quote = ExtractedQuote(
            contractor_name=contractor.get('name') or 'Unknown Contractor',
            company=contractor.get('company'),
            contact_name=contractor.get('contact_name'),
            phone=contractor.get('phone'),
            email=contractor.get('email'),
            address=contractor.get('address'),
            quote_date=dates.get('quote_date'),
            valid_until=dates.get('valid_until'),
            reference=reference,
            subtotal=round(subtotal, 2),
            vat_rate=totals.get('vat_rate'),
            vat_amount=totals.get('vat_amount'),
            total=round(total, 2),
            labour_total=category_totals['labour'],
            materials_total=category_totals['materials'],
            fixtures_total=category_totals['fixtures'],
            other_total=round(category_totals['other'] + category_totals['sundries'], 2),
            confidence=confidence,
            source_file_name=filename,
        )

        result.records = items
        self.engine.process(result, 'quote')
        result.metadata['quote'] = quote.to_dict()
        result.success = True

        if confidence < CONFIDENCE_MEDIUM:
            result.add_warning('Low confidence extraction - please verify all amounts')
        if not items:
            result.add_warning('No itemised breakdown found - only totals extracted')
        if not quote.vat_amount and quote.total > 100:
            result.add_warning('VAT amount not detected - verify if quote includes VAT')

        print(f"[INFO] Quote extracted: {len(items)} items, total £{quote.total:,.2f}, "
              f"confidence {confidence:.2f}", flush=True)
        return result

    # ------------------------------------------------------------ contractor

    def extract_contractor(self, text: str) -> Dict:
        contractor = {}

        emails = extract_emails(text)
        if emails:
            contractor['email'] = emails[0]

        match = LABELLED_PHONE.search(text)
        if match and len(re.sub(r'\D', '', match.group(1))) >= 10:
            contractor['phone'] = re.sub(r'\s+', ' ', match.group(1)).strip()
        else:
            phones = extract_phones(text)
            if phones:
                contractor['phone'] = phones[0]['display']

        company = extract_company_name(text)
        if company:
            contractor['company'] = company
            contractor['name'] = company

        names = extract_contact_names(text)
        if names:
            contractor['contact_name'] = ', '.join(names)

        address = extract_postcode_address(text)
        if address:
            contractor['address'] = address
        return contractor

    # ----------------------------------------------------------------- dates

    def extract_dates(self, text: str, today: date = None) -> Dict:
        dates = {}
        quote_date = None
        for pattern in QUOTE_DATE:
            match = pattern.search(text)
            if match:
                quote_date = parse_date_string(match.group(1))
                if quote_date:
                    dates['quote_date'] = to_iso(quote_date)
                break

        match = VALID_UNTIL.search(text)
        if match:
            valid = parse_date_string(match.group(1))
            if valid:
                dates['valid_until'] = to_iso(valid)
        else:
            match = VALID_FOR_DAYS.search(text)
            if match:
                start = quote_date or today or date.today()
                dates['valid_until'] = to_iso(start + timedelta(days=int(match.group(1))))
        return dates

    # ---------------------------------------------------------------- totals

    def extract_totals(self, text: str) -> Dict:
        """
        Total, subtotal, VAT amount and VAT rate.

        The last total in the document is the grand total. 'Exc VAT' style
        subtotals outrank 'Sub total', which can repeat per section.
        """
        totals = {}

        last_total = None
        for pattern in TOTAL_PATTERNS:
            for match in pattern.finditer(text):
                amount = _amount(match.group(1))
                if amount > 0 and (last_total is None or match.start() > last_total[1]):
                    last_total = (amount, match.start())
        if last_total:
            totals['total'] = last_total[0]

        for pattern in PRIORITY_SUBTOTAL_PATTERNS:
            match = pattern.search(text)
            if match and _amount(match.group(1)) > 0:
                totals['subtotal'] = _amount(match.group(1))
                break
        if 'subtotal' not in totals:
            matches = list(FALLBACK_SUBTOTAL.finditer(text))
            if matches:
                totals['subtotal'] = _amount(matches[-1].group(1))

        vat_amount = extract_vat_amount(text, totals.get('subtotal') or totals.get('total'))
        if vat_amount:
            totals['vat_amount'] = vat_amount

        vat_rate = detect_vat_rate(text, totals.get('subtotal'), totals.get('vat_amount'))
        if vat_rate:
            totals['vat_rate'] = vat_rate

        if totals.get('subtotal') and totals.get('total') and not totals.get('vat_amount'):
            calculated = round(totals['total'] - totals['subtotal'], 2)
            if 0 < calculated < totals['total']:
                totals['vat_amount'] = calculated

        if self.debug:
            print(f"[DEBUG] Quote totals: {totals}", flush=True)
        return totals

    # ------------------------------------------------------------ line items

    def extract_line_items(self, text: str) -> List[QuoteLineItem]:
        lines = [line.strip() for line in normalize_text(text).split('\n') if line.strip()]
        is_table = any(pattern.search(text) for pattern in TABLE_SIGNALS)

        if is_table:
            table_items = self.extract_table_items(lines)
            if table_items:
                return table_items

        simple_items = self.extract_simple_items(lines)
        if len(simple_items) <= 3:
            table_items = self.extract_table_items(lines)
            if len(table_items) > len(simple_items):
                return table_items
        return simple_items

    def _item(self, description: str, amount: float, quantity: float = None,
              unit_price: float = None, line: str = '') -> QuoteLineItem:
        # Unmatched items are left for the engine to infer
        category, matched = self.classifier.categorize_quote_item(description)
        notes = 'discount' if amount < 0 or re.search(r'discount|deduction', description, re.I) else None
        return QuoteLineItem(
            description=description,
            amount=abs(amount),
            category=category if matched else '',
            quantity=quantity,
            unit_price=unit_price,
            notes=notes,
            source_snippet=line,
        )

    def _skip_description(self, description: str) -> bool:
        return (
            VAT_LINE.match(description) is not None
            or SUMMARY_DESCRIPTION.match(description) is not None
            or is_marketing_line(description)
            or NOTE_PATTERN.match(description) is not None
        )

    def extract_table_items(self, lines: List[str]) -> List[QuoteLineItem]:
        """Table rows: no-space, lookback description, spaced, or lookahead price row."""
        items = []
        skip_next = False
        for i, line in enumerate(lines):
            if skip_next:
                skip_next = False
                continue
            if len(line) < 10 or TABLE_HEADER_LINE.match(line):
                continue

            match = NO_SPACE_ROW.match(line)
            if match:
                description = match.group(1).strip()
                if len(description) >= 3 and not self._skip_description(description):
                    unit_price, quantity, total = _amount(match.group(2)), float(match.group(3)), _amount(match.group(5))
                    if total != 0:
                        items.append(self._item(description, total,
                                                quantity if quantity != 1 else None,
                                                unit_price if unit_price != total else None, line))
                continue

            match = NO_DESCRIPTION_ROW.match(line)
            if match:
                description = self._look_back_description(lines, i)
                if description and not VAT_LINE.match(description):
                    unit_price, quantity, total = _amount(match.group(1)), float(match.group(2)), _amount(match.group(4))
                    if total != 0:
                        items.append(self._item(description, total,
                                                quantity if quantity != 1 else None,
                                                unit_price if unit_price != total else None, line))
                continue

            match = SPACED_ROW.match(line)
            if match:
                description = match.group(1).strip()
                if len(description) >= 3 and not self._skip_description(description):
                    unit_price, quantity, total = _amount(match.group(2)), float(match.group(3)), _amount(match.group(4))
                    if total != 0:
                        items.append(self._item(description, total,
                                                quantity if quantity != 1 else None,
                                                unit_price if unit_price != total else None, line))
                continue

            match = DESCRIPTION_AMOUNT_ROW.match(line)
            if match:
                description = match.group(1).strip()
                amount = _amount(match.group(2))
                if (len(description) >= 5 and not PRICE_FRAGMENT.match(description)
                        and not self._skip_description(description) and amount != 0):
                    qty = QUANTITY_PREFIX.match(description)
                    items.append(self._item(qty.group(2).strip() if qty else description, amount,
                                            float(qty.group(1)) if qty else None, line=line))
                continue

            if i + 1 < len(lines):
                price = PRICE_ONLY_ROW.match(lines[i + 1])
                if price and not PRICE_FRAGMENT.match(line) and not self._skip_description(line):
                    unit_price, quantity, total = _amount(price.group(1)), float(price.group(2)), _amount(price.group(3))
                    items.append(self._item(line, total,
                                            quantity if quantity != 1 else None,
                                            unit_price if unit_price != total else None,
                                            f"{line}\n{lines[i + 1]}"))
                    skip_next = True
        return items

    def _look_back_description(self, lines: List[str], index: int) -> Optional[str]:
        for j in range(index - 1, max(-1, index - 4), -1):
            previous = lines[j].strip()
            if not previous or PRICE_FRAGMENT.match(previous) or '£' in previous:
                continue
            if TABLE_HEADER_LINE.match(previous):
                continue
            if is_marketing_line(previous) or NOTE_PATTERN.match(previous):
                continue
            return previous
        return None

    def extract_simple_items(self, lines: List[str]) -> List[QuoteLineItem]:
        """'Description £amount' lines, with '2 x Basin' quantities."""
        items = []
        for line in lines:
            if len(line) < 5 or LABEL_LINE.match(line) or self._skip_description(line):
                continue
            match = SIMPLE_ROW.match(line)
            if not match:
                continue
            amount = _amount(match.group(2))
            description = match.group(1).strip()
            if amount <= 0 or len(description) < 3 or re.match(r'^[\d\s\-.]+$', description):
                continue
            if is_marketing_line(description):
                continue

            quantity = unit_price = None
            qty = re.match(r'^(\d+)\s*[x×]\s*(.+)$', description, re.I)
            if qty:
                quantity = float(qty.group(1))
                unit_price = round(amount / quantity, 2) if quantity else None
                description = qty.group(2).strip()
            else:
                units = QUANTITY_UNITS.search(description)
                if units:
                    quantity = float(units.group(1))
            items.append(self._item(description, amount, quantity, unit_price, line))
        return items

    # ------------------------------------------------------------ aggregates

    @staticmethod
    def category_totals(items: List[QuoteLineItem]) -> Dict[str, float]:
        totals = {'labour': 0.0, 'materials': 0.0, 'fixtures': 0.0, 'sundries': 0.0, 'other': 0.0}
        for item in items:
            key = item.category if item.category in totals else 'other'
            totals[key] = round(totals[key] + item.signed_amount, 2)
        return totals

    def _quote_confidence(self, contractor: Dict, reference: Optional[str], totals: Dict,
                          items: List[QuoteLineItem]) -> float:
        confidence = 0.5
        if contractor.get('name'):
            confidence += 0.1
        if totals.get('total'):
            confidence += 0.15
        if totals.get('subtotal'):
            confidence += 0.1
        if totals.get('vat_amount'):
            confidence += 0.1
        if items:
            confidence += 0.15
        if len(items) > 5:
            confidence += 0.1
        if reference:
            confidence += 0.05
        if contractor.get('email'):
            confidence += 0.05
        if contractor.get('phone'):
            confidence += 0.05

        items_sum = sum(item.signed_amount for item in items)
        expected = totals.get('subtotal') or (
            totals['total'] - (totals.get('vat_amount') or 0) if totals.get('total') else 0)
        if items and expected > 0:
            pct = abs(items_sum - expected) / expected * 100
            if pct > 2:
                confidence -= min(0.15, pct / 100)

        return round(min(confidence, 1.0, CONFIDENCE_CEILING), 2)
