"""
PDF Parser Module - Extract text and transactions from bank statement PDFs

Text comes from pdfplumber; when a PDF yields almost nothing (scanned or
image-only) the pages are rasterised with pdf2image and run through
tesseract. Transactions are then recovered by one of two line grammars:

1. Virgin Money: date line, description lines, then an amount line whose
   last two figures are the amount and the running balance
2. Generic: lines between the column header and the statement footer, with
   the date prefix and amounts allowed on the same line

Direction comes from the running-balance delta when a balance is known,
otherwise from description hints, and only as a last resort defaults to
debit with a "Direction inferred" warning.
"""

import io
import os
import re
import sys
from datetime import date
from typing import List, Optional, Pattern

import pdfplumber
import pytesseract
from pdf2image import convert_from_bytes

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from config import TESSERACT_CMD, POPPLER_PATH, OCR_TRIGGER_LENGTH
from models import ParseResult, Transaction
from classifiers.keyword_classifier import DEFAULT_CLASSIFIER
from .patterns import (STATEMENT_AMOUNT, YEAR_FROM_STATEMENT, YEAR_FROM_TODAY, detect_bank,
                       parse_date_string, parse_number, parse_statement_date, to_iso)

INSUFFICIENT_TEXT_ERROR = ('Could not extract sufficient text from PDF. '
                           'The file may be image-based or corrupted.')
INSUFFICIENT_TEXT_SUGGESTION = 'Try a different file, or export the document as CSV or Excel.'

DIRECTION_INFERRED = 'Direction inferred'

DATE_LINE = re.compile(r'^(\d{1,2})\s+([A-Za-z]+)(?:\s+(\d{4}))?\s*(.*)$')
BALANCE_ONLY_LINE = re.compile(r'^\d{1,3}(?:,\d{3})*\.\d{2}$')

VIRGIN_OPENING = re.compile(r'(?:Previous statement|Balance brought forward).*?(\d{1,3}(?:,\d{3})*\.\d{2})', re.I)
GENERIC_OPENING = re.compile(
    r'(?:opening balance|balance brought forward|previous balance|balance b/f)[^\d]*?'
    r'(\d{1,3}(?:,\d{3})*\.\d{2})', re.I)

GENERIC_END = re.compile(r'page\s+\d+\s+of|important information|end of statement', re.I)

# Page furniture and marketing copy removed before the Virgin Money grammar runs
SECTION_NOISE = (
    re.compile(r'Page \d+ of \d+', re.I),
    re.compile(r'DateDescriptionDebitsCreditsBalance'),
    re.compile(r'Date\s+Description\s+Debits\s+Credits\s+Balance', re.I),
    re.compile(r'Have a think about[^\n]*\n?', re.I),
    re.compile(r'Change\s*of\s*address[^\n]*\n?', re.I),
)
SECTION_START = (
    re.compile(r'\d{1,2}\s+[A-Z][a-z]{2}\s+\d{4}'),
    re.compile(r'\d{1,2}\s+[A-Z][a-z]{2}\s+'),
    re.compile(r'Balance brought forward', re.I),
)


def extract_pdf_text(data: bytes, debug: bool = False) -> str:
    """
    Decode PDF bytes to text, falling back to OCR for image-based files.

    Decoder failures are logged and yield an empty string; the caller turns
    short output into a user-facing error.
    """
    text = _extract_with_pdfplumber(data)
    if debug:
        print(f"[DEBUG] pdfplumber extracted {len(text)} characters", flush=True)

    if len(text.strip()) < OCR_TRIGGER_LENGTH:
        print("[INFO] Little or no text layer found, trying OCR...", flush=True)
        ocr_text = _extract_with_ocr(data)
        if len(ocr_text.strip()) > len(text.strip()):
            text = ocr_text
    return text


def _extract_with_pdfplumber(data: bytes) -> str:
    """Extract text using pdfplumber (for text-based PDFs)"""
    try:
        pages = []
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            for page in pdf.pages:
                page_text = page.extract_text()
                if page_text:
                    pages.append(page_text)
        return '\n'.join(pages)
    except Exception as e:
        print(f"[ERROR] pdfplumber extraction failed: {e}", flush=True)
        return ''


def _extract_with_ocr(data: bytes) -> str:
    """Extract text using OCR (for image-based/scanned PDFs)"""
    try:
        if TESSERACT_CMD and os.path.exists(TESSERACT_CMD):
            pytesseract.pytesseract.tesseract_cmd = TESSERACT_CMD

        if POPPLER_PATH and os.path.exists(POPPLER_PATH):
            images = convert_from_bytes(data, dpi=300, poppler_path=POPPLER_PATH)
        else:
            images = convert_from_bytes(data, dpi=300)

        print(f"[INFO] Converted {len(images)} pages, running OCR...", flush=True)
        pages = []
        for image in images:
            page_text = pytesseract.image_to_string(image, config=r'--oem 3 --psm 6')
            if page_text:
                pages.append(page_text)
        return '\n'.join(pages)
    except Exception as e:
        print(f"[ERROR] OCR extraction failed: {e}", flush=True)
        return ''


def extract_pdf_section(text: str) -> str:
    """Strip page furniture and start at the first transaction-looking line."""
    cleaned = text or ''
    for pattern in SECTION_NOISE:
        cleaned = pattern.sub('', cleaned)
    cleaned = re.sub(r'\n{3,}', '\n\n', cleaned)

    start = 0
    for pattern in SECTION_START:
        match = pattern.search(cleaned)
        if match:
            start = match.start()
            break
    return cleaned[start:].strip()


def _normalize_lines(text: str) -> List[str]:
    lines = (re.sub(r'\s+', ' ', line).strip() for line in (text or '').split('\n'))
    return [line for line in lines if line]


def extract_generic_lines(text: str) -> List[str]:
    """Lines between the transaction column header and the statement footer."""
    lines = _normalize_lines(text)
    header_index = next((
        i for i, line in enumerate(lines)
        if re.search(r'date', line, re.I) and re.search(r'balance', line, re.I)
        and re.search(r'description|details', line, re.I)
    ), -1)
    content = lines[header_index + 1:] if header_index >= 0 else lines
    end_index = next((i for i, line in enumerate(content) if GENERIC_END.search(line)), -1)
    return content[:end_index] if end_index >= 0 else content


class StatementPDFParser:
    """Deterministic line grammars over extracted statement text"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.classifier = DEFAULT_CLASSIFIER

    def parse_virgin_money(self, text: str) -> ParseResult:
        """Virgin Money layout: opening balance from 'Previous statement'."""
        result = self._new_result(text, bank='Virgin Money')
        lines = _normalize_lines(extract_pdf_section(text))
        return self._walk(lines, result, VIRGIN_OPENING, inline_amounts=False)

    def parse_generic(self, text: str) -> ParseResult:
        """Any bank: date and amount on the same line, description in between."""
        result = self._new_result(text, bank=detect_bank(text))
        lines = extract_generic_lines(text)
        if not lines:
            result.errors.append('No statement lines detected.')
            return result
        return self._walk(lines, result, GENERIC_OPENING, inline_amounts=True)

    def _new_result(self, text: str, bank: Optional[str]) -> ParseResult:
        result = ParseResult(metadata={'sourceType': 'pdf'})
        if bank:
            result.metadata['bank'] = bank
        statement_date = parse_statement_date(text)
        if statement_date:
            result.metadata['statementDate'] = statement_date.isoformat()
        return result

    def _walk(self, lines: List[str], result: ParseResult, opening: Pattern,
              inline_amounts: bool) -> ParseResult:
        statement_date = None
        if result.metadata.get('statementDate'):
            statement_date = date.fromisoformat(result.metadata['statementDate'])
        statement_year = statement_date.year if statement_date else date.today().year
        statement_month = statement_date.month if statement_date else None
        year_warning = YEAR_FROM_STATEMENT if statement_date else YEAR_FROM_TODAY

        state = {'last_balance': None}
        current_date = None
        year_inferred = False
        pending: List[str] = []
        last_transaction: Optional[Transaction] = None

        for line in lines:
            if line.startswith('DateDescription'):
                continue

            opening_match = opening.search(line)
            if opening_match:
                opening_balance = parse_number(opening_match.group(1))
                if opening_balance is not None:
                    state['last_balance'] = opening_balance
                continue

            working = line
            date_match = DATE_LINE.match(working)
            if date_match:
                day_str, month_name, year_str, rest = date_match.groups()
                parsed = parse_date_string(f"{day_str} {month_name} {year_str or ''}".strip(),
                                           default_year=statement_year,
                                           statement_month=statement_month)
                if parsed:
                    current_date = parsed
                    year_inferred = not year_str
                rest = (rest or '').strip()
                if not inline_amounts:
                    if rest:
                        pending.append(rest)
                    continue
                working = rest
                if not working:
                    continue

            raw_amounts = STATEMENT_AMOUNT.findall(working)
            if not raw_amounts:
                pending.append(working)
                continue

            amounts = [a for a in (parse_number(raw) for raw in raw_amounts) if a is not None]
            raw_description = re.sub(r'\s+', ' ', STATEMENT_AMOUNT.sub('', working)).strip()

            if (len(amounts) == 1 and not raw_description and not pending
                    and last_transaction is not None and last_transaction.balance is None):
                last_transaction.balance = amounts[0]
                self._finalize_direction(last_transaction, state)
                continue

            amount = amounts[0]
            balance = None
            if len(amounts) >= 2:
                balance = amounts[-1]
                amount = amounts[-2]

            description = ' '.join(part for part in pending + [raw_description] if part)
            pending = []

            if current_date is None:
                result.add_warning(f'Missing date for transaction "{description or "Unknown"}"')

            warnings = []
            if not description:
                warnings.append('Missing description')
            if current_date is not None and year_inferred:
                warnings.append(year_warning)

            transaction = Transaction(
                description=description,
                amount=abs(amount),
                date=to_iso(current_date),
                warnings=warnings,
                source_snippet=line,
                balance=balance,
                source='pdf',
            )
            self._finalize_direction(transaction, state)
            last_transaction = transaction
            result.records.append(transaction)

        if (last_transaction is not None and last_transaction.balance is None
                and not pending and lines and BALANCE_ONLY_LINE.match(lines[-1])):
            last_transaction.balance = parse_number(lines[-1])
            self._finalize_direction(last_transaction, state)

        if not result.records:
            result.errors.append('No transactions detected in statement text.')
            return result

        if self.debug:
            print(f"[DEBUG] Grammar recovered {len(result.records)} transactions", flush=True)
        result.derive_date_range()
        result.success = True
        return result

    def _finalize_direction(self, transaction: Transaction, state: dict):
        """Balance delta first, then description hints, then debit."""
        if transaction.balance is not None:
            last_balance = state['last_balance']
            state['last_balance'] = transaction.balance
            if last_balance is not None:
                transaction.direction = 'credit' if transaction.balance >= last_balance else 'debit'
                if DIRECTION_INFERRED in transaction.warnings:
                    transaction.warnings.remove(DIRECTION_INFERRED)
                return

        inferred = self.classifier.infer_direction(transaction.description)
        if inferred:
            transaction.direction = inferred
        else:
            transaction.direction = 'debit'
            transaction.add_warning(DIRECTION_INFERRED)
