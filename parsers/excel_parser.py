"""
Excel Parser Module - Extract transactions from bank statement CSV/Excel files

CSV text is tokenised here; spreadsheets are decoded to a grid of strings
with pandas. Both then go through ExcelParser.parse_rows so the two formats
share one row-to-transaction mapping.
"""

import io
import os
import re
import sys
from datetime import date, datetime
from typing import Dict, List, Optional

import pandas as pd

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from models import ParseResult, Transaction
from classifiers.keyword_classifier import DEFAULT_CLASSIFIER
from .errors import EmptyWorkbookError
from .patterns import YEAR_FROM_TODAY, parse_date_string, parse_number, has_explicit_year, to_iso

# Header keywords per semantic field; first column containing a keyword wins
HEADER_KEYWORDS = {
    'date': ('date', 'transaction date', 'value date'),
    'amount': ('amount',),
    'debit': ('debit',),
    'credit': ('credit',),
    'description': ('description', 'details', 'narrative', 'merchant', 'payee'),
    'counterparty': ('counter party', 'counterparty', 'payee'),
    'reference': ('reference', 'ref'),
    'category': ('category', 'spending category'),
    'direction': ('direction', 'type'),
    'balance': ('balance',),
}

DIRECTION_VALUES = {
    'debit': 'debit', 'dr': 'debit', 'out': 'debit', 'withdrawal': 'debit',
    'credit': 'credit', 'cr': 'credit', 'in': 'credit', 'deposit': 'credit',
}

DESCRIPTION_SEPARATOR = ' • '
CSV_ENCODINGS = ('utf-8-sig', 'latin-1', 'cp1252')


def parse_csv_line(line: str) -> List[str]:
    """
    Split one CSV line, honouring double-quoted fields.

    A doubled quote inside a quoted field is a literal quote.
    """
    fields = []
    current = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == ',' and not in_quotes:
            fields.append(''.join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1
    fields.append(''.join(current).strip())
    return fields


def parse_csv_content(content: str) -> List[List[str]]:
    """Tokenise CSV text into rows, skipping blank lines."""
    return [parse_csv_line(line) for line in re.split(r'\r?\n', content or '') if line.strip()]


def decode_csv_bytes(data: bytes) -> str:
    # Try different encodings
    for encoding in CSV_ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode('utf-8', errors='replace')


def _spreadsheet_cell(value) -> str:
    # Date cells arrive as Timestamp/datetime; keep only the calendar date
    if isinstance(value, (datetime, date)):
        return value.strftime('%Y-%m-%d')
    return str(value).strip()


def decode_spreadsheet(data: bytes) -> List[List[str]]:
    """
    Decode the first sheet of an .xlsx/.xls workbook into rows of strings.

    Raises:
        EmptyWorkbookError: when the workbook has no sheets
    """
    sheets = pd.read_excel(io.BytesIO(data), sheet_name=None, header=None)
    if not sheets:
        raise EmptyWorkbookError('Excel file has no sheets')

    df = next(iter(sheets.values())).fillna('')
    rows = []
    for values in df.itertuples(index=False, name=None):
        row = [_spreadsheet_cell(value) for value in values]
        if any(row):
            rows.append(row)
    return rows


def _find_header_index(headers: List[str], keywords) -> int:
    for index, header in enumerate(headers):
        if any(keyword in header for keyword in keywords):
            return index
    return -1


class ExcelParser:
    """Map tabular statement rows onto Transactions"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.column_mapping: Dict[str, int] = {}
        self.classifier = DEFAULT_CLASSIFIER

    def detect_columns(self, headers: List[str]) -> Dict[str, int]:
        """Auto-detect column indexes from header names"""
        normalized = [str(h or '').strip().lower() for h in headers]
        mapping = {}
        for field_name, keywords in HEADER_KEYWORDS.items():
            index = _find_header_index(normalized, keywords)
            if index >= 0:
                mapping[field_name] = index
        if mapping.get('counterparty') is not None and mapping.get('counterparty') == mapping.get('description'):
            del mapping['counterparty']
        self.column_mapping = mapping
        if self.debug:
            print(f"[DEBUG] Column mapping: {mapping}", flush=True)
        return mapping

    def parse_rows(self, rows: List[List[str]], source_type: str = 'csv') -> ParseResult:
        """
        Convert a header row plus data rows into a ParseResult.

        Args:
            rows: Grid of strings, header first
            source_type: 'csv', 'xlsx' or 'xls'

        Returns:
            ParseResult with one Transaction per usable row
        """
        result = ParseResult(metadata={'sourceType': source_type})
        if not rows:
            result.errors.append('Statement file is empty.')
            return result

        headers = rows[0]
        signature = '|'.join(str(h).strip().lower() for h in headers)
        if 'counter party' in signature and 'spending category' in signature:
            result.metadata['bank'] = 'Starling'
            result.metadata['currency'] = 'GBP'

        mapping = self.detect_columns(headers)
        has_amount = any(key in mapping for key in ('amount', 'debit', 'credit'))
        if 'date' not in mapping or not has_amount:
            result.errors.append('Unable to detect required columns (date/amount).')
            return result

        for offset, row in enumerate(rows[1:]):
            row_number = offset + 2
            transaction = self._parse_row(row, mapping, source_type, row_number, result)
            if transaction is not None:
                result.records.append(transaction)

        result.derive_date_range()
        result.success = True
        if not result.records:
            result.add_warning('No transactions found in file.')
        print(f"[INFO] Parsed {len(result.records)} transactions from {source_type.upper()}", flush=True)
        return result

    def _cell(self, row: List[str], mapping: Dict[str, int], name: str) -> str:
        index = mapping.get(name)
        if index is None or index >= len(row):
            return ''
        return re.sub(r'\s+', ' ', str(row[index] or '')).strip()

    def _parse_row(self, row: List[str], mapping: Dict[str, int], source_type: str,
                   row_number: int, result: ParseResult) -> Optional[Transaction]:
        warnings = []

        date_value = self._cell(row, mapping, 'date')
        parsed_date = parse_date_string(date_value)
        if parsed_date is None:
            result.add_warning(f"Row {row_number}: invalid date '{date_value}' - row skipped")
            return None
        if not has_explicit_year(date_value):
            warnings.append(YEAR_FROM_TODAY)

        raw_amount = parse_number(self._cell(row, mapping, 'amount')) if 'amount' in mapping else None
        raw_debit = parse_number(self._cell(row, mapping, 'debit')) if 'debit' in mapping else None
        raw_credit = parse_number(self._cell(row, mapping, 'credit')) if 'credit' in mapping else None

        direction = DIRECTION_VALUES.get(self._cell(row, mapping, 'direction').lower())
        if raw_amount is not None:
            amount = abs(raw_amount)
            if direction is None:
                direction = 'debit' if raw_amount < 0 else 'credit'
        elif raw_debit is not None and raw_debit != 0:
            amount = abs(raw_debit)
            direction = direction or 'debit'
        elif raw_credit is not None:
            amount = abs(raw_credit)
            direction = direction or 'credit'
        elif raw_debit is not None:
            amount = abs(raw_debit)
            direction = direction or 'debit'
        else:
            result.add_warning(f"Row {row_number}: invalid amount - row skipped")
            return None

        counterparty = self._cell(row, mapping, 'counterparty')
        reference = self._cell(row, mapping, 'reference')
        description = DESCRIPTION_SEPARATOR.join(
            part for part in (self._cell(row, mapping, 'description'), counterparty, reference) if part)

        if direction is None:
            direction = self.classifier.infer_direction(description) or 'debit'
            warnings.append('Direction inferred')

        bank_category = self._cell(row, mapping, 'category')
        category = ''
        mapped = self.classifier.map_bank_category(bank_category)
        if mapped:
            category = mapped['category']
            if mapped['warning']:
                warnings.append(mapped['warning'])

        balance = parse_number(self._cell(row, mapping, 'balance')) if 'balance' in mapping else None

        return Transaction(
            description=description,
            amount=amount,
            date=to_iso(parsed_date),
            category=category,
            warnings=warnings,
            source_snippet=','.join(str(cell) for cell in row),
            direction=direction,
            balance=balance,
            bank_category=bank_category or None,
            reference=reference or None,
            counterparty=counterparty or None,
            source=source_type,
        )


def parse_csv_statement(content: str, source_type: str = 'csv') -> ParseResult:
    """Convenience: tokenise CSV text and map its rows"""
    return ExcelParser().parse_rows(parse_csv_content(content), source_type)
