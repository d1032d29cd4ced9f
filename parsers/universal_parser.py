"""
Universal Parser Module - Detect file format and route to the right strategy

Routing is by file extension only. Every route ends in the
ClassificationEngine so all formats leave with the same guarantees.
"""

import os
import sys
from dataclasses import dataclass
from typing import Dict

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from config import SUPPORTED_EXTENSIONS, MIN_PDF_TEXT_LENGTH
from models import ParseResult
from classifiers.classification_engine import ClassificationEngine
from .errors import EmptyWorkbookError, UnsupportedFormatError
from .excel_parser import ExcelParser, decode_csv_bytes, decode_spreadsheet, parse_csv_content
from .pdf_parser import INSUFFICIENT_TEXT_ERROR, INSUFFICIENT_TEXT_SUGGESTION, extract_pdf_text
from .smart_parser import SmartParser

UNSUPPORTED_MESSAGE = 'Unsupported file type. Upload CSV, PDF, or Excel.'


def detect_format(filename: str) -> str:
    """'csv', 'xlsx', 'xls', 'pdf' or 'unsupported', from the extension alone."""
    ext = os.path.splitext(filename or '')[1].lower()
    return SUPPORTED_EXTENSIONS.get(ext, 'unsupported')


@dataclass
class SourceDocument:
    """One upload; consumed by a single parse call."""

    data: bytes
    filename: str
    format: str = ''

    def __post_init__(self):
        if not self.format:
            self.format = detect_format(self.filename)


class UniversalParser:
    """Universal parser that auto-detects and routes to appropriate parser"""

    def __init__(self, use_ai: bool = False, smart_parser: SmartParser = None,
                 engine: ClassificationEngine = None, debug: bool = False):
        self.use_ai = use_ai
        self.debug = debug
        self.excel_parser = ExcelParser(debug=debug)
        self.smart_parser = smart_parser or SmartParser(debug=debug)
        self.engine = engine or ClassificationEngine(debug=debug)
        self.last_result = None

    def parse(self, filename: str, data: bytes) -> ParseResult:
        """
        Parse an uploaded statement.

        Args:
            filename: Declared file name; only its extension is used
            data: Raw file bytes

        Returns:
            Processed ParseResult

        Raises:
            UnsupportedFormatError: extension is not csv/xlsx/xls/pdf
            EmptyWorkbookError: spreadsheet has no sheets
        """
        document = SourceDocument(data=data, filename=filename)
        if document.format == 'unsupported':
            raise UnsupportedFormatError(UNSUPPORTED_MESSAGE)

        print(f"[INFO] Parsing {document.filename} as {document.format.upper()}", flush=True)
        if document.format == 'csv':
            rows = parse_csv_content(decode_csv_bytes(document.data))
            result = self.excel_parser.parse_rows(rows, 'csv')
        elif document.format in ('xlsx', 'xls'):
            result = self._parse_spreadsheet(document)
        else:
            result = self._parse_pdf(document)

        self.engine.process(result, 'statement')
        self.last_result = result
        return result

    def _parse_spreadsheet(self, document: SourceDocument) -> ParseResult:
        try:
            rows = decode_spreadsheet(document.data)
        except EmptyWorkbookError:
            raise
        except Exception as e:
            print(f"[ERROR] Spreadsheet decoding failed: {e}", flush=True)
            return ParseResult.failure(f"Could not read spreadsheet: {e}", sourceType=document.format)
        return self.excel_parser.parse_rows(rows, document.format)

    def _parse_pdf(self, document: SourceDocument) -> ParseResult:
        text = extract_pdf_text(document.data, debug=self.debug)
        if len(text.strip()) < MIN_PDF_TEXT_LENGTH:
            result = ParseResult.failure(INSUFFICIENT_TEXT_ERROR, sourceType='pdf')
            result.add_warning(INSUFFICIENT_TEXT_SUGGESTION)
            return result
        return self.smart_parser.parse_statement_text(text, use_ai=self.use_ai)

    def get_summary(self) -> Dict:
        """Get parsing summary for the last parsed file"""
        if self.last_result is None:
            return {'status': 'no_file_parsed'}
        summary = self.engine.get_summary(self.last_result)
        summary['source_type'] = self.last_result.metadata.get('sourceType')
        summary['strategy'] = self.last_result.metadata.get('strategy')
        return summary


def parse_bank_statement(file_path: str, use_ai: bool = False) -> tuple:
    """
    Convenience function to parse a bank statement from disk

    Args:
        file_path: Path to bank statement file
        use_ai: If True, try the AI strategy first for PDFs

    Returns:
        Tuple of (ParseResult, summary dict)
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"File not found: {file_path}")
    with open(file_path, 'rb') as handle:
        data = handle.read()
    parser = UniversalParser(use_ai=use_ai)
    result = parser.parse(os.path.basename(file_path), data)
    return result, parser.get_summary()
