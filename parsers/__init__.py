"""
Parsers Package - Document extraction strategies

Architecture:
1. UniversalParser (universal_parser.py) - Statement entry point: routes CSV/Excel/PDF
2. ExcelParser (excel_parser.py) - CSV and spreadsheet rows to transactions
3. SmartParser (smart_parser.py) - Ordered strategy chain for statement text
4. StatementPDFParser (pdf_parser.py) - Deterministic statement grammars with OCR support
5. AIParser (ai_parser.py) - AI strategy, validated and falling back to the grammars
6. QuoteParser (quote_parser.py) - Contractor quote PDFs
7. SurveyParser (survey_parser.py) - Building survey reports
8. EmailParser (email_parser.py) - Contractor/supplier emails

Shared helpers live in patterns.py (dates, amounts, phones, companies, VAT)
and text_reconstruction.py (paragraph and sentence rebuilding).
"""

from .errors import (ExtractionError, UnsupportedFormatError, EmptyWorkbookError, EmptyEmailError,
                     StrategyError, AIUnavailableError, AIResponseError)
from .excel_parser import ExcelParser, parse_csv_statement
from .pdf_parser import StatementPDFParser, extract_pdf_text
from .ai_parser import AIClient, AIParser
from .smart_parser import SmartParser, Strategy, run_strategies, smart_parse
from .universal_parser import UniversalParser, parse_bank_statement
from .quote_parser import QuoteParser
from .survey_parser import SurveyParser, parse_survey_text
from .email_parser import EmailParser, parse_email

__all__ = [
    'UniversalParser', 'parse_bank_statement',
    'ExcelParser', 'parse_csv_statement',
    'StatementPDFParser', 'extract_pdf_text',
    'AIClient', 'AIParser',
    'SmartParser', 'Strategy', 'run_strategies', 'smart_parse',
    'QuoteParser', 'SurveyParser', 'parse_survey_text', 'EmailParser', 'parse_email',
    'ExtractionError', 'UnsupportedFormatError', 'EmptyWorkbookError', 'EmptyEmailError',
    'StrategyError', 'AIUnavailableError', 'AIResponseError',
]
