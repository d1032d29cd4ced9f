"""
Document Extraction Pipeline - Main Entry Point

Command Line Interface for extracting records from bank statements,
contractor quotes, building surveys and emails
"""

import os
import sys
import argparse
import contextlib
from typing import Dict, Optional, Tuple

# Add current directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import SUPPORTED_EXTENSIONS
from models import ParseResult
from parsers import EmailParser, QuoteParser, SurveyParser, UniversalParser
from parsers.errors import ExtractionError
from processors import OutputGenerator

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_REJECTED = 2


def print_banner():
    """Print application banner"""
    print("""
╔══════════════════════════════════════════════════════════════════════════════╗
║                      DOCUMENT EXTRACTION PIPELINE                             ║
║                                                                               ║
║  Statements, quotes, surveys and emails to typed, confidence-scored records  ║
╚══════════════════════════════════════════════════════════════════════════════╝
    """)


def _read_bytes(path: str) -> bytes:
    with open(path, 'rb') as handle:
        return handle.read()


def run_command(args) -> Tuple[ParseResult, Optional[Dict]]:
    """
    Run one extraction command.

    Args:
        args: Parsed argparse namespace

    Returns:
        Tuple of (ParseResult, summary dict or None)

    Raises:
        ExtractionError: the document was rejected outright
    """
    filename = os.path.basename(args.file)

    if args.command == 'statement':
        parser = UniversalParser(use_ai=args.ai, debug=args.debug)
        result = parser.parse(filename, _read_bytes(args.file))
        return result, parser.get_summary()

    if args.command == 'quote':
        parser = QuoteParser(debug=args.debug)
        if filename.lower().endswith('.pdf'):
            return parser.parse(_read_bytes(args.file), filename), None
        with open(args.file, encoding='utf-8') as handle:
            return parser.parse_text(handle.read(), filename), None

    if args.command == 'survey':
        parser = SurveyParser(debug=args.debug)
        if filename.lower().endswith('.pdf'):
            return parser.parse(_read_bytes(args.file), filename), None
        with open(args.file, encoding='utf-8') as handle:
            return parser.parse_text(handle.read()), None

    mode = args.mode or ('auto' if args.ai else 'regex')
    with open(args.file, encoding='utf-8') as handle:
        content = handle.read()
    result = EmailParser(debug=args.debug).parse(content, args.subject, args.sender, mode)
    return result, None


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Document Extraction Pipeline - Extract typed records from documents',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py statement statement.csv
  python main.py statement statement.pdf --ai --review-xlsx review.xlsx
  python main.py quote quote.pdf
  python main.py survey survey.pdf --quiet
  python main.py email message.txt --mode regex --subject "Bathroom quote"
  python main.py --web
        """
    )

    parser.add_argument('command', nargs='?', choices=['statement', 'quote', 'survey', 'email'],
                        help='Kind of document to extract')
    parser.add_argument('file', nargs='?', help='Document path (statement: CSV/Excel/PDF; quote/survey: PDF or text; email: text)')
    ai_group = parser.add_mutually_exclusive_group()
    ai_group.add_argument('--ai', dest='ai', action='store_true', help='Try the AI strategy first')
    ai_group.add_argument('--no-ai', dest='ai', action='store_false', help='Deterministic strategies only (default)')
    parser.set_defaults(ai=False)
    parser.add_argument('--mode', choices=['auto', 'ai', 'regex'], help='Email parse mode')
    parser.add_argument('--subject', help='Email subject line')
    parser.add_argument('--sender', help='Email sender')
    parser.add_argument('--review-xlsx', metavar='PATH', help='Also write a formatted review workbook')
    parser.add_argument('--quiet', '-q', action='store_true', help='Print only the JSON envelope')
    parser.add_argument('--debug', action='store_true', help='Verbose parser diagnostics')
    parser.add_argument('--web', '-w', action='store_true', help='Launch web interface')
    return parser


def main(argv=None) -> int:
    """Main CLI entry point"""
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if not args.quiet:
        print_banner()

    if args.web:
        from config import FLASK_HOST, FLASK_PORT, FLASK_DEBUG
        print(f"Open http://{FLASK_HOST}:{FLASK_PORT} in your browser")
        from app import app
        app.run(debug=FLASK_DEBUG, host=FLASK_HOST, port=FLASK_PORT)
        return EXIT_OK

    if not args.command or not args.file:
        parser.print_help()
        print("\n✗ Error: Please provide a command and a file, or use --web for the web interface")
        return EXIT_FAILED

    if not os.path.exists(args.file):
        print(f"\n✗ Error: File not found: {args.file}")
        return EXIT_FAILED

    if args.command == 'statement':
        ext = os.path.splitext(args.file)[1].lower()
        if ext not in SUPPORTED_EXTENSIONS:
            print(f"\n✗ Error: Unsupported file format: {ext}")
            print(f"   Supported formats: {', '.join(SUPPORTED_EXTENSIONS)}")
            return EXIT_REJECTED

    # Quiet runs keep stdout for the JSON envelope; progress lines go to stderr
    progress = contextlib.redirect_stdout(sys.stderr) if args.quiet else contextlib.nullcontext()
    generator = OutputGenerator()
    try:
        with progress:
            result, summary = run_command(args)
    except ExtractionError as e:
        print(f"\n✗ Error: {e}")
        return EXIT_REJECTED

    print(generator.to_json(result, summary))

    if args.review_xlsx:
        with progress:
            generator.write_review_workbook(result, args.review_xlsx, summary)

    if not result.success:
        if not args.quiet:
            print(f"\n✗ Extraction failed: {'; '.join(result.errors) or 'Unknown error'}")
        return EXIT_FAILED

    if not args.quiet:
        print(f"\n✓ Extracted {len(result.records)} records"
              f"{' with ' + str(len(result.warnings)) + ' warnings' if result.warnings else ''}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
