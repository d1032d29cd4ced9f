"""
Document Extraction Pipeline - Flask JSON API

Endpoints accept uploads or text, run the matching extractor and return the
ParseResult envelope. Any ParseResult is a 200, failed or not; a request
that cannot be processed at all (no file, unsupported type, empty email) is
a 400.
"""

import os
import sys
from datetime import datetime

from flask import Flask, jsonify, request, send_file
from werkzeug.utils import secure_filename

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import (FLASK_HOST, FLASK_PORT, FLASK_DEBUG, MAX_UPLOAD_MB, SUPPORTED_EXTENSIONS,
                    OPENROUTER_API_KEY, AI_MODEL)
from classifiers import ALLOWED_CATEGORIES, EXPENSE_CATEGORIES, INCOME_CATEGORIES
from parsers import EmailParser, QuoteParser, SurveyParser, UniversalParser
from parsers.errors import ExtractionError
from processors import OutputGenerator

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_MB * 1024 * 1024

output_generator = OutputGenerator()

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


@app.after_request
def add_no_cache_headers(response):
    """Extraction results are never cached"""
    if response.content_type == 'application/json':
        response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
        response.headers['Pragma'] = 'no-cache'
        response.headers['Expires'] = '0'
    return response


@app.errorhandler(413)
def upload_too_large(error):
    return jsonify({'error': f'File too large. Maximum upload is {MAX_UPLOAD_MB} MB.'}), 413


@app.errorhandler(ExtractionError)
def extraction_rejected(error):
    print(f"[WARNING] Request rejected: {error}", flush=True)
    return jsonify({'error': str(error)}), 400


def _flag(value) -> bool:
    return str(value or '').strip().lower() in ('1', 'true', 'yes', 'on')


def _uploaded_file():
    """(filename, bytes) of the 'file' part, or None when nothing was sent."""
    file = request.files.get('file')
    if file is None or file.filename == '':
        return None
    return secure_filename(file.filename) or file.filename, file.read()


def _is_pdf(filename: str) -> bool:
    return os.path.splitext(filename)[1].lower() == '.pdf'


@app.route('/api/statements/import', methods=['POST'])
def import_statement():
    """Multipart 'file' plus optional 'useAi'; ?format=xlsx returns the review workbook"""
    upload = _uploaded_file()
    if upload is None:
        return jsonify({'error': 'No file provided'}), 400
    filename, data = upload

    print(f"[INFO] Statement upload: {filename} ({len(data)} bytes)", flush=True)
    parser = UniversalParser(use_ai=_flag(request.form.get('useAi')))
    result = parser.parse(filename, data)
    summary = parser.get_summary()

    if request.args.get('format') == 'xlsx':
        buffer = output_generator.review_workbook_bytes(result, summary)
        download_name = f"{os.path.splitext(filename)[0]}_review.xlsx"
        return send_file(buffer, as_attachment=True, download_name=download_name, mimetype=XLSX_MIMETYPE)

    return jsonify(output_generator.build_envelope(result, summary))


@app.route('/api/quotes/extract', methods=['POST'])
def extract_quote():
    upload = _uploaded_file()
    if upload is None:
        return jsonify({'error': 'No file provided'}), 400
    filename, data = upload
    if not _is_pdf(filename):
        return jsonify({'error': 'Unsupported file type. Upload a PDF quote.'}), 400

    result = QuoteParser().parse(data, filename)
    return jsonify(output_generator.build_envelope(result))


@app.route('/api/surveys/parse', methods=['POST'])
def parse_survey():
    """Multipart 'file' (PDF), or 'text' as a form field or JSON body"""
    parser = SurveyParser()
    upload = _uploaded_file()
    if upload is not None:
        filename, data = upload
        if not _is_pdf(filename):
            return jsonify({'error': 'Unsupported file type. Upload a PDF survey.'}), 400
        result = parser.parse(data, filename)
    else:
        payload = request.get_json(silent=True) or {}
        text = request.form.get('text') or payload.get('text') or ''
        if not text.strip():
            return jsonify({'error': 'No file or text provided'}), 400
        result = parser.parse_text(text)
    return jsonify(output_generator.build_envelope(result))


@app.route('/api/emails/parse', methods=['POST'])
def parse_email():
    """JSON body: emailContent, subject, sender, mode (auto|ai|regex)"""
    payload = request.get_json(silent=True) or {}
    content = payload.get('emailContent') or ''
    if not str(content).strip():
        return jsonify({'error': 'Email content is required'}), 400

    result = EmailParser().parse(
        str(content),
        subject=payload.get('subject'),
        sender=payload.get('sender'),
        mode=payload.get('mode') or 'auto',
    )
    return jsonify(output_generator.build_envelope(result))


@app.route('/api/categories')
def api_categories():
    return jsonify({
        'allowed': list(ALLOWED_CATEGORIES),
        'expense': list(EXPENSE_CATEGORIES),
        'income': list(INCOME_CATEGORIES),
    })


@app.route('/api/status')
def api_status():
    """API health check"""
    return jsonify({
        'status': 'ok',
        'ai': 'configured' if OPENROUTER_API_KEY else 'not configured',
        'model': AI_MODEL,
        'supported_extensions': sorted(SUPPORTED_EXTENSIONS),
        'timestamp': datetime.now().isoformat(),
    })


if __name__ == '__main__':
    print("=" * 70)
    print("  DOCUMENT EXTRACTION PIPELINE - API SERVER")
    print("-" * 70)
    print("  API Endpoints:")
    print("    GET  /api/status              - Health check")
    print("    GET  /api/categories          - Allowed statement categories")
    print("    POST /api/statements/import   - Bank statement (CSV/Excel/PDF)")
    print("    POST /api/quotes/extract      - Contractor quote PDF")
    print("    POST /api/surveys/parse       - Building survey PDF or text")
    print("    POST /api/emails/parse        - Email body (JSON)")
    print("=" * 70)
    print("\n[*] Starting server...")
    app.run(debug=FLASK_DEBUG, host=FLASK_HOST, port=FLASK_PORT)
