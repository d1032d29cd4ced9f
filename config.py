"""
Document Extraction Pipeline - Configuration
"""

import os

# Base paths
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Supported file extensions -> format tag
SUPPORTED_EXTENSIONS = {
    '.csv': 'csv',
    '.xlsx': 'xlsx',
    '.xls': 'xls',
    '.pdf': 'pdf',
}

# Confidence thresholds
CONFIDENCE_HIGH = 0.8
CONFIDENCE_MEDIUM = 0.5
CONFIDENCE_LOW = 0.3

# Automation-derived confidence never reaches a human-confirmed 1.0
CONFIDENCE_CEILING = 0.95

# Below this an AI-supplied confidence gets a review warning
AI_LOW_CONFIDENCE = 0.6

# Text extraction limits
MIN_PDF_TEXT_LENGTH = 50
OCR_TRIGGER_LENGTH = 100
AI_MAX_SECTION_CHARS = 15000

# AI client settings (OpenRouter compatible chat completions)
OPENROUTER_API_KEY = os.environ.get('OPENROUTER_API_KEY', '')
AI_API_URL = os.environ.get('AI_API_URL', 'https://openrouter.ai/api/v1/chat/completions')
AI_MODEL = os.environ.get('AI_MODEL', 'openai/gpt-4o-mini')
AI_TIMEOUT = int(os.environ.get('AI_TIMEOUT', 60))
AI_MAX_TOKENS = 4096

# OCR settings (empty means use whatever is on PATH)
TESSERACT_CMD = os.environ.get('TESSERACT_CMD', '')
POPPLER_PATH = os.environ.get('POPPLER_PATH', '')

# Flask settings
FLASK_HOST = '0.0.0.0'
FLASK_PORT = int(os.environ.get('PORT', 8590))
FLASK_DEBUG = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
MAX_UPLOAD_MB = int(os.environ.get('MAX_UPLOAD_MB', 10))
