"""
Classifiers Package - Category inference and record post-processing
"""

from .keyword_classifier import (KeywordClassifier, ALLOWED_CATEGORIES, EXPENSE_CATEGORIES,
                                 INCOME_CATEGORIES, infer_category, infer_direction)
from .classification_engine import ClassificationEngine

__all__ = [
    'KeywordClassifier',
    'ClassificationEngine',
    'ALLOWED_CATEGORIES',
    'EXPENSE_CATEGORIES',
    'INCOME_CATEGORIES',
    'infer_category',
    'infer_direction',
]
