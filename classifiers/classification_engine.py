"""
Classification Engine - Confidence scoring, category backfill and deduplication

Every strategy hands its raw ParseResult through ClassificationEngine.process
before it leaves the pipeline, so AI-sourced and deterministic records obey
the same rules:

1. Category closure: a missing or out-of-enumeration category is replaced by
   keyword inference and the record is marked "Category inferred from description"
2. Confidence: a missing score is computed additively from independent
   signals; a supplied score is normalised into [0, 1]. Both are capped at
   CONFIDENCE_CEILING
3. Deduplication: records with the same normalised description, amount and
   date collapse to the highest-confidence instance
"""

import os
import re
import sys
from typing import Dict, List, Optional, Tuple

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from config import CONFIDENCE_HIGH, CONFIDENCE_MEDIUM, CONFIDENCE_LOW, CONFIDENCE_CEILING

from models import ExtractedRecord, ParseResult, Transaction
from .keyword_classifier import KeywordClassifier, DEFAULT_CLASSIFIER

CATEGORY_INFERRED = 'Category inferred from description'
LOW_AI_CONFIDENCE = 'Low AI confidence'

# Additive confidence signals
BASE_CONFIDENCE = 0.2
AMOUNT_SIGNAL = 0.25
DATE_SIGNAL = 0.25
DESCRIPTION_SIGNAL = 0.15
LABEL_SIGNAL = 0.1
KEYWORD_SIGNAL = 0.1


def normalize_confidence(value) -> Optional[float]:
    """
    Coerce an external confidence value into [0, 1].

    Percentages (e.g. 85) are scaled down; anything non-numeric becomes None
    so the engine computes its own score.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    if number > 1:
        number = number / 100.0
    return round(min(max(number, 0.0), 1.0), 2)


def _dedup_key(record: ExtractedRecord) -> Tuple[str, float, str]:
    description = re.sub(r'\s+', ' ', re.sub(r'[^a-z0-9 ]', ' ', record.description.lower())).strip()
    return description, round(record.amount, 2), record.date or ''


class ClassificationEngine:
    """Post-processing applied to every strategy's output."""

    def __init__(self, classifier: KeywordClassifier = None, ceiling: float = CONFIDENCE_CEILING,
                 debug: bool = False):
        self.classifier = classifier or DEFAULT_CLASSIFIER
        self.ceiling = ceiling
        self.debug = debug

    def process(self, result: ParseResult, domain: str = 'statement',
                dedupe: bool = True) -> ParseResult:
        """
        Apply category closure, confidence and deduplication to a result in place.

        Args:
            result: ParseResult produced by a strategy
            domain: 'statement', 'quote', 'survey' or 'email'
            dedupe: Collapse near-identical records

        Returns:
            The same ParseResult, for chaining
        """
        for record in result.records:
            self.classify_record(record, domain)

        if dedupe and result.records:
            before = len(result.records)
            result.records = self.deduplicate(result.records)
            removed = before - len(result.records)
            if removed:
                result.add_warning(f"Removed {removed} duplicate record(s)")
                if self.debug:
                    print(f"[DEBUG] Deduplicated {removed} record(s)", flush=True)

        return result

    def classify_record(self, record: ExtractedRecord, domain: str = 'statement') -> ExtractedRecord:
        direction = getattr(record, 'direction', None)
        allowed = self.classifier.categories_for(domain, direction)

        label_supplied = record.category in allowed
        inferred, keyword_matched = self._infer(record, domain)
        if not label_supplied:
            record.category = inferred if inferred in allowed else allowed[-1]
            record.add_warning(CATEGORY_INFERRED)

        if record.confidence is None:
            record.confidence = self.score(record, label_supplied, keyword_matched)
        else:
            record.confidence = normalize_confidence(record.confidence) or 0.0
        record.confidence = min(record.confidence, self.ceiling)

        if record.confidence < CONFIDENCE_MEDIUM and not any(
                w.startswith(LOW_AI_CONFIDENCE) for w in record.warnings):
            record.add_warning(f"Low confidence ({record.confidence:.2f})")
        return record

    def _infer(self, record: ExtractedRecord, domain: str) -> Tuple[str, bool]:
        text = record.description
        if domain == 'statement':
            return self.classifier.infer_category(text)
        if domain == 'quote':
            return self.classifier.categorize_quote_item(text)
        if domain == 'survey':
            category, contractor = self.classifier.detect_survey_category(
                f"{text} {record.source_snippet}")
            return category, contractor is not None
        topics = self.classifier.detect_topics(f"{text} {record.source_snippet}", limit=1)
        return (topics[0], True) if topics else ('general', False)

    def score(self, record: ExtractedRecord, label_supplied: bool, keyword_matched: bool) -> float:
        """Additive confidence from the signals a record carries."""
        confidence = BASE_CONFIDENCE
        if record.amount > 0:
            confidence += AMOUNT_SIGNAL
        if record.date:
            confidence += DATE_SIGNAL
        if record.description != record.PLACEHOLDER:
            confidence += DESCRIPTION_SIGNAL
        if label_supplied:
            confidence += LABEL_SIGNAL
        if keyword_matched:
            confidence += KEYWORD_SIGNAL
        return round(min(confidence, self.ceiling), 2)

    @staticmethod
    def deduplicate(records: List[ExtractedRecord]) -> List[ExtractedRecord]:
        """Keep the highest-confidence record per key, in first-seen order."""
        best: Dict[Tuple[str, float, str], ExtractedRecord] = {}
        order = []
        for record in records:
            key = _dedup_key(record)
            if key not in best:
                best[key] = record
                order.append(key)
            elif (record.confidence or 0) > (best[key].confidence or 0):
                best[key] = record
        return [best[key] for key in order]

    @staticmethod
    def get_confidence_level(confidence: float) -> str:
        """Convert confidence score to level"""
        if confidence >= CONFIDENCE_HIGH:
            return 'high'
        elif confidence >= CONFIDENCE_MEDIUM:
            return 'medium'
        elif confidence >= CONFIDENCE_LOW:
            return 'low'
        return 'none'

    def get_summary(self, result: ParseResult) -> Dict:
        """Get summary statistics for a processed result"""
        summary = {
            'total': len(result.records),
            'by_category': {},
            'by_confidence': {'high': 0, 'medium': 0, 'low': 0, 'none': 0},
            'needs_review': 0,
            'total_debits': 0.0,
            'total_credits': 0.0,
        }

        for record in result.records:
            summary['by_category'][record.category] = summary['by_category'].get(record.category, 0) + 1
            level = self.get_confidence_level(record.confidence or 0)
            summary['by_confidence'][level] += 1
            if record.warnings:
                summary['needs_review'] += 1
            if isinstance(record, Transaction):
                key = 'total_credits' if record.direction == 'credit' else 'total_debits'
                summary[key] += record.amount

        summary['total_debits'] = round(summary['total_debits'], 2)
        summary['total_credits'] = round(summary['total_credits'], 2)
        return summary
