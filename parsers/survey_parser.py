"""
Survey Parser Module - Turn building-survey reports into remediation tasks

RICS-style survey reports put their actionable findings in an overall
summary section ("we would recommend ...") and, separately, a short list of
risks to occupants. Both are mined into SurveyTask records.
"""

import os
import re
import sys
from typing import Dict, List, Optional, Tuple

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from config import MIN_PDF_TEXT_LENGTH
from models import ParseResult, SurveyTask
from classifiers.classification_engine import ClassificationEngine
from classifiers.keyword_classifier import DEFAULT_CLASSIFIER
from .pdf_parser import INSUFFICIENT_TEXT_ERROR, extract_pdf_text
from .text_reconstruction import HEADING_NUMBER, extract_section, split_paragraphs, split_sentences

NO_SUMMARY_WARNING = 'No summary section found. Results may be incomplete.'
NO_TASKS_WARNING = 'No actionable items were detected. Try CSV import for manual mapping.'

SUMMARY_START = re.compile(r'overall summary|summary.*property|summary of the property', re.I)
SUMMARY_END = re.compile(r'general description|3\.0\s|3\.1', re.I)
RISKS_HEADING = re.compile(r'risks?\s+to\s+occupants', re.I)

SUMMARY_INTRO_PATTERNS = (
    re.compile(r'shortcomings and defects', re.I),
    re.compile(r'obtain quotes', re.I),
    re.compile(r'fully informed of the cost', re.I),
    re.compile(r'report in its entirety', re.I),
    re.compile(r'proceeding with the purchase', re.I),
    re.compile(r'we have only summarised', re.I),
)

ACTION_PATTERNS = (
    re.compile(r'recommend', re.I),
    re.compile(r'advise', re.I),
    re.compile(r'suggest', re.I),
    re.compile(r'you should', re.I),
    re.compile(r'should (be|have|instruct|install|replace|repair|inspect)', re.I),
    re.compile(r'needs? to', re.I),
    re.compile(r'requires? to', re.I),
)

SUMMARY_EXCLUDE_PATTERNS = (
    re.compile(r'should be noted', re.I),
    re.compile(r'be mindful', re.I),
    re.compile(r'should be done prior to exchange', re.I),
    re.compile(r'should highlight', re.I),
    re.compile(r'we are unaware', re.I),
    re.compile(r'there are no mains powered', re.I),
    re.compile(r'exposure to lead', re.I),
)

# Ordered; the first match wins
TIMEFRAME_RULES = (
    (re.compile(r'immediate|urgent|as soon as possible'), 'Immediate', 'urgent'),
    (re.compile(r'short term|short-term|within 1|within 2|in the short term'), 'Short term', 'short'),
    (re.compile(r'medium term|medium-term|within 3|within 5|in the medium term'), 'Medium term', 'medium'),
    (re.compile(r'long term|long-term|within 10|within 20|in the long term'), 'Long term', 'long'),
    (re.compile(r'monitor|keep an eye|watch for'), 'Monitor', 'medium'),
)
DEFAULT_TIMEFRAME = ('Short term', 'short')

CONDITION_RULES = (
    (re.compile(r'condition rating 3|serious|urgent|hazard|risk'), 3),
    (re.compile(r'condition rating 2|repair|improvement|medium term'), 2),
    (re.compile(r'condition rating 1|\bok\b|maintenance'), 1),
)

LEAD_IN = re.compile(r'^(we|you)\s+(would\s+)?(recommend|advise|suggest|should)\s+(that\s+)?', re.I)
RISK_WORDS = re.compile(r'risk|hazard|danger|unsafe|ingress|leak', re.I)

MIN_ACTION_LENGTH = 25
MIN_TASK_LENGTH = 30
MAX_PREFIX_LENGTH = 240
TITLE_LENGTH = 90
IMPACT_LENGTH = 160
SNIPPET_LENGTH = 240
RISK_TASK_CONFIDENCE = 0.6


def _matches_any(patterns, text: str) -> bool:
    return any(pattern.search(text) for pattern in patterns)


def is_action_sentence(sentence: str) -> bool:
    return _matches_any(ACTION_PATTERNS, sentence)


def clean_lead(text: str) -> str:
    """Drop 'We would recommend that' style openings."""
    return LEAD_IN.sub('', text.strip()).strip()


def detect_timeframe(text: str) -> Tuple[str, str]:
    lower = text.lower()
    for pattern, timeframe, priority in TIMEFRAME_RULES:
        if pattern.search(lower):
            return timeframe, priority
    return DEFAULT_TIMEFRAME


def detect_condition_rating(text: str) -> Optional[int]:
    lower = text.lower()
    for pattern, rating in CONDITION_RULES:
        if pattern.search(lower):
            return rating
    return None


def _normalize_key(text: str) -> str:
    return re.sub(r'[^a-z0-9]+', ' ', text.lower()).strip()[:80]


class SurveyParser:
    """Extract remediation tasks from survey report text"""

    def __init__(self, engine: ClassificationEngine = None, debug: bool = False):
        self.engine = engine or ClassificationEngine(debug=debug)
        self.classifier = DEFAULT_CLASSIFIER
        self.debug = debug

    def parse(self, data: bytes, filename: str = '') -> ParseResult:
        """
        Extract survey tasks from PDF bytes.

        Args:
            data: Raw PDF bytes
            filename: Original file name, recorded in metadata

        Returns:
            ParseResult whose records are SurveyTasks
        """
        text = extract_pdf_text(data, debug=self.debug)
        if len(text.strip()) < MIN_PDF_TEXT_LENGTH:
            return ParseResult.failure(INSUFFICIENT_TEXT_ERROR, sourceType='pdf', fileName=filename)
        result = self.parse_text(text)
        result.metadata['sourceType'] = 'pdf'
        result.metadata['fileName'] = filename
        return result

    def parse_text(self, text: str) -> ParseResult:
        result = ParseResult(metadata={'sourceType': 'text'})
        paragraphs = split_paragraphs(text)

        summary = extract_section(paragraphs, SUMMARY_START, SUMMARY_END)
        if not summary:
            result.add_warning(NO_SUMMARY_WARNING)

        items = self.extract_summary_items(summary)
        tasks = [task for task in (self.build_task(item, 'Summary') for item in (items or summary)) if task]
        tasks.extend(self.parse_risks(paragraphs))

        result.records = self.deduplicate(tasks)
        if not result.records:
            result.add_warning(NO_TASKS_WARNING)

        self.engine.process(result, 'survey', dedupe=False)
        result.metadata['byPriority'] = summarize_by_priority(result)
        result.success = True
        print(f"[INFO] Survey parsed: {len(result.records)} tasks "
              f"from {len(summary)} summary paragraphs", flush=True)
        return result

    def extract_summary_items(self, paragraphs: List[str]) -> List[str]:
        """
        Action sentences from the summary, each optionally prefixed with the
        sentence that introduced it.
        """
        items = []
        previous = ''
        for paragraph in paragraphs:
            for sentence in split_sentences(paragraph):
                if (len(sentence) < MIN_ACTION_LENGTH
                        or _matches_any(SUMMARY_INTRO_PATTERNS, sentence)
                        or _matches_any(SUMMARY_EXCLUDE_PATTERNS, sentence)):
                    previous = sentence
                    continue
                if is_action_sentence(sentence):
                    can_prefix = (
                        previous
                        and not _matches_any(SUMMARY_INTRO_PATTERNS, previous)
                        and not is_action_sentence(previous)
                        and len(previous) < MAX_PREFIX_LENGTH
                    )
                    items.append(f"{previous} {sentence}" if can_prefix else sentence)
                previous = sentence

        if self.debug:
            print(f"[DEBUG] {len(items)} action sentences in summary", flush=True)
        return items

    def build_task(self, paragraph: str, page_reference: str) -> Optional[SurveyTask]:
        if len(paragraph) < MIN_TASK_LENGTH:
            return None

        category, contractor = self.classifier.detect_survey_category(paragraph)
        timeframe, priority = detect_timeframe(paragraph)
        rating = detect_condition_rating(paragraph)

        confidence = 0.4
        if category != 'General':
            confidence += 0.2
        if timeframe != DEFAULT_TIMEFRAME[0]:
            confidence += 0.1
        if contractor:
            confidence += 0.1
        if rating:
            confidence += 0.1
        if len(paragraph) > 120:
            confidence += 0.05

        return SurveyTask(
            description=self.make_title(paragraph),
            category=category,
            impact=self.extract_impact(paragraph),
            timeframe=timeframe,
            priority=priority,
            condition_rating=rating,
            page_reference=page_reference,
            recommended_contractor=contractor,
            confidence=round(min(confidence, 0.95), 2),
            source_snippet=paragraph[:SNIPPET_LENGTH],
        )

    @staticmethod
    def make_title(paragraph: str) -> str:
        sentences = split_sentences(paragraph)
        action = next((s for s in sentences if is_action_sentence(s)), None)
        sentence = action or re.split(r'[.!?]', paragraph)[0] or paragraph
        cleaned = clean_lead(sentence)
        return cleaned[:TITLE_LENGTH] if len(cleaned) > 12 else paragraph[:TITLE_LENGTH]

    @staticmethod
    def extract_impact(paragraph: str) -> str:
        sentences = [s.strip() for s in re.split(r'[.!?]', paragraph) if s.strip()]
        risk = next((s for s in sentences if RISK_WORDS.search(s)), None)
        impact = risk or (sentences[0] if sentences else SurveyTask.PLACEHOLDER)
        return impact if len(impact) <= IMPACT_LENGTH else impact[:IMPACT_LENGTH - 3] + '...'

    def parse_risks(self, paragraphs: List[str]) -> List[SurveyTask]:
        """Every line under 'Risks to occupants' is an immediate task."""
        lines = self._risk_lines(paragraphs)
        tasks = []
        for line in lines:
            if len(line) < 8:
                continue
            parts = line.split('-')
            if len(parts) > 1:
                title = clean_lead(parts[0])
                impact = '-'.join(parts[1:]).strip()
            else:
                title = f"Risk: {line[:60]}"
                impact = line
            category, contractor = self.classifier.detect_survey_category(line)
            tasks.append(SurveyTask(
                description=f"Address risk - {title}",
                category=category,
                impact=impact,
                timeframe='Immediate',
                priority='urgent',
                condition_rating=3,
                page_reference='Risks to occupants',
                recommended_contractor=contractor,
                confidence=RISK_TASK_CONFIDENCE,
                source_snippet=line,
            ))
        return tasks

    @staticmethod
    def _risk_lines(paragraphs: List[str]) -> List[str]:
        collected = []
        found = False
        for paragraph in paragraphs:
            for line in paragraph.split('\n'):
                line = line.strip()
                if not found:
                    if RISKS_HEADING.search(line):
                        found = True
                    continue
                if HEADING_NUMBER.match(line):
                    return collected
                if line:
                    collected.append(line)
        return collected

    @staticmethod
    def deduplicate(tasks: List[SurveyTask]) -> List[SurveyTask]:
        seen = set()
        unique = []
        for task in tasks:
            key = _normalize_key(f"{task.title}-{task.category}")
            if key in seen:
                continue
            seen.add(key)
            unique.append(task)
        return unique


def parse_survey_text(text: str) -> ParseResult:
    """Convenience: extract survey tasks from already-decoded text"""
    return SurveyParser().parse_text(text)


def summarize_by_priority(result: ParseResult) -> Dict[str, int]:
    counts = {'urgent': 0, 'short': 0, 'medium': 0, 'long': 0}
    for task in result.records:
        counts[task.priority] = counts.get(task.priority, 0) + 1
    return counts
