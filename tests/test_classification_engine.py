import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from classifiers.classification_engine import ClassificationEngine, normalize_confidence
from classifiers.keyword_classifier import (
    EMAIL_TOPICS,
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    QUOTE_CATEGORIES,
    SURVEY_CATEGORIES,
    KeywordClassifier,
    contains_keyword,
    infer_category,
    infer_direction,
)
from models import EmailFact, ParseResult, QuoteLineItem, SurveyTask, Transaction

engine = ClassificationEngine()


def _transaction(**kwargs):
    values = {"description": "Tesco Sidcup", "amount": 10.0, "date": "2025-10-01"}
    values.update(kwargs)
    return Transaction(**values)


def test_duplicates_collapse_to_highest_confidence():
    low = _transaction(category="Food & Dining", confidence=0.6)
    high = _transaction(description="TESCO  sidcup", category="Food & Dining", confidence=0.9)
    result = ParseResult(success=True, records=[low, high])

    engine.process(result)

    assert len(result.records) == 1
    assert result.records[0].confidence == 0.9
    assert "Removed 1 duplicate record(s)" in result.warnings


def test_dedupe_can_be_disabled():
    result = ParseResult(records=[_transaction(), _transaction()])
    engine.process(result, dedupe=False)
    assert len(result.records) == 2


def test_out_of_enumeration_category_is_replaced():
    credit = _transaction(description="Mystery deposit", direction="credit", category="Groceries")
    debit = _transaction(description="Tesco", category="Salary")
    engine.process(ParseResult(records=[credit, debit]))

    assert credit.category in INCOME_CATEGORIES
    assert debit.category == "Food & Dining"
    assert "Category inferred from description" in credit.warnings
    assert "Category inferred from description" in debit.warnings


@pytest.mark.parametrize("record, domain, allowed", [
    (QuoteLineItem(description="Mystery charge", amount=5, category="bogus"), "quote", QUOTE_CATEGORIES),
    (SurveyTask(description="Check something", category="bogus"), "survey", SURVEY_CATEGORIES),
    (EmailFact(description="Hello", category="bogus"), "email", EMAIL_TOPICS),
])
def test_every_domain_is_closed(record, domain, allowed):
    engine.process(ParseResult(records=[record]), domain)
    assert record.category in allowed


def test_computed_confidence_is_additive_and_capped():
    supplied = _transaction(category="Food & Dining")
    engine.classify_record(supplied)
    assert supplied.confidence == 0.95

    bare = Transaction(description="", amount=0, date="")
    engine.classify_record(bare)
    assert bare.confidence < 0.5
    assert any(w.startswith("Low confidence") for w in bare.warnings)


def test_supplied_confidence_is_normalised():
    record = _transaction(category="Food & Dining", confidence=99)
    engine.classify_record(record)
    assert record.confidence == 0.95


def test_normalize_confidence():
    assert normalize_confidence(85) == 0.85
    assert normalize_confidence("0.7") == 0.7
    assert normalize_confidence(-2) == 0.0
    assert normalize_confidence("high") is None
    assert normalize_confidence(True) is None
    assert normalize_confidence(None) is None


def test_confidence_levels():
    assert ClassificationEngine.get_confidence_level(0.9) == "high"
    assert ClassificationEngine.get_confidence_level(0.6) == "medium"
    assert ClassificationEngine.get_confidence_level(0.35) == "low"
    assert ClassificationEngine.get_confidence_level(0.1) == "none"


def test_short_keywords_match_whole_words_only():
    assert contains_keyword("ee mobile bill", "ee")
    assert not contains_keyword("coffee", "ee")
    assert contains_keyword("sainsburys local", "sainsbury")


def test_keyword_inference():
    assert infer_category("SAINSBURYS S/MKTS") == ("Food & Dining", True)
    assert infer_category("TFL TRAVEL CH") == ("Transportation", True)
    assert infer_category("Netflix.com") == ("Entertainment", True)
    assert infer_category("zzz qqq") == ("Other", False)
    assert infer_direction("SALARY OCT") == "credit"
    assert infer_direction("CARD PAYMENT TO SHOP") == "debit"
    assert infer_direction("zzz") is None


def test_bank_category_mapping():
    classifier = KeywordClassifier()
    assert classifier.map_bank_category("eating out") == {
        "category": "Food & Dining", "direction": "debit", "warning": None}
    assert classifier.map_bank_category("TRANSFER")["warning"] == "Transfer - may be rent/mortgage"
    assert classifier.map_bank_category("UNKNOWN_THING") is None
    assert classifier.map_bank_category("") is None


def test_quote_and_survey_tables():
    classifier = KeywordClassifier()
    assert classifier.categorize_quote_item("Labour - 3 days") == ("labour", True)
    assert classifier.categorize_quote_item("Thermostatic shower") == ("fixtures", True)
    assert classifier.categorize_quote_item("Loyalty discount") == ("other", True)
    assert classifier.detect_survey_category("Slipped roof tiles") == ("Roof", "Roofing contractor")
    assert classifier.detect_survey_category("nothing specific") == ("General", None)
    assert classifier.categories_for("statement", "credit") == INCOME_CATEGORIES
    assert classifier.categories_for("statement", "debit") == EXPENSE_CATEGORIES
    with pytest.raises(ValueError):
        classifier.categories_for("invoices")


def test_records_reject_negative_amounts():
    with pytest.raises(ValueError):
        Transaction(description="x", amount=-1)
    with pytest.raises(ValueError):
        Transaction(description="x", amount=1, direction="sideways")
