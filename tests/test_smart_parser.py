import os
import sys
from datetime import date

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from classifiers.classification_engine import ClassificationEngine
from classifiers.keyword_classifier import EXPENSE_CATEGORIES, INCOME_CATEGORIES
from models import ParseResult
from parsers.ai_parser import AIParser, extract_json_object
from parsers.errors import AIResponseError, StrategyError
from parsers.smart_parser import SmartParser, Strategy, run_strategies

VIRGIN_MONEY_TEXT = """Virgin Money
Statement date 15 October 2025
Date Description Debits Credits Balance
01 Oct 2025 Balance brought forward 1,000.00
02 Oct 2025
TESCO STORES 1234
45.20 954.80
03 Oct 2025
SALARY ACME LTD
2,000.00 2,954.80
Page 1 of 2
"""

GENERIC_TEXT = """Lloyds Bank
Date Description Type Money In Money Out Balance
Opening balance 500.00
02 Oct TESCO STORES 20.00 480.00
05 Oct SALARY ACME 1,000.00 1,480.00
Page 1 of 1
"""


class FailingClient:
    model = "stub-model"

    def is_available(self):
        return True

    def complete_json(self, system_prompt, user_prompt):
        raise AIResponseError("boom")


class StubClient:
    model = "stub-model"

    def __init__(self, payload):
        self.payload = payload
        self.prompts = []

    def is_available(self):
        return True

    def complete_json(self, system_prompt, user_prompt):
        self.prompts.append((system_prompt, user_prompt))
        return self.payload


def test_virgin_money_grammar_uses_running_balance():
    result = SmartParser().parse_statement_text(VIRGIN_MONEY_TEXT)

    assert result.success
    assert result.metadata["strategy"] == "virgin_money"
    assert result.metadata["bank"] == "Virgin Money"
    assert result.metadata["statementDate"] == "2025-10-15"

    tesco, salary = result.records
    assert (tesco.date, tesco.description, tesco.amount, tesco.balance) == (
        "2025-10-02", "TESCO STORES 1234", 45.2, 954.8)
    assert tesco.direction == "debit"
    assert salary.direction == "credit"
    assert salary.amount == 2000.0
    assert "Direction inferred" not in tesco.warnings


def test_ai_failure_falls_back_to_deterministic_parser():
    parser = SmartParser(ai_parser=AIParser(client=FailingClient()))
    result = parser.parse_statement_text(VIRGIN_MONEY_TEXT, use_ai=True)

    assert result.success
    assert len(result.records) >= 1
    assert result.metadata["strategy"] == "virgin_money"
    assert result.metadata["attempts"] == ["ai", "virgin_money"]
    assert "AI parse failed, using deterministic parser: boom" in result.warnings


def test_ai_records_are_validated_and_rechecked():
    payload = {"transactions": [
        {"date": "2025-10-02", "description": "TESCO STORES", "amount": 45.2, "direction": "debit",
         "balance": 954.8, "category": "Groceries", "confidence": 85},
        {"date": "2025-10-03", "description": "ACME LTD SALARY", "amount": 2000, "direction": "debit",
         "balance": 2954.8, "category": "Salary", "confidence": 0.4},
        {"date": "someday", "description": "Broken", "amount": 1},
        "not an object",
    ]}
    client = StubClient(payload)
    result = SmartParser(ai_parser=AIParser(client=client)).parse_statement_text(
        VIRGIN_MONEY_TEXT, use_ai=True)

    assert result.metadata["strategy"] == "ai"
    assert result.metadata["bank"] == "Virgin Money"
    assert len(result.records) == 2
    assert "AI item 3: invalid date 'someday' - skipped" in result.warnings
    assert "AI item 4: not an object - skipped" in result.warnings

    tesco, salary = result.records
    assert tesco.source == "ai"
    assert tesco.confidence == 0.85
    assert tesco.category == ""
    assert salary.direction == "credit"
    assert "Direction corrected from running balance" in salary.warnings
    assert "Low AI confidence (0.40)" in salary.warnings

    ClassificationEngine().process(result)
    assert tesco.category == "Food & Dining"
    assert salary.category in INCOME_CATEGORIES
    assert salary.confidence == 0.4
    assert not any(w.startswith("Low confidence") for w in salary.warnings)

    system_prompt, _ = client.prompts[0]
    assert "Food & Dining" in system_prompt
    assert "2025-10-15" in system_prompt


def test_generic_grammar_reads_inline_rows():
    result = SmartParser().parse_statement_text(GENERIC_TEXT)

    assert result.success
    assert result.metadata["strategy"] == "generic"
    assert result.metadata["bank"] == "Lloyds"

    tesco, salary = result.records
    assert tesco.date.endswith("-10-02")
    assert (tesco.amount, tesco.balance, tesco.direction) == (20.0, 480.0, "debit")
    assert (salary.amount, salary.direction) == (1000.0, "credit")
    assert "Year inferred from current date" in tesco.warnings
    assert tesco.date == date(date.today().year, 10, 2).isoformat()


def test_yearless_rows_take_the_statement_year():
    text = GENERIC_TEXT.replace("Lloyds Bank\n", "Lloyds Bank\nStatement date 15 January 2025\n")
    result = SmartParser().parse_statement_text(text)

    tesco, salary = result.records
    assert result.metadata["statementDate"] == "2025-01-15"
    assert tesco.date == "2024-10-02"
    assert "Year inferred from statement date" in tesco.warnings
    assert "Year inferred from current date" not in tesco.warnings


def test_unrecognised_text_fails_with_all_attempts():
    result = SmartParser().parse_statement_text("nothing that looks like a statement")

    assert not result.success
    assert result.metadata["attempts"] == ["generic", "virgin_money"]
    assert result.metadata["bank"] == "Unknown"


def test_run_strategies_stops_at_first_success():
    calls = []

    def failing():
        calls.append("first")
        raise StrategyError("not today")

    def succeeding():
        calls.append("second")
        return ParseResult(success=True)

    def never():
        calls.append("third")
        return ParseResult(success=True)

    result = run_strategies([
        Strategy("first", failing, "first failed: {reason}"),
        Strategy("second", succeeding),
        Strategy("third", never),
    ])

    assert calls == ["first", "second"]
    assert result.metadata["strategy"] == "second"
    assert result.warnings == ["first failed: not today"]


def test_run_strategies_converts_unexpected_exceptions():
    def broken():
        raise KeyError("x")

    result = run_strategies([Strategy("broken", broken)])
    assert not result.success
    assert result.metadata["attempts"] == ["broken"]


def test_extract_json_object_handles_fences_and_chatter():
    assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}
    assert extract_json_object('Sure! {"transactions": [{"x": "}"}]} hope that helps') == {
        "transactions": [{"x": "}"}]}
    assert extract_json_object("no json here") is None
    assert extract_json_object("") is None


def test_categories_are_closed_for_both_directions():
    assert "Salary" not in EXPENSE_CATEGORIES
    assert "Food & Dining" not in INCOME_CATEGORIES
    assert EXPENSE_CATEGORIES[-1] == INCOME_CATEGORIES[-1] == "Other"
