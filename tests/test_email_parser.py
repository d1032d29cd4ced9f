import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from parsers.email_parser import EmailParser, classify_date, classify_price, parse_email
from parsers.errors import AIResponseError, EmptyEmailError, ExtractionError

EMAIL_BODY = """Hi Sarah,

Thanks for showing me round. Our quote for the bathroom refit is £4,250.00 including tiling.
I can visit on 14 November 2025 to measure up.
Please confirm which tiles you would like.

Kind regards,
Dave Jones
Jones Bathrooms Ltd
07700 900456
dave@jonesbathrooms.co.uk
"""


class FailingClient:
    model = "stub-model"

    def complete_json(self, system_prompt, user_prompt):
        raise AIResponseError("boom")


class StubClient:
    model = "stub-model"

    def __init__(self, payload):
        self.payload = payload

    def complete_json(self, system_prompt, user_prompt):
        return self.payload


def _kinds(result):
    return [record.kind for record in result.records]


def test_regex_mode_extracts_all_fact_kinds():
    result = parse_email(EMAIL_BODY, subject="Bathroom quote")

    assert result.success
    assert result.metadata["method"] == "regex"
    assert result.metadata["sourceType"] == "email"
    assert _kinds(result) == ["contact", "price", "date", "follow_up"]

    contact, price, visit, follow_up = result.records
    assert contact.name == "Dave Jones"
    assert contact.company == "Jones Bathrooms Ltd"
    assert contact.phone == "07700 900456"
    assert contact.email == "dave@jonesbathrooms.co.uk"
    assert contact.confidence == 0.9

    assert price.amount == 4250.0
    assert price.price_type == "quote"

    assert visit.date == "2025-11-14"
    assert visit.date_type == "proposed_visit"

    assert follow_up.description == "Please confirm which tiles you would like"

    assert result.metadata["topics"] == ["bathroom", "quote", "site visit"]
    assert result.metadata["summary"] == (
        "Email from Dave Jones (Jones Bathrooms Ltd) regarding bathroom and quote "
        "mentioning £4,250.00 with date reference.")


def test_empty_email_is_rejected():
    with pytest.raises(EmptyEmailError):
        EmailParser().parse("   ", mode="regex")


def test_unknown_mode_is_rejected():
    with pytest.raises(ExtractionError):
        EmailParser().parse("Hello", mode="psychic")


def test_auto_mode_falls_back_to_regex():
    result = EmailParser(client=FailingClient()).parse(EMAIL_BODY, mode="auto")

    assert result.success
    assert result.metadata["method"] == "regex"
    assert "AI parse failed, using regex parser: boom" in result.warnings


def test_ai_mode_failure_is_a_failed_result():
    result = EmailParser(client=FailingClient()).parse(EMAIL_BODY, mode="ai")

    assert not result.success
    assert result.errors == ["boom"]
    assert result.metadata["method"] == "ai"


def test_ai_mode_maps_json_into_facts():
    payload = {
        "contacts": [{"name": "Dave Jones", "company": "Jones Bathrooms Ltd", "phone": "07700 900456"}],
        "prices": [{"description": "Bathroom refit", "amount": "4250", "type": "quote"},
                   {"description": "Broken", "amount": "n/a"}],
        "dates": [{"description": "Site visit", "date": "next Tuesday", "type": "proposed_visit"}],
        "followUps": [{"action": "Confirm tile choice"}],
        "topics": ["bathroom"],
        "summary": "Quote for a bathroom refit.",
    }
    result = EmailParser(client=StubClient(payload)).parse(EMAIL_BODY, mode="ai")

    assert result.success
    assert _kinds(result) == ["contact", "price", "date", "follow_up"]
    assert result.records[1].amount == 4250.0
    assert "AI price 2: invalid amount - skipped" in result.warnings
    assert "Date could not be normalised" in result.records[2].warnings
    assert result.metadata["summary"] == "Quote for a bathroom refit."


def test_ai_mode_with_nothing_usable_fails():
    result = EmailParser(client=StubClient({"contacts": []})).parse(EMAIL_BODY, mode="ai")
    assert not result.success


def test_email_without_facts_explains_the_empty_result():
    result = EmailParser().parse("Hello there, hope you are well today", mode="regex")

    assert result.success
    assert result.records == []
    assert result.warnings == ["No contacts, prices, dates or follow-ups found in email."]


def test_ai_summary_without_facts_explains_the_empty_result():
    payload = {"summary": "Just a friendly hello.", "topics": []}
    result = EmailParser(client=StubClient(payload)).parse("Hello there", mode="ai")

    assert result.success
    assert result.records == []
    assert "No contacts, prices, dates or follow-ups found in email." in result.warnings
    assert result.metadata["summary"] == "Just a friendly hello."


def test_price_and_date_classification():
    assert classify_price("our price is") == "quote"
    assert classify_price("approx cost") == "estimate"
    assert classify_price("paid last year") == "mention"
    assert classify_date("we can finish by Friday") == "completion"
    assert classify_date("payment due by then") == "deadline"
    assert classify_date("we will start then") == "start_date"
    assert classify_date("nearby") == "other"
