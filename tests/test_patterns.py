import os
import sys
from datetime import date

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from parsers.patterns import (
    detect_bank,
    detect_vat_rate,
    extract_amounts,
    extract_dates,
    extract_emails,
    extract_phones,
    extract_reference,
    extract_vat_amount,
    has_explicit_year,
    parse_date_string,
    parse_number,
    parse_statement_date,
)


def test_parse_date_string_formats():
    assert parse_date_string("2025-10-08") == date(2025, 10, 8)
    assert parse_date_string("08/10/2025") == date(2025, 10, 8)
    assert parse_date_string("8/10/25") == date(2025, 10, 8)
    assert parse_date_string("Mon 7th January 2025") == date(2025, 1, 7)
    assert parse_date_string("October 3, 2025") == date(2025, 10, 3)


def test_parse_date_string_rejects_invalid():
    assert parse_date_string("31 Feb 2025") is None
    assert parse_date_string("not a date") is None
    assert parse_date_string("") is None


def test_yearless_date_rolls_back_across_year_end():
    assert parse_date_string("15 Dec", default_year=2025, statement_month=1) == date(2024, 12, 15)
    assert parse_date_string("15 Jan", default_year=2025, statement_month=1) == date(2025, 1, 15)
    assert not has_explicit_year("15 Dec")
    assert has_explicit_year("15 Dec 2025")


def test_parse_number():
    assert parse_number("£1,234.56") == 1234.56
    assert parse_number("(12.50)") == -12.5
    assert parse_number("-3") == -3.0
    assert parse_number(7) == 7.0
    assert parse_number("abc") is None
    assert parse_number(None) is None


def test_extract_amounts_are_non_negative():
    amounts = extract_amounts("Deposit £250.00 then 1,500 pounds and £99")
    assert [a["amount"] for a in amounts] == [250.0, 1500.0, 99.0]
    assert all(a["amount"] >= 0 for a in amounts)


def test_extract_phones_deduplicates_international_form():
    phones = extract_phones("Call 07700 900123 or +44 7700 900123")
    assert len(phones) == 1
    assert phones[0]["digits"] == "07700900123"


def test_extract_emails_case_insensitive_dedupe():
    assert extract_emails("Dave@Example.com, dave@example.com, info@example.co.uk") == [
        "Dave@Example.com", "info@example.co.uk"]


def test_extract_dates_keeps_unresolved_mentions():
    found = extract_dates("Visit on 14 November 2025, or Tuesday 18th")
    assert [d["text"] for d in found] == ["14 November 2025", "Tuesday 18th"]
    assert found[0]["iso"] == "2025-11-14"
    assert found[1]["iso"] == ""


def test_vat_amount_and_rate():
    text = "Sub total £1,000.00\nVAT @ 20% £200.00\nTotal £1,200.00"
    assert extract_vat_amount(text, 1000) == 200.0
    assert detect_vat_rate(text) == 20.0
    assert detect_vat_rate("no rate", 1000, 50) == 5.0
    # 'Exc VAT' subtotals are never VAT amounts
    assert extract_vat_amount("Total Exc VAT £1,000.00") is None


def test_extract_reference_requires_a_digit_and_skips_dates():
    assert extract_reference("Estimate #EST-2291") == "EST-2291"
    assert extract_reference("Quote ref: 12/10/2025") is None
    assert extract_reference("Quote for the bathroom") is None


def test_bank_identity_and_statement_date():
    assert detect_bank("Your Starling statement") == "Starling"
    assert detect_bank("Virgin Money plc, Lloyds") == "Virgin Money"
    assert detect_bank("plain text") is None
    assert parse_statement_date("Statement date 01 December 2025") == date(2025, 12, 1)
