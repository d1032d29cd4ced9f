import os
import sys
from datetime import date

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from parsers.quote_parser import NO_QUOTE_ERROR, QuoteParser, is_marketing_line

SIMPLE_QUOTE = """Smith Plumbing Services
12 High Street
Sidcup
DA14 6AB
Tel: 07700 900123
Email: info@smithplumbing.co.uk
Quote No: Q-1042
Date: 01/10/2025
Valid for 30 days

Labour - strip out bathroom £450.00
2 x Basin £300.00
Tiles and adhesive £220.00
Discount £50.00

Sub total: £920.00
VAT @ 20%: £184.00
Total: £1,104.00
"""

TABLE_QUOTE = """Bright Bathrooms Ltd
Description Unit price Quantity VAT Total (exc VAT)
Bathroom preparation£700.007.0020.00%£4,900.00
Wall tiling£45.0020.0020.00%£900.00
Exc VAT £5,800.00
VAT £1,160.00
Total £6,960.00
"""


def test_simple_quote_extraction():
    result = QuoteParser().parse_text(SIMPLE_QUOTE, "quote.pdf")

    assert result.success
    quote = result.metadata["quote"]
    assert quote["contractorName"] == "Smith Plumbing Services"
    assert quote["email"] == "info@smithplumbing.co.uk"
    assert quote["phone"] == "07700 900123"
    assert quote["reference"] == "Q-1042"
    assert quote["quoteDate"] == "2025-10-01"
    assert quote["validUntil"] == "2025-10-31"
    assert quote["address"].endswith("DA14 6AB")
    assert quote["total"] == 1104.0
    assert quote["subtotal"] == 920.0
    assert quote["vatAmount"] == 184.0
    assert quote["vatRate"] == 20.0
    assert quote["labourTotal"] == 450.0
    assert quote["fixturesTotal"] == 300.0
    assert quote["materialsTotal"] == 220.0
    assert quote["confidence"] == 0.95
    assert quote["sourceFileName"] == "quote.pdf"
    assert result.warnings == []


def test_line_items_carry_quantity_and_discounts():
    result = QuoteParser().parse_text(SIMPLE_QUOTE)
    labour, basin, tiles, discount = result.records

    assert labour.category == "labour"
    assert (basin.description, basin.quantity, basin.unit_price, basin.category) == (
        "Basin", 2.0, 150.0, "fixtures")
    assert tiles.category == "materials"
    assert discount.notes == "discount"
    assert discount.amount == 50.0
    assert discount.signed_amount == -50.0
    assert sum(item.signed_amount for item in result.records) == 920.0


def test_unmatched_line_item_category_is_inferred_and_flagged():
    text = ("Hill Building Services\n"
            "Structural engineer report £180.00\n"
            "Tiles and adhesive £220.00\n"
            "Total: £400.00\n")
    result = QuoteParser().parse_text(text)
    report, tiles = result.records

    assert report.category == "other"
    assert "Category inferred from description" in report.warnings
    assert report.confidence == 0.6
    assert tiles.category == "materials"
    assert "Category inferred from description" not in tiles.warnings
    assert result.metadata["quote"]["otherTotal"] == 180.0


def test_collapsed_table_rows():
    result = QuoteParser().parse_text(TABLE_QUOTE)
    preparation, tiling = result.records

    assert preparation.description == "Bathroom preparation"
    assert (preparation.amount, preparation.unit_price, preparation.quantity) == (4900.0, 700.0, 7.0)
    assert tiling.amount == 900.0
    quote = result.metadata["quote"]
    assert quote["subtotal"] == 5800.0
    assert quote["vatAmount"] == 1160.0
    assert quote["total"] == 6960.0
    assert quote["contractorName"] == "Bright Bathrooms Ltd"


def test_totals_only_quote_warns():
    result = QuoteParser().parse_text("Cooper Roofing Services\nTotal: £850.00 for the works described.")
    assert result.success
    assert result.records == []
    assert "No itemised breakdown found - only totals extracted" in result.warnings
    assert "VAT amount not detected - verify if quote includes VAT" in result.warnings


def test_text_without_prices_fails():
    result = QuoteParser().parse_text("Thanks for your enquiry, we will be in touch next week.")
    assert not result.success
    assert result.errors == [NO_QUOTE_ERROR]


def test_valid_for_days_counts_from_today_without_quote_date():
    dates = QuoteParser().extract_dates("Valid for 14 days", today=date(2025, 1, 20))
    assert dates == {"valid_until": "2025-02-03"}


def test_marketing_lines_are_not_charges():
    assert is_marketing_line("Free thermostatic upgrade worth £200")
    assert is_marketing_line("Waste removal included")
    assert not is_marketing_line("Waste removal £120.00")
