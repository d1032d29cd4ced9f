import io
import os
import sys
from datetime import date, datetime

import pytest
from openpyxl import Workbook

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from parsers.errors import ExtractionError, UnsupportedFormatError
from parsers.excel_parser import ExcelParser, decode_spreadsheet, parse_csv_content, parse_csv_line, parse_csv_statement
from parsers.universal_parser import UniversalParser, detect_format

STARLING_CSV = (
    "Date,Counter Party,Reference,Type,Amount (GBP),Balance (GBP),Spending Category,Notes\n"
    "01/10/2025,TESCO,Card 1234,CONTACTLESS,-12.50,987.50,GROCERIES,\n"
    "02/10/2025,British Gas,Energy bill,DIRECT DEBIT,-60.00,927.50,PAYMENTS,\n"
    "03/10/2025,ACME LTD,Salary,FASTER PAYMENT,2000.00,2927.50,INCOME,\n"
)


def test_quoted_comma_stays_in_one_field():
    assert parse_csv_line('"Smith, John",120.50') == ["Smith, John", "120.50"]


def test_doubled_quote_is_literal():
    assert parse_csv_line('a,"b ""quoted""",c') == ["a", 'b "quoted"', "c"]


def test_tokenising_skips_blank_lines():
    rows = parse_csv_content("Date,Amount\r\n\r\n2025-10-01,1.00\n")
    assert rows == [["Date", "Amount"], ["2025-10-01", "1.00"]]


def test_tesco_row_end_to_end():
    data = b'Date,Description,Amount,Direction\n2025-10-08,"Tesco, Sidcup",45.67,debit\n'
    result = UniversalParser().parse("statement.csv", data)

    assert result.success
    assert len(result.records) == 1
    transaction = result.records[0]
    assert transaction.description == "Tesco, Sidcup"
    assert transaction.amount == 45.67
    assert transaction.direction == "debit"
    assert transaction.date == "2025-10-08"
    assert transaction.category == "Food & Dining"
    assert transaction.confidence == 0.95
    assert transaction.warnings == ["Category inferred from description"]
    assert result.metadata["startDate"] == "2025-10-08"


def test_starling_export_maps_bank_categories():
    result = UniversalParser().parse("starling.csv", STARLING_CSV.encode("utf-8"))

    assert result.success
    assert result.metadata["bank"] == "Starling"
    assert result.metadata["currency"] == "GBP"

    tesco, gas, salary = result.records
    assert tesco.description == "TESCO • Card 1234"
    assert tesco.direction == "debit"
    assert tesco.amount == 12.5
    assert tesco.category == "Food & Dining"
    assert tesco.bank_category == "GROCERIES"
    assert tesco.balance == 987.5

    assert gas.category == "Utilities"
    assert "Likely bill payment - review" in gas.warnings

    assert salary.direction == "credit"
    assert salary.category == "Salary"
    assert salary.counterparty == "ACME LTD"
    assert salary.reference == "Salary"


def test_debit_and_credit_columns():
    content = (
        "Transaction Date,Details,Debit,Credit,Balance\n"
        "01/10/2025,Coffee shop,3.20,,96.80\n"
        "02/10/2025,Refund,,10.00,106.80\n"
    )
    result = parse_csv_statement(content)

    coffee, refund = result.records
    assert (coffee.direction, coffee.amount) == ("debit", 3.2)
    assert (refund.direction, refund.amount) == ("credit", 10.0)


def test_bad_rows_are_dropped_with_warnings():
    content = (
        "Date,Description,Amount\n"
        "not-a-date,Coffee,3.00\n"
        "2025-10-02,Lunch,abc\n"
        "2025-10-03,Dinner,-20.00\n"
    )
    result = parse_csv_statement(content)

    assert result.success
    assert len(result.records) == 1
    assert "Row 2: invalid date 'not-a-date' - row skipped" in result.warnings
    assert "Row 3: invalid amount - row skipped" in result.warnings
    assert all(record.amount >= 0 for record in result.records)


def test_missing_required_columns_fails():
    result = parse_csv_statement("Foo,Bar\n1,2\n")
    assert not result.success
    assert result.errors == ["Unable to detect required columns (date/amount)."]


def test_yearless_csv_dates_take_the_current_year():
    result = parse_csv_statement("Date,Description,Amount\n8 Oct,Tesco,-4.00\n")
    record = result.records[0]
    assert "Year inferred from current date" in record.warnings
    assert "Year inferred from statement date" not in record.warnings
    assert record.date == date(date.today().year, 10, 8).isoformat()


def test_dated_csv_rows_carry_no_year_warning():
    result = parse_csv_statement("Date,Description,Amount\n08/10/2025,Tesco,-4.00\n")
    assert not any(w.startswith("Year inferred") for w in result.records[0].warnings)


def test_detect_columns_mapping():
    mapping = ExcelParser().detect_columns(["Date", "Description", "Amount", "Balance"])
    assert mapping == {"date": 0, "description": 1, "amount": 2, "balance": 3}


def test_unsupported_extension_is_rejected():
    assert detect_format("notes.TXT") == "unsupported"
    assert detect_format("statement.XLSX") == "xlsx"
    with pytest.raises(UnsupportedFormatError):
        UniversalParser().parse("notes.txt", b"hello")
    assert issubclass(UnsupportedFormatError, ExtractionError)


def test_summary_totals():
    parser = UniversalParser()
    parser.parse("starling.csv", STARLING_CSV.encode("utf-8"))
    summary = parser.get_summary()

    assert summary["total"] == 3
    assert summary["total_debits"] == 72.5
    assert summary["total_credits"] == 2000.0
    assert summary["needs_review"] == 1
    assert summary["source_type"] == "csv"


def _workbook_bytes(rows):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def test_xlsx_date_cells_become_iso_dates():
    data = _workbook_bytes([
        ["Date", "Description", "Amount"],
        [datetime(2025, 10, 2), "TESCO STORES", -45.2],
        [datetime(2025, 10, 3, 14, 30), "SALARY ACME", 1500],
    ])
    result = UniversalParser().parse("statement.xlsx", data)
    assert result.success
    assert result.metadata["sourceType"] == "xlsx"
    assert [record.date for record in result.records] == ["2025-10-02", "2025-10-03"]
    tesco, salary = result.records
    assert tesco.direction == "debit"
    assert tesco.amount == 45.2
    assert salary.direction == "credit"
    assert salary.amount == 1500
    assert not any("invalid date" in warning for warning in result.warnings)


def test_xlsx_text_dates_still_parse():
    rows = decode_spreadsheet(_workbook_bytes([
        ["Date", "Description", "Amount"],
        ["02/10/2025", "TESCO STORES", -45.2],
    ]))
    assert rows[1][0] == "02/10/2025"
    assert rows[1][2] == "-45.2"
