import io
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app import app

TESCO_CSV = b'Date,Description,Amount,Direction\n2025-10-08,"Tesco, Sidcup",45.67,debit\n'

client = app.test_client()


def _upload(path, payload, filename, **extra):
    data = {"file": (io.BytesIO(payload), filename)}
    data.update(extra)
    return client.post(path, data=data, content_type="multipart/form-data")


def test_statement_import_returns_envelope():
    response = _upload("/api/statements/import", TESCO_CSV, "statement.csv")

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["records"][0]["category"] == "Food & Dining"
    assert body["records"][0]["direction"] == "debit"
    assert body["summary"]["total"] == 1
    assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"


def test_statement_import_as_workbook():
    response = client.post(
        "/api/statements/import?format=xlsx",
        data={"file": (io.BytesIO(TESCO_CSV), "statement.csv")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    assert response.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert response.data[:2] == b"PK"


def test_missing_file_is_400():
    response = client.post("/api/statements/import", data={}, content_type="multipart/form-data")
    assert response.status_code == 400
    assert response.get_json()["error"] == "No file provided"


def test_unsupported_statement_type_is_400():
    response = _upload("/api/statements/import", b"hello", "notes.txt")
    assert response.status_code == 400
    assert "Unsupported file type" in response.get_json()["error"]


def test_quote_requires_pdf():
    response = _upload("/api/quotes/extract", "Total £10.00".encode("utf-8"), "quote.txt")
    assert response.status_code == 400


def test_survey_text_body():
    response = client.post("/api/surveys/parse", json={
        "text": "2.0 OVERALL SUMMARY\nWe recommend that the chimney stack is repointed in the medium term."})

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["records"][0]["category"] == "Chimney"
    assert body["records"][0]["title"]


def test_survey_without_input_is_400():
    response = client.post("/api/surveys/parse", json={})
    assert response.status_code == 400


def test_email_regex_mode():
    response = client.post("/api/emails/parse", json={
        "emailContent": "Our quote is £1,200.00. Please confirm by Friday.\n\nRegards,\nAnna Price",
        "mode": "regex",
    })

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["metadata"]["method"] == "regex"
    assert any(record["kind"] == "price" for record in body["records"])


def test_empty_email_is_400():
    response = client.post("/api/emails/parse", json={"emailContent": "   "})
    assert response.status_code == 400
    assert response.get_json()["error"] == "Email content is required"


def test_unknown_email_mode_is_400():
    response = client.post("/api/emails/parse", json={"emailContent": "Hello", "mode": "psychic"})
    assert response.status_code == 400


def test_categories_and_status():
    categories = client.get("/api/categories").get_json()
    assert "Food & Dining" in categories["expense"]
    assert "Salary" in categories["income"]
    assert "Other" in categories["allowed"]

    status = client.get("/api/status").get_json()
    assert status["status"] == "ok"
    assert ".csv" in status["supported_extensions"]
