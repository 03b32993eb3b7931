from __future__ import annotations

from datetime import date
from decimal import Decimal

from card_ledger.modules.extraction.schemas import ExtractedStatement, RawLine


class _Extractor:
    def __init__(self, by_name: dict[str, ExtractedStatement]):
        self.by_name = by_name

    def extract(self, body: bytes, *, filename: str) -> ExtractedStatement:
        return self.by_name[filename]


def _statement(month: int, installment: str) -> ExtractedStatement:
    return ExtractedStatement(
        statement_date=date(2025, month, 20),
        due_date=date(2025, month + 1, 5),
        total_ars=Decimal("1100"),
        total_usd=Decimal("15"),
        card_hint="Tarjeta 4321",
        lines=[
            RawLine(
                description="Laptop Store",
                amount="1.000,00",
                currency="ARS",
                installment_text=installment,
            ),
            RawLine(description="IMPUESTO DE SELLOS", amount="100", currency="ARS"),
            RawLine(description="Streaming", amount="15", currency="USD"),
        ],
    )


def _login(client) -> dict[str, str]:
    resp = client.post(
        "/api/auth/register", json={"email": "owner@example.com", "password": "pw"}
    )
    assert resp.status_code == 200
    resp = client.post(
        "/api/auth/token", data={"username": "owner@example.com", "password": "pw"}
    )
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def test_bulk_upload_then_read_month_and_installments(monkeypatch):
    from fastapi.testclient import TestClient

    from card_ledger.main import app
    from card_ledger.modules.imports import service as import_service

    extractor = _Extractor({"jan.pdf": _statement(1, "1/3"), "feb.pdf": _statement(2, "2/3")})
    monkeypatch.setattr(import_service, "get_default_extractor", lambda: extractor)

    client = TestClient(app)
    headers = _login(client)

    resp = client.post(
        "/api/statements/bulk?wait=true",
        headers=headers,
        files=[
            ("uploads", ("jan.pdf", b"%PDF-1.4 jan", "application/pdf")),
            ("uploads", ("feb.pdf", b"%PDF-1.4 feb", "application/pdf")),
        ],
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["succeeded"] == 2
    assert body["failed"] == 0
    assert [f["status"] for f in body["files"]] == ["succeeded", "succeeded"]

    job = client.get(f"/api/imports/{body['jobId']}", headers=headers)
    assert job.status_code == 200
    assert job.json()["finished"] is True

    month = client.get("/api/expenses/month?year=2025&month=2", headers=headers).json()
    assert month["statementCount"] == 1
    assert month["totalArs"] == 1100.0
    assert month["totalUsd"] == 15.0
    assert {e["description"] for e in month["expenses"]} == {
        "Laptop Store",
        "IMPUESTO DE SELLOS",
        "Streaming",
    }
    fee = next(e for e in month["expenses"] if e["description"] == "IMPUESTO DE SELLOS")
    assert fee["card"] is None

    installments = client.get("/api/installments?year=2025&month=2", headers=headers).json()
    assert installments["summary"] == {
        "activeCount": 1,
        "completingThisMonthCount": 0,
        "totalRemainingArs": 1000.0,
        "totalRemainingUsd": 0.0,
    }
    detail = installments["installments"][0]
    assert detail["status"] == "active"
    assert detail["remainingMonths"] == 1
    assert detail["statementMonth"] == "2025-02"
    assert detail["card"]["lastFourDigits"] == "4321"

    has_any = client.get("/api/statements/has-any", headers=headers).json()
    assert has_any == {"hasStatements": True}
    months = client.get("/api/statements/months", headers=headers).json()
    assert months == [{"year": 2025, "month": 2}, {"year": 2025, "month": 1}]

    summary = client.get(
        "/api/statements/summary?endYear=2025&endMonth=2", headers=headers
    ).json()
    assert summary["rangeSummary"]["startDate"] == "2024-03-01"
    assert summary["rangeSummary"]["endDate"] == "2025-02-28"
    assert summary["rangeSummary"]["totalArs"] == 2200.0
    assert len(summary["rangeSummary"]["monthlyData"]) == 2

    again = client.post(
        "/api/statements/bulk?wait=true",
        headers=headers,
        files=[("uploads", ("jan.pdf", b"%PDF-1.4 jan", "application/pdf"))],
    ).json()
    assert again["duplicate"] == 1
    assert again["files"][0]["duplicateOf"] is not None


def test_upload_rejects_non_pdf_and_requires_auth():
    from fastapi.testclient import TestClient

    from card_ledger.main import app

    client = TestClient(app)
    resp = client.get("/api/statements")
    assert resp.status_code == 401

    headers = _login(client)
    resp = client.post(
        "/api/statements/bulk",
        headers=headers,
        files=[("uploads", ("notes.txt", b"hello", "text/plain"))],
    )
    assert resp.status_code == 415


def test_rename_card_endpoint():
    from fastapi.testclient import TestClient

    from card_ledger.core.db import SessionLocal
    from card_ledger.main import app
    from card_ledger.modules.cards.service import find_or_create_by_last_four
    from card_ledger.modules.identity.service import get_user_by_email

    client = TestClient(app)
    headers = _login(client)
    with SessionLocal() as session:
        owner = get_user_by_email(session, email="owner@example.com")
        card = find_or_create_by_last_four(session, user_id=owner.id, last_four_digits="4321")
        session.commit()
        card_id = str(card.id)

    resp = client.patch(f"/api/cards/{card_id}", headers=headers, json={"customName": "Visa"})
    assert resp.status_code == 200
    assert resp.json()["customName"] == "Visa"
    assert resp.json()["lastFourDigits"] == "4321"

    listed = client.get("/api/cards", headers=headers).json()
    assert [c["customName"] for c in listed] == ["Visa"]
