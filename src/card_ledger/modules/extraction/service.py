from __future__ import annotations

import re
import time
from datetime import date
from io import BytesIO
from typing import Any, Protocol

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from card_ledger.core.currencies import parse_amount
from card_ledger.core.errors import ExtractionFailure
from card_ledger.core.logging import get_logger, log_event, monotonic_ms
from card_ledger.modules.extraction.ai import parse_statement_text
from card_ledger.modules.extraction.schemas import ExtractedStatement, RawLine

logger = get_logger(__name__)


class StatementExtractor(Protocol):
    def extract(self, body: bytes, *, filename: str) -> ExtractedStatement: ...


class PdfStatementExtractor:
    """pypdf text extraction followed by AI line-item parsing."""

    def extract(self, body: bytes, *, filename: str) -> ExtractedStatement:
        start = time.monotonic()
        if not _looks_like_pdf_bytes(body):
            raise ExtractionFailure("Bad upload: expected PDF header (%PDF)")

        text, page_count = extract_pdf_text(body)
        log_event(
            logger,
            "extraction.pdf.text",
            filename=filename,
            page_count=page_count,
            char_count=len(text),
            duration_ms=monotonic_ms(start),
        )
        if not text.strip():
            raise ExtractionFailure("No text found in PDF")

        parsed = parse_statement_text(text)
        extracted = statement_from_ai_payload(parsed)
        log_event(
            logger,
            "extraction.finish",
            filename=filename,
            line_count=len(extracted.lines),
            statement_date=extracted.statement_date,
            duration_ms=monotonic_ms(start),
        )
        return extracted


def extract_pdf_text(body: bytes) -> tuple[str, int]:
    try:
        reader = PdfReader(BytesIO(body))
        pages = [
            (page.extract_text() or "").replace(" ", " ").replace("\xa0", " ")
            for page in reader.pages
        ]
    except (PdfReadError, ValueError, KeyError) as e:
        raise ExtractionFailure(f"Could not read PDF: {e}") from e
    return "\n\n".join(pages), len(pages)


def statement_from_ai_payload(payload: dict[str, Any]) -> ExtractedStatement:
    summary = payload.get("summary") or {}
    lines: list[RawLine] = []
    for item in payload.get("expenses") or []:
        if not isinstance(item, dict):
            continue
        lines.append(_raw_line_from_ai(item))

    return ExtractedStatement(
        statement_date=_parse_iso_date(summary.get("statement_date")),
        due_date=_parse_iso_date(summary.get("due_date")),
        total_ars=parse_amount(summary.get("total_ars")),
        total_usd=parse_amount(summary.get("total_usd")),
        card_hint=_clean_str(summary.get("card_identifier")),
        lines=lines,
    )


def _raw_line_from_ai(item: dict[str, Any]) -> RawLine:
    amount_ars = item.get("amount_ars")
    amount_usd = item.get("amount_usd")
    amount: object = None
    currency: str | None = None
    if amount_ars is not None and amount_usd is None:
        amount, currency = amount_ars, "ARS"
    elif amount_usd is not None and amount_ars is None:
        amount, currency = amount_usd, "USD"
    elif amount_ars is not None and amount_usd is not None:
        # Both columns filled: the currency is ambiguous, leave it for the normalizer to drop.
        amount = amount_ars

    installment_text = None
    current = _installment_number(item.get("current_installment"))
    total = _installment_number(item.get("total_installments"))
    if current is not None and total is not None:
        installment_text = f"{current}/{total}"

    return RawLine(
        description=_clean_str(item.get("description")),
        amount=amount,
        currency=currency,
        date=_clean_str(item.get("purchase_date")),
        installment_text=installment_text,
        card_hint=_clean_str(item.get("card_identifier")),
    )


def _installment_number(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and re.fullmatch(r"\s*\d+\.0+\s*", value):
        return int(float(value))
    return value


def _parse_iso_date(value: Any) -> date | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _looks_like_pdf_bytes(body: bytes) -> bool:
    if not body:
        return False
    b = body.lstrip()
    if b.startswith(b"\xef\xbb\xbf"):
        b = b[3:].lstrip()
    return b[:1024].find(b"%PDF") != -1


_default_extractor: StatementExtractor | None = None


def get_default_extractor() -> StatementExtractor:
    global _default_extractor  # noqa: PLW0603
    if _default_extractor is None:
        _default_extractor = PdfStatementExtractor()
    return _default_extractor
