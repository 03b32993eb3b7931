from __future__ import annotations

import json
import logging
import re
import time
from typing import Any

import httpx

from card_ledger.core.config import settings
from card_ledger.core.errors import ExtractionFailure
from card_ledger.core.logging import get_logger, log_event, monotonic_ms

logger = get_logger(__name__)

_ANTHROPIC_VERSION = "2023-06-01"

_STATEMENT_PROMPT = """Parse this Argentine credit card statement. Extract ALL expenses as JSON.

OUTPUT FORMAT:
{"expenses":[{"description":"str","amount_ars":num|null,"amount_usd":num|null,\
"current_installment":num|null,"total_installments":num|null,"card_identifier":"str"|null,\
"purchase_date":"YYYY-MM-DD"|null}],"summary":{"total_ars":num|null,"total_usd":num|null,\
"due_date":"YYYY-MM-DD"|null,"statement_date":"YYYY-MM-DD"|null,"card_identifier":"str"|null}}

PARSING RULES:

1. CARD/ACCOUNT IDENTIFICATION:
   - Look for "cuenta XXXXXXXXXX", "Tarjeta XXXX" or similar; use the last 4 digits.
   - Multiple "Tarjeta XXXX" sections: use those 4 digits for the expenses in each section.
   - Single account statements: put the account's last 4 digits in summary.card_identifier.
   - Tax/fee items (IIBB, IVA, IMPUESTO DE SELLOS) have card_identifier=null.

2. DATES (convert all to YYYY-MM-DD):
   - DD.MM.YY: 16.08.25 = 2025-08-16
   - Spanish months: Ene=01, Feb=02, Mar=03, Abr=04, May=05, Jun=06, Jul=07, Ago=08,
     Sep=09, Oct=10, Nov=11, Dic=12
   - statement_date is "CIERRE ACTUAL"; due_date is "VENCIMIENTO" / "VENCIMIENTO ACTUAL".

3. INSTALLMENTS:
   - "Cuota XX/YY" or "C.XX/YY": current_installment=XX, total_installments=YY
   - No installment info: both null.

4. AMOUNTS:
   - 1.959.370,09 = 1959370.09 (dots are thousands, comma is decimal)
   - USD purchases set amount_usd and leave amount_ars null; never both.
   - Refunds/credits stay negative.

5. SKIP payment lines ("SU PAGO EN PESOS", "SU PAGO EN USD"), balances ("SALDO ANTERIOR",
   "SALDO ACTUAL"), subtotals ("Tarjeta XXXX Total", "TOTAL CONSUMOS DE...") and "CR.RG"
   adjustments.

6. INCLUDE every purchase line and tax lines (IMPUESTO DE SELLOS, IIBB, IVA, DB.RG).

Return JSON only.

Statement text:
"""


def parse_statement_text(text: str) -> dict[str, Any]:
    """
    Ask the model to turn statement text into {"expenses": [...], "summary": {...}}.

    Raises ExtractionFailure when the call fails or no JSON can be recovered.
    """
    if not settings.anthropic_api_key:
        raise ExtractionFailure("Statement AI is not configured (ANTHROPIC_API_KEY missing)")

    cleaned = _truncate_text(text, max_chars=int(settings.statement_ai_max_chars or 0) or 60000)
    if not cleaned:
        raise ExtractionFailure("No text found in PDF")

    payload = {
        "model": settings.anthropic_model,
        "max_tokens": int(settings.statement_ai_max_tokens),
        "messages": [{"role": "user", "content": _STATEMENT_PROMPT + cleaned}],
    }
    headers = {
        "x-api-key": str(settings.anthropic_api_key),
        "anthropic-version": _ANTHROPIC_VERSION,
        "content-type": "application/json",
    }
    url = settings.anthropic_base_url.rstrip("/") + "/messages"

    start = time.monotonic()
    try:
        resp = httpx.post(
            url,
            headers=headers,
            json=payload,
            timeout=float(settings.statement_ai_timeout_seconds or 120.0),
            follow_redirects=True,
        )
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise ExtractionFailure(f"Statement AI request failed: {e.__class__.__name__}") from e

    try:
        raw = resp.json()
        blocks = raw.get("content") or []
        content = "".join(
            str(b.get("text") or "")
            for b in blocks
            if isinstance(b, dict) and b.get("type") == "text"
        )
    except (ValueError, AttributeError) as e:
        raise ExtractionFailure("Unexpected statement AI response shape") from e

    log_event(
        logger,
        "extraction.ai.response",
        model=settings.anthropic_model,
        stop_reason=raw.get("stop_reason"),
        usage=raw.get("usage"),
        duration_ms=monotonic_ms(start),
    )
    if raw.get("stop_reason") == "max_tokens":
        log_event(
            logger,
            "extraction.ai.truncated",
            level=logging.WARNING,
            model=settings.anthropic_model,
        )

    obj = _parse_json_object(content)
    if not isinstance(obj, dict):
        raise ExtractionFailure("No valid JSON found in statement AI response")
    if not isinstance(obj.get("expenses"), list):
        obj["expenses"] = []
    if not isinstance(obj.get("summary"), dict):
        obj["summary"] = {}
    return obj


def _truncate_text(text: str, *, max_chars: int) -> str:
    t = (text or "").replace("\u202f", " ").replace("\xa0", " ").strip()
    if not t:
        return ""
    if max_chars <= 0 or len(t) <= max_chars:
        return t
    return t[: max_chars - 20].rstrip() + "\n\n[TRUNCATED]"


def _parse_json_object(content: str) -> Any:
    c = (content or "").strip()
    if not c:
        return None

    fenced = re.search(r"```(?:json)?\s*(.*?)```", c, re.S)
    if fenced:
        c = fenced.group(1).strip()

    m = re.search(r"\{.*\}", c, re.S)
    if not m:
        return None
    candidate = m.group(0)
    candidate = re.sub(r",\s*]", "]", candidate)
    candidate = re.sub(r",\s*}", "}", candidate)
    candidate = re.sub(r"[\x00-\x1f\x7f]", " ", candidate)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    # Truncated responses: salvage whatever complete expense objects exist.
    start = candidate.find('"expenses"')
    if start < 0:
        return None
    expenses: list[dict[str, Any]] = []
    for chunk in re.findall(r"\{[^{}]*\}", candidate[start:]):
        try:
            item = json.loads(chunk)
        except json.JSONDecodeError:
            continue
        if isinstance(item, dict) and "description" in item:
            expenses.append(item)
    if not expenses:
        return None
    log_event(logger, "extraction.ai.salvaged", level=logging.WARNING, recovered=len(expenses))
    return {"expenses": expenses, "summary": {}}
