"""
Raw extractor lines -> canonical expenses.

Pure: no persistence and no I/O. A malformed line becomes an ExtractionMismatch and is
dropped; the rest of the statement is kept.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from card_ledger.core.currencies import Currency, normalize_currency, parse_amount
from card_ledger.core.errors import ExtractionMismatch
from card_ledger.modules.cards.models import Card
from card_ledger.modules.cards.service import last_four_of
from card_ledger.modules.extraction.schemas import RawLine

_MARKER = r"(\d{1,3})\s*(?:/|de|of)\s*(\d{1,3})"
_KEYWORD = r"(?:cuotas?|c\.|installments?|inst\.?)"

_SEP = r"[\s()\[\]{}\-.,:;#]*"

# Installment text from the extractor: the marker, optionally wrapped in punctuation and
# a keyword before or after it ("(03/12)", "03/12 cuotas", "Cuota 3 de 12.").
_INSTALLMENT_TEXT_RE = re.compile(
    rf"(?i){_SEP}(?:{_KEYWORD}{_SEP})?{_MARKER}{_SEP}(?:{_KEYWORD}{_SEP})?"
)
# Inside a description the keyword is required so dates like 16/08 are not read as markers.
_INSTALLMENT_DESC_RE = re.compile(rf"(?i)(?<![A-Za-z]){_KEYWORD}\s*:?\s*{_MARKER}(?!\d)")

_FEE_RE = re.compile(
    r"(?i)\b(?:IIBB|IVA|IMPUESTO|IMP\.|SELLOS|DB\.?\s*RG|PERCEPCI[OÓ]N|COMISI[OÓ]N|INTERESES)"
)

_DATE_FORMATS = (
    re.compile(r"^(\d{4})-(\d{2})-(\d{2})"),
    re.compile(r"^(\d{1,2})[./-](\d{1,2})[./-](\d{2,4})$"),
)


@dataclass(frozen=True)
class NormalizedExpense:
    line_index: int
    description: str
    card_id: uuid.UUID | None
    amount_ars: Decimal | None
    amount_usd: Decimal | None
    current_installment: int | None
    total_installments: int | None
    purchase_date: date | None

    @property
    def currency(self) -> Currency:
        return Currency.ARS if self.amount_ars is not None else Currency.USD


@dataclass
class NormalizationResult:
    expenses: list[NormalizedExpense] = field(default_factory=list)
    mismatches: list[ExtractionMismatch] = field(default_factory=list)

    @property
    def dropped(self) -> int:
        return len(self.mismatches)


def normalize(
    raw_lines: Sequence[RawLine],
    known_cards: Iterable[Card],
    *,
    statement_card_hint: str | None = None,
) -> NormalizationResult:
    cards = list(known_cards)
    statement_card = _match_card(statement_card_hint, cards)
    result = NormalizationResult()

    for index, line in enumerate(raw_lines):
        try:
            expense = _normalize_line(index, line, cards, statement_card)
        except ExtractionMismatch as e:
            result.mismatches.append(e)
            continue
        result.expenses.append(expense)
    return result


def _normalize_line(
    index: int, line: RawLine, cards: list[Card], statement_card: Card | None
) -> NormalizedExpense:
    description = re.sub(r"\s+", " ", line.description or "").strip()
    if not description:
        raise ExtractionMismatch("Empty description", line_index=index)

    currency = normalize_currency(line.currency)
    if currency is None:
        reason = "Missing currency" if not line.currency else f"Unknown currency: {line.currency}"
        raise ExtractionMismatch(reason, line_index=index, description=description)

    amount = parse_amount(line.amount)
    if amount is None:
        raise ExtractionMismatch(
            f"Invalid amount: {line.amount!r}", line_index=index, description=description
        )

    current, total = parse_installment(line.installment_text, description)
    if current is not None and total is not None and not 1 <= current <= total:
        raise ExtractionMismatch(
            f"Invalid installment marker: {current}/{total}",
            line_index=index,
            description=description,
        )

    card = _match_card(line.card_hint, cards)
    if card is None and statement_card is not None and not _FEE_RE.search(description):
        card = statement_card

    return NormalizedExpense(
        line_index=index,
        description=description,
        card_id=card.id if card else None,
        amount_ars=amount if currency == Currency.ARS else None,
        amount_usd=amount if currency == Currency.USD else None,
        current_installment=current,
        total_installments=total,
        purchase_date=parse_line_date(line.date),
    )


def parse_installment(
    installment_text: str | None, description: str | None = None
) -> tuple[int | None, int | None]:
    """
    Return (current, total) from an installment marker, or (None, None).

    The extractor's installment text wins; the description is only searched for the
    keyword-prefixed form ("Cuota 03/12", "C.03/12").
    """
    if installment_text and installment_text.strip():
        m = _INSTALLMENT_TEXT_RE.fullmatch(installment_text.strip())
        if m:
            return int(m.group(1)), int(m.group(2))
    if description:
        m = _INSTALLMENT_DESC_RE.search(description)
        if m:
            return int(m.group(1)), int(m.group(2))
    return None, None


def parse_line_date(value: str | None) -> date | None:
    if not value:
        return None
    raw = value.strip()
    iso = _DATE_FORMATS[0].match(raw)
    try:
        if iso:
            return date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        dmy = _DATE_FORMATS[1].match(raw)
        if dmy:
            year = int(dmy.group(3))
            if year < 100:
                year += 2000
            return date(year, int(dmy.group(2)), int(dmy.group(1)))
    except ValueError:
        return None
    return None


def _match_card(hint: str | None, cards: list[Card]) -> Card | None:
    if not hint or not hint.strip():
        return None
    last_four = last_four_of(hint)
    if last_four:
        for card in cards:
            if card.last_four_digits == last_four:
                return card
    wanted = hint.strip().casefold()
    for card in cards:
        if card.custom_name and card.custom_name.strip().casefold() == wanted:
            return card
    return None
