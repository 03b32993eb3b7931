from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal


@dataclass(frozen=True)
class RawLine:
    """One best-effort line item as returned by the extractor. Nothing is validated yet."""

    description: str | None
    amount: object
    currency: str | None
    date: str | None = None
    installment_text: str | None = None
    card_hint: str | None = None


@dataclass(frozen=True)
class ExtractedStatement:
    statement_date: date | None
    due_date: date | None
    total_ars: Decimal | None = None
    total_usd: Decimal | None = None
    card_hint: str | None = None
    lines: list[RawLine] = field(default_factory=list)

    @property
    def card_identifiers(self) -> list[str]:
        out = [self.card_hint] if self.card_hint else []
        out.extend(line.card_hint for line in self.lines if line.card_hint)
        return out
