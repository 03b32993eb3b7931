from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from card_ledger.modules.expenses.views import ExpenseView

_ZERO = Decimal("0.00")


@dataclass
class CardTotal:
    card_id: uuid.UUID | None
    total_ars: Decimal = _ZERO
    total_usd: Decimal = _ZERO
    expense_count: int = 0


@dataclass
class MonthSummary:
    total_ars: Decimal = _ZERO
    total_usd: Decimal = _ZERO
    per_card: list[CardTotal] = field(default_factory=list)
    anomalies: list[uuid.UUID] = field(default_factory=list)


def summarize_month(expenses: Iterable[ExpenseView]) -> MonthSummary:
    """
    Total a month's expenses per currency and per card (None = fees and taxes).

    No currency conversion. An expense carrying both amounts is counted towards ARS
    only and listed in anomalies, so the per-card totals always add up to the overall
    totals.
    """
    summary = MonthSummary()
    buckets: dict[uuid.UUID | None, CardTotal] = {}

    for e in expenses:
        bucket = buckets.get(e.card_id)
        if bucket is None:
            bucket = buckets[e.card_id] = CardTotal(card_id=e.card_id)
        bucket.expense_count += 1

        if e.amount_ars is not None:
            bucket.total_ars += e.amount_ars
            summary.total_ars += e.amount_ars
            if e.amount_usd is not None:
                summary.anomalies.append(e.id)
        elif e.amount_usd is not None:
            bucket.total_usd += e.amount_usd
            summary.total_usd += e.amount_usd

    # Named cards first, fees bucket last.
    summary.per_card = sorted(
        buckets.values(), key=lambda b: (b.card_id is None, str(b.card_id or ""))
    )
    return summary
