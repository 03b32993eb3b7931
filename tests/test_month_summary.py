from __future__ import annotations

import random
import uuid
from decimal import Decimal

from card_ledger.modules.expenses.aggregation import summarize_month
from card_ledger.modules.expenses.views import ExpenseView


def _view(card_id, ars=None, usd=None) -> ExpenseView:
    return ExpenseView(
        id=uuid.uuid4(),
        description="x",
        amount_ars=Decimal(ars) if ars is not None else None,
        amount_usd=Decimal(usd) if usd is not None else None,
        card_id=card_id,
    )


def test_per_card_totals_with_fee_bucket():
    visa = uuid.uuid4()
    expenses = [
        _view(visa, ars="100.50"),
        _view(visa, usd="20"),
        _view(None, ars="15.25"),
        _view(visa, ars="-10"),
    ]

    summary = summarize_month(expenses)

    assert summary.total_ars == Decimal("105.75")
    assert summary.total_usd == Decimal("20")
    by_card = {b.card_id: b for b in summary.per_card}
    assert by_card[visa].total_ars == Decimal("90.50")
    assert by_card[visa].total_usd == Decimal("20")
    assert by_card[None].total_ars == Decimal("15.25")
    assert summary.per_card[-1].card_id is None
    assert summary.anomalies == []


def test_expense_with_both_amounts_counts_as_ars_and_is_flagged():
    bad = _view(None, ars="10", usd="3")

    summary = summarize_month([bad])

    assert summary.total_ars == Decimal("10")
    assert summary.total_usd == Decimal("0")
    assert summary.anomalies == [bad.id]


def test_sum_of_card_totals_equals_overall_total():
    rng = random.Random(7)
    cards = [uuid.uuid4(), uuid.uuid4(), None]
    for _ in range(25):
        expenses = []
        for _ in range(rng.randint(0, 30)):
            amount = f"{rng.randint(-5000, 500000) / 100:.2f}"
            kind = rng.choice(["ars", "usd", "both"])
            expenses.append(
                _view(
                    rng.choice(cards),
                    ars=amount if kind in {"ars", "both"} else None,
                    usd=amount if kind in {"usd", "both"} else None,
                )
            )

        summary = summarize_month(expenses)

        assert sum((b.total_ars for b in summary.per_card), Decimal("0")) == summary.total_ars
        assert sum((b.total_usd for b in summary.per_card), Decimal("0")) == summary.total_usd
