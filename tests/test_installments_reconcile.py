from __future__ import annotations

import uuid
from decimal import Decimal

from card_ledger.core.months import YearMonth
from card_ledger.modules.expenses.views import ExpenseView
from card_ledger.modules.installments.service import (
    PlanStatus,
    completing_installments,
    reconcile,
)

CARD = uuid.uuid4()


def _view(
    description: str,
    current: int | None,
    total: int | None,
    month: YearMonth | None,
    *,
    ars: str | None = "1000",
    usd: str | None = None,
    card_id: uuid.UUID | None = CARD,
) -> ExpenseView:
    return ExpenseView(
        id=uuid.uuid4(),
        description=description,
        amount_ars=Decimal(ars) if ars is not None else None,
        amount_usd=Decimal(usd) if usd is not None else None,
        current_installment=current,
        total_installments=total,
        card_id=card_id,
        statement_month=month,
    )


def test_two_of_three_is_active_with_one_month_left():
    jan = YearMonth(2025, 1)
    feb = YearMonth(2025, 2)
    expenses = [_view("Laptop", 1, 3, jan), _view("Laptop", 2, 3, feb)]

    summary = reconcile(expenses, feb)

    assert len(summary.plans) == 1
    plan = summary.plans[0]
    assert plan.status == PlanStatus.ACTIVE
    assert plan.remaining_months == 1
    assert plan.remaining_amount_ars == Decimal("1000")
    assert plan.remaining_amount_usd is None
    assert summary.active_count == 1
    assert summary.total_remaining_ars == Decimal("1000")
    assert summary.total_remaining_usd == Decimal("0")


def test_terminal_charge_is_completing_then_completed():
    mar = YearMonth(2025, 3)
    expenses = [
        _view("Laptop", 1, 3, YearMonth(2025, 1)),
        _view("Laptop", 2, 3, YearMonth(2025, 2)),
        _view("Laptop", 3, 3, mar),
    ]

    now = reconcile(expenses, mar)
    later = reconcile(expenses, mar.next())

    assert now.plans[0].status == PlanStatus.COMPLETING
    assert now.completing_this_month_count == 1
    assert now.plans[0].remaining_months == 0
    assert later.plans[0].status == PlanStatus.COMPLETED
    assert later.completing_this_month_count == 0
    assert later.total_remaining_ars == Decimal("0")


def test_members_after_as_of_are_ignored():
    expenses = [
        _view("Laptop", 1, 3, YearMonth(2025, 1)),
        _view("Laptop", 2, 3, YearMonth(2025, 2)),
    ]

    summary = reconcile(expenses, YearMonth(2025, 1))

    assert summary.plans[0].current_installment == 1
    assert summary.plans[0].remaining_months == 2


def test_grouping_ignores_case_and_whitespace_but_not_card_or_total():
    other_card = uuid.uuid4()
    month = YearMonth(2025, 5)
    expenses = [
        _view("Heladera  SAMSUNG", 1, 6, month.prev()),
        _view("heladera samsung", 2, 6, month),
        _view("Heladera Samsung", 2, 6, month, card_id=other_card),
        _view("Heladera Samsung", 2, 12, month),
        _view("Kiosco", None, None, month),
        _view("One shot", 1, 1, month),
    ]

    summary = reconcile(expenses, month)

    assert len(summary.plans) == 3
    sizes = sorted(len(p.members) for p in summary.plans)
    assert sizes == [1, 1, 2]


def test_monthly_amount_comes_from_latest_member_per_currency():
    month = YearMonth(2025, 4)
    expenses = [
        _view("Spotify anual", 1, 4, month.prev(), ars=None, usd="10"),
        _view("Spotify anual", 2, 4, month, ars=None, usd="12"),
    ]

    plan = reconcile(expenses, month).plans[0]

    assert plan.monthly_amount_usd == Decimal("12")
    assert plan.monthly_amount_ars is None
    assert plan.remaining_amount_usd == Decimal("24")
    assert plan.remaining_amount_ars is None


def test_plans_ordered_by_remaining_months_then_description():
    month = YearMonth(2025, 6)
    expenses = [
        _view("Zapatillas", 1, 3, month),
        _view("Celular", 1, 12, month),
        _view("Auriculares", 1, 3, month),
    ]

    summary = reconcile(expenses, month)

    assert [p.description for p in summary.plans] == ["Auriculares", "Zapatillas", "Celular"]
    assert all(p.remaining_months >= 0 for p in summary.plans)


def test_repeated_installment_is_reported_as_anomaly_and_excluded():
    month = YearMonth(2025, 7)
    duplicated = [_view("Sillon", 2, 6, month.prev()), _view("Sillon", 2, 6, month)]
    healthy = [_view("Mesa", 1, 3, month)]

    summary = reconcile(duplicated + healthy, month)

    assert [p.description for p in summary.plans] == ["Mesa"]
    assert len(summary.anomalies) == 1
    anomaly = summary.anomalies[0]
    assert anomaly.total_installments == 6
    assert set(anomaly.expense_ids) == {e.id for e in duplicated}
    assert summary.total_remaining_ars == Decimal("2000")


def test_completing_installments_lists_terminal_charges_of_the_month():
    month = YearMonth(2025, 8)
    expenses = [
        _view("Bicicleta", 6, 6, month, ars="5000"),
        _view("Notebook", 5, 6, month),
        _view("Cafetera", 3, 3, month.prev()),
        _view("Licencia", 12, 12, month, ars=None, usd="20"),
    ]

    result = completing_installments(expenses, month)

    assert sorted(p.description for p in result.plans) == ["Bicicleta", "Licencia"]
    assert result.total_ars == Decimal("5000")
    assert result.total_usd == Decimal("20")
