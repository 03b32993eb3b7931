"""
Installment plans derived from expense rows.

A plan is never stored. It is the set of expenses sharing a normalized description,
card and installment count, seen across statements. `reconcile` is pure; the
`get_*` helpers load the rows for one user and feed them through it.
"""

from __future__ import annotations

import enum
import logging
import re
import uuid
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from card_ledger.core.errors import AnomalousInstallmentGroup
from card_ledger.core.logging import get_logger, log_event
from card_ledger.core.months import YearMonth
from card_ledger.modules.expenses.models import Expense
from card_ledger.modules.expenses.views import ExpenseView, expense_view
from card_ledger.modules.statements.models import Statement
from card_ledger.modules.statements.service import latest_statement_month

logger = get_logger(__name__)

_ZERO = Decimal("0.00")


class PlanStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETING = "completing"
    COMPLETED = "completed"


@dataclass(frozen=True)
class InstallmentPlan:
    description: str
    card_id: uuid.UUID | None
    total_installments: int
    members: tuple[ExpenseView, ...]
    status: PlanStatus
    monthly_amount_ars: Decimal | None
    monthly_amount_usd: Decimal | None

    @property
    def latest(self) -> ExpenseView:
        return self.members[-1]

    @property
    def current_installment(self) -> int:
        return self.latest.current_installment or 0

    @property
    def remaining_months(self) -> int:
        return max(self.total_installments - self.current_installment, 0)

    @property
    def remaining_amount_ars(self) -> Decimal | None:
        if self.monthly_amount_ars is None:
            return None
        return self.monthly_amount_ars * self.remaining_months

    @property
    def remaining_amount_usd(self) -> Decimal | None:
        if self.monthly_amount_usd is None:
            return None
        return self.monthly_amount_usd * self.remaining_months

    @property
    def purchase_date(self) -> date | None:
        for member in self.members:
            if member.purchase_date:
                return member.purchase_date
        return None


@dataclass
class InstallmentsSummary:
    as_of: YearMonth
    plans: list[InstallmentPlan] = field(default_factory=list)
    anomalies: list[AnomalousInstallmentGroup] = field(default_factory=list)

    @property
    def active_count(self) -> int:
        return sum(1 for p in self.plans if p.status == PlanStatus.ACTIVE)

    @property
    def completing_this_month_count(self) -> int:
        return sum(1 for p in self.plans if p.status == PlanStatus.COMPLETING)

    @property
    def total_remaining_ars(self) -> Decimal:
        return sum(
            (
                p.remaining_amount_ars
                for p in self.plans
                if p.status != PlanStatus.COMPLETED and p.remaining_amount_ars is not None
            ),
            _ZERO,
        )

    @property
    def total_remaining_usd(self) -> Decimal:
        return sum(
            (
                p.remaining_amount_usd
                for p in self.plans
                if p.status != PlanStatus.COMPLETED and p.remaining_amount_usd is not None
            ),
            _ZERO,
        )


GroupKey = tuple[str, uuid.UUID | None, int]


def group_key(expense: ExpenseView) -> GroupKey | None:
    total = expense.total_installments
    if total is None or total <= 1:
        return None
    description = re.sub(r"\s+", " ", expense.description or "").strip().casefold()
    return description, expense.card_id, total


def reconcile(expenses: Iterable[ExpenseView], as_of: YearMonth) -> InstallmentsSummary:
    groups: dict[GroupKey, list[ExpenseView]] = defaultdict(list)
    for e in expenses:
        key = group_key(e)
        if key is None:
            continue
        if e.statement_month is not None and e.statement_month > as_of:
            continue
        groups[key].append(e)

    summary = InstallmentsSummary(as_of=as_of)
    for key, members in groups.items():
        anomaly = _check_group(key, members)
        if anomaly is not None:
            log_event(
                logger,
                "installments.anomaly",
                level=logging.WARNING,
                description=anomaly.description,
                card_id=str(anomaly.card_id) if anomaly.card_id else None,
                total_installments=anomaly.total_installments,
                reason=anomaly.reason,
                expense_ids=[str(i) for i in anomaly.expense_ids],
            )
            summary.anomalies.append(anomaly)
            continue
        summary.plans.append(_build_plan(key, members, as_of))

    summary.plans.sort(
        key=lambda p: (
            p.remaining_months,
            p.description.casefold(),
            str(p.card_id) if p.card_id else "",
        )
    )
    return summary


def _check_group(key: GroupKey, members: list[ExpenseView]) -> AnomalousInstallmentGroup | None:
    _, card_id, total = key
    seen: set[int] = set()
    reason = None
    for m in members:
        current = m.current_installment
        if current is None or current < 1:
            reason = f"Installment number below 1: {current}"
            break
        if current > total:
            reason = f"Installment {current} exceeds total {total}"
            break
        if current in seen:
            reason = f"Installment {current} appears more than once"
            break
        seen.add(current)
    if reason is None:
        return None
    return AnomalousInstallmentGroup(
        description=members[0].description,
        card_id=card_id,
        total_installments=total,
        reason=reason,
        expense_ids=[m.id for m in members],
    )


def _build_plan(key: GroupKey, members: list[ExpenseView], as_of: YearMonth) -> InstallmentPlan:
    _, card_id, total = key
    ordered = tuple(sorted(members, key=lambda m: m.current_installment or 0))
    latest = ordered[-1]

    if latest.current_installment == total:
        if latest.statement_month == as_of:
            plan_status = PlanStatus.COMPLETING
        else:
            plan_status = PlanStatus.COMPLETED
    else:
        plan_status = PlanStatus.ACTIVE

    return InstallmentPlan(
        description=latest.description,
        card_id=card_id,
        total_installments=total,
        members=ordered,
        status=plan_status,
        monthly_amount_ars=latest.amount_ars,
        monthly_amount_usd=latest.amount_usd,
    )


@dataclass
class CompletingInstallments:
    month: YearMonth
    plans: list[InstallmentPlan] = field(default_factory=list)

    @property
    def total_ars(self) -> Decimal:
        return sum((p.monthly_amount_ars or _ZERO for p in self.plans), _ZERO)

    @property
    def total_usd(self) -> Decimal:
        return sum((p.monthly_amount_usd or _ZERO for p in self.plans), _ZERO)


def completing_installments(
    expenses: Iterable[ExpenseView], month: YearMonth
) -> CompletingInstallments:
    """Plans whose last installment is charged on the statement of `month`."""
    summary = reconcile(expenses, month)
    return CompletingInstallments(
        month=month,
        plans=[p for p in summary.plans if p.status == PlanStatus.COMPLETING],
    )


def load_expense_views(session: Session, *, user_id: uuid.UUID) -> list[ExpenseView]:
    rows = session.scalars(
        select(Expense)
        .join(Statement, Expense.statement_id == Statement.id)
        .options(selectinload(Expense.card), selectinload(Expense.statement))
        .where(Statement.user_id == user_id, Expense.total_installments > 1)
    )
    return [expense_view(e) for e in rows]


def get_installments(
    session: Session, *, user_id: uuid.UUID, as_of: YearMonth | None = None
) -> InstallmentsSummary:
    if as_of is None:
        as_of = latest_statement_month(session, user_id=user_id) or YearMonth.of(date.today())
    return reconcile(load_expense_views(session, user_id=user_id), as_of)


def get_completing_installments(
    session: Session, *, user_id: uuid.UUID, month: YearMonth
) -> CompletingInstallments:
    return completing_installments(load_expense_views(session, user_id=user_id), month)
