from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from card_ledger.core.months import YearMonth
from card_ledger.modules.cards.models import Card
from card_ledger.modules.expenses.aggregation import summarize_month
from card_ledger.modules.expenses.models import Expense
from card_ledger.modules.expenses.schemas import (
    AvailableMonthDto,
    CardBreakdownDto,
    MonthExpenseCardDto,
    MonthExpenseDto,
    MonthExpensesResponseDto,
    MonthExpenseStatementDto,
    MonthlyDataDto,
    RangeSummaryDto,
    RangeSummaryResponseDto,
)
from card_ledger.modules.expenses.views import ExpenseView, expense_view
from card_ledger.modules.statements.models import Statement

RANGE_MONTHS = 12


def _money(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _statements_by_month(
    session: Session, *, user_id: uuid.UUID, with_expenses: bool = False
) -> dict[YearMonth, list[Statement]]:
    query = select(Statement).where(Statement.user_id == user_id)
    if with_expenses:
        query = query.options(
            selectinload(Statement.expenses).selectinload(Expense.card),
        )
    out: dict[YearMonth, list[Statement]] = {}
    for statement in session.scalars(query.order_by(Statement.created_at)):
        month = statement.month
        if month is None:
            continue
        out.setdefault(month, []).append(statement)
    return out


def list_available_months(session: Session, *, user_id: uuid.UUID) -> list[YearMonth]:
    return sorted(_statements_by_month(session, user_id=user_id), reverse=True)


def month_expense_views(
    session: Session, *, user_id: uuid.UUID, month: YearMonth
) -> tuple[list[Statement], list[ExpenseView]]:
    statements = _statements_by_month(session, user_id=user_id, with_expenses=True).get(month, [])
    views = [expense_view(e) for s in statements for e in s.expenses]
    return statements, views


def get_month_expenses(
    session: Session, *, user_id: uuid.UUID, year: int, month: int
) -> MonthExpensesResponseDto:
    statements, views = month_expense_views(
        session, user_id=user_id, month=YearMonth.create(year, month)
    )
    summary = summarize_month(views)

    expenses = [
        MonthExpenseDto(
            id=v.id,
            description=v.description,
            amount_ars=_money(v.amount_ars),
            amount_usd=_money(v.amount_usd),
            current_installment=v.current_installment,
            total_installments=v.total_installments,
            card=(
                MonthExpenseCardDto(
                    id=v.card_id,
                    custom_name=v.card_custom_name,
                    last_four_digits=v.card_last_four,
                )
                if v.card_id
                else None
            ),
            statement=MonthExpenseStatementDto(
                id=v.statement_id, original_filename=v.statement_filename or ""
            ),
        )
        for v in views
    ]
    return MonthExpensesResponseDto(
        year=year,
        month=month,
        total_ars=float(summary.total_ars),
        total_usd=float(summary.total_usd),
        statement_count=len(statements),
        expenses=expenses,
    )


def get_range_summary(
    session: Session, *, user_id: uuid.UUID, end_year: int, end_month: int
) -> RangeSummaryResponseDto:
    """Twelve statement months ending at (end_year, end_month), oldest first."""
    end = YearMonth.create(end_year, end_month)
    start = end.shift(-(RANGE_MONTHS - 1))
    by_month = _statements_by_month(session, user_id=user_id, with_expenses=True)

    monthly_data: list[MonthlyDataDto] = []
    window_views: list[ExpenseView] = []
    total_ars = Decimal("0.00")
    total_usd = Decimal("0.00")
    for month in sorted(m for m in by_month if start <= m <= end):
        statements = by_month[month]
        month_ars = sum((s.total_ars or Decimal("0") for s in statements), Decimal("0.00"))
        month_usd = sum((s.total_usd or Decimal("0") for s in statements), Decimal("0.00"))
        total_ars += month_ars
        total_usd += month_usd
        monthly_data.append(
            MonthlyDataDto(
                year=month.year,
                month=month.month,
                total_ars=float(month_ars),
                total_usd=float(month_usd),
                statement_count=len(statements),
            )
        )
        window_views.extend(expense_view(e) for s in statements for e in s.expenses)

    cards = {
        c.id: c for c in session.scalars(select(Card).where(Card.user_id == user_id))
    }
    breakdown = []
    for bucket in summarize_month(window_views).per_card:
        card = cards.get(bucket.card_id) if bucket.card_id else None
        breakdown.append(
            CardBreakdownDto(
                card_id=bucket.card_id,
                custom_name=card.custom_name if card else None,
                last_four_digits=card.last_four_digits if card else None,
                total_ars=float(bucket.total_ars),
                total_usd=float(bucket.total_usd),
            )
        )

    return RangeSummaryResponseDto(
        available_months=[
            AvailableMonthDto(year=m.year, month=m.month) for m in sorted(by_month, reverse=True)
        ],
        range_summary=RangeSummaryDto(
            start_date=start.first_day(),
            end_date=end.last_day(),
            total_ars=float(total_ars),
            total_usd=float(total_usd),
            monthly_data=monthly_data,
        ),
        card_breakdown=breakdown,
    )
