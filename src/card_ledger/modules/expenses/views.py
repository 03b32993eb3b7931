from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from card_ledger.core.months import YearMonth
from card_ledger.modules.expenses.models import Expense


@dataclass(frozen=True)
class ExpenseView:
    """Read-only expense row joined with its card and statement month."""

    id: uuid.UUID
    description: str
    amount_ars: Decimal | None
    amount_usd: Decimal | None
    current_installment: int | None = None
    total_installments: int | None = None
    card_id: uuid.UUID | None = None
    card_custom_name: str | None = None
    card_last_four: str | None = None
    purchase_date: date | None = None
    statement_id: uuid.UUID | None = None
    statement_filename: str | None = None
    statement_month: YearMonth | None = None


def expense_view(expense: Expense) -> ExpenseView:
    card = expense.card
    statement = expense.statement
    return ExpenseView(
        id=expense.id,
        description=expense.description,
        amount_ars=expense.amount_ars,
        amount_usd=expense.amount_usd,
        current_installment=expense.current_installment,
        total_installments=expense.total_installments,
        card_id=expense.card_id,
        card_custom_name=card.custom_name if card else None,
        card_last_four=card.last_four_digits if card else None,
        purchase_date=expense.purchase_date,
        statement_id=expense.statement_id,
        statement_filename=statement.original_filename if statement else None,
        statement_month=statement.month if statement else None,
    )
