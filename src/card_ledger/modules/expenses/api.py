from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from card_ledger.api.deps import get_current_user
from card_ledger.core.db import db_session
from card_ledger.modules.expenses.schemas import MonthExpensesResponseDto
from card_ledger.modules.expenses.service import get_month_expenses
from card_ledger.modules.identity.models import User

router = APIRouter(tags=["expenses"])


@router.get("/expenses/month", response_model=MonthExpensesResponseDto)
def month_expenses_endpoint(
    year: int = Query(ge=1900, le=9999),
    month: int = Query(ge=1, le=12),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> MonthExpensesResponseDto:
    return get_month_expenses(session, user_id=user.id, year=year, month=month)
