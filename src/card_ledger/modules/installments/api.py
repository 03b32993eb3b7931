from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from card_ledger.api.deps import get_current_user
from card_ledger.core.db import db_session
from card_ledger.core.months import YearMonth
from card_ledger.modules.identity.models import User
from card_ledger.modules.installments.schemas import (
    CompletingInstallmentsResponseDto,
    InstallmentsResponseDto,
    completing_response,
    installments_response,
)
from card_ledger.modules.installments.service import (
    get_completing_installments,
    get_installments,
)
from card_ledger.modules.statements.service import latest_statement_month

router = APIRouter(tags=["installments"])


def _month_param(year: int | None, month: int | None) -> YearMonth | None:
    if year is None and month is None:
        return None
    if year is None or month is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="year and month must be given together",
        )
    return YearMonth(year, month)


@router.get("/installments", response_model=InstallmentsResponseDto)
def installments_endpoint(
    year: int | None = Query(default=None, ge=1900, le=9999),
    month: int | None = Query(default=None, ge=1, le=12),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> InstallmentsResponseDto:
    summary = get_installments(session, user_id=user.id, as_of=_month_param(year, month))
    return installments_response(summary)


@router.get(
    "/installments/completing",
    response_model=CompletingInstallmentsResponseDto,
)
def completing_installments_endpoint(
    year: int | None = Query(default=None, ge=1900, le=9999),
    month: int | None = Query(default=None, ge=1, le=12),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> CompletingInstallmentsResponseDto:
    target = _month_param(year, month) or latest_statement_month(session, user_id=user.id)
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No statements yet")
    result = get_completing_installments(session, user_id=user.id, month=target)
    return completing_response(result)
