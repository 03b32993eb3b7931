from __future__ import annotations

import uuid
from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from card_ledger.modules.installments.service import (
    CompletingInstallments,
    InstallmentPlan,
    InstallmentsSummary,
)


def _money(value) -> float | None:
    return float(value) if value is not None else None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InstallmentsSummaryDto(_CamelModel):
    active_count: int
    completing_this_month_count: int
    total_remaining_ars: float
    total_remaining_usd: float


class InstallmentCardDto(_CamelModel):
    id: uuid.UUID | None
    custom_name: str | None
    last_four_digits: str | None


class InstallmentDetailDto(_CamelModel):
    id: uuid.UUID
    description: str
    purchase_date: date | None
    current_installment: int
    total_installments: int
    monthly_amount_ars: float | None
    monthly_amount_usd: float | None
    remaining_amount_ars: float | None
    remaining_amount_usd: float | None
    remaining_months: int
    card: InstallmentCardDto | None
    statement_month: str | None
    status: Literal["active", "completing", "completed"]


class InstallmentAnomalyDto(_CamelModel):
    description: str
    card_id: uuid.UUID | None
    total_installments: int
    reason: str
    expense_ids: list[uuid.UUID]


class InstallmentsResponseDto(_CamelModel):
    summary: InstallmentsSummaryDto
    installments: list[InstallmentDetailDto]
    anomalies: list[InstallmentAnomalyDto] = []


class CompletingInstallmentsResponseDto(_CamelModel):
    year: int
    month: int
    installments: list[InstallmentDetailDto]
    total_ars: float
    total_usd: float


def plan_dto(plan: InstallmentPlan) -> InstallmentDetailDto:
    latest = plan.latest
    card = None
    if plan.card_id is not None:
        card = InstallmentCardDto(
            id=plan.card_id,
            custom_name=latest.card_custom_name,
            last_four_digits=latest.card_last_four,
        )
    return InstallmentDetailDto(
        id=latest.id,
        description=plan.description,
        purchase_date=plan.purchase_date,
        current_installment=plan.current_installment,
        total_installments=plan.total_installments,
        monthly_amount_ars=_money(plan.monthly_amount_ars),
        monthly_amount_usd=_money(plan.monthly_amount_usd),
        remaining_amount_ars=_money(plan.remaining_amount_ars),
        remaining_amount_usd=_money(plan.remaining_amount_usd),
        remaining_months=plan.remaining_months,
        card=card,
        statement_month=str(latest.statement_month) if latest.statement_month else None,
        status=plan.status.value,
    )


def installments_response(summary: InstallmentsSummary) -> InstallmentsResponseDto:
    return InstallmentsResponseDto(
        summary=InstallmentsSummaryDto(
            active_count=summary.active_count,
            completing_this_month_count=summary.completing_this_month_count,
            total_remaining_ars=float(summary.total_remaining_ars),
            total_remaining_usd=float(summary.total_remaining_usd),
        ),
        installments=[plan_dto(p) for p in summary.plans],
        anomalies=[
            InstallmentAnomalyDto(
                description=a.description,
                card_id=a.card_id,
                total_installments=a.total_installments,
                reason=a.reason,
                expense_ids=list(a.expense_ids),
            )
            for a in summary.anomalies
        ],
    )


def completing_response(result: CompletingInstallments) -> CompletingInstallmentsResponseDto:
    return CompletingInstallmentsResponseDto(
        year=result.month.year,
        month=result.month.month,
        installments=[plan_dto(p) for p in result.plans],
        total_ars=float(result.total_ars),
        total_usd=float(result.total_usd),
    )
