from __future__ import annotations

import uuid
from datetime import date

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MonthExpenseCardDto(_CamelModel):
    id: uuid.UUID | None
    custom_name: str | None
    last_four_digits: str | None


class MonthExpenseStatementDto(_CamelModel):
    id: uuid.UUID
    original_filename: str


class MonthExpenseDto(_CamelModel):
    id: uuid.UUID
    description: str
    amount_ars: float | None
    amount_usd: float | None
    current_installment: int | None
    total_installments: int | None
    card: MonthExpenseCardDto | None
    statement: MonthExpenseStatementDto


class MonthExpensesResponseDto(_CamelModel):
    year: int
    month: int
    total_ars: float
    total_usd: float
    statement_count: int
    expenses: list[MonthExpenseDto]


class AvailableMonthDto(_CamelModel):
    year: int
    month: int


class MonthlyDataDto(_CamelModel):
    year: int
    month: int
    total_ars: float
    total_usd: float
    statement_count: int


class RangeSummaryDto(_CamelModel):
    start_date: date
    end_date: date
    total_ars: float
    total_usd: float
    monthly_data: list[MonthlyDataDto]


class CardBreakdownDto(_CamelModel):
    card_id: uuid.UUID | None
    custom_name: str | None
    last_four_digits: str | None
    total_ars: float
    total_usd: float


class RangeSummaryResponseDto(_CamelModel):
    available_months: list[AvailableMonthDto]
    range_summary: RangeSummaryDto
    card_breakdown: list[CardBreakdownDto]
