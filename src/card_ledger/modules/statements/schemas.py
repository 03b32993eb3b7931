from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class StatementOut(_CamelModel):
    id: uuid.UUID
    original_filename: str
    statement_date: date | None
    due_date: date | None
    total_ars: float | None
    total_usd: float | None
    created_at: datetime


class StatementExpenseOut(_CamelModel):
    id: uuid.UUID
    description: str
    card_id: uuid.UUID | None
    amount_ars: float | None
    amount_usd: float | None
    current_installment: int | None
    total_installments: int | None
    purchase_date: date | None


class StatementDetailOut(StatementOut):
    expenses: list[StatementExpenseOut]


class HasStatementsOut(_CamelModel):
    has_statements: bool
