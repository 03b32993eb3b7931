from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from card_ledger.core.models import Base, Created, UUIDPrimaryKey


class Expense(UUIDPrimaryKey, Created, Base):
    __tablename__ = "expenses_expense"

    statement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("statements_statement.id", ondelete="CASCADE"),
        index=True,
    )
    card_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("cards_card.id"), nullable=True, index=True
    )

    description: Mapped[str] = mapped_column(Text)
    amount_ars: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    amount_usd: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    current_installment: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_installments: Mapped[int | None] = mapped_column(Integer, nullable=True)
    purchase_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    statement = relationship("Statement", back_populates="expenses")
    card = relationship("Card")
