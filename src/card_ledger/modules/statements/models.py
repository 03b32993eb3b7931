from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from card_ledger.core.models import Base, Timestamped, UUIDPrimaryKey
from card_ledger.core.months import YearMonth


class Statement(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "statements_statement"
    __table_args__ = (
        UniqueConstraint("user_id", "fingerprint", name="uq_statement_user_fingerprint"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )

    original_filename: Mapped[str] = mapped_column(String(512))
    statement_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_ars: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    total_usd: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    fingerprint: Mapped[str] = mapped_column(String(64))
    file_sha256: Mapped[str] = mapped_column(String(64), index=True)
    storage_key: Mapped[str] = mapped_column(String(1024))

    expenses = relationship(
        "Expense",
        back_populates="statement",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def month(self) -> YearMonth | None:
        anchor = self.statement_date or self.due_date
        return YearMonth.of(anchor) if anchor else None
