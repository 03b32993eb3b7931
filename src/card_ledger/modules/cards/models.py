from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from card_ledger.core.models import Base, Created, UUIDPrimaryKey


class Card(UUIDPrimaryKey, Created, Base):
    __tablename__ = "cards_card"
    __table_args__ = (
        UniqueConstraint("user_id", "last_four_digits", name="uq_card_user_last_four"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    custom_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_four_digits: Mapped[str | None] = mapped_column(String(4), nullable=True)
