"""initial card ledger schema

Revision ID: 3c1e5a7b9d20
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3c1e5a7b9d20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "identity_user",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("password_hash", sa.String(length=200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_identity_user_email", "identity_user", ["email"], unique=True)

    op.create_table(
        "cards_card",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("custom_name", sa.String(length=100), nullable=True),
        sa.Column("last_four_digits", sa.String(length=4), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["identity_user.id"]),
        sa.UniqueConstraint("user_id", "last_four_digits", name="uq_card_user_last_four"),
    )
    op.create_index("ix_cards_card_user_id", "cards_card", ["user_id"])

    op.create_table(
        "statements_statement",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("original_filename", sa.String(length=512), nullable=False),
        sa.Column("statement_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("total_ars", sa.Numeric(14, 2), nullable=True),
        sa.Column("total_usd", sa.Numeric(14, 2), nullable=True),
        sa.Column("fingerprint", sa.String(length=64), nullable=False),
        sa.Column("file_sha256", sa.String(length=64), nullable=False),
        sa.Column("storage_key", sa.String(length=1024), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["identity_user.id"]),
        sa.UniqueConstraint("user_id", "fingerprint", name="uq_statement_user_fingerprint"),
    )
    op.create_index("ix_statements_statement_user_id", "statements_statement", ["user_id"])
    op.create_index(
        "ix_statements_statement_statement_date", "statements_statement", ["statement_date"]
    )
    op.create_index(
        "ix_statements_statement_file_sha256", "statements_statement", ["file_sha256"]
    )

    op.create_table(
        "expenses_expense",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("statement_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("card_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount_ars", sa.Numeric(14, 2), nullable=True),
        sa.Column("amount_usd", sa.Numeric(14, 2), nullable=True),
        sa.Column("current_installment", sa.Integer(), nullable=True),
        sa.Column("total_installments", sa.Integer(), nullable=True),
        sa.Column("purchase_date", sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(
            ["statement_id"], ["statements_statement.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["card_id"], ["cards_card.id"]),
    )
    op.create_index("ix_expenses_expense_statement_id", "expenses_expense", ["statement_id"])
    op.create_index("ix_expenses_expense_card_id", "expenses_expense", ["card_id"])


def downgrade() -> None:
    op.drop_index("ix_expenses_expense_card_id", table_name="expenses_expense")
    op.drop_index("ix_expenses_expense_statement_id", table_name="expenses_expense")
    op.drop_table("expenses_expense")
    op.drop_index("ix_statements_statement_file_sha256", table_name="statements_statement")
    op.drop_index("ix_statements_statement_statement_date", table_name="statements_statement")
    op.drop_index("ix_statements_statement_user_id", table_name="statements_statement")
    op.drop_table("statements_statement")
    op.drop_index("ix_cards_card_user_id", table_name="cards_card")
    op.drop_table("cards_card")
    op.drop_index("ix_identity_user_email", table_name="identity_user")
    op.drop_table("identity_user")
