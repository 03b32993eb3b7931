"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

# Import User first - other models have foreign keys to User
from card_ledger.modules.identity.models import User  # noqa: F401

from card_ledger.modules.cards.models import Card  # noqa: F401
from card_ledger.modules.expenses.models import Expense  # noqa: F401
from card_ledger.modules.statements.models import Statement  # noqa: F401
