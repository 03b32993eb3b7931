"""
Failure taxonomy for statement import and reconciliation.

Each error is scoped to the smallest unit it concerns (a line, a file, an installment
group). Only StorageFailure raised while a job is being set up aborts a whole batch;
everything else is collected into result payloads.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field


class CardLedgerError(Exception):
    pass


class ExtractionFailure(CardLedgerError):
    """The extractor returned no usable data for a file."""


class ExtractionMismatch(CardLedgerError):
    """A single raw line item could not be normalized and was dropped."""

    def __init__(self, reason: str, *, line_index: int, description: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.line_index = line_index
        self.description = description


class DuplicateStatement(CardLedgerError):
    def __init__(self, *, fingerprint: str, existing_statement_id: uuid.UUID):
        super().__init__(f"Statement already imported: {existing_statement_id}")
        self.fingerprint = fingerprint
        self.existing_statement_id = existing_statement_id


class StorageFailure(CardLedgerError):
    """A commit or storage round-trip failed."""


@dataclass(frozen=True)
class AnomalousInstallmentGroup:
    """
    An installment group whose members are inconsistent (repeated installment number,
    installment number outside 1..total). Reported, never raised.
    """

    description: str
    card_id: uuid.UUID | None
    total_installments: int
    reason: str
    expense_ids: list[uuid.UUID] = field(default_factory=list)
