from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from card_ledger.core.config import settings
from card_ledger.core.errors import DuplicateStatement, ExtractionFailure, StorageFailure
from card_ledger.core.logging import get_logger, log_event, log_exception
from card_ledger.core.months import YearMonth
from card_ledger.core.storage import get_storage, statement_key
from card_ledger.modules.cards.service import ensure_cards, list_cards
from card_ledger.modules.expenses.models import Expense
from card_ledger.modules.expenses.normalizer import NormalizationResult, normalize
from card_ledger.modules.extraction.schemas import ExtractedStatement
from card_ledger.modules.extraction.service import StatementExtractor, get_default_extractor
from card_ledger.modules.statements.models import Statement

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommittedStatement:
    statement_id: uuid.UUID
    expense_count: int
    normalization: NormalizationResult


def compute_fingerprint(
    *,
    filename: str,
    statement_date: date | None,
    total_ars: Decimal | None,
    total_usd: Decimal | None,
) -> str:
    parts = [
        (filename or "").strip(),
        statement_date.isoformat() if statement_date else "",
        _decimal_key(total_ars),
        _decimal_key(total_usd),
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def _decimal_key(value: Decimal | None) -> str:
    if value is None:
        return ""
    return f"{Decimal(value).quantize(Decimal('0.01'))}"


def find_by_fingerprint(
    session: Session, *, user_id: uuid.UUID, fingerprint: str
) -> Statement | None:
    return session.scalar(
        select(Statement).where(Statement.user_id == user_id, Statement.fingerprint == fingerprint)
    )


def fingerprint_for(filename: str, extracted: ExtractedStatement) -> str:
    return compute_fingerprint(
        filename=filename,
        statement_date=extracted.statement_date,
        total_ars=extracted.total_ars,
        total_usd=extracted.total_usd,
    )


def commit_statement(
    session: Session,
    *,
    user_id: uuid.UUID,
    filename: str,
    body: bytes,
    extracted: ExtractedStatement,
) -> CommittedStatement:
    """
    Normalize an extraction and persist the Statement with its Expenses in one transaction.

    The PDF is stored first and removed again if the transaction does not commit.
    Raises DuplicateStatement when the user already has a statement with the same
    fingerprint, StorageFailure when the store rejects the write.
    """
    fingerprint = fingerprint_for(filename, extracted)
    existing = find_by_fingerprint(session, user_id=user_id, fingerprint=fingerprint)
    if existing:
        raise DuplicateStatement(fingerprint=fingerprint, existing_statement_id=existing.id)

    statement_id = uuid.uuid4()
    file_sha256 = hashlib.sha256(body).hexdigest()
    storage_key = statement_key(
        user_id=user_id, statement_id=statement_id, file_sha256=file_sha256
    )

    storage = get_storage()
    storage.put(key=storage_key, body=body)

    try:
        normalization = _normalize_for_user(session, user_id=user_id, extracted=extracted)
        statement = Statement(
            id=statement_id,
            user_id=user_id,
            original_filename=filename,
            statement_date=extracted.statement_date,
            due_date=extracted.due_date,
            total_ars=extracted.total_ars,
            total_usd=extracted.total_usd,
            fingerprint=fingerprint,
            file_sha256=file_sha256,
            storage_key=storage_key,
        )
        session.add(statement)
        session.flush()
        session.add_all(_expense_rows(statement_id, normalization))
        session.commit()
    except IntegrityError as e:
        session.rollback()
        _discard_object(storage_key)
        existing = find_by_fingerprint(session, user_id=user_id, fingerprint=fingerprint)
        if existing is None:
            raise StorageFailure(f"Could not commit statement: {e.__class__.__name__}") from e
        raise DuplicateStatement(
            fingerprint=fingerprint, existing_statement_id=existing.id
        ) from e
    except SQLAlchemyError as e:
        session.rollback()
        _discard_object(storage_key)
        log_exception(logger, "statement.commit.failure", original_filename=filename)
        raise StorageFailure(f"Could not commit statement: {e.__class__.__name__}") from e
    except BaseException:
        session.rollback()
        _discard_object(storage_key)
        raise

    log_event(
        logger,
        "statement.committed",
        statement_id=str(statement_id),
        original_filename=filename,
        expense_count=len(normalization.expenses),
        dropped_lines=normalization.dropped,
    )
    return CommittedStatement(
        statement_id=statement_id,
        expense_count=len(normalization.expenses),
        normalization=normalization,
    )


def _normalize_for_user(
    session: Session, *, user_id: uuid.UUID, extracted: ExtractedStatement
) -> NormalizationResult:
    if settings.auto_create_cards:
        cards = ensure_cards(session, user_id=user_id, identifiers=extracted.card_identifiers)
    else:
        cards = list_cards(session, user_id=user_id)
    result = normalize(extracted.lines, cards, statement_card_hint=extracted.card_hint)
    for mismatch in result.mismatches:
        log_event(
            logger,
            "statement.line.dropped",
            line_index=mismatch.line_index,
            reason=mismatch.reason,
        )
    return result


def _expense_rows(statement_id: uuid.UUID, normalization: NormalizationResult) -> list[Expense]:
    return [
        Expense(
            statement_id=statement_id,
            card_id=e.card_id,
            description=e.description,
            amount_ars=e.amount_ars,
            amount_usd=e.amount_usd,
            current_installment=e.current_installment,
            total_installments=e.total_installments,
            purchase_date=e.purchase_date,
        )
        for e in normalization.expenses
    ]


def _discard_object(storage_key: str) -> None:
    try:
        get_storage().delete(key=storage_key)
    except StorageFailure:
        log_exception(logger, "statement.storage.orphaned", storage_key=storage_key)


def list_statements(
    session: Session, *, user_id: uuid.UUID, year: int | None = None, month: int | None = None
) -> list[Statement]:
    statements = list(
        session.scalars(
            select(Statement)
            .where(Statement.user_id == user_id)
            .order_by(Statement.created_at.desc())
        )
    )
    if year is None and month is None:
        return statements
    out = []
    for s in statements:
        ym = s.month
        if ym is None:
            continue
        if year is not None and ym.year != year:
            continue
        if month is not None and ym.month != month:
            continue
        out.append(s)
    return out


def get_statement(
    session: Session, *, user_id: uuid.UUID, statement_id: uuid.UUID
) -> Statement:
    statement = session.scalar(
        select(Statement)
        .options(selectinload(Statement.expenses))
        .where(Statement.id == statement_id, Statement.user_id == user_id)
    )
    if not statement:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Statement not found")
    return statement


def delete_statement(session: Session, *, user_id: uuid.UUID, statement_id: uuid.UUID) -> None:
    statement = get_statement(session, user_id=user_id, statement_id=statement_id)
    storage_key = statement.storage_key
    session.delete(statement)
    session.commit()
    _discard_object(storage_key)
    log_event(logger, "statement.deleted", statement_id=str(statement_id))


def reparse_statement(
    session: Session,
    *,
    user_id: uuid.UUID,
    statement_id: uuid.UUID,
    extractor: StatementExtractor | None = None,
) -> Statement:
    """Re-run extraction on the stored PDF and replace the statement's expenses."""
    statement = get_statement(session, user_id=user_id, statement_id=statement_id)
    try:
        body = get_storage().get(key=statement.storage_key)
    except StorageFailure as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Stored statement file is missing"
        ) from e

    extractor = extractor or get_default_extractor()
    try:
        extracted = extractor.extract(body, filename=statement.original_filename)
    except ExtractionFailure as e:
        log_event(logger, "statement.reparse.failure", statement_id=str(statement_id), error=str(e))
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    if not extracted.lines:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No expenses found in statement",
        )

    fingerprint = fingerprint_for(statement.original_filename, extracted)
    clash = find_by_fingerprint(session, user_id=user_id, fingerprint=fingerprint)
    if clash is not None and clash.id != statement.id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Statement already imported: {clash.id}",
        )

    try:
        normalization = _normalize_for_user(session, user_id=user_id, extracted=extracted)
        statement.expenses.clear()
        session.flush()
        statement.statement_date = extracted.statement_date
        statement.due_date = extracted.due_date
        statement.total_ars = extracted.total_ars
        statement.total_usd = extracted.total_usd
        statement.fingerprint = fingerprint
        session.add(statement)
        session.add_all(_expense_rows(statement.id, normalization))
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        log_exception(logger, "statement.reparse.failure", statement_id=str(statement_id))
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Could not replace statement expenses"
        ) from e

    session.expire_all()
    log_event(
        logger,
        "statement.reparsed",
        statement_id=str(statement_id),
        expense_count=len(normalization.expenses),
        dropped_lines=normalization.dropped,
    )
    return get_statement(session, user_id=user_id, statement_id=statement_id)


def has_statements(session: Session, *, user_id: uuid.UUID) -> bool:
    return (
        session.scalar(select(Statement.id).where(Statement.user_id == user_id).limit(1))
        is not None
    )


def latest_statement_month(session: Session, *, user_id: uuid.UUID) -> YearMonth | None:
    months = [
        s.month
        for s in session.scalars(select(Statement).where(Statement.user_id == user_id))
        if s.month is not None
    ]
    return max(months) if months else None
