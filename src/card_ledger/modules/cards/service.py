from __future__ import annotations

import re
import uuid
from collections.abc import Iterable

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from card_ledger.core.logging import get_logger, log_event
from card_ledger.modules.cards.models import Card

logger = get_logger(__name__)

MAX_CUSTOM_NAME_LENGTH = 100


def last_four_of(identifier: str | None) -> str | None:
    """Return the trailing four digits of a card/account identifier, if it has any."""
    digits = re.sub(r"\D", "", identifier or "")
    if len(digits) < 4:
        return None
    return digits[-4:]


def list_cards(session: Session, *, user_id: uuid.UUID) -> list[Card]:
    return list(
        session.scalars(select(Card).where(Card.user_id == user_id).order_by(Card.created_at))
    )


def get_card(session: Session, *, user_id: uuid.UUID, card_id: uuid.UUID) -> Card:
    card = session.scalar(select(Card).where(Card.id == card_id, Card.user_id == user_id))
    if not card:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Card not found")
    return card


def find_or_create_by_last_four(
    session: Session, *, user_id: uuid.UUID, last_four_digits: str
) -> Card:
    """
    Return the user's card with these last four digits, creating it if needed.

    Only flushes; the caller owns the transaction.
    """
    card = session.scalar(
        select(Card).where(Card.user_id == user_id, Card.last_four_digits == last_four_digits)
    )
    if card:
        return card

    card = Card(user_id=user_id, last_four_digits=last_four_digits)
    try:
        with session.begin_nested():
            session.add(card)
    except IntegrityError:
        # Created concurrently by another import worker.
        existing = session.scalar(
            select(Card).where(
                Card.user_id == user_id, Card.last_four_digits == last_four_digits
            )
        )
        if existing is None:
            raise
        return existing
    log_event(logger, "card.created", card_id=str(card.id), last_four_digits=last_four_digits)
    return card


def ensure_cards(
    session: Session, *, user_id: uuid.UUID, identifiers: Iterable[str | None]
) -> list[Card]:
    """Make sure every identifier carrying four or more digits maps to a card."""
    seen: set[str] = set()
    for identifier in identifiers:
        last_four = last_four_of(identifier)
        if not last_four or last_four in seen:
            continue
        seen.add(last_four)
        find_or_create_by_last_four(session, user_id=user_id, last_four_digits=last_four)
    return list_cards(session, user_id=user_id)


def rename_card(
    session: Session, *, user_id: uuid.UUID, card_id: uuid.UUID, custom_name: str | None
) -> Card:
    card = get_card(session, user_id=user_id, card_id=card_id)
    clean = custom_name.strip() if isinstance(custom_name, str) and custom_name.strip() else None
    if clean and len(clean) > MAX_CUSTOM_NAME_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Card name must be at most {MAX_CUSTOM_NAME_LENGTH} characters",
        )
    card.custom_name = clean
    session.add(card)
    session.commit()
    session.refresh(card)
    return card
