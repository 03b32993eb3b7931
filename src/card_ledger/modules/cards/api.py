from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from card_ledger.api.deps import get_current_user
from card_ledger.core.db import db_session
from card_ledger.modules.cards.schemas import CardOut, CardUpdateIn
from card_ledger.modules.cards.service import list_cards, rename_card
from card_ledger.modules.identity.models import User

router = APIRouter(tags=["cards"])


@router.get("/cards", response_model=list[CardOut])
def list_cards_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[CardOut]:
    cards = list_cards(session, user_id=user.id)
    return [CardOut.model_validate(c, from_attributes=True) for c in cards]


@router.patch("/cards/{card_id}", response_model=CardOut)
def update_card_endpoint(
    card_id: uuid.UUID,
    payload: CardUpdateIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> CardOut:
    card = rename_card(session, user_id=user.id, card_id=card_id, custom_name=payload.custom_name)
    return CardOut.model_validate(card, from_attributes=True)
