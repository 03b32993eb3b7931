from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from card_ledger.api.deps import get_current_user
from card_ledger.core.db import db_session
from card_ledger.core.security import create_access_token
from card_ledger.modules.identity.models import User
from card_ledger.modules.identity.schemas import TokenOut, UserCreate, UserOut
from card_ledger.modules.identity.service import authenticate_user, create_user

router = APIRouter(tags=["identity"])


@router.post("/auth/register", response_model=UserOut)
def register(payload: UserCreate, session: Session = Depends(db_session)) -> UserOut:
    user = create_user(
        session,
        email=str(payload.email),
        password=payload.password,
        full_name=payload.full_name,
    )
    return UserOut.model_validate(user, from_attributes=True)


@router.post("/auth/token", response_model=TokenOut)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(db_session),
) -> TokenOut:
    user = authenticate_user(session, email=form_data.username, password=form_data.password)
    token = create_access_token(user_id=user.id)
    return TokenOut(access_token=token)


@router.get("/auth/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)) -> UserOut:
    return UserOut.model_validate(user, from_attributes=True)
