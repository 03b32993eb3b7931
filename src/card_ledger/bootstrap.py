from __future__ import annotations

from sqlalchemy import select

from card_ledger.core.config import settings
from card_ledger.core.db import SessionLocal, engine
from card_ledger.core.logging import get_logger, log_event
from card_ledger.core.models import Base
from card_ledger.core.security import hash_password
from card_ledger.modules.identity.models import User

logger = get_logger(__name__)


def bootstrap() -> None:
    if settings.environment in {"dev", "test"} and str(settings.database_url).startswith("sqlite"):
        import card_ledger.models  # noqa: F401

        Base.metadata.create_all(engine)

    if not settings.init_user_email or not settings.init_user_password:
        return

    # Comma-separated list of accounts sharing the initial password.
    emails = [e.strip().lower() for e in settings.init_user_email.split(",") if e.strip()]
    with SessionLocal() as session:
        for email in emails:
            if session.scalar(select(User).where(User.email == email)):
                continue
            session.add(
                User(
                    email=email,
                    full_name=None,
                    password_hash=hash_password(settings.init_user_password),
                    is_active=True,
                )
            )
            log_event(logger, "bootstrap.user.created", email=email)
        session.commit()
