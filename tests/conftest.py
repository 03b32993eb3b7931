from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest

# Set env before any card_ledger imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.card_ledger_test.db")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_PATH", ".tmp_storage_test")
os.environ.setdefault("ANTHROPIC_API_KEY", "")


@pytest.fixture(autouse=True)
def _reset_db_and_storage() -> None:
    import card_ledger.models  # noqa: F401
    import card_ledger.core.storage as storage_mod
    from card_ledger.core.db import engine
    from card_ledger.core.models import Base
    from card_ledger.modules.imports.jobs import job_registry

    storage_mod._storage = None
    storage_path = Path(os.environ["LOCAL_STORAGE_PATH"])
    if storage_path.exists():
        shutil.rmtree(storage_path)

    job_registry.clear()

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield


@pytest.fixture
def user():
    from card_ledger.core.db import SessionLocal
    from card_ledger.modules.identity.service import create_user

    with SessionLocal() as session:
        u = create_user(session, email="owner@example.com", password="pw", full_name="Owner")
        session.expunge(u)
    return u
