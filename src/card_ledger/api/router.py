from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from card_ledger.core.db import ping_database
from card_ledger.core.errors import StorageFailure
from card_ledger.modules.cards.api import router as cards_router
from card_ledger.modules.expenses.api import router as expenses_router
from card_ledger.modules.identity.api import router as identity_router
from card_ledger.modules.imports.api import router as imports_router
from card_ledger.modules.installments.api import router as installments_router
from card_ledger.modules.statements.api import router as statements_router

router = APIRouter()

router.include_router(identity_router, prefix="/api")
router.include_router(cards_router, prefix="/api")
router.include_router(statements_router, prefix="/api")
router.include_router(imports_router, prefix="/api")
router.include_router(expenses_router, prefix="/api")
router.include_router(installments_router, prefix="/api")


@router.get("/healthz")
def healthz() -> JSONResponse:
    try:
        ping_database()
    except StorageFailure as e:
        return JSONResponse(status_code=503, content={"status": "error", "detail": str(e)})
    return JSONResponse(content={"status": "ok"})
