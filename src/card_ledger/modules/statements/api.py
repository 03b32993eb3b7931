from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from card_ledger.api.deps import get_current_user
from card_ledger.core.config import settings
from card_ledger.core.db import db_session
from card_ledger.core.errors import StorageFailure
from card_ledger.core.logging import get_logger, log_event
from card_ledger.modules.expenses.schemas import AvailableMonthDto, RangeSummaryResponseDto
from card_ledger.modules.expenses.service import get_range_summary, list_available_months
from card_ledger.modules.identity.models import User
from card_ledger.modules.imports.schemas import ImportJobOut, ImportJobResultOut
from card_ledger.modules.imports.service import UploadedFile, import_batch, start_import
from card_ledger.modules.statements.schemas import (
    HasStatementsOut,
    StatementDetailOut,
    StatementOut,
)
from card_ledger.modules.statements.service import (
    delete_statement,
    get_statement,
    has_statements,
    latest_statement_month,
    list_statements,
    reparse_statement,
)

router = APIRouter(tags=["statements"])
logger = get_logger(__name__)

_PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf", "application/octet-stream"}


def _check_upload(upload: UploadFile, body: bytes) -> str:
    filename = upload.filename or "statement.pdf"
    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    if content_type and content_type not in _PDF_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"{filename}: expected a PDF upload",
        )
    if len(body) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"{filename}: file exceeds {settings.max_upload_bytes} bytes",
        )
    if not body:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"{filename}: empty upload"
        )
    return filename


@router.post("/statements/bulk", response_model=None)
async def bulk_upload_endpoint(
    uploads: list[UploadFile] = File(...),
    wait: bool = Query(default=False),
    user: User = Depends(get_current_user),
) -> JSONResponse:
    files: list[UploadedFile] = []
    for upload in uploads:
        body = await upload.read()
        filename = _check_upload(upload, body)
        log_event(
            logger,
            "upload.received",
            filename=filename,
            content_type=upload.content_type,
            byte_size=len(body),
        )
        files.append(UploadedFile(filename=filename, body=body))

    try:
        if wait:
            result = await import_batch(files, user_id=user.id)
            out = ImportJobResultOut.from_result(result)
            return JSONResponse(content=out.model_dump(mode="json", by_alias=True))
        job = start_import(files, user_id=user.id)
    except StorageFailure as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=ImportJobOut.from_job(job).model_dump(mode="json", by_alias=True),
    )


@router.get("/statements", response_model=list[StatementOut])
def list_statements_endpoint(
    year: int | None = Query(default=None, ge=1900, le=9999),
    month: int | None = Query(default=None, ge=1, le=12),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[StatementOut]:
    statements = list_statements(session, user_id=user.id, year=year, month=month)
    return [StatementOut.model_validate(s) for s in statements]


@router.get("/statements/summary", response_model=RangeSummaryResponseDto)
def statements_summary_endpoint(
    end_year: int | None = Query(default=None, alias="endYear", ge=1900, le=9999),
    end_month: int | None = Query(default=None, alias="endMonth", ge=1, le=12),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> RangeSummaryResponseDto:
    if end_year is None or end_month is None:
        latest = latest_statement_month(session, user_id=user.id)
        today = date.today()
        end_year = end_year or (latest.year if latest else today.year)
        end_month = end_month or (latest.month if latest else today.month)
    return get_range_summary(session, user_id=user.id, end_year=end_year, end_month=end_month)


@router.get("/statements/months", response_model=list[AvailableMonthDto])
def available_months_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[AvailableMonthDto]:
    return [
        AvailableMonthDto(year=m.year, month=m.month)
        for m in list_available_months(session, user_id=user.id)
    ]


@router.get("/statements/has-any", response_model=HasStatementsOut)
def has_statements_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> HasStatementsOut:
    return HasStatementsOut(has_statements=has_statements(session, user_id=user.id))


@router.get("/statements/{statement_id}", response_model=StatementDetailOut)
def get_statement_endpoint(
    statement_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> StatementDetailOut:
    statement = get_statement(session, user_id=user.id, statement_id=statement_id)
    return StatementDetailOut.model_validate(statement)


@router.post("/statements/{statement_id}/reparse", response_model=StatementDetailOut)
def reparse_statement_endpoint(
    statement_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> StatementDetailOut:
    statement = reparse_statement(session, user_id=user.id, statement_id=statement_id)
    return StatementDetailOut.model_validate(statement)


@router.delete("/statements/{statement_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_statement_endpoint(
    statement_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    delete_statement(session, user_id=user.id, statement_id=statement_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
