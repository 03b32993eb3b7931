from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from card_ledger.modules.imports.jobs import (
    FileDuplicate,
    FileFailed,
    FileResult,
    FileSlot,
    FileSucceeded,
    ImportJob,
    ImportJobResult,
    ProgressEvent,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileSlotOut(_CamelModel):
    index: int
    filename: str
    status: str
    error: str | None = None
    statement_id: uuid.UUID | None = None
    duplicate_of: uuid.UUID | None = None
    expense_count: int = 0
    dropped_lines: int = 0

    @classmethod
    def from_slot(cls, slot: FileSlot) -> FileSlotOut:
        return cls(
            index=slot.index,
            filename=slot.filename,
            status=slot.status.value,
            error=slot.error,
            statement_id=slot.statement_id,
            duplicate_of=slot.duplicate_of,
            expense_count=slot.expense_count,
            dropped_lines=slot.dropped_lines,
        )

    @classmethod
    def from_result(cls, item: FileResult) -> FileSlotOut:
        extra: dict = {}
        if isinstance(item, FileSucceeded):
            extra = {
                "statement_id": item.statement_id,
                "expense_count": item.expense_count,
                "dropped_lines": item.dropped_lines,
            }
        elif isinstance(item, FileFailed):
            extra = {"error": item.error}
        elif isinstance(item, FileDuplicate):
            extra = {"duplicate_of": item.existing_statement_id}
        return cls(index=item.index, filename=item.filename, status=item.status.value, **extra)


class ImportJobOut(_CamelModel):
    job_id: uuid.UUID
    created_at: datetime
    finished: bool
    cancelled: bool
    error: str | None = None
    files: list[FileSlotOut]

    @classmethod
    def from_job(cls, job: ImportJob) -> ImportJobOut:
        return cls(
            job_id=job.id,
            created_at=job.created_at,
            finished=job.finished,
            cancelled=job.cancelled,
            error=job.error,
            files=[FileSlotOut.from_slot(s) for s in job.snapshot()],
        )


class ImportJobResultOut(_CamelModel):
    job_id: uuid.UUID
    succeeded: int
    failed: int
    duplicate: int
    queued: int
    cancelled: bool
    files: list[FileSlotOut]

    @classmethod
    def from_result(cls, result: ImportJobResult) -> ImportJobResultOut:
        return cls(
            job_id=result.job_id,
            succeeded=result.succeeded,
            failed=result.failed,
            duplicate=result.duplicate,
            queued=result.queued,
            cancelled=result.cancelled,
            files=[FileSlotOut.from_result(f) for f in result.files],
        )


class ProgressEventOut(_CamelModel):
    job_id: uuid.UUID
    file_index: int
    filename: str
    status: str
    error: str | None = None
    statement_id: uuid.UUID | None = None
    duplicate_of: uuid.UUID | None = None

    @classmethod
    def from_event(cls, event: ProgressEvent) -> ProgressEventOut:
        return cls(
            job_id=event.job_id,
            file_index=event.file_index,
            filename=event.filename,
            status=event.status.value,
            error=event.error,
            statement_id=event.statement_id,
            duplicate_of=event.duplicate_of,
        )
