from __future__ import annotations

import asyncio
import threading
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from card_ledger.core.config import settings
from card_ledger.core.db import SessionLocal, ping_database
from card_ledger.core.errors import DuplicateStatement, ExtractionFailure, StorageFailure
from card_ledger.core.logging import (
    get_logger,
    log_event,
    log_exception,
    monotonic_ms,
    reset_job_context,
    set_job_context,
)
from card_ledger.modules.extraction.schemas import ExtractedStatement
from card_ledger.modules.extraction.service import StatementExtractor, get_default_extractor
from card_ledger.modules.imports.jobs import (
    FileStatus,
    ImportJob,
    ImportJobResult,
    JobRegistry,
    job_registry,
)
from card_ledger.modules.statements.service import (
    CommittedStatement,
    commit_statement,
    fingerprint_for,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    body: bytes


class _FingerprintLocks:
    """One lock per fingerprint seen in a job; check-and-insert runs under it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, fingerprint: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(fingerprint, threading.Lock())


async def import_batch(
    files: Sequence[UploadedFile],
    *,
    user_id: uuid.UUID,
    concurrency_limit: int | None = None,
    extractor: StatementExtractor | None = None,
    cancel: threading.Event | None = None,
    registry: JobRegistry | None = None,
) -> ImportJobResult:
    """
    Import a batch of statement PDFs and wait for every file to settle.

    Per-file problems are reported in the result. Raises StorageFailure when no job
    slot is free or the database is unreachable at job start.
    """
    job = (registry or job_registry).create(
        user_id=user_id, filenames=[f.filename for f in files], cancel_event=cancel
    )
    return await run_import(
        job, files, concurrency_limit=concurrency_limit, extractor=extractor
    )


def start_import(
    files: Sequence[UploadedFile],
    *,
    user_id: uuid.UUID,
    concurrency_limit: int | None = None,
    extractor: StatementExtractor | None = None,
    registry: JobRegistry | None = None,
) -> ImportJob:
    """Register a job and run it as a background task on the running event loop."""
    job = (registry or job_registry).create(
        user_id=user_id, filenames=[f.filename for f in files]
    )
    job.task = asyncio.get_running_loop().create_task(
        _run_in_background(job, files, concurrency_limit=concurrency_limit, extractor=extractor)
    )
    return job


async def _run_in_background(
    job: ImportJob,
    files: Sequence[UploadedFile],
    *,
    concurrency_limit: int | None,
    extractor: StatementExtractor | None,
) -> None:
    try:
        await run_import(job, files, concurrency_limit=concurrency_limit, extractor=extractor)
    except StorageFailure:
        # Already recorded on the job and logged by run_import.
        return


async def run_import(
    job: ImportJob,
    files: Sequence[UploadedFile],
    *,
    concurrency_limit: int | None = None,
    extractor: StatementExtractor | None = None,
) -> ImportJobResult:
    extractor = extractor or get_default_extractor()
    limit = concurrency_limit or settings.import_concurrency_limit
    worker_count = max(1, min(int(limit), len(files)))

    token = set_job_context(str(job.id))
    start = time.monotonic()
    try:
        log_event(logger, "import.job.start", file_count=len(files), workers=worker_count)
        try:
            await asyncio.to_thread(ping_database)
        except StorageFailure as e:
            job.finish(error=str(e))
            log_exception(logger, "import.job.aborted", error=str(e))
            raise

        pending: asyncio.Queue[int] = asyncio.Queue()
        for index in range(len(files)):
            pending.put_nowait(index)
        locks = _FingerprintLocks()

        async def worker() -> None:
            while not job.cancelled:
                try:
                    index = pending.get_nowait()
                except asyncio.QueueEmpty:
                    return
                await _process_file(
                    job, index, files[index], user_id=job.user_id, extractor=extractor, locks=locks
                )

        if files:
            await asyncio.gather(*(worker() for _ in range(worker_count)))

        result = job.finish()
        log_event(
            logger,
            "import.job.finish",
            succeeded=result.succeeded,
            failed=result.failed,
            duplicate=result.duplicate,
            queued=result.queued,
            cancelled=result.cancelled,
            duration_ms=monotonic_ms(start),
        )
        return result
    finally:
        reset_job_context(token)


async def _process_file(
    job: ImportJob,
    index: int,
    upload: UploadedFile,
    *,
    user_id: uuid.UUID,
    extractor: StatementExtractor,
    locks: _FingerprintLocks,
) -> None:
    start = time.monotonic()
    job.update(index, status=FileStatus.PROCESSING)
    log_event(logger, "import.file.start", file_index=index, original_filename=upload.filename)

    try:
        extracted = await asyncio.to_thread(
            extractor.extract, upload.body, filename=upload.filename
        )
    except ExtractionFailure as e:
        _fail(job, index, upload, str(e), start)
        return
    except Exception as e:
        log_exception(
            logger, "import.file.extract_error", file_index=index, original_filename=upload.filename
        )
        _fail(job, index, upload, f"Extraction failed: {e}", start)
        return

    if not extracted.lines:
        _fail(job, index, upload, "No expenses found in statement", start)
        return

    try:
        committed = await asyncio.to_thread(
            _commit, user_id=user_id, upload=upload, extracted=extracted, locks=locks
        )
    except DuplicateStatement as e:
        job.update(
            index, status=FileStatus.DUPLICATE, duplicate_of=e.existing_statement_id
        )
        log_event(
            logger,
            "import.file.duplicate",
            file_index=index,
            original_filename=upload.filename,
            existing_statement_id=str(e.existing_statement_id),
            duration_ms=monotonic_ms(start),
        )
        return
    except StorageFailure as e:
        _fail(job, index, upload, str(e), start)
        return
    except Exception as e:
        log_exception(
            logger, "import.file.commit_error", file_index=index, original_filename=upload.filename
        )
        _fail(job, index, upload, f"Commit failed: {e}", start)
        return

    job.update(
        index,
        status=FileStatus.SUCCEEDED,
        statement_id=committed.statement_id,
        expense_count=committed.expense_count,
        dropped_lines=committed.normalization.dropped,
    )
    log_event(
        logger,
        "import.file.finish",
        file_index=index,
        original_filename=upload.filename,
        statement_id=str(committed.statement_id),
        expense_count=committed.expense_count,
        dropped_lines=committed.normalization.dropped,
        duration_ms=monotonic_ms(start),
    )


def _commit(
    *,
    user_id: uuid.UUID,
    upload: UploadedFile,
    extracted: ExtractedStatement,
    locks: _FingerprintLocks,
) -> CommittedStatement:
    with locks.get(fingerprint_for(upload.filename, extracted)):
        with SessionLocal() as session:
            return commit_statement(
                session,
                user_id=user_id,
                filename=upload.filename,
                body=upload.body,
                extracted=extracted,
            )


def _fail(job: ImportJob, index: int, upload: UploadedFile, error: str, start: float) -> None:
    job.update(index, status=FileStatus.FAILED, error=error)
    log_event(
        logger,
        "import.file.failure",
        file_index=index,
        original_filename=upload.filename,
        error=error,
        duration_ms=monotonic_ms(start),
    )
