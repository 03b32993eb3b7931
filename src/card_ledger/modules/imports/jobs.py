"""
In-memory bulk import jobs.

A job owns one slot per uploaded file. Workers write slots through `ImportJob.update`,
which fans a ProgressEvent out to every subscriber queue without blocking. Jobs live
in a process-scoped JobRegistry and are never persisted.
"""

from __future__ import annotations

import enum
import queue
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from card_ledger.core.config import settings
from card_ledger.core.errors import StorageFailure
from card_ledger.core.logging import get_logger, log_event

logger = get_logger(__name__)


class FileStatus(str, enum.Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class FileSlot:
    index: int
    filename: str
    status: FileStatus = FileStatus.QUEUED
    error: str | None = None
    statement_id: uuid.UUID | None = None
    duplicate_of: uuid.UUID | None = None
    expense_count: int = 0
    dropped_lines: int = 0


@dataclass(frozen=True)
class ProgressEvent:
    job_id: uuid.UUID
    file_index: int
    filename: str
    status: FileStatus
    error: str | None = None
    statement_id: uuid.UUID | None = None
    duplicate_of: uuid.UUID | None = None

    @classmethod
    def from_slot(cls, job_id: uuid.UUID, slot: FileSlot) -> ProgressEvent:
        return cls(
            job_id=job_id,
            file_index=slot.index,
            filename=slot.filename,
            status=slot.status,
            error=slot.error,
            statement_id=slot.statement_id,
            duplicate_of=slot.duplicate_of,
        )


@dataclass(frozen=True)
class FileSucceeded:
    index: int
    filename: str
    statement_id: uuid.UUID
    expense_count: int = 0
    dropped_lines: int = 0
    status: FileStatus = FileStatus.SUCCEEDED


@dataclass(frozen=True)
class FileFailed:
    index: int
    filename: str
    error: str
    status: FileStatus = FileStatus.FAILED


@dataclass(frozen=True)
class FileDuplicate:
    index: int
    filename: str
    existing_statement_id: uuid.UUID
    status: FileStatus = FileStatus.DUPLICATE


@dataclass(frozen=True)
class FileQueued:
    index: int
    filename: str
    status: FileStatus = FileStatus.QUEUED


FileResult = FileSucceeded | FileFailed | FileDuplicate | FileQueued


def file_result(slot: FileSlot) -> FileResult:
    if slot.status == FileStatus.SUCCEEDED and slot.statement_id is not None:
        return FileSucceeded(
            index=slot.index,
            filename=slot.filename,
            statement_id=slot.statement_id,
            expense_count=slot.expense_count,
            dropped_lines=slot.dropped_lines,
        )
    if slot.status == FileStatus.DUPLICATE and slot.duplicate_of is not None:
        return FileDuplicate(
            index=slot.index, filename=slot.filename, existing_statement_id=slot.duplicate_of
        )
    if slot.status == FileStatus.QUEUED:
        return FileQueued(index=slot.index, filename=slot.filename)
    return FileFailed(
        index=slot.index,
        filename=slot.filename,
        error=slot.error or f"File ended in state {slot.status.value}",
    )


@dataclass(frozen=True)
class ImportJobResult:
    job_id: uuid.UUID
    succeeded: int
    failed: int
    duplicate: int
    queued: int
    cancelled: bool
    files: list[FileResult] = field(default_factory=list)

    @classmethod
    def from_slots(
        cls, job_id: uuid.UUID, slots: list[FileSlot], *, cancelled: bool
    ) -> ImportJobResult:
        files = [file_result(s) for s in slots]
        return cls(
            job_id=job_id,
            succeeded=sum(1 for f in files if isinstance(f, FileSucceeded)),
            failed=sum(1 for f in files if isinstance(f, FileFailed)),
            duplicate=sum(1 for f in files if isinstance(f, FileDuplicate)),
            queued=sum(1 for f in files if isinstance(f, FileQueued)),
            cancelled=cancelled,
            files=files,
        )


_CLOSED = object()


class ProgressSubscription:
    """Events for one subscriber, in publication order. Iteration ends when the job ends."""

    def __init__(self, job: ImportJob, events: queue.SimpleQueue):
        self._job = job
        self._events = events
        self._closed = False

    def get(self, timeout: float | None = None) -> ProgressEvent | None:
        """Next event; None on timeout or once the job has finished."""
        if self._closed:
            return None
        try:
            item = self._events.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            self._closed = True
            return None
        return item

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True
        self._job.unsubscribe(self._events)

    def __iter__(self):
        while True:
            event = self.get()
            if event is None:
                return
            yield event


class ImportJob:
    def __init__(
        self,
        *,
        user_id: uuid.UUID,
        filenames: list[str],
        cancel_event: threading.Event | None = None,
    ):
        self.id = uuid.uuid4()
        self.user_id = user_id
        self.created_at = datetime.now(UTC)
        self.finished_at: datetime | None = None
        self.result: ImportJobResult | None = None
        self.error: str | None = None
        self.task = None

        self._slots = [FileSlot(index=i, filename=name) for i, name in enumerate(filenames)]
        self._lock = threading.Lock()
        self._subscribers: list[queue.SimpleQueue] = []
        self._cancel = cancel_event or threading.Event()
        self._done = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def finished(self) -> bool:
        return self._done.is_set()

    def cancel(self) -> None:
        if not self._cancel.is_set():
            self._cancel.set()
            log_event(logger, "import.job.cancel_requested", import_job_id=str(self.id))

    def snapshot(self) -> list[FileSlot]:
        with self._lock:
            return list(self._slots)

    def update(self, index: int, **changes) -> FileSlot:
        with self._lock:
            slot = replace(self._slots[index], **changes)
            self._slots[index] = slot
            event = ProgressEvent.from_slot(self.id, slot)
            for subscriber in self._subscribers:
                subscriber.put_nowait(event)
        return slot

    def subscribe(self) -> ProgressSubscription:
        events: queue.SimpleQueue = queue.SimpleQueue()
        with self._lock:
            for slot in self._slots:
                events.put_nowait(ProgressEvent.from_slot(self.id, slot))
            if self._done.is_set():
                events.put_nowait(_CLOSED)
            else:
                self._subscribers.append(events)
        return ProgressSubscription(self, events)

    def unsubscribe(self, events: queue.SimpleQueue) -> None:
        with self._lock:
            if events in self._subscribers:
                self._subscribers.remove(events)

    def finish(self, *, error: str | None = None) -> ImportJobResult:
        with self._lock:
            self.result = ImportJobResult.from_slots(
                self.id, list(self._slots), cancelled=self._cancel.is_set()
            )
            self.error = error
            self.finished_at = datetime.now(UTC)
            self._done.set()
            for subscriber in self._subscribers:
                subscriber.put_nowait(_CLOSED)
            self._subscribers.clear()
            return self.result

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)


class JobRegistry:
    """Process-scoped job table with a cap on running jobs and a bounded history."""

    def __init__(self, *, max_active_jobs: int, retention: int):
        self._max_active_jobs = max(1, int(max_active_jobs))
        self._retention = max(0, int(retention))
        self._jobs: OrderedDict[uuid.UUID, ImportJob] = OrderedDict()
        self._lock = threading.Lock()

    def create(
        self,
        *,
        user_id: uuid.UUID,
        filenames: list[str],
        cancel_event: threading.Event | None = None,
    ) -> ImportJob:
        with self._lock:
            active = sum(1 for j in self._jobs.values() if not j.finished)
            if active >= self._max_active_jobs:
                log_event(logger, "import.job.rejected", active_jobs=active)
                raise StorageFailure("No free import job slot")
            job = ImportJob(user_id=user_id, filenames=filenames, cancel_event=cancel_event)
            self._jobs[job.id] = job
            self._prune()
        return job

    def get(self, job_id: uuid.UUID, *, user_id: uuid.UUID) -> ImportJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None or job.user_id != user_id:
            return None
        return job

    def subscribe(self, job_id: uuid.UUID, *, user_id: uuid.UUID) -> ProgressSubscription | None:
        job = self.get(job_id, user_id=user_id)
        return job.subscribe() if job else None

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()

    def _prune(self) -> None:
        finished = [job_id for job_id, job in self._jobs.items() if job.finished]
        for job_id in finished[: max(0, len(finished) - self._retention)]:
            del self._jobs[job_id]


job_registry = JobRegistry(
    max_active_jobs=settings.import_max_active_jobs,
    retention=settings.import_job_retention,
)
