from __future__ import annotations

import asyncio
import threading
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from card_ledger.core.db import SessionLocal
from card_ledger.core.errors import ExtractionFailure, StorageFailure
from card_ledger.modules.expenses.models import Expense
from card_ledger.modules.expenses.service import get_month_expenses
from card_ledger.modules.extraction.schemas import ExtractedStatement, RawLine
from card_ledger.modules.imports.jobs import (
    FileDuplicate,
    FileFailed,
    FileQueued,
    FileStatus,
    FileSucceeded,
    JobRegistry,
)
from card_ledger.modules.imports.service import UploadedFile, import_batch, start_import
from card_ledger.modules.statements.models import Statement


def _statement(day: int, total: str = "1000") -> ExtractedStatement:
    return ExtractedStatement(
        statement_date=date(2025, 3, day),
        due_date=date(2025, 4, day),
        total_ars=Decimal(total),
        total_usd=None,
        card_hint="Tarjeta 4321",
        lines=[
            RawLine(description="SUPERMERCADO", amount=total, currency="ARS"),
            RawLine(description="NOTEBOOK", amount="250", currency="ARS", installment_text="2/6"),
        ],
    )


class StubExtractor:
    def __init__(self, outcomes: dict[str, object]):
        self.outcomes = outcomes
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def extract(self, body: bytes, *, filename: str) -> ExtractedStatement:
        with self._lock:
            self.calls.append(filename)
        outcome = self.outcomes[filename]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _files(*names: str) -> list[UploadedFile]:
    return [UploadedFile(filename=n, body=b"%PDF-1.4 " + n.encode()) for n in names]


def _statement_count() -> int:
    with SessionLocal() as session:
        return session.scalar(select(func.count()).select_from(Statement))


def test_one_failing_file_does_not_stop_the_batch(user):
    names = [f"statement-{i}.pdf" for i in range(1, 6)]
    outcomes: dict[str, object] = {n: _statement(i) for i, n in enumerate(names, start=1)}
    outcomes[names[2]] = ExtractionFailure("No text found in PDF")

    result = asyncio.run(
        import_batch(
            _files(*names),
            user_id=user.id,
            concurrency_limit=3,
            extractor=StubExtractor(outcomes),
            registry=JobRegistry(max_active_jobs=2, retention=5),
        )
    )

    assert result.succeeded == 4
    assert result.failed == 1
    assert result.duplicate == 0
    assert result.cancelled is False
    assert [type(f) for f in result.files] == [
        FileSucceeded,
        FileSucceeded,
        FileFailed,
        FileSucceeded,
        FileSucceeded,
    ]
    assert result.files[2].error == "No text found in PDF"
    assert _statement_count() == 4


def test_unexpected_extractor_error_and_empty_extraction_fail_the_file(user):
    outcomes = {
        "boom.pdf": RuntimeError("parser crashed"),
        "empty.pdf": ExtractedStatement(statement_date=date(2025, 3, 1), due_date=None),
        "ok.pdf": _statement(2),
    }

    result = asyncio.run(
        import_batch(
            _files("boom.pdf", "empty.pdf", "ok.pdf"),
            user_id=user.id,
            extractor=StubExtractor(outcomes),
            registry=JobRegistry(max_active_jobs=2, retention=5),
        )
    )

    assert result.succeeded == 1
    assert result.failed == 2
    assert "parser crashed" in result.files[0].error
    assert result.files[1].error == "No expenses found in statement"


def test_identical_files_in_one_batch_commit_once(user):
    outcomes = {"march.pdf": _statement(5)}

    result = asyncio.run(
        import_batch(
            _files("march.pdf", "march.pdf"),
            user_id=user.id,
            concurrency_limit=2,
            extractor=StubExtractor(outcomes),
            registry=JobRegistry(max_active_jobs=2, retention=5),
        )
    )

    assert result.succeeded == 1
    assert result.duplicate == 1
    succeeded = next(f for f in result.files if isinstance(f, FileSucceeded))
    duplicate = next(f for f in result.files if isinstance(f, FileDuplicate))
    assert duplicate.existing_statement_id == succeeded.statement_id
    assert _statement_count() == 1


def test_resubmitting_a_batch_is_idempotent(user):
    names = ["a.pdf", "b.pdf", "c.pdf"]
    outcomes = {n: _statement(i + 10, total=str(1000 + i)) for i, n in enumerate(names)}
    registry = JobRegistry(max_active_jobs=2, retention=5)

    first = asyncio.run(
        import_batch(
            _files(*names), user_id=user.id, extractor=StubExtractor(outcomes), registry=registry
        )
    )
    with SessionLocal() as session:
        before = get_month_expenses(session, user_id=user.id, year=2025, month=3)
        expense_count = session.scalar(select(func.count()).select_from(Expense))

    second = asyncio.run(
        import_batch(
            _files(*names), user_id=user.id, extractor=StubExtractor(outcomes), registry=registry
        )
    )
    with SessionLocal() as session:
        after = get_month_expenses(session, user_id=user.id, year=2025, month=3)
        assert session.scalar(select(func.count()).select_from(Expense)) == expense_count

    assert first.succeeded == 3
    assert second.succeeded == 0
    assert second.duplicate == 3
    assert _statement_count() == 3
    assert after.total_ars == before.total_ars
    assert after.statement_count == before.statement_count == 3


def test_dropped_lines_are_counted_and_card_is_created(user):
    extracted = ExtractedStatement(
        statement_date=date(2025, 3, 1),
        due_date=None,
        total_ars=Decimal("300"),
        card_hint="Tarjeta 4321",
        lines=[
            RawLine(description="CAFE", amount="100", currency="ARS"),
            RawLine(description="FARMACIA", amount="abc", currency="ARS"),
            RawLine(description="IVA", amount="21", currency="ARS"),
        ],
    )

    result = asyncio.run(
        import_batch(
            _files("one.pdf"),
            user_id=user.id,
            extractor=StubExtractor({"one.pdf": extracted}),
            registry=JobRegistry(max_active_jobs=2, retention=5),
        )
    )

    file_result = result.files[0]
    assert isinstance(file_result, FileSucceeded)
    assert file_result.expense_count == 2
    assert file_result.dropped_lines == 1
    with SessionLocal() as session:
        rows = list(session.scalars(select(Expense).order_by(Expense.description)))
        assert [r.description for r in rows] == ["CAFE", "IVA"]
        assert rows[0].card is not None
        assert rows[0].card.last_four_digits == "4321"
        assert rows[1].card_id is None


def test_cancel_leaves_unstarted_files_queued(user):
    cancel = threading.Event()
    names = [f"s{i}.pdf" for i in range(5)]
    outcomes = {n: _statement(i + 1) for i, n in enumerate(names)}

    class CancellingExtractor(StubExtractor):
        def extract(self, body: bytes, *, filename: str) -> ExtractedStatement:
            cancel.set()
            return super().extract(body, filename=filename)

    result = asyncio.run(
        import_batch(
            _files(*names),
            user_id=user.id,
            concurrency_limit=1,
            extractor=CancellingExtractor(outcomes),
            cancel=cancel,
            registry=JobRegistry(max_active_jobs=2, retention=5),
        )
    )

    assert result.cancelled is True
    assert result.succeeded == 1
    assert result.queued == 4
    assert all(isinstance(f, FileQueued) for f in result.files[1:])
    assert _statement_count() == 1


def test_progress_events_cover_every_transition(user):
    names = ["p1.pdf", "p2.pdf"]
    outcomes: dict[str, object] = {"p1.pdf": _statement(1), "p2.pdf": ExtractionFailure("bad")}
    registry = JobRegistry(max_active_jobs=2, retention=5)

    async def _run():
        job = start_import(
            _files(*names),
            user_id=user.id,
            extractor=StubExtractor(outcomes),
            registry=registry,
        )
        subscription = job.subscribe()
        await job.task
        return job, list(subscription)

    job, events = asyncio.run(_run())

    by_file: dict[int, list[FileStatus]] = {}
    for event in events:
        assert event.job_id == job.id
        by_file.setdefault(event.file_index, []).append(event.status)
    assert by_file[0] == [FileStatus.QUEUED, FileStatus.PROCESSING, FileStatus.SUCCEEDED]
    assert by_file[1] == [FileStatus.QUEUED, FileStatus.PROCESSING, FileStatus.FAILED]

    # A late subscriber gets the final state of every slot and then the end of stream.
    late = list(registry.subscribe(job.id, user_id=user.id))
    assert [e.status for e in late] == [FileStatus.SUCCEEDED, FileStatus.FAILED]


def test_no_free_job_slot_is_fatal(user):
    registry = JobRegistry(max_active_jobs=1, retention=5)
    registry.create(user_id=user.id, filenames=["busy.pdf"])

    with pytest.raises(StorageFailure):
        asyncio.run(
            import_batch(
                _files("x.pdf"),
                user_id=user.id,
                extractor=StubExtractor({"x.pdf": _statement(1)}),
                registry=registry,
            )
        )


def test_unreachable_database_at_job_start_is_fatal(user, monkeypatch):
    from card_ledger.modules.imports import service as import_service

    def _down() -> None:
        raise StorageFailure("Database unavailable")

    monkeypatch.setattr(import_service, "ping_database", _down)
    extractor = StubExtractor({"x.pdf": _statement(1)})

    with pytest.raises(StorageFailure):
        asyncio.run(
            import_batch(
                _files("x.pdf"),
                user_id=user.id,
                extractor=extractor,
                registry=JobRegistry(max_active_jobs=2, retention=5),
            )
        )
    assert extractor.calls == []


def _statement_with(day: int, description: str) -> ExtractedStatement:
    return ExtractedStatement(
        statement_date=date(2025, 5, day),
        due_date=date(2025, 6, day),
        total_ars=Decimal("10"),
        total_usd=None,
        lines=[RawLine(description=description, amount="10", currency="ARS")],
    )


def test_commit_failure_fails_only_its_file_and_leaves_nothing_behind(user, monkeypatch):
    from sqlalchemy.exc import SQLAlchemyError

    from card_ledger.core.storage import get_storage
    from card_ledger.modules.statements import service as statement_service

    real_rows = statement_service._expense_rows

    def _rows(statement_id, normalization):
        descriptions = {e.description for e in normalization.expenses}
        if "DB DOWN" in descriptions:
            raise SQLAlchemyError("disk I/O error")
        if "BUGGY" in descriptions:
            raise RuntimeError("boom")
        return real_rows(statement_id, normalization)

    monkeypatch.setattr(statement_service, "_expense_rows", _rows)
    extractor = StubExtractor(
        {
            "ok1.pdf": _statement(1),
            "db.pdf": _statement_with(2, "DB DOWN"),
            "ok2.pdf": _statement(3),
            "bug.pdf": _statement_with(4, "BUGGY"),
        }
    )

    result = asyncio.run(
        import_batch(
            _files("ok1.pdf", "db.pdf", "ok2.pdf", "bug.pdf"),
            user_id=user.id,
            concurrency_limit=2,
            extractor=extractor,
        )
    )

    assert (result.succeeded, result.failed) == (2, 2)
    by_name = {f.filename: f for f in result.files}
    assert isinstance(by_name["ok1.pdf"], FileSucceeded)
    assert isinstance(by_name["ok2.pdf"], FileSucceeded)
    assert isinstance(by_name["db.pdf"], FileFailed)
    assert "Could not commit statement" in by_name["db.pdf"].error
    assert isinstance(by_name["bug.pdf"], FileFailed)
    assert "boom" in by_name["bug.pdf"].error

    with SessionLocal() as session:
        statements = list(session.scalars(select(Statement)))
        descriptions = set(session.scalars(select(Expense.description)))
    assert {s.original_filename for s in statements} == {"ok1.pdf", "ok2.pdf"}
    assert "DB DOWN" not in descriptions
    assert "BUGGY" not in descriptions

    root = get_storage().root
    stored = sorted(str(p.relative_to(root)) for p in root.rglob("*.pdf"))
    assert stored == sorted(s.storage_key for s in statements)
