from __future__ import annotations

import os
import time
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from card_ledger.core.config import settings
from card_ledger.core.errors import StorageFailure
from card_ledger.core.logging import get_logger, log_event, log_exception, monotonic_ms

logger = get_logger(__name__)

T = TypeVar("T")


def statement_key(*, user_id: uuid.UUID, statement_id: uuid.UUID, file_sha256: str) -> str:
    return f"statements/{user_id}/{statement_id}/{file_sha256}.pdf"


class StatementStorage:
    """
    Keeps the uploaded statement PDFs so a statement can be re-parsed later.

    Every backend failure surfaces as StorageFailure.
    """

    backend = "memory"
    _errors: tuple[type[Exception], ...] = (OSError,)

    def put(self, *, key: str, body: bytes) -> None:
        start = time.monotonic()
        self._call("put", key, lambda: self._put(key, body), byte_size=len(body))
        log_event(
            logger,
            "storage.put.success",
            backend=self.backend,
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )

    def get(self, *, key: str) -> bytes:
        return self._call("get", key, lambda: self._get(key))

    def delete(self, *, key: str) -> None:
        self._call("delete", key, lambda: self._delete(key))
        log_event(logger, "storage.delete.success", backend=self.backend, storage_key=key)

    def _call(self, op: str, key: str, fn: Callable[[], T], **fields) -> T:
        try:
            return fn()
        except StorageFailure:
            raise
        except self._errors as e:
            log_exception(
                logger, f"storage.{op}.failure", backend=self.backend, storage_key=key, **fields
            )
            raise StorageFailure(f"Could not {op} statement file: {key}") from e

    def _put(self, key: str, body: bytes) -> None:  # pragma: no cover
        raise NotImplementedError

    def _get(self, key: str) -> bytes:  # pragma: no cover
        raise NotImplementedError

    def _delete(self, key: str) -> None:  # pragma: no cover
        raise NotImplementedError


class LocalStatementStorage(StatementStorage):
    backend = "local"

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def _put(self, key: str, body: bytes) -> None:
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(body)

    def _get(self, key: str) -> bytes:
        path = self.root / key
        if not path.is_file():
            log_event(logger, "storage.get.missing", backend=self.backend, storage_key=key)
            raise StorageFailure(f"Statement file not found: {key}")
        return path.read_bytes()

    def _delete(self, key: str) -> None:
        path = self.root / key
        path.unlink(missing_ok=True)
        # Drop the per-statement folder once it is empty.
        parent = path.parent
        if parent != self.root and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()


class S3StatementStorage(StatementStorage):
    backend = "s3"
    _errors = (BotoCoreError, ClientError)

    def __init__(self) -> None:
        region = settings.s3_region
        if not region or region.lower() == "auto":
            region = "us-east-1"

        session = boto3.session.Session(
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=region,
        )
        config = Config(
            s3={"addressing_style": "virtual"},
            retries={"max_attempts": 3, "mode": "adaptive"},
            connect_timeout=30,
            read_timeout=60,
        )
        self._client = session.client(
            "s3", endpoint_url=settings.s3_endpoint_url or None, config=config
        )
        self._bucket = settings.s3_bucket

    def _put(self, key: str, body: bytes) -> None:
        self._client.put_object(
            Bucket=self._bucket, Key=key, Body=body, ContentType="application/pdf"
        )

    def _get(self, key: str) -> bytes:
        resp = self._client.get_object(Bucket=self._bucket, Key=key)
        return resp["Body"].read()

    def _delete(self, key: str) -> None:
        self._client.delete_object(Bucket=self._bucket, Key=key)


_storage: StatementStorage | None = None


def get_storage() -> StatementStorage:
    global _storage  # noqa: PLW0603
    if _storage is not None:
        return _storage

    if settings.storage_backend == "s3":
        _storage = S3StatementStorage()
    else:
        root = settings.local_storage_path
        if not root.is_absolute():
            root = Path(os.getcwd()) / root
        _storage = LocalStatementStorage(root)
    return _storage
