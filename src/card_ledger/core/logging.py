"""
Structured JSON logging.

Every record is one JSON object. `log_event` attaches the ambient request, user and
import-job ids so lines written by import workers can be tied back to their job.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import time
import uuid
from datetime import UTC, datetime
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_CONTEXT: dict[str, contextvars.ContextVar[str | None]] = {
    name: contextvars.ContextVar(name, default=None)
    for name in ("request_id", "user_id", "import_job_id")
}

_configured = False


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds")
        payload: dict[str, Any] = {
            "ts": ts.replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event:
            payload["event"] = event
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload.update(fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


def configure_logging() -> None:
    global _configured  # noqa: PLW0603
    if _configured:
        return
    level = logging.getLevelNamesMapping().get(
        os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO
    )
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger = logging.getLogger("card_ledger")
    logger.setLevel(level)
    logger.handlers = [handler]
    logger.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def _bind(**values: str | None) -> dict[str, contextvars.Token]:
    return {name: _CONTEXT[name].set(value) for name, value in values.items()}


def _unbind(tokens: dict[str, contextvars.Token]) -> None:
    for name, token in tokens.items():
        _CONTEXT[name].reset(token)


def set_user_context(user_id: str | None) -> None:
    _CONTEXT["user_id"].set(user_id)


def set_job_context(job_id: str | None) -> dict[str, contextvars.Token]:
    return _bind(import_job_id=job_id)


def reset_job_context(tokens: dict[str, contextvars.Token]) -> None:
    _unbind(tokens)


def _merge_fields(fields: dict[str, Any]) -> dict[str, Any]:
    payload = {name: var.get() for name, var in _CONTEXT.items()}
    payload.update(fields)
    return {key: value for key, value in payload.items() if value is not None}


def log_event(
    logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any
) -> None:
    logger.log(level, event, extra={"event": event, "fields": _merge_fields(fields)})


def log_exception(logger: logging.Logger, event: str, **fields: Any) -> None:
    logger.exception(event, extra={"event": event, "fields": _merge_fields(fields)})


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        tokens = _bind(request_id=request_id, user_id=None)
        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            log_exception(
                get_logger(__name__),
                "http.request.error",
                method=request.method,
                path=request.url.path,
                duration_ms=monotonic_ms(start),
            )
            raise
        finally:
            _unbind(tokens)
        response.headers["x-request-id"] = request_id
        return response


def monotonic_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
