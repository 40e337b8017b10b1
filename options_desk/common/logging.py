"""
Structured JSON logging + request IDs (stdlib-only).

Goals:
- One JSON object per log line (stdout)
- Consistent core fields: service, env, version, request_id, event_type, severity
- HTTP middleware that:
  - reads/propagates X-Request-ID
  - binds request_id for the request lifetime
  - emits a single http.request log line per request
"""

from __future__ import annotations

import json
import logging
import sys
import time
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from options_desk import __version__

_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_RESERVED_ATTRS: frozenset[str] = frozenset(
    {
        # logging.LogRecord built-ins
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        # injected keys
        "service",
        "env",
        "version",
        "request_id",
        "event_type",
        "severity",
        "message",
        "timestamp",
    }
)

_SEVERITIES = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _clean_text(v: Any, *, max_len: int = 2000) -> str:
    s = "" if v is None else str(v)
    s = s.replace("\n", " ").replace("\r", " ").strip()
    if len(s) > max_len:
        s = s[: max_len - 1] + "…"
    return s


def _normalize_severity(level: str | int | None) -> str:
    if isinstance(level, int):
        return _normalize_severity(logging.getLevelName(level))
    s = _clean_text(level or "INFO", max_len=16).upper()
    if s == "WARN":
        return "WARNING"
    if s == "FATAL":
        return "CRITICAL"
    return s if s in _SEVERITIES else "INFO"


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def get_request_id() -> Optional[str]:
    return _REQUEST_ID.get()


@contextmanager
def bind_request_id(*, request_id: str | None = None) -> Iterator[str]:
    rid = _clean_text(request_id or "", max_len=128) or uuid.uuid4().hex
    token = _REQUEST_ID.set(rid)
    try:
        yield rid
    finally:
        _REQUEST_ID.reset(token)


class JsonLogFormatter(logging.Formatter):
    def __init__(self, *, service: str, env: str, version: str = __version__) -> None:
        super().__init__()
        self._service = _clean_text(service, max_len=128) or "unknown"
        self._env = _clean_text(env, max_len=64) or "unknown"
        self._version = _clean_text(version, max_len=64) or "unknown"

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": _normalize_severity(getattr(record, "severity", None) or record.levelname),
            "service": self._service,
            "env": self._env,
            "version": self._version,
            "request_id": getattr(record, "request_id", None) or get_request_id(),
            "event_type": _clean_text(getattr(record, "event_type", None) or "", max_len=128) or "log",
            "message": _clean_text(record.getMessage(), max_len=4000),
            "logger": record.name,
        }

        if record.exc_info:
            payload["exception"] = "".join(traceback.format_exception(*record.exc_info))[-8000:]
        elif record.stack_info:
            payload["stack"] = _clean_text(record.stack_info, max_len=8000)

        # Fields passed via logger.*(..., extra={...})
        for k, v in record.__dict__.items():
            if k in _RESERVED_ATTRS or k.startswith("_"):
                continue
            payload[k] = v

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=_json_default)


def init_structured_logging(*, service: str, env: str, level: str | int = "INFO") -> None:
    """
    Configure stdlib logging to emit JSON lines to stdout.

    Safe to call multiple times (last call wins).
    """
    root = logging.getLogger()
    root.setLevel(level)

    root.handlers = []
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonLogFormatter(service=service, env=env))
    root.addHandler(handler)

    logging.captureWarnings(True)
    # uvicorn loggers flow through root and use our handler.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers = []
        lg.propagate = True


def log_event(
    logger: logging.Logger,
    event_type: str,
    *,
    severity: str = "INFO",
    message: str | None = None,
    exc_info: Any = None,
    **fields: Any,
) -> None:
    """Convenience wrapper for semantic events with stable `event_type`."""
    lvl = getattr(logging, _normalize_severity(severity), logging.INFO)
    logger.log(
        lvl,
        message or event_type,
        exc_info=exc_info,
        extra={"event_type": _clean_text(event_type, max_len=128), **fields},
    )


def install_fastapi_request_id_middleware(app: Any) -> None:
    """
    FastAPI middleware:
    - Read/propagate X-Request-ID
    - Bind request_id for the request lifetime
    - Emit one http.request JSON log line per request
    """
    from starlette.requests import Request  # noqa: WPS433

    http_logger = logging.getLogger("http")

    @app.middleware("http")
    async def _request_id_mw(request: Request, call_next):
        incoming = request.headers.get("x-request-id")
        start = time.perf_counter()
        status_code = 500
        with bind_request_id(request_id=incoming) as rid:
            try:
                resp = await call_next(request)
                status_code = int(resp.status_code)
            finally:
                log_event(
                    http_logger,
                    "http.request",
                    method=request.method,
                    path=request.url.path,
                    status_code=status_code,
                    duration_ms=int(max(0.0, (time.perf_counter() - start) * 1000.0)),
                )
        resp.headers["X-Request-ID"] = rid
        return resp
