import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional


# Context var to store request id per coroutine
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_EXTRA_KEYS = (
    "event",
    "path",
    "method",
    "status_code",
    "duration_ms",
    "client",
    # Access key extras
    "access_key",
    "parent_user",
    "target_user",
    "filter_type",
    "filter_user",
    "count",
    "fields",
    "reason",
    # Upstream call extras
    "command",
    "exit_code",
    "attempt",
    "stderr",
)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


class ContextFilter(logging.Filter):
    """Injects correlation/request id into log records."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        setattr(record, "request_id", get_request_id())
        return True


class JSONFormatter(logging.Formatter):
    """Simple JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        rid = getattr(record, "request_id", None)
        if rid:
            payload["request_id"] = rid
        for key in _EXTRA_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                payload[key] = val
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class PrettyFormatter(logging.Formatter):
    """Human readable single-line output for local development."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-5s %(name)s: %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        line = super().format(record)
        extras = [f"{k}={getattr(record, k)}" for k in ("request_id",) + _EXTRA_KEYS if getattr(record, k, None) is not None]
        return f"{line} {' '.join(extras)}" if extras else line


def configure_logging(level: str = "INFO", pretty: bool = False) -> None:
    """Configure root and uvicorn loggers with correlation id."""
    lvl = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(PrettyFormatter() if pretty else JSONFormatter())
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    # Clear existing handlers to avoid duplicate logs
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(lvl)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        for h in list(lg.handlers):
            lg.removeHandler(h)
        lg.addHandler(handler)
        lg.setLevel(lvl)
        lg.propagate = False


def make_correlation_middleware(access_logger: logging.Logger):
    """Build the FastAPI middleware that assigns a request id and logs access in JSON."""

    async def correlation_middleware(request, call_next):
        incoming = request.headers.get("X-Request-ID")
        rid = incoming or uuid.uuid4().hex
        token = request_id_var.set(rid)
        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            access_logger.info(
                "request",
                extra={
                    "event": "http_request",
                    "path": str(getattr(request.url, "path", "")),
                    "method": request.method,
                    "status_code": getattr(response, "status_code", None),
                    "duration_ms": duration_ms,
                    "client": request.client.host if getattr(request, "client", None) else None,
                },
            )
            request_id_var.reset(token)
        response.headers.setdefault("X-Request-ID", rid)
        return response

    return correlation_middleware
