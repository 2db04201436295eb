"""Request-correlated logging for the Sankhya API.

Every record carries the ambient correlation context of the request that
emitted it: `request_id`, `user_role`, `seller_code`, `operation` and
`product_code`. Call sites add per-call data with `extra_fields=`:

    logger = get_logger(__name__)
    with with_correlation(seller_code="7", operation="list_orders"):
        logger.info("Orders found", extra_fields={"count": 12})
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

# Project loggers follow the configured level; these libraries only log warnings.
PROJECT_LOGGERS = ("api", "connectors", "core")
QUIET_LOGGERS = ("aiohttp", "redis", "uvicorn.access")


@dataclass
class CorrelationContext:
    request_id: Optional[str] = None
    user_role: Optional[str] = None
    seller_code: Optional[str] = None
    operation: Optional[str] = None
    product_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Fields that are set."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        data = self.to_dict()
        data.update({k: v for k, v in kwargs.items() if v is not None})
        return CorrelationContext(**data)


_current: ContextVar[CorrelationContext] = ContextVar("sankhya_correlation", default=CorrelationContext())


def get_correlation_context() -> CorrelationContext:
    return _current.get()


@contextmanager
def with_correlation(**fields):
    """Layer `fields` over the current context until the block exits.

    None values leave the outer value in place. Each asyncio task sees its
    own copy, so concurrent requests never mix their fields.
    """
    context = _current.get().merge(**fields)
    token = _current.set(context)
    try:
        yield context
    finally:
        _current.reset(token)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **get_correlation_context().to_dict(),
            **getattr(record, "extra_fields", {}),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Console lines, e.g.

    2024-05-02 14:10:03 [INFO ] api.routes.orders [3f9c2a/gerente/vend:7/op:list_orders]: Orders found: 4
    """

    def _correlation(self) -> str:
        ctx = get_correlation_context()
        parts = [
            ctx.request_id[:12] if ctx.request_id else None,
            ctx.user_role,
            f"vend:{ctx.seller_code}" if ctx.seller_code else None,
            f"op:{ctx.operation}" if ctx.operation else None,
        ]
        return "/".join(p for p in parts if p) or "-"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")
        line = f"{timestamp} [{record.levelname:5}] {record.name} [{self._correlation()}]: {record.getMessage()}"

        extra = getattr(record, "extra_fields", None)
        if extra:
            line += " " + " ".join(f"{k}={v}" for k, v in extra.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class CorrelatedLogger:
    """Thin wrapper over `logging.Logger` accepting `extra_fields=` on every call."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, args: tuple, extra_fields: Optional[Dict[str, Any]] = None, exc_info=None):
        if not self._logger.isEnabledFor(level):
            return
        if exc_info is True:
            exc_info = sys.exc_info()
        record = self._logger.makeRecord(self._logger.name, level, "(unknown file)", 0, msg, args, exc_info or None)
        record.extra_fields = extra_fields or {}
        self._logger.handle(record)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs["exc_info"] = True
        self._log(logging.ERROR, msg, args, **kwargs)

    def setLevel(self, level):
        self._logger.setLevel(level)

    def isEnabledFor(self, level):
        return self._logger.isEnabledFor(level)


_loggers: Dict[str, CorrelatedLogger] = {}
_configured = False


def configure_logging(level: int = logging.INFO, json_format: bool = False):
    """Install one stdout handler on the root logger (first call wins).

    `json_format` selects StructuredFormatter, as set by LOG_JSON.
    """
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)

    for name in PROJECT_LOGGERS:
        logging.getLogger(name).setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> CorrelatedLogger:
    if name not in _loggers:
        if not _configured:
            configure_logging()
        _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return _loggers[name]
