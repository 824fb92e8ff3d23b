from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from .context import get_operation_id, get_operation_name

_CONFIGURED = False


def _add_operation(_: logging.Logger, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Stamp every event with the operation scope it was emitted in."""
    oid = get_operation_id()
    if oid:
        event_dict["operation_id"] = oid
    name = get_operation_name()
    if name:
        event_dict.setdefault("operation", name)
    return event_dict


def _shared_processors() -> list[Any]:
    return [
        _add_operation,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def configure_logging(*, level: str | int = "INFO", json_logs: bool = True, force: bool = False) -> None:
    """
    Route structlog through stdlib logging to stdout.

    JSON lines by default; `json_logs=False` switches to the console renderer
    for local runs. Calling again is a no-op unless `force` is set.
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    renderer: Any = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_shared_processors())
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper() if isinstance(level, str) else level)

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)
