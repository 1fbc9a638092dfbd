"""Structured logging for the feed service.

Every log line is a structlog event rendered through stdlib logging:
- stdout gets colored console output, or JSON when LOG_FORMAT=json
- when a log directory is given, JSON lines also go to ``<app>.log`` and
  errors to ``<app>.error.log`` (both rotated)
- request id, trace id, user id and active feed filter are copied from
  contextvars onto each event
- backend credentials never reach the output
"""

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor


if TYPE_CHECKING:
    from src.config.settings import Settings

from src.core.context import get_context


# Third-party loggers that would otherwise log every backend call or poll
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "redis": logging.WARNING,
}

_SECRET_FIELDS = ("token", "authorization", "password", "secret", "api_key")
_BEARER_RE = re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE)


def add_context_processor(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Copy request and feed context onto the event without overriding fields."""
    for key, value in get_context().items():
        event_dict.setdefault(key, value)
    return event_dict


def _redact(key: str, value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _redact(str(k), v) for k, v in value.items()}
    if not isinstance(value, str):
        return value
    if any(field in key.lower() for field in _SECRET_FIELDS):
        return f"{value[:2]}***" if len(value) > 8 else "***"
    return _BEARER_RE.sub(r"\1***", value)


def redact_secrets(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Hide credential fields and any inline bearer token."""
    return {key: _redact(key, value) for key, value in event_dict.items()}


def _pre_chain(include_caller_info: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_processor,
        redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if include_caller_info:
        chain.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.MODULE,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            )
        )
    return chain


def _rotating_handler(
    path: Path, settings: "Settings", level: int
) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=settings.log_file_max_bytes,
        backupCount=settings.log_file_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def _build_handlers(
    settings: "Settings", log_dir: Path | None, level: int
) -> list[tuple[logging.Handler, Processor]]:
    if settings.log_format == "json":
        console_renderer: Processor = structlog.processors.JSONRenderer()
    else:
        console_renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    handlers: list[tuple[logging.Handler, Processor]] = [(console, console_renderer)]

    if log_dir is not None:
        json_renderer = structlog.processors.JSONRenderer()
        handlers.append(
            (
                _rotating_handler(log_dir / f"{settings.app_name}.log", settings, level),
                json_renderer,
            )
        )
        handlers.append(
            (
                _rotating_handler(
                    log_dir / f"{settings.app_name}.error.log", settings, logging.ERROR
                ),
                json_renderer,
            )
        )
    return handlers


def configure_structlog(
    settings: "Settings",
    log_dir: Path | str | None = None,
) -> None:
    """Route structlog through stdlib logging.

    Args:
        settings: Application settings
        log_dir: Directory for the rotated JSON files; None logs to stdout only
    """
    level = logging.getLevelName(settings.log_level)
    pre_chain = _pre_chain(settings.log_include_caller_info)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler, renderer in _build_handlers(
        settings, Path(log_dir) if log_dir is not None else None, level
    ):
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=renderer, foreign_pre_chain=pre_chain
            )
        )
        root.addHandler(handler)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance."""
    return structlog.get_logger(name)
