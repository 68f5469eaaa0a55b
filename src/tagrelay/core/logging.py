import logging
import sys
from typing import Any, cast

import structlog

from tagrelay.core.config import settings

_SENSITIVE_FRAGMENTS = ("token", "secret", "authorization", "api_key", "password")


def secret_redactor(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Blank out credential-looking keys before rendering."""

    def is_sensitive(key: Any) -> bool:
        k = str(key).lower().replace("-", "_")
        return any(fragment in k for fragment in _SENSITIVE_FRAGMENTS)

    def redact(data: Any) -> Any:
        if isinstance(data, dict):
            return {k: ("[REDACTED]" if is_sensitive(k) else redact(v)) for k, v in data.items()}
        if isinstance(data, list):
            return [redact(item) for item in data]
        return data

    return cast(dict[str, Any], redact(event_dict))


def one_line(detail: str | None, limit: int = 220) -> str:
    """Squeeze an error detail into a single short log-friendly line."""
    text = " ".join((detail or "").split())
    if len(text) > limit:
        text = text[:limit] + "…"
    return text


def setup_logging() -> None:
    base_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        secret_redactor,
    ]

    if settings.debug:
        renderer: Any = structlog.dev.ConsoleRenderer()
        processors = base_processors + [renderer]
        min_level = logging.DEBUG
    else:
        renderer = structlog.processors.JSONRenderer()
        processors = base_processors + [structlog.processors.dict_tracebacks, renderer]
        min_level = logging.getLevelName(settings.log_level.upper())
        if not isinstance(min_level, int):
            min_level = logging.INFO

    structlog.configure(
        processors=cast(Any, processors),
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # uvicorn and other stdlib loggers
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=min_level)
