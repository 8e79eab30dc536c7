"""Structured logging for crawl runs, built on structlog.

Console output is human readable by default; ``LOG_FORMAT=json`` switches to
one JSON object per line. When a log file is configured every event is also
appended there as JSON so a run can be inspected after the terminal is gone.
"""

import logging
import re
import sys
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict, Processor

# Query parameters carrying credentials (Google Geocoding ``key=``, tokens)
_SECRET_PARAM = re.compile(r"([?&](?:key|api_key|access_token|token)=)[^&\s\"']+", re.IGNORECASE)


def redact_secrets(_: Any, __: str, event_dict: EventDict) -> EventDict:
    """Mask API keys that leak into logged URLs or error messages."""
    for name, value in event_dict.items():
        if isinstance(value, str) and "=" in value:
            event_dict[name] = _SECRET_PARAM.sub(r"\1***", value)
    return event_dict


def _file_handler(path: Path, level: int, pre_chain: list[Processor]) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(ensure_ascii=False),
            ],
            foreign_pre_chain=pre_chain,
        )
    )
    return handler


def setup_logging(
    level: str = "INFO",
    log_format: str = "console",
    log_file: str | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_format: "console" for colored output, "json" for one object per line
        log_file: Optional path; events are mirrored there as JSON
    """
    log_level = getattr(logging, level.upper())

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_secrets,
    ]

    if log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    if log_file:
        root.addHandler(_file_handler(Path(log_file), log_level, shared_processors))
    root.setLevel(log_level)

    # Third-party clients are chatty at INFO
    for noisy in ("httpx", "httpcore", "openai", "hpack"):
        logging.getLogger(noisy).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger, usually ``get_logger(__name__)``."""
    return structlog.get_logger(name)


class LogContext:
    """Bind key/values to every log line emitted inside the block.

    None values are skipped so optional fields do not clutter the output.
    """

    def __init__(self, **kwargs: str | int | float | bool | None) -> None:
        self.context: MutableMapping[str, Any] = {k: v for k, v in kwargs.items() if v is not None}

    def __enter__(self) -> "LogContext":
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, *args: object) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())


def log_source_run(source_id: str, kind: str, city: str | None = None) -> LogContext:
    """Tag log lines with the source being crawled."""
    return LogContext(source_id=source_id, source_kind=kind, city=city)
