"""structlog setup for ingestion runs.

Every entry goes through stdlib handlers (stderr, plus an optional file)
and is rendered either for a terminal or as one JSON object per line.
Entries written during a pipeline stage carry the stage name, and every
entry of a CLI run carries its ``cycle_id``.
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def generate_cycle_id() -> str:
    """Short random id tying together the entries of one ingestion run."""
    return f"cycle-{uuid.uuid4().hex[:12]}"


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def _install_handlers(
    numeric_level: int, log_file: str | Path | None
) -> list[logging.Handler]:
    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(str(log_file), encoding="utf-8"))
    for handler in handlers:
        handler.setLevel(numeric_level)
        root.addHandler(handler)
    return handlers


def configure_logging(
    level: str = "INFO",
    fmt: str = "console",
    log_file: str | Path | None = None,
    cycle_id: str | None = None,
) -> None:
    """Route structlog through the stdlib root logger.

    Safe to call more than once; earlier handlers are replaced.

    Args:
        level: Level name, case-insensitive.
        fmt: ``"console"`` or ``"json"``.
        log_file: Also append entries to this file.
        cycle_id: Bound into every entry when given.

    Raises:
        ValueError: If ``level`` is not a known level name.
    """
    level_upper = level.upper()
    if level_upper not in _VALID_LEVELS:
        msg = f"Invalid log level: {level!r}. Must be one of {sorted(_VALID_LEVELS)}"
        raise ValueError(msg)

    handlers = _install_handlers(getattr(logging, level_upper), log_file)

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(fmt),
        ],
    )
    for handler in handlers:
        handler.setFormatter(formatter)

    if cycle_id:
        structlog.contextvars.bind_contextvars(cycle_id=cycle_id)


@contextmanager
def stage_logging_context(
    stage: str, **extra: Any
) -> Iterator[structlog.stdlib.BoundLogger]:
    """Bind ``stage`` (and ``extra``) to every entry logged inside the block.

    Emits ``stage_start`` and ``stage_end``; an escaping exception is
    logged as ``stage_error`` and re-raised.
    """
    structlog.contextvars.bind_contextvars(stage=stage, **extra)
    log: structlog.stdlib.BoundLogger = structlog.get_logger(stage)
    log.info("stage_start", stage=stage)
    try:
        yield log
    except Exception:
        log.exception("stage_error", stage=stage)
        raise
    finally:
        log.info("stage_end", stage=stage)
        structlog.contextvars.unbind_contextvars("stage", *extra)
