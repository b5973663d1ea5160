# src/sluice/core/logging.py
"""Logging setup for sluice.

Every module logs through ``structlog.get_logger(__name__)`` with an event
name and key/value pairs (action_id, data_object_id, phase, ...). Records of
third-party libraries arrive through stdlib logging. Both are rendered by a
single ProcessorFormatter on one stdout handler, so a run's output is either
entirely JSON lines or entirely console text.

The orchestrator binds run_id with structlog.contextvars; it is merged into
every event of that run, including events logged from worker threads.
"""

import logging
import sys
from collections.abc import Mapping
from enum import Enum
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

from sluice.contracts.partitions import PartitionValues

# Loggers of libraries used by adapters and the CLI that report internals at INFO/DEBUG.
_QUIET_LOGGERS: Mapping[str, int] = {
    "numexpr": logging.WARNING,  # thread pool size on first DataFrame.query
    "numexpr.utils": logging.WARNING,
    "dynaconf": logging.WARNING,
}


def _readable_values(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Render partition values and enums by their string form.

    JSONRenderer would otherwise fall back to their repr.
    """
    for key, value in event_dict.items():
        if isinstance(value, PartitionValues | Enum):
            event_dict[key] = str(value)
        elif isinstance(value, list | tuple) and value and all(isinstance(v, PartitionValues) for v in value):
            event_dict[key] = [str(v) for v in value]
    return event_dict


def _drop_formatter_fields(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """ProcessorFormatter adds _record and _from_structlog to every event."""
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _pre_chain() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        _readable_values,
    ]


def _renderer_chain(json_output: bool, stream: TextIO) -> list[Any]:
    if json_output:
        return [
            _drop_formatter_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ]
    return [
        _drop_formatter_fields,
        structlog.dev.ConsoleRenderer(colors=stream.isatty()),
    ]


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Route structlog and stdlib logging to one handler.

    Safe to call repeatedly: the CLI configures logging from its flags first
    and again once the settings file is loaded.

    Args:
        json_output: One JSON object per line instead of console text
        level: Root level name (DEBUG, INFO, WARNING, ERROR)
        stream: Destination, sys.stdout at call time by default
    """
    log_level = logging.getLevelNamesMapping()[level.upper()]
    target = stream if stream is not None else sys.stdout
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Reconfiguration must reach loggers created at import time
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(target)
    handler.setFormatter(ProcessorFormatter(processors=_renderer_chain(json_output, target), foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(log_level, quiet_level))
