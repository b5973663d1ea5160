# src/sluice/engine/metrics.py
"""Metrics sinks: receive one record per completed write.

A sink is an observer. Actions report through report_write(), which
logs and drops any exception a sink raises so a broken sink never changes
the outcome of a run.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


@runtime_checkable
class MetricsSink(Protocol):
    """Receives (action_id, data_object_id, duration, metrics) per completed write."""

    def record(self, action_id: str, data_object_id: str, duration_seconds: float, metrics: Mapping[str, Any]) -> None: ...


class LoggingMetricsSink:
    """Default sink: one structured log event per write."""

    def record(self, action_id: str, data_object_id: str, duration_seconds: float, metrics: Mapping[str, Any]) -> None:
        logger.info(
            "write_metrics",
            action_id=action_id,
            data_object_id=data_object_id,
            duration_seconds=round(duration_seconds, 3),
            **dict(metrics),
        )


@dataclass(frozen=True, slots=True)
class WriteMetrics:
    action_id: str
    data_object_id: str
    duration_seconds: float
    metrics: dict[str, Any] = field(default_factory=dict)


class CollectingMetricsSink:
    """Keeps every record in memory. Thread-safe."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[WriteMetrics] = []

    def record(self, action_id: str, data_object_id: str, duration_seconds: float, metrics: Mapping[str, Any]) -> None:
        with self._lock:
            self._records.append(WriteMetrics(action_id, data_object_id, duration_seconds, dict(metrics)))

    @property
    def records(self) -> list[WriteMetrics]:
        with self._lock:
            return list(self._records)


def report_write(
    sink: MetricsSink | None,
    action_id: str,
    data_object_id: str,
    duration_seconds: float,
    metrics: Mapping[str, Any],
) -> None:
    """Forward a write record to sink, never raising."""
    if sink is None:
        return
    try:
        sink.record(action_id, data_object_id, duration_seconds, metrics)
    except Exception as e:
        logger.warning(
            "metrics_sink_failed",
            action_id=action_id,
            data_object_id=data_object_id,
            sink=type(sink).__name__,
            error=str(e),
            error_type=type(e).__name__,
        )
