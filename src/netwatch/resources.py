"""
Resource anomaly monitoring.

Samples this process's memory utilization and raises a memory_anomaly
event when the used/total ratio crosses the configured threshold. A
failed sample produces no event; the next cycle simply tries again.

Also hosts the periodic system stats snapshot written to the telemetry
table.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import psutil

from ._types import EventKind, MemorySample, SecurityEvent, now_utc
from .event_db import EventDatabase
from .events import EventSink

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.8


@dataclass(frozen=True)
class MemoryUsage:
    heap_used: int
    heap_total: int


class MemoryMetrics(ABC):
    """Source of memory usage figures."""

    @abstractmethod
    def current_memory_usage(self) -> MemoryUsage:
        """Return current usage; may raise on collection failure."""
        pass


class ProcessMemoryMetrics(MemoryMetrics):
    """
    Memory usage of the running process via psutil.

    Used is the resident set size. Total is the configured budget, or
    physical memory when no budget is set.
    """

    def __init__(self, limit_bytes: Optional[int] = None):
        self.limit_bytes = limit_bytes
        self._process = psutil.Process()

    def current_memory_usage(self) -> MemoryUsage:
        used = self._process.memory_info().rss
        total = self.limit_bytes or psutil.virtual_memory().total
        return MemoryUsage(heap_used=used, heap_total=total)


def sample_memory(metrics: MemoryMetrics) -> MemorySample:
    """Take one memory sample."""
    usage = metrics.current_memory_usage()
    ratio = usage.heap_used / usage.heap_total if usage.heap_total > 0 else 0.0
    return MemorySample(
        heap_used=usage.heap_used,
        heap_total=usage.heap_total,
        ratio=ratio,
    )


def evaluate(
    sample: MemorySample,
    threshold: float = DEFAULT_THRESHOLD,
) -> Optional[SecurityEvent]:
    """
    Compare a sample against the threshold.

    Returns a memory_anomaly event when ratio > threshold, otherwise None.
    """
    if sample.heap_total <= 0 or sample.ratio <= threshold:
        return None

    return SecurityEvent(
        kind=EventKind.MEMORY_ANOMALY,
        description="High memory usage detected",
        details={
            "heap_used": sample.heap_used,
            "heap_total": sample.heap_total,
            "percentage": round(sample.ratio * 100, 2),
            "threshold": threshold,
            "timestamp": sample.taken_at.isoformat(),
        },
        occurred_at=sample.taken_at,
    )


class ResourceAnomalyMonitor:
    """Periodic memory check that writes anomalies to the sink."""

    def __init__(
        self,
        metrics: MemoryMetrics,
        sink: Optional[EventSink] = None,
        threshold: float = DEFAULT_THRESHOLD,
    ):
        self.metrics = metrics
        self.sink = sink
        self.threshold = threshold

    def check(self) -> Optional[SecurityEvent]:
        """Run one cycle. Returns the emitted event, if any."""
        try:
            sample = sample_memory(self.metrics)
        except Exception as e:
            logger.warning(f"Memory sample failed, skipping cycle: {e}")
            return None

        event = evaluate(sample, self.threshold)
        if event is None:
            return None

        logger.warning(
            f"Memory utilization {event.details['percentage']}% exceeds "
            f"{self.threshold * 100:.0f}% threshold"
        )
        if self.sink is not None:
            self.sink.record_quietly(event)
        return event


class StatsSampler:
    """Periodic CPU/memory snapshot stored as a system_stats telemetry record."""

    def __init__(self, db: EventDatabase):
        self.db = db

    def snapshot(self) -> dict[str, Any]:
        mem = psutil.virtual_memory()
        return {
            "cpu": {
                "percent": psutil.cpu_percent(interval=None),
                "count": psutil.cpu_count(),
            },
            "memory": {
                "total": mem.total,
                "available": mem.available,
                "used": mem.used,
                "percent": mem.percent,
            },
            "time": now_utc().isoformat(),
        }

    def collect(self) -> Optional[int]:
        """Take and store one snapshot. Returns the record id, or None on failure."""
        try:
            return self.db.store_memory("system_stats", self.snapshot())
        except Exception as e:
            logger.error(f"Failed to log system stats: {e}")
            return None
