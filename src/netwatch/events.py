"""
Event sink shared by all detectors.

EventSink turns a SecurityEvent into one append on the event database.
EventDispatcher lets request-path code hand events off without waiting
for the database.

Sink failures never propagate into detector logic: a lost event is
logged and the detector carries on.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Optional

from ._types import SecurityEvent
from .errors import SinkUnavailable
from .event_db import EventDatabase

logger = logging.getLogger(__name__)


class EventSink:
    """Append-only write path for security events."""

    def __init__(self, db: EventDatabase):
        self.db = db

    def record(self, event: SecurityEvent) -> int:
        """
        Persist one event.

        Returns:
            Row id of the stored event

        Raises:
            SinkUnavailable: If the event could not be stored
        """
        kind = getattr(event.kind, "value", event.kind)
        try:
            event_id = self.db.append(
                kind=kind,
                description=event.description,
                details=event.details,
                timestamp=event.occurred_at,
                severity=event.effective_severity.value,
            )
        except (sqlite3.Error, OSError, TypeError, ValueError) as e:
            raise SinkUnavailable(f"Failed to record {kind} event: {e}") from e

        logger.info(f"Recorded {kind} event #{event_id}: {event.description}")
        return event_id

    def record_quietly(self, event: SecurityEvent) -> Optional[int]:
        """Persist one event, logging instead of raising on sink failure."""
        try:
            return self.record(event)
        except SinkUnavailable as e:
            logger.error(f"Security event lost: {e}")
            return None

    async def record_async(self, event: SecurityEvent) -> Optional[int]:
        """record_quietly() in a worker thread."""
        return await asyncio.to_thread(self.record_quietly, event)


class EventDispatcher:
    """
    Fire-and-forget delivery of events to the sink.

    submit() never blocks: events go on a bounded queue drained by a
    single worker task. When the queue is full the new event is dropped
    and logged.
    """

    def __init__(self, sink: EventSink, max_pending: int = 1000):
        self.sink = sink
        self._queue: asyncio.Queue[SecurityEvent] = asyncio.Queue(maxsize=max_pending)
        self._worker: Optional[asyncio.Task] = None
        self.dropped = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Start the worker task on the running loop."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="event-dispatcher")

    def submit(self, event: SecurityEvent) -> bool:
        """Queue an event for recording. Returns False if it was dropped."""
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Event queue full, dropping {event.kind} event "
                f"({self.dropped} dropped so far)"
            )
            return False

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.sink.record_async(event)
            except Exception as e:
                logger.error(f"Unexpected error recording event: {e}")
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been handed to the sink."""
        await self._queue.join()

    async def stop(self, drain: bool = True) -> None:
        """Stop the worker, optionally flushing queued events first."""
        if self._worker is None:
            return
        if drain and not self._worker.done():
            await self.drain()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
