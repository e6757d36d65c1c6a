"""
Covert signal detection for inbound requests.

A request carrying any header from SUSPICIOUS_HEADERS is reported as a
covert_signal event. Detection is stateless: every request is judged on
its own, so a sustained run of marked requests yields one event each.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

from aiohttp import web

from ._types import EventKind, SecurityEvent, now_utc
from .events import EventDispatcher

logger = logging.getLogger(__name__)


SUSPICIOUS_HEADERS = (
    "x-covert-signal",
    "x-custom-data",
    "x-binary-transfer",
)


@dataclass(frozen=True)
class RequestMetadata:
    """What the detector needs to know about one inbound request."""
    headers: Mapping[str, str] = field(default_factory=dict)
    source_ip: Optional[str] = None
    path: str = "/"

    @classmethod
    def from_request(cls, request: web.Request) -> "RequestMetadata":
        return cls(
            headers={k: v for k, v in request.headers.items()},
            source_ip=request.remote,
            path=request.path,
        )


def matched_headers(headers: Mapping[str, str]) -> list[str]:
    """Suspicious header names present in headers (case-insensitive)."""
    present = {name.lower() for name in headers}
    return [h for h in SUSPICIOUS_HEADERS if h in present]


def inspect(metadata: RequestMetadata) -> Optional[SecurityEvent]:
    """Return a covert_signal event if the request carries a marker header."""
    matched = matched_headers(metadata.headers)
    if not matched:
        return None

    return SecurityEvent(
        kind=EventKind.COVERT_SIGNAL,
        description="Suspicious network activity detected",
        details={
            "headers": dict(metadata.headers),
            "ip": metadata.source_ip,
            "path": metadata.path,
            "matched": matched,
            "timestamp": now_utc().isoformat(),
        },
    )


def covert_signal_middleware(dispatcher: EventDispatcher):
    """
    aiohttp middleware running inspect() ahead of every handler.

    Events are submitted to the dispatcher and never awaited, so sink
    latency does not reach the request.
    """

    @web.middleware
    async def middleware(request: web.Request, handler):
        try:
            event = inspect(RequestMetadata.from_request(request))
        except Exception as e:
            logger.error(f"Covert signal inspection failed for {request.path}: {e}")
            event = None

        if event is not None:
            logger.warning(
                f"Covert signal headers {event.details['matched']} from "
                f"{event.details['ip']} on {event.details['path']}"
            )
            dispatcher.submit(event)

        return await handler(request)

    return middleware
