"""
Netwatch - host-local security and network telemetry agent.

Discovers devices on the local network and classifies them by threat
level, watches a fixed set of files for modification, monitors the
agent's own memory use and flags suspicious inbound request headers.
Every finding lands in one append-only event log.

Architecture:
    scheduler  - periodic integrity / memory / stats checks
    discovery  - on-demand nmap sweep with ARP table fallback
    covert     - per-request header inspection (aiohttp middleware)
    events     - shared sink over the SQLite event database
"""

__version__ = "0.1.0"

from ._types import (
    Device,
    EventKind,
    MemorySample,
    SecurityEvent,
    SecurityEventRecord,
    Severity,
    ThreatLevel,
    WatchedFile,
)
from .errors import (
    DiscoveryExhausted,
    MalformedInput,
    NetwatchError,
    SinkUnavailable,
    TransientIOError,
)

__all__ = [
    "__version__",
    "Device",
    "EventKind",
    "MemorySample",
    "SecurityEvent",
    "SecurityEventRecord",
    "Severity",
    "ThreatLevel",
    "WatchedFile",
    "DiscoveryExhausted",
    "MalformedInput",
    "NetwatchError",
    "SinkUnavailable",
    "TransientIOError",
]
