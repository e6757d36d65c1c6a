"""
Type definitions for the netwatch agent.

These dataclasses define the shared vocabulary every detector writes
through: security events, discovered devices and memory samples.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def now_utc() -> datetime:
    """Get current UTC timestamp (replaces deprecated datetime.utcnow())."""
    return datetime.now(timezone.utc)


class EventKind(str, Enum):
    """Kinds of security events produced by the detectors."""
    FILE_INTEGRITY = "file_integrity"
    COVERT_SIGNAL = "covert_signal"
    MEMORY_ANOMALY = "memory_anomaly"


class Severity(str, Enum):
    """Coarse severity attached to every stored event."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


DEFAULT_SEVERITY = {
    EventKind.FILE_INTEGRITY: Severity.HIGH,
    EventKind.COVERT_SIGNAL: Severity.HIGH,
    EventKind.MEMORY_ANOMALY: Severity.MEDIUM,
}


class ThreatLevel(str, Enum):
    """Device threat classification."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    UNKNOWN = "unknown"    # Resolved from the ARP table, least information
    SCANNING = "scanning"  # Host observed by the sweep, not yet classified


@dataclass(frozen=True)
class SecurityEvent:
    """
    A single detector finding.

    details must stay JSON-serializable: it is stored as a JSON document
    by the event database.
    """
    kind: EventKind
    description: str
    details: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=now_utc)
    severity: Optional[Severity] = None

    @property
    def effective_severity(self) -> Severity:
        if self.severity is not None:
            return self.severity
        return DEFAULT_SEVERITY.get(self.kind, Severity.LOW)


@dataclass
class SecurityEventRecord:
    """A stored event as returned by the event database."""
    id: int
    kind: str
    description: str
    details: dict[str, Any]
    severity: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "description": self.description,
            "details": self.details,
            "severity": self.severity,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Device:
    """
    A network device seen during one discovery run.

    No identity is kept across runs; history belongs to the event database.
    """
    address: str
    hardware_address: Optional[str] = None
    display_name: Optional[str] = None
    threat_level: ThreatLevel = ThreatLevel.SCANNING
    last_seen: datetime = field(default_factory=now_utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ip": self.address,
            "mac": self.hardware_address,
            "name": self.display_name,
            "threatLevel": self.threat_level.value,
            "lastSeen": self.last_seen.isoformat(),
        }


@dataclass(frozen=True)
class MemorySample:
    """Process memory utilization at one instant."""
    heap_used: int
    heap_total: int
    ratio: float
    taken_at: datetime = field(default_factory=now_utc)


@dataclass
class WatchedFile:
    """A file under integrity watch and its last-known-good digest."""
    path: str
    baseline_digest: Optional[str] = None
