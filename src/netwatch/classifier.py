"""
Device threat classification based on the advertised device name.

Rules are evaluated top-to-bottom and the first match wins. IoT keywords
are checked before suspicious keywords, so a name matching both is
classified as IoT.

Discovery itself never classifies: freshly discovered devices carry the
"scanning" or "unknown" marker until enrich_device() runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Optional

from ._types import Device, ThreatLevel

logger = logging.getLogger(__name__)


# IoT devices are more often mismanaged, so they are watched more closely
IOT_NAME_PATTERNS = [
    "nest",
    "ring",
    "alexa",
    "echo",
]

SUSPICIOUS_NAME_PATTERNS = [
    "unknown",
    "unidentified",
]


@dataclass(frozen=True)
class ThreatRule:
    """One (predicate, verdict) pair in the classification order."""
    name: str
    predicate: Callable[[Optional[str]], bool]
    verdict: ThreatLevel


def _contains_any(patterns: list[str]) -> Callable[[Optional[str]], bool]:
    def predicate(name: Optional[str]) -> bool:
        if not name:
            return False
        name_lower = name.lower()
        return any(pattern in name_lower for pattern in patterns)
    return predicate


THREAT_RULES: tuple[ThreatRule, ...] = (
    ThreatRule("unnamed", lambda name: not name, ThreatLevel.MEDIUM),
    ThreatRule("iot", _contains_any(IOT_NAME_PATTERNS), ThreatLevel.MEDIUM),
    ThreatRule("suspicious", _contains_any(SUSPICIOUS_NAME_PATTERNS), ThreatLevel.HIGH),
)

DEFAULT_THREAT_LEVEL = ThreatLevel.LOW


def match_rule(
    display_name: Optional[str],
    rules: Iterable[ThreatRule] = THREAT_RULES,
) -> Optional[ThreatRule]:
    """First rule whose predicate accepts the name, or None."""
    for rule in rules:
        if rule.predicate(display_name):
            return rule
    return None


def classify_threat(
    display_name: Optional[str],
    rules: Iterable[ThreatRule] = THREAT_RULES,
) -> ThreatLevel:
    """
    Classify a device by its display name.

    Args:
        display_name: Advertised device name, None if the device has none
        rules: Ordered rule list (defaults to THREAT_RULES)

    Returns:
        ThreatLevel of the first matching rule, LOW if none match
    """
    rule = match_rule(display_name, rules)
    return rule.verdict if rule else DEFAULT_THREAT_LEVEL


def enrich_device(device: Device, display_name: Optional[str] = None) -> Device:
    """
    Second-stage classification of a discovered device.

    Returns a new Device with display_name applied (when given) and its
    threat level computed from that name.
    """
    name = display_name if display_name is not None else device.display_name
    level = classify_threat(name)
    logger.debug(f"Classified {device.address} ({name or 'unnamed'}) as {level.value}")
    return replace(device, display_name=name, threat_level=level)


def classify_devices(
    devices: Iterable[Device],
    names: Optional[dict[str, str]] = None,
) -> list[Device]:
    """Enrich a batch of devices, optionally with names keyed by address."""
    names = names or {}
    return [enrich_device(d, names.get(d.address)) for d in devices]
