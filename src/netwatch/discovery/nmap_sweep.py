"""
Nmap ping sweep discovery.

Runs `nmap -sn <subnet>` and reads the "Nmap scan report" lines:

    Nmap scan report for router.lan (192.168.1.1)
    Nmap scan report for 192.168.1.20
"""

from __future__ import annotations

import re
from typing import Optional

from .._types import Device, ThreatLevel
from ..errors import MalformedInput
from .base import IPV4_PATTERN, DiscoveryMethod

REPORT_MARKER = "Nmap scan report"

_NAMED_REPORT = re.compile(r"Nmap scan report for (\S+) \((\d{1,3}(?:\.\d{1,3}){3})\)")


class NmapPingSweep(DiscoveryMethod):
    """
    Quick ping sweep using nmap.

    Hosts come back with threat level "scanning" and no MAC address;
    classification happens later.
    """

    def __init__(self, nmap_path: str = "nmap"):
        self.nmap_path = nmap_path

    @property
    def name(self) -> str:
        return "nmap-ping"

    def build_command(self, subnet: str) -> list[str]:
        return [self.nmap_path, "-sn", subnet]

    def parse_line(self, line: str) -> Optional[Device]:
        if REPORT_MARKER not in line:
            return None

        named = _NAMED_REPORT.search(line)
        if named:
            return Device(
                address=named.group(2),
                display_name=named.group(1),
                threat_level=ThreatLevel.SCANNING,
            )

        match = IPV4_PATTERN.search(line)
        if not match:
            raise MalformedInput(line, "scan report without IPv4 address")

        return Device(address=match.group(0), threat_level=ThreatLevel.SCANNING)
