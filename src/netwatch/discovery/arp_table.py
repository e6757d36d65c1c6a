"""
ARP table discovery.

Reads the local ARP cache with `arp -a`. Not scoped to a subnet and
limited to hosts that have communicated recently. Lines are split by
column position:

    ? (192.168.1.5) at aa:bb:cc:dd:ee:ff [ether] on eth0
    gateway (192.168.88.1) at 0:50:56:c0:0:8 on en0 ifscope [ethernet]
"""

from __future__ import annotations

import ipaddress
import re
from typing import Optional

from .._types import Device, ThreatLevel
from ..errors import MalformedInput
from .base import DiscoveryMethod

_MAC_PATTERN = re.compile(r"^[0-9a-fA-F]{1,2}([:-][0-9a-fA-F]{1,2}){5}$")


class ARPTableDiscovery(DiscoveryMethod):
    """
    Devices from the ARP cache.

    Threat level is "unknown": an ARP entry is the least information a
    device can come with.
    """

    def __init__(self, arp_path: str = "arp"):
        self.arp_path = arp_path

    @property
    def name(self) -> str:
        return "arp"

    def build_command(self, subnet: str) -> list[str]:
        return [self.arp_path, "-a"]

    def parse_line(self, line: str) -> Optional[Device]:
        parts = line.split()
        if len(parts) < 2:
            raise MalformedInput(line, "too few columns")

        address = parts[1].strip("()")
        try:
            ipaddress.IPv4Address(address)
        except ValueError:
            raise MalformedInput(line, "no IPv4 address in column 2")

        hardware_address = None
        if len(parts) > 3 and _MAC_PATTERN.match(parts[3]):
            hardware_address = parts[3].lower()

        hostname = parts[0] if parts[0] != "?" else None

        return Device(
            address=address,
            hardware_address=hardware_address,
            display_name=hostname,
            threat_level=ThreatLevel.UNKNOWN,
        )
