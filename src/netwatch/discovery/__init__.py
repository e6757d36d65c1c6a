"""
Network discovery.

Each discovery method builds one external command and parses its output:
- Nmap ping sweep (primary): live hosts in a subnet
- ARP table (fallback): hosts the machine has talked to recently

NetworkDiscoveryEngine chains them: the fallback only runs when the
primary command fails, and discovery fails when both do.
"""

from .base import CommandRunner, DiscoveryMethod
from .arp_table import ARPTableDiscovery
from .nmap_sweep import NmapPingSweep
from .engine import NetworkDiscoveryEngine

__all__ = [
    "CommandRunner",
    "DiscoveryMethod",
    "ARPTableDiscovery",
    "NmapPingSweep",
    "NetworkDiscoveryEngine",
]
