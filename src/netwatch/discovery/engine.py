"""
Network discovery engine.

Runs the primary method against a subnet and, only if its command fails,
the fallback method. Failure means the executable is missing, it exits
non-zero, or it exceeds the timeout. When the fallback fails as well the
run raises DiscoveryExhausted and no devices are returned.

A command that succeeds but yields nothing parsable is an empty result,
not a failure.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from typing import Optional

from .._types import Device
from ..errors import DiscoveryExhausted
from ..utils import CommandError, run_command
from .arp_table import ARPTableDiscovery
from .base import CommandRunner, DiscoveryMethod
from .nmap_sweep import NmapPingSweep

logger = logging.getLogger(__name__)


class NetworkDiscoveryEngine:
    """On-demand device discovery with command fallback."""

    def __init__(
        self,
        primary: Optional[DiscoveryMethod] = None,
        fallback: Optional[DiscoveryMethod] = None,
        timeout: float = 60,
        runner: Optional[CommandRunner] = None,
    ):
        """
        Initialize discovery engine.

        Args:
            primary: First method tried (default: nmap ping sweep)
            fallback: Method tried when primary fails (default: ARP table)
            timeout: Per-command timeout in seconds
            runner: Process execution collaborator (default: run_command)
        """
        self.primary = primary or NmapPingSweep()
        self.fallback = fallback or ARPTableDiscovery()
        self.timeout = timeout
        self._runner = runner or self._run

    @staticmethod
    async def _run(cmd: list[str], timeout: Optional[float]):
        return await run_command(cmd, timeout=timeout, check=True)

    async def _attempt(
        self,
        method: DiscoveryMethod,
        subnet: str,
        failures: dict[str, str],
    ) -> Optional[str]:
        """Run one method's command. Returns stdout, or None after recording why it failed."""
        cmd = method.build_command(subnet)
        try:
            result = await self._runner(cmd, self.timeout)
        except asyncio.TimeoutError:
            failures[method.name] = f"timed out after {self.timeout}s"
        except CommandError as e:
            failures[method.name] = f"exit code {e.exit_code}: {e.stderr.strip()}"
        except OSError as e:
            failures[method.name] = f"could not execute: {e}"
        else:
            return result.stdout

        logger.warning(f"{method.name} discovery failed: {failures[method.name]}")
        return None

    async def discover(self, subnet: str) -> list[Device]:
        """
        Discover devices on subnet.

        Raises:
            ValueError: If subnet is not an IPv4 network
            DiscoveryExhausted: If both primary and fallback commands failed
        """
        subnet = str(ipaddress.IPv4Network(subnet, strict=False))
        failures: dict[str, str] = {}

        logger.info(f"Starting network discovery on {subnet}")

        for method in (self.primary, self.fallback):
            output = await self._attempt(method, subnet, failures)
            if output is not None:
                return method.parse(output)

        logger.error(f"Network discovery exhausted for {subnet}: {failures}")
        raise DiscoveryExhausted(failures)
