"""
Base classes for discovery methods.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from .._types import Device
from ..errors import MalformedInput
from ..utils import CommandResult

logger = logging.getLogger(__name__)

# run(cmd, timeout) -> CommandResult; raises on missing binary, non-zero
# exit or timeout
CommandRunner = Callable[[list[str], Optional[float]], Awaitable[CommandResult]]

IPV4_PATTERN = re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b")


class DiscoveryMethod(ABC):
    """One external command whose output yields devices."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of this discovery method."""
        pass

    @abstractmethod
    def build_command(self, subnet: str) -> list[str]:
        """Command line for a run against subnet."""
        pass

    @abstractmethod
    def parse_line(self, line: str) -> Optional[Device]:
        """
        Parse one output line.

        Returns None for lines that carry no host. Raises MalformedInput
        for host lines that cannot be parsed.
        """
        pass

    def parse(self, output: str) -> list[Device]:
        """Parse full command output, skipping malformed lines."""
        devices: list[Device] = []
        seen: set[str] = set()

        for line in output.splitlines():
            if not line.strip():
                continue
            try:
                device = self.parse_line(line)
            except MalformedInput as e:
                logger.debug(f"{self.name}: skipping line: {e}")
                continue
            if device is None or device.address in seen:
                continue
            seen.add(device.address)
            devices.append(device)

        logger.info(f"{self.name} discovery found {len(devices)} hosts")
        return devices
