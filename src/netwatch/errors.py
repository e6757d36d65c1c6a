"""
Error taxonomy for the netwatch agent.

None of these are process-fatal. Periodic monitors log them and carry on
with the next cycle; only DiscoveryExhausted reaches an external caller.
"""

from __future__ import annotations


class NetwatchError(Exception):
    """Base class for agent errors."""


class TransientIOError(NetwatchError):
    """A read or command failed this cycle and will be retried next cycle."""

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"{target}: {reason}")


class DiscoveryExhausted(NetwatchError):
    """Both the primary and the fallback discovery commands failed."""

    def __init__(self, failures: dict[str, str]):
        self.failures = failures
        summary = "; ".join(f"{cmd}: {reason}" for cmd, reason in failures.items())
        super().__init__(f"Network discovery failed ({summary})")


class SinkUnavailable(NetwatchError):
    """The event database rejected or could not complete a write."""


class MalformedInput(NetwatchError):
    """A single line of command output could not be parsed."""

    def __init__(self, line: str, reason: str = "unparsable line"):
        self.line = line
        super().__init__(f"{reason}: {line!r}")
