"""
Utility functions for the netwatch agent.

Includes:
- Process execution helper used by network discovery
- Logging setup
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Error raised when a command exits with a non-zero status."""

    def __init__(self, cmd: list, exit_code: int, stdout: str = "", stderr: str = ""):
        self.cmd = cmd
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"Command {cmd} failed with exit code {exit_code}: {stderr.strip()}")


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        exit_code: int,
        stdout: str,
        stderr: str,
        duration_sec: float
    ):
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.duration_sec = duration_sec
        self.success = exit_code == 0

    def __repr__(self):
        return f"CommandResult(exit_code={self.exit_code}, success={self.success})"


async def run_command(
    cmd: list[str],
    timeout: Optional[float] = None,
    check: bool = True,
) -> CommandResult:
    """
    Run a command asynchronously.

    Args:
        cmd: Command and arguments as list
        timeout: Timeout in seconds (None = no timeout)
        check: Raise CommandError if exit code != 0

    Returns:
        CommandResult with exit code, stdout, stderr, duration

    Raises:
        FileNotFoundError: If the executable does not exist
        CommandError: If check=True and command fails
        asyncio.TimeoutError: If timeout exceeded

    The child process is killed on timeout and when the awaiting task is
    cancelled.
    """
    start_time = datetime.now(timezone.utc)

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE
    )

    try:
        if timeout:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout
            )
        else:
            stdout, stderr = await process.communicate()
    except (asyncio.TimeoutError, asyncio.CancelledError):
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()

    result = CommandResult(
        exit_code=process.returncode,
        stdout=stdout.decode('utf-8', errors='replace') if stdout else '',
        stderr=stderr.decode('utf-8', errors='replace') if stderr else '',
        duration_sec=duration
    )

    if check and result.exit_code != 0:
        raise CommandError(cmd, result.exit_code, result.stdout, result.stderr)

    return result


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging for the agent.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
