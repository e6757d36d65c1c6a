"""Tests for the command runner."""

import asyncio
import os
import shutil

import pytest

from netwatch.utils import CommandError, run_command


pytestmark = pytest.mark.skipif(
    shutil.which("sh") is None, reason="requires a POSIX shell"
)


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_captures_stdout(self):
        result = await run_command(["sh", "-c", "echo hello"])

        assert result.success
        assert result.stdout.strip() == "hello"
        assert result.duration_sec >= 0

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self):
        with pytest.raises(CommandError) as exc_info:
            await run_command(["sh", "-c", "echo oops >&2; exit 3"])

        assert exc_info.value.exit_code == 3
        assert "oops" in exc_info.value.stderr

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_check(self):
        result = await run_command(["sh", "-c", "exit 2"], check=False)

        assert result.exit_code == 2
        assert not result.success

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        with pytest.raises(FileNotFoundError):
            await run_command(["netwatch-no-such-binary"])

    @pytest.mark.asyncio
    async def test_timeout(self):
        with pytest.raises(asyncio.TimeoutError):
            await run_command(["sh", "-c", "sleep 5"], timeout=0.1)


async def wait_for_pid(pidfile):
    while not pidfile.exists() or not pidfile.read_text().strip():
        await asyncio.sleep(0.01)
    return int(pidfile.read_text())


def process_alive(pid):
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


class TestChildCleanup:
    """The child process must not outlive the awaiting task."""

    @pytest.mark.asyncio
    async def test_child_killed_on_cancel(self, tmp_path):
        pidfile = tmp_path / "child.pid"
        task = asyncio.create_task(
            run_command(["sh", "-c", f"echo $$ > {pidfile}; exec sleep 30"])
        )
        pid = await asyncio.wait_for(wait_for_pid(pidfile), timeout=5)
        assert process_alive(pid)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not process_alive(pid)

    @pytest.mark.asyncio
    async def test_child_killed_on_timeout(self, tmp_path):
        pidfile = tmp_path / "child.pid"

        with pytest.raises(asyncio.TimeoutError):
            await run_command(
                ["sh", "-c", f"echo $$ > {pidfile}; exec sleep 30"], timeout=1.0
            )

        pid = int(pidfile.read_text())
        assert not process_alive(pid)
