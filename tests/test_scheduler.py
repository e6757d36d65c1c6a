"""Tests for the periodic task scheduler."""

import asyncio

import pytest

from netwatch.scheduler import MonitorScheduler, PeriodicTask


class TestPeriodicTask:
    @pytest.mark.asyncio
    async def test_run_cycle_sync_function(self):
        task = PeriodicTask("sync", 1, lambda: 42)

        assert await task.run_cycle() == 42
        assert task.cycles == 1
        assert task.failures == 0

    @pytest.mark.asyncio
    async def test_run_cycle_coroutine_function(self):
        async def check():
            return "ok"

        task = PeriodicTask("async", 1, check)

        assert await task.run_cycle() == "ok"

    @pytest.mark.asyncio
    async def test_failing_cycle_is_counted_not_raised(self):
        def boom():
            raise RuntimeError("detector crashed")

        task = PeriodicTask("boom", 1, boom)

        assert await task.run_cycle() is None
        assert task.failures == 1
        assert task.cycles == 1

    @pytest.mark.asyncio
    async def test_loop_continues_after_failure(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first cycle fails")

        task = PeriodicTask("flaky", 0.01, flaky, run_immediately=True)
        shutdown = asyncio.Event()
        runner = asyncio.create_task(task.run(shutdown))

        while len(calls) < 3:
            await asyncio.sleep(0.01)
        shutdown.set()
        await asyncio.wait_for(runner, timeout=5)

        assert task.failures == 1
        assert task.cycles >= 3

    @pytest.mark.asyncio
    async def test_first_cycle_waits_interval_by_default(self):
        calls = []
        task = PeriodicTask("lazy", 60, lambda: calls.append(1))
        shutdown = asyncio.Event()
        runner = asyncio.create_task(task.run(shutdown))

        await asyncio.sleep(0.05)
        shutdown.set()
        await asyncio.wait_for(runner, timeout=5)

        assert calls == []

    @pytest.mark.asyncio
    async def test_cycles_do_not_overlap(self):
        active = 0
        max_active = 0

        async def slow():
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.03)
            active -= 1

        task = PeriodicTask("slow", 0.001, slow, run_immediately=True)
        shutdown = asyncio.Event()
        runner = asyncio.create_task(task.run(shutdown))

        await asyncio.sleep(0.2)
        shutdown.set()
        await asyncio.wait_for(runner, timeout=5)

        assert max_active == 1
        assert task.cycles >= 2


class TestMonitorScheduler:
    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        scheduler = MonitorScheduler()
        calls = []
        scheduler.add("tick", 60, lambda: calls.append(1), run_immediately=True)

        scheduler.start()
        assert scheduler.is_running
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert not scheduler.is_running
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_stop_cancels_overrunning_task(self):
        scheduler = MonitorScheduler()
        release = asyncio.Event()

        async def stuck():
            await release.wait()

        scheduler.add("stuck", 60, stuck, run_immediately=True)
        scheduler.start()
        await asyncio.sleep(0.01)

        await scheduler.stop(timeout=0.05)

        assert not scheduler.is_running

    def test_tasks_listed(self):
        scheduler = MonitorScheduler()
        scheduler.add("a", 1, lambda: None)
        scheduler.add("b", 2, lambda: None)

        assert [t.name for t in scheduler.tasks] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_stop_before_start_is_noop(self):
        await MonitorScheduler().stop()
