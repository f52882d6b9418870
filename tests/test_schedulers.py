from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from armysync.session import Identity, SyncSession
from armysync.sync.scheduler import DebounceScheduler, IntervalScheduler


class _RecordingPush:
    def __init__(self, *, delay: float = 0.0, fail_with: Exception | None = None) -> None:
        self.calls = 0
        self.delay = delay
        self.fail_with = fail_with

    async def __call__(self) -> None:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with


def _session() -> SyncSession:
    return SyncSession(Identity(uid="user-1"))


@pytest.mark.asyncio
async def test_burst_of_triggers_results_in_one_push() -> None:
    push = _RecordingPush()
    scheduler = DebounceScheduler(_session(), push, delay=0.1)

    for _ in range(10):
        scheduler.trigger()
        await asyncio.sleep(0.01)
    assert push.calls == 0
    assert scheduler.pending is True

    await asyncio.sleep(0.2)
    await scheduler.wait_idle()

    assert push.calls == 1
    assert scheduler.pending is False


@pytest.mark.asyncio
async def test_closing_session_mid_debounce_prevents_the_push() -> None:
    push = _RecordingPush()
    session = _session()
    scheduler = DebounceScheduler(session, push, delay=0.03)

    scheduler.trigger()
    session.close()
    await asyncio.sleep(0.06)

    assert push.calls == 0


@pytest.mark.asyncio
async def test_trigger_is_ignored_while_disabled() -> None:
    push = _RecordingPush()
    session = SyncSession(Identity(uid="user-1"), enabled=False)
    scheduler = DebounceScheduler(session, push, delay=0.01)

    scheduler.trigger()

    assert scheduler.pending is False
    await asyncio.sleep(0.03)
    assert push.calls == 0


@pytest.mark.asyncio
async def test_failed_push_is_recorded_not_raised() -> None:
    errors: list[Exception] = []
    push = _RecordingPush(fail_with=RuntimeError("network down"))
    scheduler = DebounceScheduler(_session(), push, delay=0.01, on_error=errors.append)

    scheduler.trigger()
    await asyncio.sleep(0.03)
    await scheduler.wait_idle()

    assert scheduler.status.last_error == "network down"
    assert scheduler.status.last_sync_time is None
    assert [str(exc) for exc in errors] == ["network down"]

    push.fail_with = None
    scheduler.trigger()
    await asyncio.sleep(0.03)
    await scheduler.wait_idle()

    assert push.calls == 2
    assert scheduler.status.last_error is None
    assert scheduler.status.last_sync_time is not None


@pytest.mark.asyncio
async def test_result_of_in_flight_push_is_discarded_after_session_closes() -> None:
    completed: list[bool] = []
    push = _RecordingPush(delay=0.05)
    session = _session()
    scheduler = DebounceScheduler(session, push, delay=0.01, on_complete=lambda: completed.append(True))

    scheduler.trigger()
    await asyncio.sleep(0.03)
    assert scheduler.status.is_syncing is True
    session.close()
    await scheduler.wait_idle()

    assert push.calls == 1
    assert completed == []
    assert scheduler.status.last_sync_time is None


@pytest.mark.asyncio
async def test_interval_pushes_immediately_then_on_cadence() -> None:
    push = _RecordingPush()
    scheduler = IntervalScheduler(_session(), push, interval=0.05)

    scheduler.start()
    await asyncio.sleep(0.01)
    assert push.calls == 1

    await asyncio.sleep(0.1)
    scheduler.stop()
    await scheduler.wait_idle()

    assert push.calls >= 2
    assert scheduler.running is False
    calls = push.calls
    await asyncio.sleep(0.08)
    assert push.calls == calls


@pytest.mark.asyncio
async def test_interval_skips_tick_while_previous_push_runs() -> None:
    push = _RecordingPush(delay=0.12)
    scheduler = IntervalScheduler(_session(), push, interval=0.03)

    scheduler.start()
    await asyncio.sleep(0.1)

    assert push.calls == 1
    scheduler.close()
    await scheduler.wait_idle()


@pytest.mark.asyncio
async def test_sync_now_reports_outcome() -> None:
    clock_value = datetime(2026, 3, 1, tzinfo=UTC)
    push = _RecordingPush()
    scheduler = IntervalScheduler(_session(), push, interval=60.0, clock=lambda: clock_value)

    assert await scheduler.sync_now() is True
    assert scheduler.status.last_sync_time == clock_value

    push.fail_with = ValueError("bad data")
    assert await scheduler.sync_now() is False
    assert scheduler.status.last_error == "bad data"


@pytest.mark.asyncio
async def test_closed_interval_scheduler_does_nothing() -> None:
    push = _RecordingPush()
    scheduler = IntervalScheduler(_session(), push, interval=0.01)
    scheduler.close()

    scheduler.start()
    assert await scheduler.sync_now() is False
    await asyncio.sleep(0.03)

    assert push.calls == 0


@pytest.mark.asyncio
async def test_restart_pushes_immediately_even_with_a_push_still_running() -> None:
    push = _RecordingPush(delay=0.05)
    scheduler = IntervalScheduler(_session(), push, interval=10.0)

    scheduler.start()
    await asyncio.sleep(0.01)
    scheduler.stop()
    scheduler.start()
    await asyncio.sleep(0.01)

    assert push.calls == 2
    scheduler.close()
    await scheduler.wait_idle()
