"""Push schedulers.

Two independent actors decide when to push:

- :class:`DebounceScheduler` coalesces bursts of change notifications into
  one push after a quiet period.
- :class:`IntervalScheduler` pushes once on start and then on a fixed
  cadence, and offers a manual trigger.

Both swallow push failures after recording them: a failed push must not
stop later attempts, and the next trigger or tick is the retry. Both are
bound to a :class:`~armysync.session.SyncSession`; once the session is
inactive they do nothing, and pushes that were already in flight finish
without reporting back.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from armysync._clock import utcnow
from armysync.session import SyncSession

_logger = logging.getLogger(__name__)

PushFn = Callable[[], Awaitable[Any]]


class SchedulerStatus(BaseModel):
    """Observable state of a scheduler."""

    model_config = ConfigDict(frozen=True)

    is_syncing: bool = False
    last_sync_time: datetime | None = None
    last_error: str | None = None


class _PushRunner:
    """Shared push execution, status tracking and callback reporting."""

    def __init__(
        self,
        session: SyncSession,
        push: PushFn,
        *,
        on_start: Callable[[], None] | None = None,
        on_complete: Callable[[], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._push = push
        self._on_start = on_start
        self._on_complete = on_complete
        self._on_error = on_error
        self._clock = clock
        self._closed = False
        self._running = 0
        self._tasks: set[asyncio.Task[bool]] = set()
        self.last_sync_time: datetime | None = None
        self.last_error: str | None = None

    @property
    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            is_syncing=self._running > 0,
            last_sync_time=self.last_sync_time,
            last_error=self.last_error,
        )

    def _live(self) -> bool:
        return not self._closed and self._session.active

    def _callback(self, callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            _logger.debug("Sync callback failed", exc_info=True)

    async def _run_push(self) -> bool:
        if not self._live():
            return False
        self._running += 1
        self.last_error = None
        self._callback(self._on_start)
        try:
            await self._push()
        except Exception as exc:
            if self._live():
                self.last_error = str(exc) or type(exc).__name__
                self._callback(self._on_error, exc)
            _logger.warning("Sync push failed for %r: %s", self._session, exc, exc_info=True)
            return False
        finally:
            self._running -= 1
        if not self._live():
            _logger.debug("Discarding push result for inactive %r", self._session)
            return False
        self.last_sync_time = self._clock()
        self._callback(self._on_complete)
        return True

    def _spawn(self) -> asyncio.Task[bool]:
        task = asyncio.get_running_loop().create_task(self._run_push())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every push this scheduler started to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class DebounceScheduler(_PushRunner):
    """Runs one push after *delay* seconds without a new :meth:`trigger`."""

    def __init__(
        self,
        session: SyncSession,
        push: PushFn,
        *,
        delay: float = 1.0,
        on_start: Callable[[], None] | None = None,
        on_complete: Callable[[], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(
            session,
            push,
            on_start=on_start,
            on_complete=on_complete,
            on_error=on_error,
            clock=clock,
        )
        self._delay = delay
        self._timer: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        """Whether a push is armed and waiting for the quiet period to end."""
        return self._timer is not None

    def trigger(self) -> None:
        """(Re)start the quiet period. Must be called from the event loop."""
        if not self._live():
            return
        self.cancel()
        self._timer = asyncio.get_running_loop().call_later(self._delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if not self._live():
            return
        self._spawn()

    def cancel(self) -> None:
        """Drop the pending push, if any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def close(self) -> None:
        self.cancel()
        self._closed = True


class IntervalScheduler(_PushRunner):
    """Pushes immediately on :meth:`start`, then every *interval* seconds."""

    def __init__(
        self,
        session: SyncSession,
        push: PushFn,
        *,
        interval: float = 60.0,
        on_start: Callable[[], None] | None = None,
        on_complete: Callable[[], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(
            session,
            push,
            on_start=on_start,
            on_complete=on_complete,
            on_error=on_error,
            clock=clock,
        )
        self._interval = interval
        self._loop_task: asyncio.Task[None] | None = None
        self._tick: asyncio.Task[bool] | None = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        """Begin the cadence. No-op when already running or the session is inactive."""
        if self.running or not self._live():
            return
        # The start push always runs, even behind one left over from before a stop.
        self._tick = self._spawn()
        self._loop_task = asyncio.get_running_loop().create_task(self._repeat())

    async def _repeat(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if not self._live():
                return
            if self._tick is not None and not self._tick.done():
                # Previous push still in flight (slow transport); the lock
                # would only queue another one behind it.
                _logger.debug("Skipping interval push; previous one still running")
            else:
                self._tick = self._spawn()

    def stop(self) -> None:
        """Cancel the cadence. A push already in flight is left to finish."""
        task = self._loop_task
        self._loop_task = None
        if task is not None and not task.done():
            task.cancel()

    def close(self) -> None:
        self.stop()
        self._closed = True

    async def sync_now(self) -> bool:
        """Manual push using the same logic as a tick. Returns ``True`` on success."""
        return await self._run_push()
