"""Timers used by the service: debounced writes and repeating refreshes.

Both run as tasks on the server's event loop and are torn down from the
application lifespan.
"""

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Any

from .logging_config import get_logger

logger = get_logger("obelixia.scheduling")

FlushFn = Callable[[Any, dict[str, Any]], Awaitable[None]]
TickFn = Callable[[], Awaitable[None]]


class Debouncer:
    """Coalesce rapid field edits per key into a single write.

    Each ``submit`` merges the new fields into the key's pending patch
    (later values win) and restarts that key's timer. The write happens
    once no edit has arrived for ``delay`` seconds.
    """

    def __init__(self, flush: FlushFn, delay: float = 1.0):
        self._flush = flush
        self._delay = delay
        self._pending: dict[Hashable, dict[str, Any]] = {}
        self._timers: dict[Hashable, asyncio.Task] = {}
        self.errors: dict[Hashable, str] = {}

    @property
    def delay(self) -> float:
        return self._delay

    def submit(self, key: Hashable, fields: dict[str, Any]) -> dict[str, Any]:
        """Queue ``fields`` for ``key`` and return the merged pending patch."""
        merged = self._pending.setdefault(key, {})
        merged.update(fields)
        self.errors.pop(key, None)

        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        self._timers[key] = asyncio.get_running_loop().create_task(self._wait_and_flush(key))
        return dict(merged)

    def pending(self, key: Hashable) -> dict[str, Any]:
        return dict(self._pending.get(key, {}))

    def is_pending(self, key: Hashable) -> bool:
        return key in self._pending

    async def flush(self, key: Hashable) -> bool:
        """Write ``key`` now. Returns False if nothing was pending.

        Errors from the write propagate to the caller.
        """
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        if key not in self._pending:
            return False
        await self._write(key)
        return True

    async def aclose(self) -> None:
        """Cancel all timers and write everything still pending."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

        for key in list(self._pending):
            try:
                await self._write(key)
            except Exception as e:
                logger.error(f"Pending write for {key} lost on shutdown: {e}")

    async def _wait_and_flush(self, key: Hashable) -> None:
        await asyncio.sleep(self._delay)
        # Detach before writing so a new submit starts a fresh timer
        self._timers.pop(key, None)
        try:
            await self._write(key)
        except Exception as e:
            self.errors[key] = str(e)
            logger.error(f"Debounced write for {key} failed: {e}")

    async def _write(self, key: Hashable) -> None:
        fields = self._pending.pop(key, None)
        if not fields:
            return
        await self._flush(key, fields)


class Poller:
    """Call ``fn`` every ``interval`` seconds until stopped.

    A failing tick is logged and the loop keeps going, so the caller keeps
    whatever it fetched last.
    """

    def __init__(self, name: str, interval: float, fn: TickFn, run_immediately: bool = True):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self._fn = fn
        self._run_immediately = run_immediately
        self._task: asyncio.Task | None = None
        self.ticks = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"poller:{self.name}")

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        if self._run_immediately:
            await self._tick()
        while True:
            await asyncio.sleep(self.interval)
            await self._tick()

    async def _tick(self) -> None:
        try:
            await self._fn()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            logger.warning(f"Poller {self.name} tick failed: {e}")
        self.ticks += 1


class PollerRegistry:
    """Named pollers; starting a name that is already running replaces it."""

    def __init__(self):
        self._pollers: dict[Hashable, Poller] = {}

    def start(self, key: Hashable, interval: float, fn: TickFn) -> Poller:
        previous = self._pollers.pop(key, None)
        if previous is not None:
            previous.cancel()
        poller = Poller(str(key), interval, fn)
        self._pollers[key] = poller
        poller.start()
        return poller

    async def stop(self, key: Hashable) -> bool:
        poller = self._pollers.pop(key, None)
        if poller is None:
            return False
        await poller.stop()
        return True

    async def stop_all(self) -> None:
        for key in list(self._pollers):
            await self.stop(key)

    def get(self, key: Hashable) -> Poller | None:
        return self._pollers.get(key)

    def keys(self) -> list[Hashable]:
        return list(self._pollers)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._pollers
