from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Callable, Protocol

logger = logging.getLogger("session_scheduler")

TimerCallback = Callable[[], None]


class Scheduler(Protocol):
    def schedule(self, name: str, delay_sec: float, callback: TimerCallback) -> None:
        ...

    def cancel(self, name: str) -> None:
        ...

    def cancel_all(self) -> None:
        ...


class AsyncioScheduler:
    """Named, cancelable one-shot timers on the running event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, name: str, delay_sec: float, callback: TimerCallback) -> None:
        self.cancel(name)

        def _fire():
            self._handles.pop(name, None)
            callback()

        self._handles[name] = self._get_loop().call_later(max(0.0, float(delay_sec)), _fire)

    def cancel(self, name: str) -> None:
        handle = self._handles.pop(name, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for name in list(self._handles):
            self.cancel(name)

    @property
    def pending(self) -> list[str]:
        return sorted(self._handles)


class VirtualScheduler:
    """
    Deterministic scheduler driven by `advance()`.
    Used for simulations and tests; no real time passes.
    """

    def __init__(self):
        self.now = 0.0
        self._seq = itertools.count()
        self._timers: dict[str, tuple[float, int, TimerCallback]] = {}

    def schedule(self, name: str, delay_sec: float, callback: TimerCallback) -> None:
        self._timers[name] = (self.now + max(0.0, float(delay_sec)), next(self._seq), callback)

    def cancel(self, name: str) -> None:
        self._timers.pop(name, None)

    def cancel_all(self) -> None:
        self._timers.clear()

    @property
    def pending(self) -> list[str]:
        return sorted(self._timers)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due timers in order. Returns fire count."""
        target = self.now + max(0.0, float(seconds))
        fired = 0
        while True:
            due = [
                (when, seq, name)
                for name, (when, seq, _) in self._timers.items()
                if when <= target
            ]
            if not due:
                break
            when, _, name = min(due)
            _, _, callback = self._timers.pop(name)
            self.now = when
            callback()
            fired += 1
        self.now = target
        return fired
