"""Timer helpers used to drive speech playback from an event loop."""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol, Set


LOGGER = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Anything with ``call_later``; :class:`asyncio.AbstractEventLoop` qualifies."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        ...


class TimerSet:
    """Track outstanding timers so they can be cleared together.

    Fired timers drop out of the set on their own; :meth:`clear` cancels the
    rest, which is what tearing down a playback session requires.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._handles: Set[TimerHandle] = set()

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    def __len__(self) -> int:
        return len(self._handles)

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle: TimerHandle

        def _fire() -> None:
            self._handles.discard(handle)
            callback()

        handle = self._scheduler.call_later(max(0.0, float(delay)), _fire)
        self._handles.add(handle)
        return handle

    def cancel(self, handle: TimerHandle | None) -> None:
        if handle is None:
            return
        handle.cancel()
        self._handles.discard(handle)

    def clear(self) -> None:
        pending = list(self._handles)
        self._handles.clear()
        for handle in pending:
            handle.cancel()
        if pending:
            LOGGER.debug("Cleared %s pending timer(s)", len(pending))


__all__ = ["Scheduler", "TimerHandle", "TimerSet"]
