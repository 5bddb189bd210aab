"""Injectable delayed-callback scheduling.

The coordinator's only timer is the delay before a finished session returns
to idle. It goes through this seam so tests can drive it without sleeping.
"""

import asyncio
from typing import Callable, Protocol


class TimerHandle(Protocol):
    """Handle to a scheduled callback."""

    def cancel(self) -> None:
        """Cancel the callback if it has not run yet."""
        ...


class Scheduler(Protocol):
    """Protocol for delayed callback scheduling."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback after delay seconds."""
        ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def call_later(
        self, delay: float, callback: Callable[[], None]
    ) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class ManualTimer:
    """Timer owned by ManualScheduler."""

    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler driven explicitly by calling advance().

    Usage:
        scheduler = ManualScheduler()
        coordinator = PairingCoordinator(gateway, scheduler=scheduler)
        ...
        scheduler.advance(2.0)  # fires everything due within 2 seconds
    """

    def __init__(self):
        self.now = 0.0
        self._timers: list[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.now + delay, callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        """Number of timers that are neither fired nor cancelled."""
        return sum(1 for t in self._timers if not t.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward and fire due timers in order.

        Args:
            seconds: How far to move the clock.

        Returns:
            Number of callbacks fired.
        """
        self.now += seconds
        fired = 0
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due <= self.now]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self._timers.remove(timer)
            timer.callback()
            fired += 1
        self._timers = [t for t in self._timers if not t.cancelled]
        return fired
