"""
Tick sources - host hooks that drive the task scheduler once per iteration.

The scheduler only ever needs subscribe/unsubscribe. ManualTickSource is the
headless host (CLI loop, tests); TextualTickSource rides on a Textual timer.
"""

import time
import logging
from typing import TYPE_CHECKING, Callable, Optional, Protocol

if TYPE_CHECKING:
    from textual.message_pump import MessagePump
    from textual.timer import Timer

logger = logging.getLogger(__name__)

TickCallback = Callable[[], None]


class TickSource(Protocol):
    """A host-owned per-iteration callback hook."""

    def subscribe(self, callback: TickCallback) -> None:
        ...

    def unsubscribe(self, callback: TickCallback) -> None:
        ...


class ManualTickSource:
    """Tick source driven explicitly by calling tick()."""

    def __init__(self):
        self._callbacks: list[TickCallback] = []
        self.tick_count = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)

    def subscribe(self, callback: TickCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unsubscribe(self, callback: TickCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def tick(self) -> None:
        """Run one host iteration."""
        self.tick_count += 1
        for callback in list(self._callbacks):
            callback()

    def run_until_idle(self, max_ticks: Optional[int] = None, interval: float = 0.0) -> int:
        """Tick until nothing is subscribed any more.

        Args:
            max_ticks: Stop after this many ticks even if still busy
            interval: Seconds to sleep between ticks

        Returns:
            Number of ticks run
        """
        ticks = 0
        while self._callbacks:
            if max_ticks is not None and ticks >= max_ticks:
                logger.warning(f"Tick loop stopped after {ticks} ticks with work still pending")
                break
            self.tick()
            ticks += 1
            if interval and self._callbacks:
                time.sleep(interval)
        return ticks


class TextualTickSource:
    """Tick source backed by a Textual app/widget interval timer.

    The timer only exists while something is subscribed, so an idle
    scheduler costs the app nothing.
    """

    def __init__(self, host: "MessagePump", interval: float = 1 / 30):
        self.host = host
        self.interval = interval
        self._callbacks: list[TickCallback] = []
        self._timer: Optional["Timer"] = None

    @property
    def is_running(self) -> bool:
        return self._timer is not None

    def subscribe(self, callback: TickCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)
        if self._timer is None:
            self._timer = self.host.set_interval(self.interval, self._on_timer, name="banana-tick")

    def unsubscribe(self, callback: TickCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)
        if not self._callbacks and self._timer is not None:
            self._timer.stop()
            self._timer = None

    def _on_timer(self) -> None:
        for callback in list(self._callbacks):
            callback()
