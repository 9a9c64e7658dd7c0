"""
Progress broadcast for generation tasks.

Listeners receive (progress, message) with progress in [0, 1]. They are
called on whatever thread drives the scheduler ticks.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator

logger = logging.getLogger(__name__)

ProgressListener = Callable[[float, str], None]


class ProgressBroadcaster:
    """Publish/subscribe hub for progress updates."""

    def __init__(self):
        self._listeners: list[ProgressListener] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: ProgressListener) -> None:
        """Add a listener."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: ProgressListener) -> None:
        """Remove a listener."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    @contextmanager
    def subscription(self, listener: ProgressListener) -> Iterator[ProgressListener]:
        """Subscribe for the duration of a with-block."""
        self.subscribe(listener)
        try:
            yield listener
        finally:
            self.unsubscribe(listener)

    def publish(self, progress: float, message: str = "") -> None:
        """Send an update to every listener."""
        for listener in list(self._listeners):
            try:
                listener(progress, message)
            except Exception as e:
                logger.error(f"Progress listener error: {e}")
