"""Change notification fan-out for store consumers."""
from __future__ import annotations

import asyncio
import logging
import threading

logger = logging.getLogger("claude_monitor.notifier")


class ChangeNotifier:
    """Publishes "state changed" signals to subscriber queues.

    Each subscriber queue holds at most one pending signal: the latest store
    version. Bursts of mutations therefore collapse into a single redraw for
    slow consumers. ``publish`` may be called from any thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[asyncio.Queue[int], asyncio.AbstractEventLoop] = {}
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[int]:
        """Create a subscriber queue bound to the running event loop."""
        queue: asyncio.Queue[int] = asyncio.Queue(maxsize=1)
        loop = asyncio.get_running_loop()
        with self._lock:
            self._subscribers[queue] = loop
        return queue

    def unsubscribe(self, queue: asyncio.Queue[int]) -> None:
        with self._lock:
            self._subscribers.pop(queue, None)

    def publish(self) -> int:
        """Bump the version and signal every subscriber. Returns the new version."""
        with self._lock:
            self._version += 1
            version = self._version
            subscribers = list(self._subscribers.items())

        try:
            current_loop = asyncio.get_running_loop()
        except RuntimeError:
            current_loop = None

        for queue, loop in subscribers:
            if loop is current_loop:
                _offer(queue, version)
            elif loop.is_closed():
                self.unsubscribe(queue)
            else:
                loop.call_soon_threadsafe(_offer, queue, version)
        return version


def _offer(queue: asyncio.Queue[int], version: int) -> None:
    """Replace any pending signal with the newest version."""
    while True:
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            break
    try:
        queue.put_nowait(version)
    except asyncio.QueueFull:
        logger.debug("Subscriber queue full, dropping change signal %s", version)
