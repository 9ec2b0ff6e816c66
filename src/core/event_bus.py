import asyncio
import logging
import threading
from typing import Any, Callable

log = logging.getLogger("loop4r.event_bus")


class EventBus:
    """Publish/subscribe event system with a serialized delivery queue.

    ``publish()`` delivers synchronously on the calling thread. ``post()``
    is safe to call from any thread: once the bus is attached to an event
    loop, posted events are queued and delivered one at a time by
    ``dispatch_forever()``, so handlers never run concurrently. Before
    ``attach()`` posting falls back to a direct publish.
    """

    def __init__(self):
        self._subscribers: dict[str, list[Callable]] = {}
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue | None = None

    def subscribe(self, event_type: str, callback: Callable) -> None:
        with self._lock:
            if event_type not in self._subscribers:
                self._subscribers[event_type] = []
            self._subscribers[event_type].append(callback)
            log.debug("Subscribed to '%s': %s", event_type,
                      getattr(callback, "__name__", repr(callback)))

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        with self._lock:
            if event_type in self._subscribers:
                self._subscribers[event_type] = [
                    cb for cb in self._subscribers[event_type] if cb is not callback
                ]

    def publish(self, event_type: str, data: Any = None) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(event_type, []))

        for callback in callbacks:
            try:
                callback(data)
            except Exception:
                log.exception(
                    "Error in event handler for '%s': %s",
                    event_type,
                    getattr(callback, "__name__", repr(callback)),
                )

    # --- Serialized delivery ---

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route posted events through a queue owned by ``loop``."""
        self._loop = loop
        self._queue = asyncio.Queue()

    def post(self, event_type: str, data: Any = None) -> None:
        """Enqueue an event for the dispatch task (thread-safe)."""
        if self._loop is None or self._queue is None:
            self.publish(event_type, data)
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, (event_type, data))
        except RuntimeError:
            # loop already closed during shutdown
            log.debug("Dropped '%s' posted after event loop closed", event_type)

    async def dispatch_forever(self) -> None:
        """Deliver queued events in arrival order until cancelled."""
        if self._queue is None:
            raise RuntimeError("EventBus.attach() must be called before dispatching")
        while True:
            event_type, data = await self._queue.get()
            self.publish(event_type, data)
            self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been delivered."""
        if self._queue is not None:
            await self._queue.join()
