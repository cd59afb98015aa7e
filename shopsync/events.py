"""
Change events pushed from the core to the local UI.

The core only emits typed events onto an EventBus. Subscribers either
register a callback or take a bounded queue (used by the SSE stream on
the LAN server). How and whether an event reaches a screen is the
subscriber's business: a slow queue drops events, a failing callback is
logged, and neither affects the request that emitted the event.
"""

import json
import logging
import queue
import threading
from dataclasses import asdict, dataclass, field

logger = logging.getLogger("shopsync")

CHANNEL_JOBS_UPDATED = "jobs-updated"
CHANNEL_LAN_CLIENTS = "lan-clients"


@dataclass(frozen=True)
class JobsUpdated:
    action: str           # "add" | "update" | "delete"
    id: str
    source: str = "lan"   # "lan" | "local"

    channel = CHANNEL_JOBS_UPDATED


@dataclass(frozen=True)
class LanClients:
    count: int
    clients: list = field(default_factory=list)

    channel = CHANNEL_LAN_CLIENTS


class EventBus:
    """Fan-out of change events to callbacks and queues."""

    def __init__(self):
        self._lock = threading.Lock()
        self._callbacks: list = []
        self._queues: list[queue.Queue] = []

    def subscribe(self, callback) -> None:
        """Register ``callback(event)`` for every future event."""
        with self._lock:
            self._callbacks.append(callback)

    def unsubscribe(self, callback) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def open_queue(self, maxsize: int = 500) -> queue.Queue:
        """Return a bounded queue that receives every future event."""
        q = queue.Queue(maxsize=maxsize)
        with self._lock:
            self._queues.append(q)
        return q

    def close_queue(self, q: queue.Queue) -> None:
        with self._lock:
            if q in self._queues:
                self._queues.remove(q)

    def emit(self, event) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
            queues = list(self._queues)

        for q in queues:
            try:
                q.put_nowait(event)
            except queue.Full:
                pass  # slow subscriber, drop the event

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Event subscriber failed on {event.channel}: {e}")


def format_sse(event) -> str:
    return f"event: {event.channel}\ndata: {json.dumps(asdict(event))}\n\n"


def stream_events(bus: EventBus, keepalive: float = 30):
    """
    Generator of Server-Sent-Event frames for every event on ``bus``.

    The first frame is a comment sent right after subscribing, so a caller
    that has received it will see every later event.
    """
    sub_q = bus.open_queue()
    try:
        yield ": connected\n\n"
        while True:
            try:
                event = sub_q.get(timeout=keepalive)
                yield format_sse(event)
            except queue.Empty:
                # Keepalive comment prevents idle proxies from closing the stream
                yield ": keepalive\n\n"
    finally:
        bus.close_queue(sub_q)
