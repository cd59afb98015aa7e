"""
Client liveness tracker (master only).

Records which peer addresses have contacted the master recently, purely so
the operator can see which machines are polling. It has no effect on data.
"""

import re
import threading
import time

from shopsync.events import LanClients

CLIENT_TTL = 120        # seconds without contact before a peer is dropped
EMIT_INTERVAL = 2       # minimum seconds between unforced notifications

_MAPPED_V4 = re.compile(r"::ffff:(\d+\.\d+\.\d+\.\d+)", re.IGNORECASE)


def normalize_address(raw) -> str:
    """Collapse IPv4-mapped IPv6 addresses to plain IPv4."""
    if not raw:
        return "unknown"
    text = str(raw)
    match = _MAPPED_V4.search(text)
    return match.group(1) if match else text


class ClientTracker:
    """
    Peer address → last-seen table.

    Each entry keeps ``lastSeen`` (any request, authorized or not) and
    ``lastAuthorizedAt`` (None until the peer passes the auth gate).
    Timestamps are epoch milliseconds.
    """

    def __init__(self, bus=None, *, ttl: int = CLIENT_TTL, emit_interval: float = EMIT_INTERVAL, clock=time.time):
        self._bus = bus
        self._ttl = ttl
        self._emit_interval = emit_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._clients: dict[str, dict] = {}
        self._last_emit = 0.0
        self._last_count = 0

    def touch(self, raw_address) -> str:
        """Refresh the last-seen time for a peer. Returns the normalized address."""
        addr = normalize_address(raw_address)
        now_ms = int(self._clock() * 1000)
        with self._lock:
            entry = self._clients.setdefault(addr, {"lastAuthorizedAt": None})
            entry["lastSeen"] = now_ms
        self._emit_if_needed()
        return addr

    def mark_authorized(self, raw_address) -> None:
        addr = normalize_address(raw_address)
        now_ms = int(self._clock() * 1000)
        with self._lock:
            entry = self._clients.setdefault(addr, {"lastSeen": now_ms})
            entry["lastAuthorizedAt"] = now_ms

    def sweep(self) -> int:
        """Evict peers unseen for longer than the TTL. Returns how many."""
        cutoff_ms = int((self._clock() - self._ttl) * 1000)
        with self._lock:
            stale = [addr for addr, e in self._clients.items() if e.get("lastSeen", 0) < cutoff_ms]
            for addr in stale:
                del self._clients[addr]
        if stale:
            self._emit_if_needed(force=True)
        return len(stale)

    def snapshot(self) -> dict:
        """Sweep, then return ``{count, clients: [{ip, lastSeen, lastAuthorizedAt}]}``."""
        self.sweep()
        with self._lock:
            clients = [
                {"ip": addr, "lastSeen": e.get("lastSeen"), "lastAuthorizedAt": e.get("lastAuthorizedAt")}
                for addr, e in self._clients.items()
            ]
        return {"count": len(clients), "clients": clients}

    def is_authorized_peer(self, raw_address) -> bool:
        with self._lock:
            entry = self._clients.get(normalize_address(raw_address))
            return bool(entry and entry.get("lastAuthorizedAt"))

    def _emit_if_needed(self, force: bool = False) -> None:
        """Notify at most every emit_interval unless the count changed or forced."""
        now = self._clock()
        with self._lock:
            count = len(self._clients)
            if not force and count == self._last_count and (now - self._last_emit) < self._emit_interval:
                return
            self._last_count = count
            self._last_emit = now
            clients = [{"ip": addr, "lastSeen": e.get("lastSeen")} for addr, e in self._clients.items()]
        if self._bus is not None:
            self._bus.emit(LanClients(count=count, clients=clients))
