"""
Job backends and role resolution.

Two classes share one interface (list_jobs / add_job / update_job /
delete_job / health / client_info / info):
  LocalJobBackend  — master role, executes against the JobStore
  RemoteJobBackend — client role, proxies to the master (lan_client.py)

Usage:
    from shopsync.backends import build_backend
    backend = build_backend(config, settings, bus)
    jobs = backend.list_jobs()
"""

import logging

from shopsync import __version__
from shopsync.events import JobsUpdated
from shopsync.lan_client import RemoteJobBackend
from shopsync.liveness import ClientTracker
from shopsync.store import JobStore
from shopsync.utils import ROLE_CLIENT, ROLE_MASTER, to_iso, utc_now

logger = logging.getLogger("shopsync")


class LocalJobBackend:
    """Job backend for the master node: direct store access."""

    role = ROLE_MASTER

    def __init__(self, store: JobStore, bus, tracker: ClientTracker, *, port: int = 3030):
        self.store = store
        self.bus = bus
        self.tracker = tracker
        self._port = port

    def health(self) -> dict:
        return {"ok": True, "role": ROLE_MASTER, "version": __version__, "port": self._port, "time": to_iso(utc_now())}

    def list_jobs(self) -> list:
        return self.store.list_jobs()

    def add_job(self, job: dict) -> dict:
        record = self.store.add_job(job)
        self.bus.emit(JobsUpdated(action="add", id=record["id"], source="local"))
        return record

    def update_job(self, job_id: str, patch: dict) -> dict:
        record = self.store.update_job(job_id, patch)
        self.bus.emit(JobsUpdated(action="update", id=str(job_id), source="local"))
        return record

    def delete_job(self, job_id: str) -> str:
        removed_id = self.store.delete_job(job_id)
        self.bus.emit(JobsUpdated(action="delete", id=removed_id, source="local"))
        return removed_id

    def client_info(self) -> dict:
        return self.tracker.snapshot()

    def info(self) -> dict:
        return self.store.info()


def build_backend(config: dict, settings, bus, *, store: JobStore = None, tracker: ClientTracker = None):
    """
    Build and return the backend for this node's configured role.

    role == "master" → LocalJobBackend over the JobStore
    role == "client" → RemoteJobBackend against master_address (config), or
                       the serverIp saved in settings when config has none

    The role is resolved once here; callers never re-probe it.
    """
    role = config.get("role", ROLE_MASTER)

    if role == ROLE_CLIENT:
        address = (config.get("master_address") or "").strip() or settings.server_address()
        if not address:
            raise ValueError(
                "Client role needs a master address: set master_address in config.yaml "
                "or serverIp in settings."
            )
        backend = RemoteJobBackend(
            address,
            settings,
            port=config.get("lan_port", 3030),
            timeout=config.get("request_timeout", 10),
        )
        logger.info(f"Role: client — proxying jobs to {backend.base_url}")
        return backend

    if store is None:
        store = JobStore.from_config(config)
    if tracker is None:
        tracker = ClientTracker(bus, ttl=config.get("client_ttl", 120))
    logger.info(f"Role: master — job database at {store.filepath}")
    return LocalJobBackend(store, bus, tracker, port=config.get("lan_port", 3030))
