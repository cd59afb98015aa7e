"""
Collaborator facade for the UI shell.

These are the only calls the desktop shell makes into the core. Every call
returns a result envelope and never raises:
    {"success": True, ...payload...}
    {"success": False, "error": "<message>"}
"""

import logging

from shopsync.errors import ShopSyncError
from shopsync.events import CHANNEL_JOBS_UPDATED, CHANNEL_LAN_CLIENTS

logger = logging.getLogger("shopsync")


class ShopApi:
    def __init__(self, backend, settings, bus):
        self._backend = backend
        self._settings = settings
        self._bus = bus

    @property
    def role(self) -> str:
        return self._backend.role

    def _call(self, label: str, fn, *args):
        try:
            return {"success": True, **fn(*args)}
        except (ShopSyncError, ValueError) as e:
            logger.warning(f"[{label}] {e}")
            return {"success": False, "error": str(e)}
        except Exception as e:
            logger.exception(f"[{label}] unexpected failure")
            return {"success": False, "error": str(e) or e.__class__.__name__}

    # ── Health ────────────────────────────────────────────────────────────

    def ping(self) -> dict:
        """Local health on the master; a /health probe of the master on clients."""
        return self._call("ping", lambda: {"health": self._backend.health()})

    # ── Jobs ──────────────────────────────────────────────────────────────

    def get_jobs(self) -> dict:
        return self._call("get-jobs", lambda: {"jobs": self._backend.list_jobs()})

    def add_job(self, job: dict) -> dict:
        return self._call("add-job", lambda: {"job": self._backend.add_job(job)})

    def update_job(self, job_id: str, patch: dict) -> dict:
        return self._call("update-job", lambda: {"job": self._backend.update_job(job_id, patch)})

    def delete_job(self, job_id: str) -> dict:
        return self._call("delete-job", lambda: {"removedId": self._backend.delete_job(job_id)})

    # ── Settings ──────────────────────────────────────────────────────────

    def get_settings(self) -> dict:
        return self._call("get-settings", lambda: {"settings": self._settings.get()})

    def save_settings(self, patch: dict) -> dict:
        return self._call("save-settings", lambda: {"settings": self._settings.save(patch)})

    # ── Diagnostics ───────────────────────────────────────────────────────

    def get_client_info(self) -> dict:
        return self._call("get-client-info", self._backend.client_info)

    def get_db_info(self) -> dict:
        return self._call(
            "get-db-info",
            lambda: {**self._backend.info(), "role": self.role, "settingsPath": self._settings.filepath},
        )

    # ── Notifications ─────────────────────────────────────────────────────

    def subscribe(self, callback, channels=(CHANNEL_JOBS_UPDATED, CHANNEL_LAN_CLIENTS)):
        """
        Register ``callback(event)`` for change events on ``channels``.

        Returns the wrapper actually registered, for unsubscribe().
        """
        wanted = set(channels)

        def _filtered(event):
            if event.channel in wanted:
                callback(event)

        self._bus.subscribe(_filtered)
        return _filtered

    def unsubscribe(self, handle) -> None:
        self._bus.unsubscribe(handle)
