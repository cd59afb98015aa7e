"""
LAN client — proxies job CRUD from a client node to the master.

Same interface as LocalJobBackend, HTTP transport. All state lives on the
master; this client holds nothing between calls.

Failure policy: no retry, no cache, no offline queue. Any transport error
or non-2xx answer becomes a single LanClientError carrying the master's
error message (or "HTTP <status>" when the body has none). A client whose
master is unreachable cannot read or write jobs.
"""

import logging
from urllib.parse import quote

import requests as _requests

from shopsync.auth import KEY_HEADER
from shopsync.errors import LanClientError
from shopsync.utils import get_node_id

logger = logging.getLogger("shopsync")

DEFAULT_LAN_PORT = 3030


def build_base_url(address: str, port: int = DEFAULT_LAN_PORT) -> str:
    """
    Turn a configured master address into a base URL.

    Accepts "host", "host:port" or a full "http://host:port" URL.
    """
    address = address.strip().rstrip("/")
    if address.startswith(("http://", "https://")):
        return address
    host_part = address.rsplit("]", 1)[-1]  # ignore colons inside [IPv6]
    if ":" in host_part:
        return f"http://{address}"
    return f"http://{address}:{port}"


class RemoteJobBackend:
    """Job backend for client nodes: every call is one HTTP round trip to the master."""

    role = "client"

    def __init__(self, master_address: str, settings, *, port: int = DEFAULT_LAN_PORT, timeout: float = 10, session=None):
        """
        Args:
            master_address: Master host, host:port, or base URL.
            settings: SettingsStore; its lanKey is attached to every call.
            port: LAN port used when the address has none.
            timeout: Seconds per HTTP request.
            session: Optional requests.Session (tests inject a fake).
        """
        self._base = build_base_url(master_address, port)
        self._settings = settings
        self._timeout = timeout
        self._session = session or _requests.Session()
        self._node_id = get_node_id()

    @property
    def base_url(self) -> str:
        return self._base

    # ── Internal helpers ──────────────────────────────────────────────────

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        key = self._settings.lan_key()
        if key:
            headers[KEY_HEADER] = key
        return headers

    def _request(self, method: str, path: str, body: dict = None) -> dict:
        """Send one request to the master and return its parsed JSON body."""
        url = f"{self._base}{path}"
        try:
            r = self._session.request(method, url, json=body, headers=self._headers(), timeout=self._timeout)
        except _requests.RequestException as exc:
            logger.warning(f"  [lan] {method} {path} failed: {exc}")
            raise LanClientError(f"Cannot reach master at {self._base}: {exc}") from exc

        try:
            data = r.json()
        except ValueError:
            data = None

        if not 200 <= r.status_code < 300:
            message = data.get("error") if isinstance(data, dict) and data.get("error") else f"HTTP {r.status_code}"
            logger.warning(f"  [lan] {method} {path} → {r.status_code}: {message}")
            raise LanClientError(message, status_code=r.status_code)

        logger.debug(f"  [lan] {method} {path} → {r.status_code}")
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _job_path(job_id: str) -> str:
        return f"/jobs/{quote(str(job_id), safe='')}"

    # ── Public API (identical to LocalJobBackend) ─────────────────────────

    def health(self) -> dict:
        return self._request("GET", "/health")

    def list_jobs(self) -> list:
        resp = self._request("GET", "/jobs")
        jobs = resp.get("jobs")
        return jobs if isinstance(jobs, list) else []

    def add_job(self, job: dict) -> dict:
        resp = self._request("POST", "/jobs", {"job": job})
        return resp.get("job")

    def update_job(self, job_id: str, patch: dict) -> dict:
        resp = self._request("PUT", self._job_path(job_id), {"patch": patch})
        return resp.get("job")

    def delete_job(self, job_id: str) -> str:
        resp = self._request("DELETE", self._job_path(job_id))
        return resp.get("removedId", job_id)

    def client_info(self) -> dict:
        # Only the master tracks peers
        return {"count": 0, "clients": []}

    def info(self) -> dict:
        return {"masterUrl": self._base, "node": self._node_id}
