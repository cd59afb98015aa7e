"""
Error taxonomy shared by the store, the LAN server and the LAN client.

Each server-side error carries the HTTP status it maps to, so the Flask
error handler can turn any of them into a JSON response without a lookup
table.
"""


class ShopSyncError(Exception):
    """Base class for all shopsync errors."""

    status_code = 500


class JobValidationError(ShopSyncError):
    """Malformed job payload or patch. Nothing is written."""

    status_code = 400


class JobNotFoundError(ShopSyncError):
    """Unknown job id on update / delete."""

    status_code = 404

    def __init__(self, job_id: str):
        super().__init__("Job not found")
        self.job_id = job_id


class StoreWriteError(ShopSyncError):
    """The store document could not be persisted."""

    status_code = 500


class LanClientError(ShopSyncError):
    """
    A proxied call to the master failed (transport error or non-2xx).

    status_code is the master's HTTP status, or None for transport failures.
    """

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code
