"""
Auth gate: optional shared secret for the LAN API.

The secret lives in the settings document and is re-read on every check,
so changing it from the UI takes effect without a restart.
"""

import hmac
import logging

logger = logging.getLogger("shopsync")

KEY_HEADER = "X-SHOPSYNC-KEY"
KEY_QUERY_PARAM = "key"

# Paths that carry job data. Everything else (health, preflight) is open.
PROTECTED_PREFIXES = ("/jobs", "/db", "/clients", "/events")


def needs_auth(path: str) -> bool:
    return path.startswith(PROTECTED_PREFIXES)


class AuthGate:
    """
    Decide whether a request may touch job data.

    No secret configured → every request is allowed (open mode), unless
    ``require_key`` is set, in which case nothing is allowed until a secret
    exists. With a secret, the caller's token from the header or the
    ``key`` query parameter must match it exactly after trimming.
    """

    def __init__(self, settings, *, require_key: bool = False):
        self._settings = settings
        self._require_key = require_key

    def is_open(self) -> bool:
        return self._settings.lan_key() is None and not self._require_key

    def is_authorized(self, headers, args) -> bool:
        configured = self._settings.lan_key()
        if configured is None:
            return not self._require_key

        provided = headers.get(KEY_HEADER) or args.get(KEY_QUERY_PARAM) or ""
        provided = str(provided).strip()
        if not provided:
            return False
        return hmac.compare_digest(provided.encode("utf-8"), configured.encode("utf-8"))

    def warn_if_open(self) -> None:
        """Log the startup warning for open mode."""
        if self._settings.lan_key() is not None:
            logger.info("LAN auth: shared key required for job endpoints")
        elif self._require_key:
            logger.warning("LAN auth: require_key is set but no lanKey is configured — job endpoints will refuse all requests")
        else:
            logger.warning(
                "LAN auth: no lanKey configured — job endpoints are OPEN to anyone on this network. "
                "Set a lanKey in settings on untrusted LANs."
            )
