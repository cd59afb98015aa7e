"""
Settings document — per-node preferences edited from the UI.

Stored as a single JSON object next to the job database:
{
  "serverIp": "192.168.1.20",   # master address used by client nodes
  "lanKey":   "...",            # shared secret; empty = open mode
  ...                           # any other UI preferences
}
"""

import logging
import os
import threading

from shopsync.errors import StoreWriteError
from shopsync.utils import read_json_safe, write_json_atomic

logger = logging.getLogger("shopsync")

SETTINGS_FILENAME = "shopsync_settings.json"

DEFAULT_SETTINGS = {"serverIp": "", "lanKey": ""}


class SettingsStore:
    def __init__(self, filepath: str):
        self._filepath = filepath
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: dict) -> "SettingsStore":
        return cls(os.path.join(config["data_dir"], SETTINGS_FILENAME))

    @property
    def filepath(self) -> str:
        return self._filepath

    def get(self) -> dict:
        """Return the current settings merged over the defaults."""
        data = read_json_safe(self._filepath, {})
        if not isinstance(data, dict):
            logger.warning(f"Settings document {self._filepath} is not an object — using defaults")
            data = {}
        return {**DEFAULT_SETTINGS, **data}

    def save(self, patch: dict) -> dict:
        """Merge ``patch`` into the stored settings and return the result."""
        if not isinstance(patch, dict):
            raise ValueError("Settings patch must be an object")
        with self._lock:
            merged = {**self.get(), **patch}
            try:
                write_json_atomic(self._filepath, merged)
            except (OSError, TypeError, ValueError) as e:
                raise StoreWriteError(f"Could not save settings: {e}") from e
        logger.info(f"Settings saved to {self._filepath} (keys: {sorted(patch)})")
        return merged

    def lan_key(self):
        """Return the trimmed shared secret, or None when unset."""
        key = self.get().get("lanKey")
        if key is None:
            return None
        key = str(key).strip()
        return key or None

    def server_address(self) -> str:
        return str(self.get().get("serverIp") or "").strip()
