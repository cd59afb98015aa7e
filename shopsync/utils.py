"""
Utility functions: config loading, logging setup, JSON persistence and
timestamp helpers.
"""

import os
import json
import logging
import socket
from datetime import datetime, timezone

import yaml


PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
LOG_DIR = os.path.join(PROJECT_ROOT, "logs")

ROLE_MASTER = "master"
ROLE_CLIENT = "client"

logger = logging.getLogger("shopsync")


def get_node_id() -> str:
    """Return a stable machine identifier (hostname) for this node."""
    return socket.gethostname()


def setup_logging(log_dir: str = LOG_DIR) -> logging.Logger:
    """Configure and return the project logger."""
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(log_dir, f"shopsync_{timestamp}.log")

    logger = logging.getLogger("shopsync")
    logger.setLevel(logging.DEBUG)

    # Prevent duplicate handlers on repeated calls
    if logger.handlers:
        return logger

    # Console handler
    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    ch.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)-8s %(message)s", datefmt="%H:%M:%S"))

    # File handler
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)-8s %(name)s — %(message)s"))

    logger.addHandler(ch)
    logger.addHandler(fh)

    # Werkzeug logs every request at INFO; the LAN server logs its own
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    logger.info(f"Log file: {log_file}")
    return logger


def load_config(config_path: str = None) -> dict:
    """Load and validate config.yaml, applying safe defaults for optional keys."""
    if config_path is None:
        config_path = os.path.join(PROJECT_ROOT, "config.yaml")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    return apply_config_defaults(config)


def apply_config_defaults(config: dict) -> dict:
    """Fill in defaults and validate an already-parsed config mapping."""
    # Node role (fixed, never elected)
    role = config.setdefault("role", ROLE_MASTER)
    if role not in (ROLE_MASTER, ROLE_CLIENT):
        raise ValueError(f"Invalid role '{role}'. Must be '{ROLE_MASTER}' or '{ROLE_CLIENT}'.")
    config.setdefault("master_address", "")
    if config["master_address"] is None:
        config["master_address"] = ""

    # LAN server
    config.setdefault("lan_host", "0.0.0.0")
    port = config.setdefault("lan_port", 3030)
    if not isinstance(port, int) or not 1 <= port <= 65535:
        raise ValueError(f"lan_port must be an int between 1 and 65535, got: {port!r}")

    body = config.setdefault("max_body_bytes", 5_000_000)
    if not isinstance(body, int) or body < 1024:
        raise ValueError(f"max_body_bytes must be int >= 1024, got: {body!r}")

    timeout = config.setdefault("request_timeout", 10)
    if not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ValueError(f"request_timeout must be a positive number, got: {timeout!r}")

    ttl = config.setdefault("client_ttl", 120)
    if not isinstance(ttl, int) or ttl < 1:
        raise ValueError(f"client_ttl must be int >= 1, got: {ttl!r}")

    # Persistence
    data_dir = config.setdefault("data_dir", os.path.join(PROJECT_ROOT, "data"))
    if not os.path.isabs(data_dir):
        config["data_dir"] = os.path.join(PROJECT_ROOT, data_dir)

    # Product policy
    days = config.setdefault("archive_after_days", 30)
    if not isinstance(days, int) or days < 1:
        raise ValueError(f"archive_after_days must be int >= 1, got: {days!r}")
    config.setdefault("require_key", False)

    # Job numbering
    prefix = config.setdefault("job_number_prefix", "JOB-")
    if not isinstance(prefix, str):
        raise ValueError(f"job_number_prefix must be a string, got: {prefix!r}")
    start = config.setdefault("job_number_start", 1001)
    if not isinstance(start, int) or start < 0:
        raise ValueError(f"job_number_start must be int >= 0, got: {start!r}")

    types = config.setdefault("job_types", ["DTF", "Embroidery"])
    if not isinstance(types, list) or not types or not all(isinstance(t, str) for t in types):
        raise ValueError(f"job_types must be a non-empty list of strings, got: {types!r}")

    return config


# ── JSON documents ───────────────────────────────────────────────────────

def read_json_safe(filepath: str, fallback):
    """
    Read a JSON document, returning ``fallback`` when the file is missing,
    empty or malformed. Never raises.
    """
    if not os.path.exists(filepath):
        return fallback
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        logger.warning(f"Could not read {filepath}: {e} — using defaults")
        return fallback
    if not raw.strip():
        return fallback
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Malformed JSON in {filepath}: {e} — using defaults")
        return fallback


def write_json_atomic(filepath: str, data) -> None:
    """Write a JSON document atomically (temp file + rename). Raises OSError."""
    tmp = filepath + ".tmp"
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, filepath)
    except (OSError, TypeError, ValueError):
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


# ── Timestamps ───────────────────────────────────────────────────────────

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    return dt.isoformat()


def parse_timestamp(value):
    """
    Parse a stored timestamp into an aware datetime.

    Accepts ISO-8601 strings (with or without a trailing "Z") and legacy
    epoch-millisecond numbers. Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    return None
