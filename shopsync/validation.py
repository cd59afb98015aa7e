"""
Job payload validation, applied at the store boundary.

Both entry points (local CRUD on the master and POST/PUT over the LAN) go
through the same checks, so a record that reaches disk always satisfies
the same invariants regardless of where it came from.
"""

import math

from shopsync.errors import JobValidationError

# Keys the store owns; callers can never set them.
STORE_MANAGED_FIELDS = ("id", "jobNumber", "createdAt", "updatedAt")

COMPLETED_SOURCES = ("user", "system")

_STRING_FIELDS = ("dueDate", "priority", "status")
_OBJECT_FIELDS = ("dtf", "emb")


def coerce_quantity(value, *, allow_blank: bool = True, default=1):
    """
    Accept a number or numeric string. Blank/missing becomes ``default``
    when ``allow_blank`` is set.
    """
    if value is None or value == "":
        if allow_blank:
            return default
        raise JobValidationError("quantity is required")
    if isinstance(value, bool):
        raise JobValidationError("quantity must be a number")
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise JobValidationError("quantity must be a number") from None
    if not math.isfinite(n):
        raise JobValidationError("quantity must be a number")
    return int(n) if n.is_integer() else n


def _check_common(fields: dict, job_types) -> None:
    if "type" in fields and fields["type"] not in job_types:
        raise JobValidationError("Invalid job type")
    if "description" in fields:
        desc = fields["description"]
        if not isinstance(desc, str) or not desc.strip():
            raise JobValidationError("Description is required")
    for key in _STRING_FIELDS:
        value = fields.get(key)
        if value is not None and not isinstance(value, str):
            raise JobValidationError(f"{key} must be a string")
    for key in _OBJECT_FIELDS:
        value = fields.get(key)
        if value is not None and not isinstance(value, dict):
            raise JobValidationError(f"{key} must be an object")
    source = fields.get("completedAtSource")
    if source is not None and source not in COMPLETED_SOURCES:
        raise JobValidationError("completedAtSource must be 'user' or 'system'")
    history = fields.get("statusHistory")
    if history is not None:
        if not isinstance(history, list) or not all(isinstance(e, dict) for e in history):
            raise JobValidationError("statusHistory must be a list of objects")


def validate_new_job(job, job_types) -> dict:
    """
    Validate a job payload for creation and return a normalized copy.

    Store-managed fields supplied by the caller are dropped.
    """
    if not isinstance(job, dict):
        raise JobValidationError("Invalid job payload")
    if "type" not in job:
        raise JobValidationError("Invalid job type")
    if "description" not in job:
        raise JobValidationError("Description is required")
    _check_common(job, job_types)

    clean = {k: v for k, v in job.items() if k not in STORE_MANAGED_FIELDS}
    clean["quantity"] = coerce_quantity(job.get("quantity"))
    clean.setdefault("statusHistory", [])
    return clean


def validate_patch(patch, job_types) -> dict:
    """Validate a partial update and return a normalized copy."""
    if not isinstance(patch, dict):
        raise JobValidationError("Invalid patch payload")
    _check_common(patch, job_types)

    clean = {k: v for k, v in patch.items() if k not in STORE_MANAGED_FIELDS}
    if "quantity" in clean:
        clean["quantity"] = coerce_quantity(clean["quantity"])
    return clean


def merge_status_history(existing: list, proposed: list) -> list:
    """
    Return the audit trail after a patch.

    The trail is append-only: ``proposed`` must start with every existing
    entry, and only the entries after that prefix are added.
    """
    existing = list(existing or [])
    if proposed[:len(existing)] != existing:
        raise JobValidationError("statusHistory is append-only")
    return existing + list(proposed[len(existing):])
