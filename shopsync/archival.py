"""
Archival policy and status-transition side effects.

Both functions mutate job dicts in place. They never touch the disk; the
store decides whether to persist based on their results.
"""

import logging
from datetime import timedelta

from shopsync.utils import parse_timestamp, to_iso

logger = logging.getLogger("shopsync")

STATUS_COMPLETED = "Completed"
SOURCE_USER = "user"
SOURCE_SYSTEM = "system"

DEFAULT_ARCHIVE_AFTER_DAYS = 30

_LIFECYCLE_FIELDS = ("completedAt", "completedAtSource", "archived", "archivedAt")


def clear_orphaned_archive(job: dict) -> bool:
    """Un-archive a job that has no completedAt. Returns True if it changed."""
    if job.get("archived") is True and not job.get("completedAt"):
        job["archived"] = False
        job["archivedAt"] = None
        return True
    return False


def apply_archival_policy(jobs: list, now, threshold_days: int = DEFAULT_ARCHIVE_AFTER_DAYS) -> bool:
    """
    Run one archival pass over the full job list.

    Rules, per job:
      - archived but no completedAt → un-archive (heals bad earlier archival)
      - Completed by the user at least ``threshold_days`` ago → archive and
        append an audit entry

    Completions stamped by the system (e.g. bulk imports) are never
    auto-archived. Returns True if any job changed.
    """
    changed = False
    threshold = timedelta(days=threshold_days)
    stamp = to_iso(now)

    for job in jobs:
        if clear_orphaned_archive(job):
            changed = True
            logger.info(f"Un-archived {job.get('jobNumber') or job.get('id')} (archived without completedAt)")
            continue

        if job.get("status") != STATUS_COMPLETED or job.get("archived") is True:
            continue
        if job.get("completedAtSource") != SOURCE_USER:
            continue
        completed_at = parse_timestamp(job.get("completedAt"))
        if completed_at is None or now - completed_at < threshold:
            continue

        job["archived"] = True
        job["archivedAt"] = stamp
        history = job.get("statusHistory")
        if not isinstance(history, list):
            history = []
            job["statusHistory"] = history
        history.append({"at": stamp, "message": f"Auto-archived (Completed {threshold_days}+ days ago)"})
        changed = True
        logger.info(f"Auto-archived {job.get('jobNumber') or job.get('id')}")

    return changed


def apply_status_transition(existing: dict, patch: dict, merged: dict, now) -> None:
    """
    Apply the lifecycle side effects of a patch to ``merged``.

    Only runs when the patch carries ``status``:
      - → Completed with no completedAt: stamp completedAt = now; source is
        the patch's completedAtSource, else "system"
      - → anything else: clear completedAt / completedAtSource / archived /
        archivedAt (reopening always un-archives)
    """
    if "status" not in patch:
        return

    if merged.get("status") == STATUS_COMPLETED:
        if not existing.get("completedAt"):
            merged["completedAt"] = patch.get("completedAt") or to_iso(now)
            merged["completedAtSource"] = patch.get("completedAtSource") or SOURCE_SYSTEM
        elif patch.get("completedAtSource"):
            merged["completedAtSource"] = patch["completedAtSource"]
        return

    for key in _LIFECYCLE_FIELDS:
        merged[key] = None
