"""
Record Store — the master's single JSON document of jobs.

The document has this structure:
{
  "jobs": [ {...job...}, ... ],      # most-recent-first
  "nextJobSeq": 1042                 # next number to hand out
}

Every operation is a load → mutate → save cycle under one lock, so there is
exactly one writer at a time whether calls come from the local UI or from
LAN request threads. The lock is a thread lock plus a filelock on
``<file>.lock``; a second process pointed at the same file also waits.

Unreadable documents are treated as empty rather than crashing the node.
The next write replaces the unreadable file, so operators should keep
backups.
"""

import logging
import os
import threading
import uuid
from contextlib import contextmanager

from filelock import FileLock

from shopsync.archival import (
    DEFAULT_ARCHIVE_AFTER_DAYS,
    apply_archival_policy,
    apply_status_transition,
    clear_orphaned_archive,
)
from shopsync.errors import JobNotFoundError, StoreWriteError
from shopsync.utils import read_json_safe, to_iso, utc_now, write_json_atomic
from shopsync.validation import merge_status_history, validate_new_job, validate_patch

logger = logging.getLogger("shopsync")

DB_FILENAME = "shopsync_db.json"


def make_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:12]}"


class JobStore:
    """Durable job collection plus its numbering counter."""

    def __init__(
        self,
        filepath: str,
        *,
        job_number_prefix: str = "JOB-",
        job_number_start: int = 1001,
        job_types=("DTF", "Embroidery"),
        archive_after_days: int = DEFAULT_ARCHIVE_AFTER_DAYS,
        clock=utc_now,
    ):
        """
        Args:
            filepath: Path to the store JSON document.
            job_number_prefix: Text prepended to every jobNumber.
            job_number_start: First number handed out on an empty store.
            job_types: Accepted values for a job's ``type``.
            archive_after_days: Age of a user completion before auto-archive.
            clock: Callable returning the current aware datetime.
        """
        self._filepath = filepath
        self._prefix = job_number_prefix
        self._start = job_number_start
        self._job_types = tuple(job_types)
        self._archive_after_days = archive_after_days
        self._clock = clock
        if os.path.dirname(filepath):
            os.makedirs(os.path.dirname(filepath), exist_ok=True)
        self._mutex = threading.RLock()
        self._file_lock = FileLock(filepath + ".lock", timeout=30)

    @classmethod
    def from_config(cls, config: dict) -> "JobStore":
        return cls(
            os.path.join(config["data_dir"], DB_FILENAME),
            job_number_prefix=config["job_number_prefix"],
            job_number_start=config["job_number_start"],
            job_types=config["job_types"],
            archive_after_days=config["archive_after_days"],
        )

    @property
    def filepath(self) -> str:
        return self._filepath

    # ── Document I/O ──────────────────────────────────────────────────────

    def load(self) -> dict:
        """Read the store document, falling back to an empty one."""
        doc = read_json_safe(self._filepath, None)
        if doc is None:
            return {"jobs": [], "nextJobSeq": None}
        if not isinstance(doc, dict):
            logger.warning(f"Store document {self._filepath} is not an object — starting empty")
            return {"jobs": [], "nextJobSeq": None}

        jobs = doc.get("jobs")
        if not isinstance(jobs, list):
            jobs = []
        doc["jobs"] = [j for j in jobs if isinstance(j, dict)]
        seq = doc.get("nextJobSeq")
        if not isinstance(seq, int) or isinstance(seq, bool):
            doc["nextJobSeq"] = None
        return doc

    def save(self, doc: dict) -> None:
        """Persist the whole document, replacing the previous version."""
        try:
            write_json_atomic(self._filepath, doc)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write store document {self._filepath}: {e}")
            raise StoreWriteError(f"Could not save job database: {e}") from e
        logger.debug(f"Saved {len(doc.get('jobs', []))} jobs to {self._filepath}")

    @contextmanager
    def transaction(self):
        """
        Hold the writer lock around load → mutate → save.

        Yields the loaded document. It is saved on normal exit; an exception
        inside the block leaves the file untouched.
        """
        with self._mutex, self._file_lock:
            doc = self.load()
            yield doc
            self.save(doc)

    # ── Numbering ─────────────────────────────────────────────────────────

    def next_job_number(self, doc: dict) -> str:
        """
        Hand out the next jobNumber and advance the counter in ``doc``.

        When the counter is missing it is derived once from the highest
        existing number with our prefix, so numbering keeps increasing even
        for documents written before the counter existed.
        """
        if doc.get("nextJobSeq") is None:
            highest = self._start - 1
            for job in doc.get("jobs", []):
                number = job.get("jobNumber")
                if not isinstance(number, str) or not number.startswith(self._prefix):
                    continue
                try:
                    highest = max(highest, int(number[len(self._prefix):]))
                except ValueError:
                    continue
            doc["nextJobSeq"] = highest + 1
            logger.info(f"Job counter derived from existing jobs — next is {self._prefix}{doc['nextJobSeq']}")

        current = doc["nextJobSeq"]
        doc["nextJobSeq"] = current + 1
        return f"{self._prefix}{current}"

    # ── Public API ────────────────────────────────────────────────────────

    def list_jobs(self) -> list:
        """Return all jobs after running the archival policy."""
        with self._mutex, self._file_lock:
            doc = self.load()
            if apply_archival_policy(doc["jobs"], self._clock(), self._archive_after_days):
                self.save(doc)
            return doc["jobs"]

    def add_job(self, job: dict) -> dict:
        """Validate, number and prepend a new job. Returns the stored record."""
        clean = validate_new_job(job, self._job_types)
        with self.transaction() as doc:
            now = self._clock()
            stamp = to_iso(now)
            known_ids = {j.get("id") for j in doc["jobs"]}
            job_id = make_job_id()
            while job_id in known_ids:
                job_id = make_job_id()
            record = {
                **clean,
                "id": job_id,
                "jobNumber": self.next_job_number(doc),
                "createdAt": stamp,
                "updatedAt": stamp,
            }
            apply_status_transition({}, clean, record, now)
            clear_orphaned_archive(record)
            doc["jobs"].insert(0, record)
        logger.info(f"Added {record['jobNumber']} ({record['id']})")
        return record

    def update_job(self, job_id: str, patch: dict) -> dict:
        """Merge ``patch`` over an existing job. Raises JobNotFoundError."""
        clean = validate_patch(patch, self._job_types)
        with self.transaction() as doc:
            idx = self._index_of(doc, job_id)
            existing = doc["jobs"][idx]
            now = self._clock()

            merged = {**existing, **clean}
            if "statusHistory" in clean:
                merged["statusHistory"] = merge_status_history(
                    existing.get("statusHistory"), clean["statusHistory"]
                )
            apply_status_transition(existing, clean, merged, now)
            clear_orphaned_archive(merged)
            for key in ("id", "jobNumber", "createdAt"):
                if key in existing:
                    merged[key] = existing[key]
            merged["updatedAt"] = to_iso(now)
            doc["jobs"][idx] = merged
        logger.info(f"Updated {merged.get('jobNumber') or job_id}")
        return merged

    def delete_job(self, job_id: str) -> str:
        """Remove a job. Returns the removed id. Raises JobNotFoundError."""
        with self.transaction() as doc:
            idx = self._index_of(doc, job_id)
            removed = doc["jobs"].pop(idx)
        logger.info(f"Deleted {removed.get('jobNumber') or job_id}")
        return str(removed.get("id"))

    def info(self) -> dict:
        """Operator diagnostics: where the document lives and how big it is."""
        with self._mutex, self._file_lock:
            doc = self.load()
        return {"dbPath": self._filepath, "jobsCount": len(doc["jobs"])}

    # ── Private helpers ───────────────────────────────────────────────────

    @staticmethod
    def _index_of(doc: dict, job_id: str) -> int:
        for idx, job in enumerate(doc["jobs"]):
            if str(job.get("id")) == str(job_id):
                return idx
        raise JobNotFoundError(job_id)
