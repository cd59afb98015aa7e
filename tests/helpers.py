import json
from pathlib import Path

from shopsync.store import JobStore


def make_job(**overrides) -> dict:
    job = {"type": "DTF", "description": "Front logo, black tees", "quantity": 12, "status": "Queued"}
    job.update(overrides)
    return job


def write_store_doc(store: JobStore, doc: dict) -> None:
    Path(store.filepath).write_text(json.dumps(doc), encoding="utf-8")


def read_store_doc(store: JobStore) -> dict:
    return json.loads(Path(store.filepath).read_text(encoding="utf-8"))
