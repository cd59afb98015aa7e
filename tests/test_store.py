from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from shopsync.errors import JobNotFoundError, JobValidationError
from shopsync.store import JobStore
from tests.helpers import make_job, read_store_doc, write_store_doc


def _seq(job_number: str) -> int:
    assert job_number.startswith("JOB-")
    return int(job_number[len("JOB-"):])


def test_job_numbers_strictly_increase_with_prefix(store: JobStore) -> None:
    numbers = [store.add_job(make_job(description=f"job {i}"))["jobNumber"] for i in range(5)]

    assert numbers == ["JOB-1001", "JOB-1002", "JOB-1003", "JOB-1004", "JOB-1005"]
    seqs = [_seq(n) for n in numbers]
    assert seqs == sorted(set(seqs))


def test_counter_is_rederived_when_stripped_before_restart(store: JobStore, config: dict) -> None:
    for i in range(3):
        store.add_job(make_job(description=f"job {i}"))
    doc = read_store_doc(store)
    del doc["nextJobSeq"]
    write_store_doc(store, doc)

    restarted = JobStore.from_config(config)
    job = restarted.add_job(make_job())

    previous = [_seq(j["jobNumber"]) for j in doc["jobs"]]
    assert _seq(job["jobNumber"]) > max(previous)
    assert read_store_doc(restarted)["nextJobSeq"] == _seq(job["jobNumber"]) + 1


def test_numbers_are_not_reused_after_delete_and_restart(store: JobStore, config: dict) -> None:
    store.add_job(make_job())
    newest = store.add_job(make_job())
    store.delete_job(newest["id"])

    job = JobStore.from_config(config).add_job(make_job())

    assert job["jobNumber"] == "JOB-1003"


def test_counter_derivation_ignores_foreign_and_bad_numbers(store: JobStore) -> None:
    write_store_doc(store, {"jobs": [
        {"id": "a", "jobNumber": "JOB-2500"},
        {"id": "b", "jobNumber": "JOB-17"},
        {"id": "c", "jobNumber": "OTHER-9999"},
        {"id": "d", "jobNumber": "JOB-abc"},
        {"id": "e"},
    ]})

    assert store.add_job(make_job())["jobNumber"] == "JOB-2501"


@pytest.mark.parametrize("content", ["", "   \n", "{not json", "[1, 2, 3]", '"a string"'])
def test_unreadable_document_fails_open(store: JobStore, content: str) -> None:
    Path(store.filepath).write_text(content, encoding="utf-8")

    assert store.list_jobs() == []
    job = store.add_job(make_job())

    assert job["jobNumber"] == "JOB-1001"
    assert read_store_doc(store)["jobs"][0]["id"] == job["id"]


def test_missing_document_and_bad_jobs_field(store: JobStore) -> None:
    assert store.list_jobs() == []
    write_store_doc(store, {"jobs": {"not": "a list"}, "nextJobSeq": "x"})

    assert store.load() == {"jobs": [], "nextJobSeq": None}


def test_add_assigns_store_fields_and_prepends(store: JobStore) -> None:
    first = store.add_job(make_job(id="client-id", jobNumber="JOB-1", createdAt="yesterday"))
    second = store.add_job(make_job())

    assert first["id"].startswith("job_") and first["id"] != "client-id"
    assert first["jobNumber"] == "JOB-1001"
    assert first["createdAt"] != "yesterday"
    assert first["createdAt"] == first["updatedAt"]
    assert first["statusHistory"] == []
    assert [j["id"] for j in store.list_jobs()] == [second["id"], first["id"]]


@pytest.mark.parametrize(
    ("job", "message"),
    [
        (make_job(type="Screenprint"), "Invalid job type"),
        ({"type": "DTF"}, "Description is required"),
        (make_job(description="   "), "Description is required"),
        (make_job(quantity="lots"), "quantity must be a number"),
        (make_job(priority=3), "priority must be a string"),
        (make_job(dtf="film"), "dtf must be an object"),
        (make_job(completedAtSource="robot"), "completedAtSource"),
        (["not", "an", "object"], "Invalid job payload"),
    ],
)
def test_invalid_jobs_are_rejected_without_writing(store: JobStore, job, message: str) -> None:
    with pytest.raises(JobValidationError, match=message):
        store.add_job(job)

    assert not Path(store.filepath).exists()


@pytest.mark.parametrize(("quantity", "expected"), [(None, 1), ("", 1), ("3", 3), (2.5, 2.5), ("4.0", 4)])
def test_quantity_is_coerced(store: JobStore, quantity, expected) -> None:
    job = make_job()
    job["quantity"] = quantity

    assert store.add_job(job)["quantity"] == expected


def test_update_merges_and_preserves_identity(store: JobStore) -> None:
    job = store.add_job(make_job())

    updated = store.update_job(job["id"], {"description": "Back print", "id": "hijack", "jobNumber": "JOB-1"})

    assert updated["description"] == "Back print"
    assert updated["id"] == job["id"]
    assert updated["jobNumber"] == job["jobNumber"]
    assert updated["createdAt"] == job["createdAt"]
    assert updated["quantity"] == 12
    assert read_store_doc(store)["jobs"][0] == updated


def test_update_unknown_id_raises_not_found(store: JobStore) -> None:
    with pytest.raises(JobNotFoundError):
        store.update_job("missing", {"status": "Queued"})


def test_status_history_is_append_only(store: JobStore) -> None:
    job = store.add_job(make_job(statusHistory=[{"at": "t0", "message": "created"}]))

    updated = store.update_job(job["id"], {"statusHistory": [
        {"at": "t0", "message": "created"},
        {"at": "t1", "message": "printed"},
    ]})
    assert [e["message"] for e in updated["statusHistory"]] == ["created", "printed"]

    with pytest.raises(JobValidationError, match="append-only"):
        store.update_job(job["id"], {"statusHistory": [{"at": "t9", "message": "rewritten"}]})


def test_delete_twice_raises_not_found(store: JobStore) -> None:
    job = store.add_job(make_job())

    assert store.delete_job(job["id"]) == job["id"]
    with pytest.raises(JobNotFoundError):
        store.delete_job(job["id"])


def test_concurrent_adds_never_duplicate_ids_or_numbers(store: JobStore) -> None:
    with ThreadPoolExecutor(max_workers=8) as pool:
        jobs = list(pool.map(lambda i: store.add_job(make_job(description=f"job {i}")), range(40)))

    ids = {j["id"] for j in jobs}
    numbers = {j["jobNumber"] for j in jobs}
    assert len(ids) == 40
    assert len(numbers) == 40
    assert len(read_store_doc(store)["jobs"]) == 40
    assert read_store_doc(store)["nextJobSeq"] == 1041


def test_info_reports_path_and_count(store: JobStore) -> None:
    store.add_job(make_job())

    assert store.info() == {"dbPath": store.filepath, "jobsCount": 1}


# ── Lifecycle invariants on write ─────────────────────────────────────────

def test_add_never_stores_archived_without_completion(store: JobStore) -> None:
    job = store.add_job(make_job(archived=True, archivedAt="2026-01-01T00:00:00+00:00"))

    assert not job["archived"]
    assert job["archivedAt"] is None
    assert not read_store_doc(store)["jobs"][0]["archived"]


def test_patch_cannot_archive_an_uncompleted_job(store: JobStore) -> None:
    job = store.add_job(make_job())

    updated = store.update_job(job["id"], {"archived": True, "archivedAt": "2026-01-01T00:00:00+00:00"})

    assert updated["archived"] is False
    assert updated["archivedAt"] is None
    assert read_store_doc(store)["jobs"][0]["archived"] is False


def test_patch_can_archive_a_completed_job(store: JobStore) -> None:
    job = store.add_job(make_job())
    store.update_job(job["id"], {"status": "Completed"})

    updated = store.update_job(job["id"], {"archived": True, "archivedAt": "2026-01-01T00:00:00+00:00"})

    assert updated["archived"] is True
    assert updated["completedAt"] is not None


def test_clearing_completed_at_unarchives(store: JobStore) -> None:
    job = store.add_job(make_job(status="Completed"))
    store.update_job(job["id"], {"archived": True})

    updated = store.update_job(job["id"], {"completedAt": None})

    assert updated["archived"] is False


def test_job_created_completed_gets_completion_stamp(store: JobStore) -> None:
    job = store.add_job(make_job(status="Completed"))

    assert job["completedAt"] is not None
    assert job["completedAtSource"] == "system"
    assert job["completedAt"] == job["createdAt"]


def test_job_created_completed_keeps_caller_completion(store: JobStore) -> None:
    job = store.add_job(make_job(
        status="Completed",
        completedAt="2020-05-01T09:00:00+00:00",
        completedAtSource="user",
    ))

    assert job["completedAt"] == "2020-05-01T09:00:00+00:00"
    assert job["completedAtSource"] == "user"
    [listed] = store.list_jobs()
    assert listed["archived"] is True
