"""
API integration tests for /jobs endpoints.

These use the test HTTP client from conftest.py, which talks to
the FastAPI app with an in-memory SQLite DB, fake Redis and in-memory
storage, acting as user-1 unless a request passes other headers.
"""

import json
import uuid

import pytest

from models.enums import ErrorCode, JobState
from publisher.notifier import EVENTS_CHANNEL
from store.job_store import AsyncJobStore
from tests.helpers import ADMIN, OTHER_USER

VALID_JOB = {"prompt": "Ceramic mug on a marble counter, soft morning light"}


async def _submit(client, **fields):
    response = await client.post("/jobs/", json={**VALID_JOB, **fields})
    assert response.status_code == 202
    return response.json()["job_id"]


async def _finish(async_session, job_id, *, failed=False):
    """Drive a job to a terminal state the way a worker would."""
    store = AsyncJobStore(async_session)
    await store.transition(job_id, JobState.PENDING, JobState.RUNNING, {"attempt": 1})
    if failed:
        return await store.transition(job_id, JobState.RUNNING, JobState.FAILED, {
            "error_code": ErrorCode.RETRIES_EXHAUSTED,
            "error_message": "Gave up after 3 attempts: Provider returned 503",
        })
    return await store.transition(job_id, JobState.RUNNING, JobState.COMPLETED, {
        "result_asset_ref": f"generations/{job_id}.png",
        "result_url": f"https://cdn.test/generations/{job_id}.png",
    })


async def _next_event(pubsub):
    # the first read may only consume the subscribe confirmation
    for _ in range(5):
        message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.2)
        if message is not None:
            return json.loads(message["data"])
    return None


# ── Submit ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_submit_job(client):
    """POST /jobs/ should accept the job and return its id with state PENDING."""
    response = await client.post("/jobs/", json=VALID_JOB)

    assert response.status_code == 202
    data = response.json()
    assert data["state"] == "PENDING"
    assert uuid.UUID(data["job_id"])


@pytest.mark.asyncio
async def test_submit_job_with_defaults(client):
    """No style/format → REALISTIC / SQUARE, attempt 0, no outcome yet."""
    job_id = await _submit(client)

    data = (await client.get(f"/jobs/{job_id}")).json()
    assert data["style"] == "REALISTIC"
    assert data["format"] == "SQUARE"
    assert data["owner_id"] == "user-1"
    assert data["attempt"] == 0
    assert data["max_attempts"] == 3
    assert data["result_url"] is None
    assert data["error_cause"] is None


@pytest.mark.asyncio
async def test_submit_job_for_own_product(client, product):
    job_id = await _submit(client, product_id=str(product.id), style="CARTOON", format="LANDSCAPE")

    data = (await client.get(f"/jobs/{job_id}")).json()
    assert data["product_id"] == str(product.id)
    assert data["style"] == "CARTOON"
    assert data["format"] == "LANDSCAPE"


@pytest.mark.asyncio
async def test_submit_job_for_someone_elses_product(client, product):
    response = await client.post(
        "/jobs/", json={**VALID_JOB, "product_id": str(product.id)}, headers=OTHER_USER
    )
    assert response.status_code == 403
    assert response.json()["code"] == "INSUFFICIENT_PERMISSIONS"


@pytest.mark.asyncio
async def test_admin_cannot_submit_for_someone_elses_product(client, product):
    """Ownership of the product is checked even for privileged callers."""
    response = await client.post(
        "/jobs/", json={**VALID_JOB, "product_id": str(product.id)}, headers=ADMIN
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_submit_job_unknown_product(client):
    response = await client.post("/jobs/", json={**VALID_JOB, "product_id": str(uuid.uuid4())})
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"prompt": "mug"},                            # too short
    {"prompt": "   mug    "},                     # too short once trimmed
    {"prompt": "x" * 501},                        # too long
    {},                                           # missing
    {**VALID_JOB, "style": "PHOTOREALISTIC"},     # unknown style
    {**VALID_JOB, "format": "BANNER"},            # unknown format
    {**VALID_JOB, "product_id": "not-a-uuid"},
])
async def test_submit_job_invalid_body(client, body):
    """Malformed requests are rejected with 400 and nothing is stored."""
    response = await client.post("/jobs/", json=body)

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert (await client.get("/jobs/")).json()["total"] == 0


@pytest.mark.asyncio
async def test_submit_requires_caller_identity(client):
    response = await client.post("/jobs/", json=VALID_JOB, headers={"X-Caller-Id": ""})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unknown_role_is_rejected(client):
    response = await client.get("/jobs/", headers={"X-Caller-Role": "ROOT"})
    assert response.status_code == 401


# ── Read ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_get_job_by_id(client):
    job_id = await _submit(client)

    response = await client.get(f"/jobs/{job_id}")
    assert response.status_code == 200
    assert response.json()["id"] == job_id
    assert response.json()["prompt"] == VALID_JOB["prompt"]


@pytest.mark.asyncio
async def test_get_nonexistent_job(client):
    """GET /jobs/{bad_id} should return 404."""
    response = await client.get("/jobs/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_get_job_malformed_id(client):
    response = await client.get("/jobs/not-a-uuid")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_get_someone_elses_job(client):
    job_id = await _submit(client)

    response = await client.get(f"/jobs/{job_id}", headers=OTHER_USER)
    assert response.status_code == 403
    assert response.json()["detail"] == "You can only access your own image generations"


@pytest.mark.asyncio
async def test_admin_can_read_any_job(client):
    job_id = await _submit(client)

    response = await client.get(f"/jobs/{job_id}", headers=ADMIN)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_completed_job_exposes_result(client, async_session):
    job_id = await _submit(client)
    await _finish(async_session, job_id)

    data = (await client.get(f"/jobs/{job_id}")).json()
    assert data["state"] == "COMPLETED"
    assert data["result_url"] == f"https://cdn.test/generations/{job_id}.png"
    assert data["error_cause"] is None


@pytest.mark.asyncio
async def test_failed_job_exposes_error_cause(client, async_session):
    job_id = await _submit(client)
    await _finish(async_session, job_id, failed=True)

    data = (await client.get(f"/jobs/{job_id}")).json()
    assert data["state"] == "FAILED"
    assert data["result_url"] is None
    assert data["error_cause"]["code"] == "RETRIES_EXHAUSTED"
    assert "503" in data["error_cause"]["message"]
    assert "error_code" not in data


# ── List / stats ────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_list_jobs_newest_first(client):
    first = await _submit(client)
    second = await _submit(client)

    response = await client.get("/jobs/")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert [j["id"] for j in data["jobs"]] == [second, first]
    assert data["page"] == 1
    assert data["has_next"] is False


@pytest.mark.asyncio
async def test_list_jobs_only_shows_own(client):
    await _submit(client)
    await client.post("/jobs/", json=VALID_JOB, headers=OTHER_USER)

    mine = (await client.get("/jobs/")).json()
    everyone = (await client.get("/jobs/", headers=ADMIN)).json()

    assert mine["total"] == 1
    assert everyone["total"] == 2


@pytest.mark.asyncio
async def test_list_jobs_filter_by_state(client, async_session):
    done = await _submit(client)
    await _submit(client)
    await _finish(async_session, done)

    response = await client.get("/jobs/?state=COMPLETED")
    data = response.json()
    assert data["total"] == 1
    assert data["jobs"][0]["id"] == done


@pytest.mark.asyncio
async def test_list_jobs_filter_by_product(client, product):
    await _submit(client, product_id=str(product.id))
    await _submit(client)

    data = (await client.get(f"/jobs/?product_id={product.id}")).json()
    assert data["total"] == 1


@pytest.mark.asyncio
async def test_list_jobs_pagination(client):
    for _ in range(5):
        await _submit(client)

    data = (await client.get("/jobs/?page=2&limit=2")).json()
    assert len(data["jobs"]) == 2
    assert data["total"] == 5
    assert data["total_pages"] == 3
    assert data["has_next"] is True
    assert data["has_prev"] is True


@pytest.mark.asyncio
async def test_job_stats(client, async_session):
    done = await _submit(client)
    failed = await _submit(client)
    await _submit(client)
    await _finish(async_session, done)
    await _finish(async_session, failed, failed=True)

    response = await client.get("/jobs/stats")
    assert response.status_code == 200
    assert response.json() == {
        "total_jobs": 3, "pending": 1, "running": 0, "completed": 1, "failed": 1,
    }


# ── Cancel ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_cancel_pending_job(client, fake_redis):
    job_id = await _submit(client)
    pubsub = fake_redis.pubsub()
    await pubsub.subscribe(EVENTS_CHANNEL)

    response = await client.delete(f"/jobs/{job_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "FAILED"
    assert data["error_cause"] == {"code": "CANCELLED", "message": "Cancelled by user"}

    event = await _next_event(pubsub)
    assert event["job_id"] == job_id
    assert event["state"] == "FAILED"
    await pubsub.aclose()


@pytest.mark.asyncio
async def test_cancel_running_job_sets_flag(client, async_session):
    job_id = await _submit(client)
    await AsyncJobStore(async_session).transition(
        job_id, JobState.PENDING, JobState.RUNNING, {"attempt": 1}
    )

    response = await client.delete(f"/jobs/{job_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "RUNNING"
    assert data["cancel_requested"] is True


@pytest.mark.asyncio
async def test_cancel_terminal_job_conflicts(client, async_session):
    job_id = await _submit(client)
    await _finish(async_session, job_id)

    response = await client.delete(f"/jobs/{job_id}")

    assert response.status_code == 409
    assert response.json()["current_state"] == "COMPLETED"


@pytest.mark.asyncio
async def test_cancel_someone_elses_job(client):
    job_id = await _submit(client)

    response = await client.delete(f"/jobs/{job_id}", headers=OTHER_USER)
    assert response.status_code == 403
    assert (await client.get(f"/jobs/{job_id}")).json()["state"] == "PENDING"


# ── Delete record ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_delete_completed_job_removes_asset(client, async_session, memory_storage):
    job_id = await _submit(client)
    await _finish(async_session, job_id)
    key = f"generations/{job_id}.png"
    memory_storage.objects[key] = b"image"

    response = await client.delete(f"/jobs/{job_id}/record")

    assert response.status_code == 204
    assert memory_storage.deleted == [key]
    assert (await client.get(f"/jobs/{job_id}")).status_code == 404


@pytest.mark.asyncio
async def test_delete_pending_job_conflicts(client):
    job_id = await _submit(client)

    response = await client.delete(f"/jobs/{job_id}/record")
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_delete_keeps_record_when_storage_fails(client, async_session, memory_storage):
    job_id = await _submit(client)
    await _finish(async_session, job_id)
    memory_storage.down = True

    response = await client.delete(f"/jobs/{job_id}/record")

    assert response.status_code == 502
    assert response.json()["code"] == "STORAGE_FAILURE"
    assert (await client.get(f"/jobs/{job_id}")).status_code == 200


# ── Retry ───────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_retry_failed_job_creates_new_job(client, async_session):
    job_id = await _submit(client, style="ARTISTIC")
    await _finish(async_session, job_id, failed=True)

    response = await client.post(f"/jobs/{job_id}/retry")

    assert response.status_code == 202
    new_id = response.json()["job_id"]
    assert new_id != job_id

    new_job = (await client.get(f"/jobs/{new_id}")).json()
    assert new_job["state"] == "PENDING"
    assert new_job["retry_of"] == job_id
    assert new_job["style"] == "ARTISTIC"
    assert new_job["attempt"] == 0

    # the original stays FAILED
    assert (await client.get(f"/jobs/{job_id}")).json()["state"] == "FAILED"


@pytest.mark.asyncio
async def test_retry_non_failed_job_conflicts(client):
    job_id = await _submit(client)

    response = await client.post(f"/jobs/{job_id}/retry")
    assert response.status_code == 409
    assert response.json()["current_state"] == "PENDING"
