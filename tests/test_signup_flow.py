"""End-to-end signup through the HTTP surface, then the processor."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from leadflow.core.encryption import hash_email
from leadflow.db.enums import ContactType, JobType, ListType, SubmissionStatus
from leadflow.db.models import Job, SecurityEvent, Submission, SubmissionStepEvent
from leadflow.services import job_service, policy_service
from leadflow.worker import run_once

INTERNAL_HEADERS = {"X-Internal-Secret": "test-internal-secret"}


async def _complete_signup(client: AsyncClient, clients, bodies) -> str:
    res = await client.post("/submit", json=bodies.step1())
    assert res.status_code == 200, res.text
    submission_id = res.json()["submissionId"]

    res = await client.post("/submit", json=bodies.step2(submission_id))
    assert res.status_code == 200, res.text

    code = clients.verification_channel.last_code
    res = await client.post("/submit", json=bodies.step2(submission_id, code=code))
    assert res.status_code == 200, res.text

    res = await client.post("/submit", json=bodies.step3(submission_id))
    assert res.status_code == 200, res.text
    return submission_id


@pytest.mark.asyncio
async def test_full_signup_and_single_processing(client: AsyncClient, db, clients, bodies, monkeypatch):
    monkeypatch.setattr("leadflow.services.clients.get_clients", lambda: clients)

    res = await client.post("/submit", json=bodies.step1())
    assert res.status_code == 200
    data = res.json()
    assert data["success"] is True
    assert data["status"] == "created"
    assert data["countryType"] == "allow"
    assert data["countryBlocked"] is False
    assert data["builderStatus"] == "available"
    submission_id = data["submissionId"]

    res = await client.post("/submit", json=bodies.step2(submission_id, mode="request"))
    assert res.status_code == 200
    assert res.json()["status"] == "code_sent"
    assert res.json()["referenceId"] == "ref-1"
    phone, code, channel = clients.verification_channel.sent[0]
    assert phone == "+12025551234"
    assert channel == "sms"
    assert len(code) == 6 and code.isdigit()

    res = await client.post("/submit", json=bodies.step2(submission_id, mode="verify", code=code))
    assert res.status_code == 200
    assert res.json()["status"] == "verified"
    assert "verifiedAt" in res.json()

    res = await client.post("/submit", json=bodies.step3(submission_id))
    assert res.status_code == 200
    data = res.json()
    assert data["status"] == "completed"
    assert len(data["externalId"]) == 18

    submission = db.execute(select(Submission).where(Submission.submission_id == submission_id)).scalar_one()
    assert submission.status == SubmissionStatus.QUEUED.value
    assert submission.destination_region == "US_E"

    jobs = job_service.list_jobs(db, job_type=JobType.SUBMISSION_COMPLETED)
    assert len(jobs) == 1
    assert jobs[0].idempotency_key == f"submission-completed:{submission_id}"

    # Worker consumes the queued event
    assert await run_once(db) >= 1
    db.expire_all()
    submission = db.execute(select(Submission).where(Submission.submission_id == submission_id)).scalar_one()
    assert submission.status == SubmissionStatus.SUCCEEDED.value
    assert submission.submission_flag == "green"
    assert len(clients.provisioning.provisioned) == 1
    assert len(clients.marketing.leads) == 1

    # Redelivery of the same message is a no-op
    payload = dict(jobs[0].payload)
    res = await client.post("/process", json=payload, headers=INTERNAL_HEADERS)
    assert res.status_code == 200
    assert res.json()["processed"] is False
    assert len(clients.provisioning.provisioned) == 1
    assert len(clients.marketing.leads) == 1


@pytest.mark.asyncio
async def test_step_history_is_appended_per_step(client: AsyncClient, db, clients, bodies):
    submission_id = await _complete_signup(client, clients, bodies)

    steps = db.execute(
        select(SubmissionStepEvent)
        .where(SubmissionStepEvent.submission_id == submission_id)
        .order_by(SubmissionStepEvent.id)
    ).scalars().all()
    assert [s.step for s in steps] == ["1", "2:request", "2:verify", "3"]
    assert steps[0].geo == {"country": "US", "region": "VA"}
    assert steps[0].actor["origin"] == "https://signup.example.com"


@pytest.mark.asyncio
async def test_retried_request_replays_without_side_effects(client: AsyncClient, db, clients, bodies):
    first = await client.post("/submit", json=bodies.step1(requestId="req-1"))
    again = await client.post("/submit", json=bodies.step1(requestId="req-1"))
    assert first.status_code == again.status_code == 200
    assert first.json() == again.json()
    assert len(clients.captcha.calls) == 1

    submission_id = first.json()["submissionId"]
    body = bodies.step2(submission_id, requestId="req-2")
    first = await client.post("/submit", json=body)
    again = await client.post("/submit", json=body)
    assert first.json() == again.json()
    assert len(clients.verification_channel.sent) == 1

    count = db.execute(
        select(SubmissionStepEvent).where(SubmissionStepEvent.submission_id == submission_id)
    ).scalars().all()
    assert len(count) == 2


@pytest.mark.asyncio
async def test_repeat_signup_within_window_is_rate_limited(client: AsyncClient, clients, bodies):
    await _complete_signup(client, clients, bodies)

    res = await client.post("/submit", json=bodies.step1())
    assert res.status_code == 429
    data = res.json()
    assert data == {
        "success": False,
        "message": data["message"],
        "errorCode": "rate_limit",
        "reason": "email",
    }


@pytest.mark.asyncio
async def test_same_email_other_form_is_not_rate_limited(client: AsyncClient, clients, bodies):
    await _complete_signup(client, clients, bodies)

    res = await client.post("/submit", json=bodies.step1(formType="demo"))
    assert res.status_code == 200


@pytest.mark.asyncio
async def test_wrong_code_then_right_code(client: AsyncClient, clients, bodies):
    res = await client.post("/submit", json=bodies.step1())
    submission_id = res.json()["submissionId"]
    await client.post("/submit", json=bodies.step2(submission_id))
    code = clients.verification_channel.last_code
    wrong = "000000" if code != "000000" else "111111"

    res = await client.post("/submit", json=bodies.step2(submission_id, code=wrong))
    assert res.status_code == 400
    assert res.json()["errorCode"] == "verification_mismatch"
    assert res.json()["reason"] == "mismatch"
    assert code not in res.text

    res = await client.post("/submit", json=bodies.step2(submission_id, code=code))
    assert res.status_code == 200
    assert res.json()["status"] == "verified"

    # Verifying again is a no-op success
    res = await client.post("/submit", json=bodies.step2(submission_id, code=code))
    assert res.status_code == 200
    assert res.json()["status"] == "verified"


@pytest.mark.asyncio
async def test_step3_before_verification_is_sequence_error(client: AsyncClient, bodies):
    res = await client.post("/submit", json=bodies.step1())
    submission_id = res.json()["submissionId"]

    res = await client.post("/submit", json=bodies.step3(submission_id))
    assert res.status_code == 409
    assert res.json()["errorCode"] == "sequence"


@pytest.mark.asyncio
async def test_unknown_submission_is_sequence_error(client: AsyncClient, bodies):
    res = await client.post("/submit", json=bodies.step2("does-not-exist"))
    assert res.status_code == 409
    assert res.json()["errorCode"] == "sequence"


@pytest.mark.asyncio
async def test_malformed_payload_returns_field_errors(client: AsyncClient, bodies):
    res = await client.post("/submit", json=bodies.step1(email="not-an-email", company=""))
    assert res.status_code == 400
    data = res.json()
    assert data["success"] is False
    assert data["errorCode"] == "validation"
    fields = {e["field"] for e in data["errors"]}
    assert {"email", "company"} <= fields


@pytest.mark.asyncio
async def test_unknown_step_is_validation_error(client: AsyncClient):
    res = await client.post("/submit", json={"step": "9", "formType": "trial"})
    assert res.status_code == 400
    assert res.json()["errorCode"] == "validation"


@pytest.mark.asyncio
async def test_numeric_step_is_accepted(client: AsyncClient, bodies):
    res = await client.post("/submit", json=bodies.step1(step=1))
    assert res.status_code == 200


@pytest.mark.asyncio
async def test_captcha_failure_is_security_error_and_audited(client: AsyncClient, db, clients, bodies):
    clients.captcha.result = False

    res = await client.post("/submit", json=bodies.step1())
    assert res.status_code == 403
    assert res.json()["errorCode"] == "security"
    assert db.execute(select(Submission)).first() is None
    events = db.execute(select(SecurityEvent)).scalars().all()
    assert [e.event_type for e in events] == ["captcha_failed"]


@pytest.mark.asyncio
async def test_block_list_is_not_revealed_without_captcha(client: AsyncClient, db, clients, bodies):
    policy_service.upsert_list_entry(
        db, contact_type=ContactType.EMAIL, contact_value=hash_email("a@corp.com"), list_type=ListType.BLOCK
    )
    clients.captcha.result = False

    res = await client.post("/submit", json=bodies.step1())
    assert res.status_code == 403
    assert res.json()["errorCode"] == "security"
    assert "reason" not in res.json()
    assert len(clients.captcha.calls) == 1
    events = db.execute(select(SecurityEvent)).scalars().all()
    assert [e.event_type for e in events] == ["captcha_failed"]


@pytest.mark.asyncio
async def test_captcha_unavailable_fails_closed(client: AsyncClient, clients, bodies):
    clients.captcha.unavailable = True

    res = await client.post("/submit", json=bodies.step1())
    assert res.status_code == 403
    assert res.json()["errorCode"] == "security"


@pytest.mark.asyncio
async def test_untrusted_origin_is_rejected(client: AsyncClient, db, bodies):
    res = await client.post(
        "/submit", json=bodies.step1(), headers={"Origin": "https://evil.example.net"}
    )
    assert res.status_code == 403
    assert res.json()["errorCode"] == "security"
    event = db.execute(select(SecurityEvent)).scalar_one()
    assert event.event_type == "untrusted_origin"


@pytest.mark.asyncio
async def test_delivery_failure_is_reported_and_retryable(client: AsyncClient, clients, bodies):
    res = await client.post("/submit", json=bodies.step1())
    submission_id = res.json()["submissionId"]

    clients.verification_channel.fail = True
    res = await client.post("/submit", json=bodies.step2(submission_id))
    assert res.status_code == 502
    assert res.json()["errorCode"] == "internal"

    clients.verification_channel.fail = False
    res = await client.post("/submit", json=bodies.step2(submission_id))
    assert res.status_code == 200
    assert res.json()["status"] == "code_sent"


@pytest.mark.asyncio
async def test_process_requires_internal_secret(client: AsyncClient, db):
    res = await client.post(
        "/process",
        json={"messageId": "m-1", "submissionId": "s-1", "clientIdentity": "a" * 64},
        headers={"X-Internal-Secret": "wrong"},
    )
    assert res.status_code == 403
    assert res.json()["errorCode"] == "security"
    assert db.execute(select(Job)).first() is None


@pytest.mark.asyncio
async def test_process_validates_event(client: AsyncClient):
    res = await client.post("/process", json={"messageId": "m-1"}, headers=INTERNAL_HEADERS)
    assert res.status_code == 400
    assert res.json()["errorCode"] == "validation"
