"""Rate limiting over completed submissions."""

from datetime import timedelta

from leadflow.core.encryption import hash_email, hash_phone
from leadflow.db.enums import ContactType, ListType, RateLimitDimension, SubmissionStatus
from leadflow.services import policy_service, rate_limit_service
from leadflow.services.submission_store import utcnow

EMAIL = "a@corp.com"
PHONE = "+12025551234"


def _completed(make_submission, *, days_ago: int = 1, **fields):
    return make_submission(
        status=SubmissionStatus.SUCCEEDED,
        completed_at=utcnow() - timedelta(days=days_ago),
        phone_hash=hash_phone(PHONE),
        **fields,
    )


def _validate(db, dimension, **kwargs):
    kwargs.setdefault("form_name", "free_trial")
    return rate_limit_service.validate(db, dimension, **kwargs)


def test_first_signup_is_allowed(db):
    assert _validate(db, RateLimitDimension.EMAIL, email_identity=hash_email(EMAIL))
    assert _validate(db, RateLimitDimension.PHONE, phone_identity=hash_phone(PHONE))


def test_completed_submission_inside_window_denies(db, make_submission):
    _completed(make_submission, days_ago=364)

    assert not _validate(db, RateLimitDimension.EMAIL, email_identity=hash_email(EMAIL))
    assert not _validate(db, RateLimitDimension.PHONE, phone_identity=hash_phone(PHONE))


def test_submission_outside_window_is_ignored(db, make_submission):
    _completed(make_submission, days_ago=366)

    assert _validate(db, RateLimitDimension.EMAIL, email_identity=hash_email(EMAIL))


def test_incomplete_submission_does_not_count(db, make_submission):
    make_submission(status=SubmissionStatus.VERIFIED, phone_hash=hash_phone(PHONE))

    assert _validate(db, RateLimitDimension.EMAIL, email_identity=hash_email(EMAIL))


def test_own_submission_is_excluded(db, make_submission):
    own = _completed(make_submission)

    assert _validate(
        db,
        RateLimitDimension.EMAIL,
        email_identity=hash_email(EMAIL),
        exclude_submission_id=own.submission_id,
    )


def test_window_is_partitioned_by_form(db, make_submission):
    _completed(make_submission, form_name="demo_request")

    assert _validate(db, RateLimitDimension.EMAIL, email_identity=hash_email(EMAIL))
    assert not _validate(
        db, RateLimitDimension.EMAIL, form_name="demo_request", email_identity=hash_email(EMAIL)
    )


def test_allow_listed_contact_always_passes(db, make_submission):
    _completed(make_submission)
    policy_service.upsert_list_entry(
        db, contact_type=ContactType.EMAIL, contact_value=hash_email(EMAIL), list_type=ListType.ALLOW
    )

    assert _validate(db, RateLimitDimension.EMAIL, email_identity=hash_email(EMAIL))
    # Allow-listing the email does not exempt the phone
    assert not _validate(db, RateLimitDimension.PHONE, phone_identity=hash_phone(PHONE))


def test_combined_requires_both_dimensions(db, make_submission):
    _completed(make_submission, email="other@corp.com")

    # Phone was used by another identity: the email passes, the phone does not
    assert not _validate(
        db,
        RateLimitDimension.COMBINED,
        email_identity=hash_email(EMAIL),
        phone_identity=hash_phone(PHONE),
    )
    assert _validate(
        db,
        RateLimitDimension.COMBINED,
        email_identity=hash_email(EMAIL),
        phone_identity=hash_phone("+12025559876"),
    )
