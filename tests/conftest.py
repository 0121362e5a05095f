"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, schema created fresh for each test
- Fakes for every outbound collaborator (CAPTCHA, SMS, enrichment,
  provisioning, marketing) and for the geolocation reader
- HTTPX AsyncClient wired to the app with dependency overrides
"""
import os
from types import SimpleNamespace
from typing import AsyncGenerator, Generator

from cryptography.fernet import Fernet

# Settings are read at import time: configure before importing the app
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PII_HASH_KEY"] = "test-pii-hash-key"
os.environ["DATA_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["TRUSTED_ORIGINS"] = "https://signup.example.com"
os.environ["INTERNAL_SECRET"] = "test-internal-secret"
os.environ["TRUST_PROXY_HEADERS"] = "true"
os.environ["GEOIP_DATABASE_PATH"] = ""

import geoip2.errors
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from leadflow.core.deps import get_clients, get_db, get_geo_lookup
from leadflow.core.geo import GeoLookup
from leadflow.db.base import Base
from leadflow.db.enums import BuilderStatus
from leadflow.db.session import SessionLocal, engine
from leadflow.main import app
from leadflow.services.captcha_service import CaptchaUnavailable
from leadflow.services.clients import ExternalClients
from leadflow.services.enrichment_service import EnrichmentWaterfall
from leadflow.services.verification_service import VerificationDeliveryError

TRUSTED_ORIGIN = "https://signup.example.com"
US_IP = "203.0.113.10"
BLOCKED_IP = "198.51.100.7"


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test on the shared in-memory connection."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# =============================================================================
# Collaborator Fakes
# =============================================================================


class FakeCaptcha:
    def __init__(self, result: bool = True, unavailable: bool = False):
        self.result = result
        self.unavailable = unavailable
        self.calls: list[tuple[str, str | None]] = []

    async def verify(self, token: str, remote_ip: str | None = None) -> bool:
        self.calls.append((token, remote_ip))
        if self.unavailable:
            raise CaptchaUnavailable("timeout")
        return self.result


class FakeVerificationChannel:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, phone_e164, code, channel) -> str:
        if self.fail:
            raise VerificationDeliveryError("provider down")
        self.sent.append((phone_e164, code, channel.value))
        return f"ref-{len(self.sent)}"

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


class FakeEnrichmentProvider:
    def __init__(self, name: str, data: dict | None = None, error: Exception | None = None):
        self.name = name
        self.data = data
        self.error = error
        self.calls = 0

    async def lookup(self, identity):
        self.calls += 1
        if self.error:
            raise self.error
        return self.data


class FakeProvisioning:
    def __init__(self, builder_status: BuilderStatus | None = BuilderStatus.AVAILABLE, fail: bool = False):
        self.builder_status = builder_status
        self.fail = fail
        self.provisioned: list[dict] = []

    async def get_builder_status(self, country, region=None):
        return self.builder_status

    async def provision(self, **kwargs):
        from leadflow.core.errors import ExternalServiceDegradation

        if self.fail:
            raise ExternalServiceDegradation("provisioning", "status 503")
        self.provisioned.append(kwargs)
        return f"env-{len(self.provisioned)}"


class FakeMarketing:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.leads: list[dict] = []

    async def submit_lead(self, **kwargs):
        from leadflow.core.errors import ExternalServiceDegradation

        if self.fail:
            raise ExternalServiceDegradation("marketing", "ConnectTimeout")
        self.leads.append(kwargs)
        return f"lead-{len(self.leads)}"


class FakeGeoReader:
    """Stands in for geoip2.database.Reader.city()."""

    def __init__(self, table: dict[str, tuple[str, str | None]]):
        self.table = table

    def city(self, ip: str):
        if ip not in self.table:
            raise geoip2.errors.AddressNotFoundError(f"{ip} not found")
        country, region = self.table[ip]
        return SimpleNamespace(
            country=SimpleNamespace(iso_code=country),
            subdivisions=SimpleNamespace(most_specific=SimpleNamespace(iso_code=region)),
        )


COMPANY_DATA = {
    "name": "Corp Inc",
    "industry": "Software",
    "employees": 250,
    "domain": "corp.com",
}


@pytest.fixture
def enrichment_provider() -> FakeEnrichmentProvider:
    return FakeEnrichmentProvider("primary", dict(COMPANY_DATA))


@pytest.fixture
def clients(enrichment_provider) -> ExternalClients:
    return ExternalClients(
        captcha=FakeCaptcha(),
        verification_channel=FakeVerificationChannel(),
        enrichment=EnrichmentWaterfall([enrichment_provider], timeout=1),
        provisioning=FakeProvisioning(),
        marketing=FakeMarketing(),
    )


@pytest.fixture
def geo_lookup() -> GeoLookup:
    return GeoLookup(FakeGeoReader({US_IP: ("US", "VA"), BLOCKED_IP: ("KP", None)}))


# =============================================================================
# Client Fixtures
# =============================================================================


@pytest.fixture(scope="function")
async def client(db: Session, clients: ExternalClients, geo_lookup: GeoLookup) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient for the public surface, calling from a trusted origin in the US."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clients] = lambda: clients
    app.dependency_overrides[get_geo_lookup] = lambda: geo_lookup

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Origin": TRUSTED_ORIGIN, "X-Forwarded-For": US_IP},
    ) as c:
        yield c

    app.dependency_overrides.clear()


def step1_body(**overrides) -> dict:
    body = {
        "step": "1",
        "formType": "trial",
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "a@corp.com",
        "company": "Corp Inc",
        "jobTitle": "CTO",
        "country": "US",
        "turnstileToken": "token-ok",
    }
    body.update(overrides)
    return body


def step2_body(submission_id: str, **overrides) -> dict:
    body = {
        "step": "2",
        "formType": "trial",
        "submissionId": submission_id,
        "phone": "+12025551234",
        "verificationMethod": "sms",
    }
    body.update(overrides)
    return body


def step3_body(submission_id: str, **overrides) -> dict:
    body = {
        "step": "3",
        "formType": "trial",
        "submissionId": submission_id,
        "region": "US_E",
    }
    body.update(overrides)
    return body


@pytest.fixture
def bodies() -> SimpleNamespace:
    """Request body builders for each step."""
    return SimpleNamespace(step1=step1_body, step2=step2_body, step3=step3_body)


@pytest.fixture
def make_submission(db: Session):
    """Insert a submission directly in any state."""
    import uuid

    from leadflow.core.encryption import hash_email
    from leadflow.db.enums import CountryClassification, SubmissionStatus
    from leadflow.db.models import Submission
    from leadflow.services.submission_store import dump_envelope

    def _make(
        email: str = "a@corp.com",
        status: SubmissionStatus = SubmissionStatus.CREATED,
        form_name: str = "free_trial",
        envelope: dict | None = None,
        **fields,
    ) -> Submission:
        contact = {"email": email, "first_name": "Ada", "last_name": "Lovelace", "company": "Corp Inc"}
        contact.update(envelope or {})
        values = {
            "client_identity": hash_email(email),
            "submission_id": str(uuid.uuid4()),
            "form_name": form_name,
            "status": status.value,
            "contact_envelope": dump_envelope(contact),
            "turnstile_validated": True,
            "country_code": "US",
            "country_classification": CountryClassification.ALLOW.value,
            "builder_status": BuilderStatus.AVAILABLE.value,
            "pending_review_reasons": [],
        }
        values.update(fields)
        submission = Submission(**values)
        db.add(submission)
        db.commit()
        db.refresh(submission)
        return submission

    return _make
