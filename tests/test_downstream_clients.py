"""Outbound HTTP collaborators: CAPTCHA, provisioning, marketing."""

import httpx
import pytest

from leadflow.core.errors import ExternalServiceDegradation
from leadflow.db.enums import BuilderStatus, CountryClassification
from leadflow.services import http_service
from leadflow.services.captcha_service import CaptchaUnavailable, TurnstileVerifier
from leadflow.services.marketing_service import MarketingClient
from leadflow.services.provisioning_service import ProvisioningClient, builder_status_from_country


@pytest.fixture
def mock_http(monkeypatch):
    """Route every httpx.AsyncClient through a handler; no retry delays."""
    real_client = httpx.AsyncClient
    requests: list[httpx.Request] = []

    def install(handler):
        def recording(request):
            requests.append(request)
            return handler(request)

        def factory(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(recording)
            return real_client(*args, **kwargs)

        monkeypatch.setattr(httpx, "AsyncClient", factory)
        return requests

    monkeypatch.setattr(http_service, "_backoff", lambda *args: 0)
    return install


def test_builder_status_from_country():
    assert builder_status_from_country(CountryClassification.ALLOW) == BuilderStatus.AVAILABLE
    assert builder_status_from_country(CountryClassification.UNKNOWN) == BuilderStatus.CONSTRAINED
    assert builder_status_from_country(CountryClassification.BLOCKED) == BuilderStatus.UNAVAILABLE


@pytest.mark.asyncio
async def test_call_service_retries_then_succeeds(mock_http):
    responses = iter([httpx.Response(503), httpx.Response(200, json={"id": "x"})])
    requests = mock_http(lambda request: next(responses))

    data = await http_service.call_service(
        "provisioning", "POST", "https://prov.example.com/environments", timeout=1, api_key="k"
    )

    assert data == {"id": "x"}
    assert len(requests) == 2
    assert requests[0].headers["Authorization"] == "Bearer k"


@pytest.mark.asyncio
async def test_call_service_degrades_on_persistent_error(mock_http):
    requests = mock_http(lambda request: httpx.Response(500))

    with pytest.raises(ExternalServiceDegradation) as exc:
        await http_service.call_service("marketing", "POST", "https://mkt.example.com/leads", timeout=1)

    assert exc.value.service == "marketing"
    assert "500" in str(exc.value)
    assert len(requests) == 3


@pytest.mark.asyncio
async def test_call_service_degrades_on_transport_error(mock_http):
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    mock_http(refuse)

    with pytest.raises(ExternalServiceDegradation):
        await http_service.call_service("marketing", "GET", "https://mkt.example.com/x", timeout=1)


@pytest.mark.asyncio
async def test_provision_sends_idempotency_key(mock_http):
    requests = mock_http(lambda request: httpx.Response(201, json={"id": "env-9"}))
    client = ProvisioningClient("https://prov.example.com/", api_key="k")

    reference = await client.provision(
        external_id="a1b2c3d4e5f6g7h8i9",
        destination_region="US_E",
        form_name="free_trial",
        contact={"email": "a@corp.com"},
        company={"company_name": "Corp Inc"},
    )

    assert reference == "env-9"
    assert str(requests[0].url) == "https://prov.example.com/environments"
    assert requests[0].headers["Idempotency-Key"] == "a1b2c3d4e5f6g7h8i9"


@pytest.mark.asyncio
async def test_builder_status_lookup(mock_http):
    mock_http(lambda request: httpx.Response(200, json={"status": "Constrained"}))
    client = ProvisioningClient("https://prov.example.com", api_key="k")

    assert await client.get_builder_status("US", "VA") == BuilderStatus.CONSTRAINED
    assert await client.get_builder_status(None) is None


@pytest.mark.asyncio
async def test_builder_status_unknown_when_unreachable(mock_http):
    mock_http(lambda request: httpx.Response(502))
    client = ProvisioningClient("https://prov.example.com", api_key="k")

    assert await client.get_builder_status("US") is None


@pytest.mark.asyncio
async def test_unconfigured_downstreams_degrade_outside_dev():
    with pytest.raises(ExternalServiceDegradation):
        await ProvisioningClient("", api_key="").provision(
            external_id="x", destination_region=None, form_name="free_trial", contact={}, company={}
        )
    with pytest.raises(ExternalServiceDegradation):
        await MarketingClient("", api_key="").submit_lead(
            external_id="x", form_name="free_trial", flag="green", contact={}, company={}
        )


@pytest.mark.asyncio
async def test_marketing_submit_lead(mock_http):
    requests = mock_http(lambda request: httpx.Response(200, json={"id": "lead-1"}))

    lead_id = await MarketingClient("https://mkt.example.com", api_key="k").submit_lead(
        external_id="x", form_name="free_trial", flag="yellow", contact={}, company={}
    )

    assert lead_id == "lead-1"
    assert str(requests[0].url) == "https://mkt.example.com/leads"


@pytest.mark.asyncio
async def test_turnstile_verifier(mock_http):
    def handler(request):
        body = request.content.decode()
        return httpx.Response(200, json={"success": "response=good" in body})

    mock_http(handler)
    verifier = TurnstileVerifier("secret", verify_url="https://captcha.example.com/verify")

    assert await verifier.verify("good", "203.0.113.10") is True
    assert await verifier.verify("bad") is False


@pytest.mark.asyncio
async def test_turnstile_unavailable(mock_http):
    mock_http(lambda request: httpx.Response(500))
    verifier = TurnstileVerifier("secret", verify_url="https://captcha.example.com/verify")

    with pytest.raises(CaptchaUnavailable):
        await verifier.verify("good")


@pytest.mark.asyncio
async def test_turnstile_without_secret_rejects_outside_dev():
    assert await TurnstileVerifier("").verify("anything") is False
