"""Enrichment waterfall ordering, fall-through and merge priority."""

import asyncio

import httpx
import pytest

from leadflow.services.enrichment_service import (
    CompanyIdentity,
    EnrichmentResult,
    EnrichmentWaterfall,
    HttpEnrichmentProvider,
    is_usable,
    merge_fields,
    normalize_fields,
)
from conftest import COMPANY_DATA, FakeEnrichmentProvider

IDENTITY = CompanyIdentity(domain="corp.com", company_name="Corp Inc", country="US")


class SlowProvider:
    name = "slow"

    def __init__(self):
        self.calls = 0

    async def lookup(self, identity):
        self.calls += 1
        await asyncio.sleep(5)
        return dict(COMPANY_DATA)


@pytest.mark.asyncio
async def test_first_usable_provider_stops_the_waterfall():
    first = FakeEnrichmentProvider("first", dict(COMPANY_DATA))
    second = FakeEnrichmentProvider("second", {"name": "Other"})

    result = await EnrichmentWaterfall([first, second], timeout=1).enrich(IDENTITY)

    assert result.provider == "first"
    assert result.attempted == ["first"]
    assert result.fields["company_name"] == "Corp Inc"
    assert result.fields["employee_count"] == 250
    assert second.calls == 0


@pytest.mark.asyncio
async def test_errors_and_misses_fall_through():
    failing = FakeEnrichmentProvider("failing", error=httpx.ConnectError("refused"))
    empty = FakeEnrichmentProvider("empty", None)
    good = FakeEnrichmentProvider("good", dict(COMPANY_DATA))

    result = await EnrichmentWaterfall([failing, empty, good], timeout=1).enrich(IDENTITY)

    assert result.provider == "good"
    assert result.attempted == ["failing", "empty", "good"]


@pytest.mark.asyncio
async def test_timeout_falls_through():
    slow = SlowProvider()
    good = FakeEnrichmentProvider("good", dict(COMPANY_DATA))

    result = await EnrichmentWaterfall([slow, good], timeout=0.05).enrich(IDENTITY)

    assert slow.calls == 1
    assert result.provider == "good"


@pytest.mark.asyncio
async def test_no_usable_match_returns_none():
    partial = FakeEnrichmentProvider("partial", {"name": "Corp Inc"})
    failing = FakeEnrichmentProvider("failing", error=RuntimeError("boom"))

    assert await EnrichmentWaterfall([partial, failing], timeout=1).enrich(IDENTITY) is None
    assert await EnrichmentWaterfall([], timeout=1).enrich(IDENTITY) is None


@pytest.mark.asyncio
async def test_partial_results_fill_gaps_in_waterfall_order():
    partial = FakeEnrichmentProvider("partial", {"name": "Corp Partial", "city": "Reston"})
    good = FakeEnrichmentProvider("good", {"name": "Corp Inc", "industry": "Software", "city": "Austin"})

    result = await EnrichmentWaterfall([partial, good], timeout=1).enrich(
        IDENTITY, form_fields={"company_name": "Corp (form)"}
    )

    # Form values win, then earlier providers
    assert result.fields["company_name"] == "Corp (form)"
    assert result.fields["city"] == "Reston"
    assert result.fields["industry"] == "Software"


def test_normalize_fields_maps_aliases_and_drops_blanks():
    fields = normalize_fields({"companyName": " Corp ", "employees": 10, "industry": "", "unknown": 1})
    assert fields == {"company_name": "Corp", "employee_count": 10}


def test_is_usable_needs_name_and_firmographic():
    assert is_usable({"company_name": "Corp", "industry": "Software"})
    assert not is_usable({"company_name": "Corp"})
    assert not is_usable({"industry": "Software"})


def test_merge_fields_priority():
    merged = merge_fields({"company_name": "Form"}, [{"company_name": "A", "city": "X"}, {"city": "Y"}])
    assert merged == {"company_name": "Form", "city": "X"}


def test_result_round_trips_through_json_column():
    result = EnrichmentResult(provider="p", fields={"company_name": "Corp"}, attempted=["p"])
    assert EnrichmentResult.from_dict(result.to_dict()) == result
    assert EnrichmentResult.from_dict(None) is None


@pytest.mark.asyncio
async def test_http_provider_reads_company_payload(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["domain"] == "corp.com"
        assert request.headers["Authorization"] == "Bearer key"
        if request.url.params.get("company") == "Missing":
            return httpx.Response(404)
        return httpx.Response(200, json={"company": {"name": "Corp Inc", "industry": "Software"}})

    real_client = httpx.AsyncClient

    def mock_client(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", mock_client)
    provider = HttpEnrichmentProvider("http", "https://enrich.example.com/v1/company", api_key="key")

    assert await provider.lookup(IDENTITY) == {"name": "Corp Inc", "industry": "Software"}
    assert await provider.lookup(CompanyIdentity(domain="corp.com", company_name="Missing")) is None
