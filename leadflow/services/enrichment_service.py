"""Enrichment waterfall - ordered company lookups, stopping at first success."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

import httpx

from leadflow.core.config import settings

logger = logging.getLogger(__name__)

ENRICHMENT_FIELDS = (
    "company_name",
    "domain",
    "industry",
    "employee_count",
    "annual_revenue",
    "country",
    "city",
)

# Provider keys accepted as aliases of the canonical field names
_FIELD_ALIASES = {
    "name": "company_name",
    "companyName": "company_name",
    "company": "company_name",
    "employees": "employee_count",
    "employeeCount": "employee_count",
    "annualRevenue": "annual_revenue",
    "revenue": "annual_revenue",
    "countryCode": "country",
    "country_code": "country",
}


@dataclass(frozen=True)
class CompanyIdentity:
    """What the waterfall looks a company up by."""

    domain: str
    company_name: str | None = None
    country: str | None = None


@dataclass
class EnrichmentResult:
    provider: str
    fields: dict[str, Any]
    attempted: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"provider": self.provider, "fields": self.fields, "attempted": self.attempted}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "EnrichmentResult | None":
        if not data or not data.get("provider"):
            return None
        return cls(
            provider=data["provider"],
            fields=dict(data.get("fields") or {}),
            attempted=list(data.get("attempted") or []),
        )


class EnrichmentProvider(Protocol):
    name: str

    async def lookup(self, identity: CompanyIdentity) -> dict[str, Any] | None:
        """Return raw company data, None when the provider has no match."""
        ...


class HttpEnrichmentProvider:
    """Provider reached over HTTP: GET {url}?domain=...&company=..."""

    def __init__(self, name: str, url: str, *, api_key: str = "", timeout: float | None = None):
        self.name = name
        self.url = url
        self.api_key = api_key
        self.timeout = timeout or settings.ENRICHMENT_TIMEOUT_SECONDS

    async def lookup(self, identity: CompanyIdentity) -> dict[str, Any] | None:
        params = {"domain": identity.domain}
        if identity.company_name:
            params["company"] = identity.company_name
        if identity.country:
            params["country"] = identity.country
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(self.url, params=params, headers=headers)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data = response.json()
        if isinstance(data, dict) and isinstance(data.get("company"), dict):
            data = data["company"]
        return data if isinstance(data, dict) else None


def normalize_fields(raw: dict[str, Any]) -> dict[str, Any]:
    """Map provider keys onto ENRICHMENT_FIELDS, dropping empty values."""
    cleaned: dict[str, Any] = {}
    for key, value in raw.items():
        canonical = _FIELD_ALIASES.get(key, key)
        if canonical not in ENRICHMENT_FIELDS:
            continue
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        cleaned.setdefault(canonical, value.strip() if isinstance(value, str) else value)
    return cleaned


def is_usable(fields: dict[str, Any]) -> bool:
    """A match needs a company name plus at least one firmographic."""
    return bool(fields.get("company_name")) and any(
        fields.get(key) for key in ("industry", "employee_count", "annual_revenue")
    )


def merge_fields(
    form_fields: dict[str, Any] | None,
    provider_fields: Sequence[dict[str, Any]],
) -> dict[str, Any]:
    """
    Merge by priority: explicit form values, then providers in waterfall
    order, each only filling fields still missing.
    """
    merged: dict[str, Any] = {}
    for source in (normalize_fields(form_fields or {}), *provider_fields):
        for key, value in source.items():
            if key not in merged:
                merged[key] = value
    return merged


class EnrichmentWaterfall:
    """Tries providers in fixed priority order until one returns usable data."""

    def __init__(self, providers: Sequence[EnrichmentProvider], *, timeout: float | None = None):
        self.providers = list(providers)
        self.timeout = timeout or settings.ENRICHMENT_TIMEOUT_SECONDS

    async def enrich(
        self,
        identity: CompanyIdentity,
        form_fields: dict[str, Any] | None = None,
    ) -> EnrichmentResult | None:
        """
        Run the waterfall. Returns None (not found) when no provider yields
        usable data. Provider errors and timeouts are never raised.
        """
        attempted: list[str] = []
        partials: list[dict[str, Any]] = []

        for provider in self.providers:
            attempted.append(provider.name)
            try:
                raw = await asyncio.wait_for(provider.lookup(identity), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning("Enrichment provider %s timed out", provider.name)
                continue
            except Exception as exc:
                logger.warning(
                    "Enrichment provider %s failed (%s)", provider.name, type(exc).__name__
                )
                continue

            if not raw:
                continue
            fields = normalize_fields(raw)
            if not fields:
                continue
            partials.append(fields)
            if is_usable(fields):
                logger.info("Enrichment matched via %s", provider.name)
                return EnrichmentResult(
                    provider=provider.name,
                    fields=merge_fields(form_fields, partials),
                    attempted=attempted,
                )

        logger.info("Enrichment found no usable match after %s", ",".join(attempted) or "no providers")
        return None


def build_waterfall() -> EnrichmentWaterfall:
    providers = [
        HttpEnrichmentProvider(name, url, api_key=settings.ENRICHMENT_API_KEY)
        for name, url in settings.enrichment_providers_list
    ]
    return EnrichmentWaterfall(providers)
