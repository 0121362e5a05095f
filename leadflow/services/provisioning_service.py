"""Provisioning collaborator: builder availability and trial environment creation."""

from __future__ import annotations

import logging
from typing import Any

from leadflow.core.config import settings
from leadflow.core.errors import ExternalServiceDegradation
from leadflow.db.enums import BuilderStatus, CountryClassification
from leadflow.services.http_service import call_service

logger = logging.getLogger(__name__)

_COUNTRY_FALLBACK = {
    CountryClassification.ALLOW: BuilderStatus.AVAILABLE,
    CountryClassification.UNKNOWN: BuilderStatus.CONSTRAINED,
    CountryClassification.BLOCKED: BuilderStatus.UNAVAILABLE,
}


def builder_status_from_country(classification: CountryClassification) -> BuilderStatus:
    """Builder status implied by the country verdict alone."""
    return _COUNTRY_FALLBACK[classification]


class ProvisioningClient:
    def __init__(
        self,
        api_url: str | None = None,
        *,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        self.api_url = (settings.PROVISIONING_API_URL if api_url is None else api_url).rstrip("/")
        self.api_key = settings.PROVISIONING_API_KEY if api_key is None else api_key
        self.timeout = timeout or settings.DOWNSTREAM_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.api_url)

    async def get_builder_status(
        self, country: str | None, region: str | None = None
    ) -> BuilderStatus | None:
        """Region availability from the provisioning side. None when it cannot say."""
        if not self.configured or not country:
            return None
        params = {"country": country}
        if region:
            params["region"] = region
        try:
            data = await call_service(
                "provisioning",
                "GET",
                f"{self.api_url}/availability",
                timeout=self.timeout,
                api_key=self.api_key,
                params=params,
                max_attempts=1,
            )
        except ExternalServiceDegradation as exc:
            logger.warning("Builder status unavailable: %s", exc)
            return None

        try:
            return BuilderStatus(str(data.get("status", "")).lower())
        except ValueError:
            logger.warning("Unrecognized builder status %r", data.get("status"))
            return None

    async def provision(
        self,
        *,
        external_id: str,
        destination_region: str | None,
        form_name: str,
        contact: dict[str, Any],
        company: dict[str, Any],
    ) -> str | None:
        """Create the trial environment. Returns the provisioning reference."""
        if not self.configured:
            if settings.ENV == "dev":
                logger.info("[DRY RUN] Provisioning skipped external_id=%s", external_id)
                return None
            raise ExternalServiceDegradation("provisioning", "PROVISIONING_API_URL not configured")

        data = await call_service(
            "provisioning",
            "POST",
            f"{self.api_url}/environments",
            timeout=self.timeout,
            api_key=self.api_key,
            json={
                "externalId": external_id,
                "region": destination_region,
                "formName": form_name,
                "contact": contact,
                "company": company,
            },
            headers={"Idempotency-Key": external_id},
        )
        return data.get("id")
