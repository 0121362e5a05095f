"""Marketing-automation collaborator: lead submission."""

from __future__ import annotations

import logging
from typing import Any

from leadflow.core.config import settings
from leadflow.core.errors import ExternalServiceDegradation
from leadflow.services.http_service import call_service

logger = logging.getLogger(__name__)


class MarketingClient:
    def __init__(
        self,
        api_url: str | None = None,
        *,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        self.api_url = (settings.MARKETING_API_URL if api_url is None else api_url).rstrip("/")
        self.api_key = settings.MARKETING_API_KEY if api_key is None else api_key
        self.timeout = timeout or settings.DOWNSTREAM_TIMEOUT_SECONDS

    async def submit_lead(
        self,
        *,
        external_id: str,
        form_name: str,
        flag: str,
        contact: dict[str, Any],
        company: dict[str, Any],
    ) -> str | None:
        """Push the lead to marketing automation. Returns the remote lead id."""
        if not self.api_url:
            if settings.ENV == "dev":
                logger.info("[DRY RUN] Marketing submission skipped external_id=%s", external_id)
                return None
            raise ExternalServiceDegradation("marketing", "MARKETING_API_URL not configured")

        data = await call_service(
            "marketing",
            "POST",
            f"{self.api_url}/leads",
            timeout=self.timeout,
            api_key=self.api_key,
            json={
                "externalId": external_id,
                "formName": form_name,
                "flag": flag,
                "contact": contact,
                "company": company,
            },
            headers={"Idempotency-Key": external_id},
        )
        return data.get("id")
