"""Cloudflare Turnstile token verification."""

from __future__ import annotations

import logging

import httpx

from leadflow.core.config import settings

logger = logging.getLogger(__name__)


class CaptchaUnavailable(Exception):
    """The CAPTCHA verifier could not be reached or answered unexpectedly."""


class TurnstileVerifier:
    def __init__(
        self,
        secret_key: str | None = None,
        *,
        verify_url: str | None = None,
        timeout: float | None = None,
    ):
        self.secret_key = settings.TURNSTILE_SECRET_KEY if secret_key is None else secret_key
        self.verify_url = verify_url or settings.TURNSTILE_VERIFY_URL
        self.timeout = timeout or settings.TURNSTILE_TIMEOUT_SECONDS

    async def verify(self, token: str, remote_ip: str | None = None) -> bool:
        """
        Verify a Turnstile token.

        Returns False for a rejected token; raises CaptchaUnavailable on
        transport failures so the caller can fail the step.
        """
        if not self.secret_key:
            if settings.ENV == "dev":
                logger.warning("[DEV] TURNSTILE_SECRET_KEY not set - accepting token")
                return True
            logger.error("TURNSTILE_SECRET_KEY not configured")
            return False

        data = {"secret": self.secret_key, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.verify_url, data=data)
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Turnstile verification unavailable (%s)", type(exc).__name__)
            raise CaptchaUnavailable(str(exc)) from exc

        if not result.get("success"):
            logger.info("Turnstile rejected token: %s", result.get("error-codes"))
            return False
        return True
