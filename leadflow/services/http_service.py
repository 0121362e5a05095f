"""HTTP helpers with retry/backoff for downstream collaborators."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable

import httpx

from leadflow.core.errors import ExternalServiceDegradation

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = {429, 500, 502, 503, 504}


def _backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    delay = min(max_delay, base_delay * (2**attempt))
    if delay:
        delay += random.uniform(0, delay / 2)
    return delay


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: set[int] | None = None,
) -> httpx.Response:
    """
    Execute an HTTP request with exponential backoff retries.

    Transport errors and retryable statuses are retried; the last response
    is returned as-is, the last transport error is re-raised.
    """
    statuses = retry_statuses or DEFAULT_RETRY_STATUSES
    response: httpx.Response | None = None

    for attempt in range(max_attempts):
        last_attempt = attempt >= max_attempts - 1
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if last_attempt:
                raise
            logger.warning("HTTP request failed (%s), retrying", type(exc).__name__)
            await asyncio.sleep(_backoff(attempt, base_delay, max_delay))
            continue

        if response.status_code in statuses and not last_attempt:
            logger.warning("HTTP request returned %s, retrying", response.status_code)
            await asyncio.sleep(_backoff(attempt, base_delay, max_delay))
            continue
        return response

    return response


async def call_service(
    service: str,
    method: str,
    url: str,
    *,
    timeout: float,
    api_key: str = "",
    json: dict[str, Any] | None = None,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    max_attempts: int = 3,
) -> dict[str, Any]:
    """
    Call a collaborator and return its JSON body.

    Any transport failure, timeout, non-2xx status or unparsable body is
    raised as ExternalServiceDegradation.
    """
    request_headers = dict(headers or {})
    if api_key:
        request_headers["Authorization"] = f"Bearer {api_key}"

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await request_with_retries(
                lambda: client.request(method, url, json=json, params=params, headers=request_headers),
                max_attempts=max_attempts,
            )
        response.raise_for_status()
        if not response.content:
            return {}
        data = response.json()
    except httpx.HTTPStatusError as exc:
        raise ExternalServiceDegradation(service, f"status {exc.response.status_code}") from exc
    except (httpx.HTTPError, ValueError) as exc:
        raise ExternalServiceDegradation(service, type(exc).__name__) from exc

    return data if isinstance(data, dict) else {"data": data}
