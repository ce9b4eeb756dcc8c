"""Odesli (song.link) `/links` API client."""

import asyncio
from typing import Any

import httpx

from app.core.exceptions import (
    ResolutionTimeout,
    UpstreamError,
    UpstreamNotFound,
    UpstreamRateLimited,
)

import structlog

logger = structlog.get_logger()

USER_AGENT = "SmartLink/1.0 (https://mdmcmusicads.com)"


def _retry_after(response: httpx.Response) -> float | None:
    header = response.headers.get("Retry-After")
    if not header:
        return None
    try:
        return float(header)
    except ValueError:
        return None


class OdesliClient:
    """Single-shot async client. No retries: failures go to the caller's stale-cache fallback.

    The whole call (connect + read) is bounded by ``timeout_seconds``; a
    cancelled caller cancels the in-flight request.
    """

    def __init__(
        self,
        base_url: str = "https://api.song.link/v1-alpha.1",
        *,
        user_country: str = "FR",
        timeout_seconds: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._user_country = user_country
        self._timeout_seconds = timeout_seconds

    async def _get(self, params: dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            return await client.get(
                f"{self._base_url}/links",
                params=params,
                headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            )

    async def fetch_links(self, source_url: str) -> dict[str, Any]:
        """Fetch the raw Odesli document for ``source_url``.

        Status mapping:
          404 → UpstreamNotFound
          429 → UpstreamRateLimited
          other non-2xx → UpstreamError(status)
          timeout → ResolutionTimeout
          transport error / non-JSON body → UpstreamError(None)
        """
        params = {
            "url": source_url,
            "userCountry": self._user_country,
            "songIfSingle": "true",
        }
        logger.info("odesli_fetch", source_url=source_url)

        try:
            response = await asyncio.wait_for(self._get(params), timeout=self._timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise ResolutionTimeout(self._timeout_seconds) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(None, str(exc)) from exc

        if response.status_code == 404:
            raise UpstreamNotFound(source_url)
        if response.status_code == 429:
            raise UpstreamRateLimited(_retry_after(response))
        if not 200 <= response.status_code < 300:
            raise UpstreamError(response.status_code, response.text[:200])

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError(response.status_code, "response body is not JSON") from exc
        if not isinstance(data, dict):
            raise UpstreamError(response.status_code, "response body is not a JSON object")
        return data
