"""Spotify HTTP client for paginated library endpoints."""

import json
import logging
from typing import Any

import httpx

from songsync.config.settings import SpotifySettings
from songsync.domain.dtos import PageRequest
from songsync.domain.exceptions import (
    ExternalServiceError,
    MalformedPageError,
    RateLimitExceededError,
    TokenRefreshException,
)
from songsync.domain.ports import ICatalogClient
from songsync.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

TIME_RANGES = ("long_term", "medium_term", "short_term")


class SpotifyClient(ICatalogClient):
    """HTTP client for the Spotify Web API library endpoints."""

    # Hey future me, this init is deceptively simple - we DON'T create the HTTP client here
    # because we need to be async-friendly. The actual client gets lazy-loaded in _get_client().
    # One client = one RateLimiter, and the app builds exactly one client, so every drain of
    # every run shares the same bucket.
    def __init__(
        self,
        settings: SpotifySettings,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """
        Initialize Spotify client.

        Args:
            settings: Spotify configuration settings
            rate_limiter: Token bucket to use (defaults to one built from settings)
        """
        self.settings = settings
        self.rate_limiter = rate_limiter or RateLimiter.for_spotify(
            requests_per_second=settings.requests_per_second,
            burst=settings.burst,
        )
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.request_timeout)
        return self._client

    # Hey, this close() is IMPORTANT - if you don't call it, you'll leak connections.
    # lifecycle.app_context() calls it on shutdown.
    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # Endpoint request builders. First page = endpoint + limit (+ time_range); every later
    # page is the absolute "next" URL Spotify hands back.
    def top_tracks_request(self, time_range: str) -> PageRequest:
        """First page of the user's top tracks for one time range."""
        if time_range not in TIME_RANGES:
            raise ValueError(f"Unknown time range: {time_range}")
        return PageRequest(
            url=f"{self.settings.api_base_url}/me/top/tracks",
            params={"limit": self.settings.page_limit, "time_range": time_range},
        )

    def saved_tracks_request(self) -> PageRequest:
        """First page of the user's Liked Songs."""
        return PageRequest(
            url=f"{self.settings.api_base_url}/me/tracks",
            params={"limit": self.settings.page_limit},
        )

    def playlists_request(self) -> PageRequest:
        """First page of the playlists the user owns or follows."""
        return PageRequest(
            url=f"{self.settings.api_base_url}/me/playlists",
            params={"limit": self.settings.page_limit},
        )

    # Hey future me - CENTRALIZED API REQUEST with Rate Limiting!
    # - Token Bucket rate limiting (prevents 429s)
    # - Retry on 429 honouring Retry-After, at most settings.max_retries times
    # - Anything else (2xx or error) is returned as-is; get_page() maps it
    async def _api_request(
        self,
        method: str,
        url: str,
        access_token: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make rate-limited API request with automatic retry on 429.

        Raises:
            RateLimitExceededError: Still 429 after max_retries retries
            ExternalServiceError: Transport failure (connect, timeout, ...)
        """
        client = await self._get_client()
        max_retries = self.settings.max_retries
        headers = {"Authorization": f"Bearer {access_token}"}

        for attempt in range(max_retries + 1):
            try:
                async with self.rate_limiter:
                    response = await client.request(
                        method=method,
                        url=url,
                        params=params,
                        headers=headers,
                    )
            except httpx.HTTPError as e:
                raise ExternalServiceError(
                    f"Spotify request failed: {e}", url=url
                ) from e

            if response.status_code != 429:
                self.rate_limiter.reset_backoff()
                return response

            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            if attempt >= max_retries:
                raise RateLimitExceededError(
                    f"Spotify API rate limited (429) after {max_retries} retries. "
                    f"Retry-After: {retry_after or 'not provided'} seconds.",
                    url=url,
                    retry_after=retry_after,
                )

            wait_time = await self.rate_limiter.handle_rate_limit_response(retry_after)
            logger.warning(
                f"Spotify 429 Rate Limit (attempt {attempt + 1}/{max_retries}): "
                f"Waited {wait_time:.1f}s, retrying {url}"
            )

        # range() always runs at least once and every path above returns or raises
        raise AssertionError("unreachable")

    async def get_page(
        self, request: PageRequest, access_token: str
    ) -> dict[str, Any]:
        """
        Fetch one page of a paginated endpoint.

        Args:
            request: URL (+ query params for first pages)
            access_token: OAuth access token of the user being ingested

        Returns:
            Decoded page object ({"items": [...], "next": url-or-null, ...})

        Raises:
            TokenRefreshException: Spotify rejected the token (401/403)
            ExternalServiceError: Network failure or any other non-2xx status
            MalformedPageError: Body is not a JSON object
        """
        response = await self._api_request(
            method="GET",
            url=request.url,
            access_token=access_token,
            params=request.params,
        )

        if response.status_code in (401, 403):
            raise TokenRefreshException(
                f"Spotify rejected the access token ({response.status_code}) for {request.url}",
                http_status=response.status_code,
            )
        if response.is_error:
            raise ExternalServiceError(
                f"Spotify returned {response.status_code} for {request.url}",
                url=request.url,
                http_status=response.status_code,
            )

        try:
            page = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedPageError(
                f"Spotify page is not valid JSON: {e}", url=request.url
            ) from e

        if not isinstance(page, dict):
            raise MalformedPageError(
                f"Spotify page is a {type(page).__name__}, expected an object",
                url=request.url,
            )
        return page


def _parse_retry_after(value: str | None) -> int | None:
    """Retry-After in seconds, None when missing or not an integer."""
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logger.debug("Ignoring non-numeric Retry-After header: %s", value)
        return None


__all__ = ["SpotifyClient", "TIME_RANGES"]
