"""Async GitHub access: organization listing and repository tarballs."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hubble.exceptions import NetworkError, OperationTimeoutError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from hubble.config import GitHubSettings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_TRANSIENT_ERRORS = (httpx.TransportError,)


class GitHubClient:
    """Read-only client for the GitHub REST API and tarball downloads."""

    def __init__(
        self,
        settings: GitHubSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.timeout),
            follow_redirects=True,
        )

    @property
    def org(self) -> str:
        return self._settings.org_name

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self._settings.token:
            headers["Authorization"] = f"Bearer {self._settings.token}"
        return headers

    async def _get_with_retry(self, url: str, **kwargs: Any) -> httpx.Response:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            stop=stop_after_attempt(self._settings.retries),
            wait=wait_exponential(multiplier=1, min=1, max=30),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._client.get(url, headers=self._headers(), **kwargs)
        raise AssertionError("unreachable")  # pragma: no cover

    async def list_org_repos(self, org: str | None = None) -> list[dict[str, Any]]:
        """Fetch every repository record of an organization.

        Follows ``Link: rel="next"`` pagination.

        Args:
            org: Organization login; defaults to the configured one.

        Returns:
            Raw repository fact records as returned by the API.

        Raises:
            NetworkError: On transport failure, a non-200 status, rate
                limit exhaustion or a non-list payload.
            OperationTimeoutError: If the request times out on every attempt.
        """
        org = org or self._settings.org_name
        url: str | None = f"{self._settings.api_host}/orgs/{quote(org, safe='')}/repos"
        params: dict[str, Any] | None = {"per_page": self._settings.per_page}
        repos: list[dict[str, Any]] = []

        logger.info("listing_org_repos", org=org, url=url)
        while url:
            try:
                response = await self._get_with_retry(url, params=params)
            except httpx.TimeoutException as exc:
                raise OperationTimeoutError(f"Listing {org!r} timed out: {exc}") from exc
            except httpx.HTTPError as exc:
                raise NetworkError(f"Listing {org!r} failed: {exc}") from exc
            self._ensure_ok(response, f"Listing {org!r}")

            payload = response.json()
            if not isinstance(payload, list):
                raise NetworkError(f"Listing {org!r} returned a non-list payload")
            repos.extend(item for item in payload if isinstance(item, dict))

            url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            params = None

        logger.info("listed_org_repos", org=org, count=len(repos))
        return repos

    def tarball_url(self, name: str, org: str | None = None) -> str:
        org = org or self._settings.org_name
        return (
            f"{self._settings.web_host}/{quote(org, safe='')}/{quote(name, safe='')}"
            f"/tarball/{quote(self._settings.ref, safe='')}"
        )

    @asynccontextmanager
    async def stream_tarball(
        self, name: str, org: str | None = None
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open a repository tarball as an async byte stream.

        Usage::

            async with client.stream_tarball("guide") as chunks:
                await store.extract("guide", chunks)

        Raises:
            NetworkError: If the request fails or returns a non-2xx status.
            OperationTimeoutError: If the client timeout expires.
        """
        url = self.tarball_url(name, org)
        logger.info("downloading_tarball", repo=name, url=url)
        try:
            async with self._client.stream("GET", url, headers=self._headers()) as response:
                if not response.is_success:
                    raise NetworkError(
                        f"Tarball for {name!r} returned HTTP {response.status_code}",
                        name=name,
                    )
                yield self._chunks(name, response)
        except httpx.TimeoutException as exc:
            raise OperationTimeoutError(
                f"Tarball for {name!r} timed out: {exc}", name=name
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Tarball for {name!r} failed: {exc}", name=name) from exc

    async def _chunks(self, name: str, response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.TimeoutException as exc:
            raise OperationTimeoutError(
                f"Tarball stream for {name!r} timed out: {exc}", name=name
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(
                f"Tarball stream for {name!r} broke: {exc}", name=name
            ) from exc

    def _ensure_ok(self, response: httpx.Response, what: str) -> None:
        remaining = response.headers.get("x-ratelimit-remaining")
        if response.status_code in (403, 429) and remaining == "0":
            raise NetworkError(f"{what}: GitHub rate limit exceeded")
        if response.status_code != 200:
            raise NetworkError(f"{what} returned HTTP {response.status_code}")
