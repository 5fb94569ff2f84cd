"""
External Service Clients
========================

Interfaces for the slow, fallible services the pipeline depends on, plus
httpx-based implementations:

- BusinessDataClient   place lookup by place identifier
- ImageSearchClient    image-search style discovery
- ScrapeClient         rendered markdown/HTML for a URL
- ImageDownloader      raw image bytes

Long-running actor runs are polled at a fixed interval up to a maximum number
of attempts. Nothing here retries a failed request.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from venue_agent.core.errors import ExternalServiceError, MalformedResponseError
from venue_agent.core.schema import ScrapeResult

logger = logging.getLogger(__name__)

ACTOR_TERMINAL_STATUSES = frozenset({"SUCCEEDED", "FAILED", "ABORTED", "TIMED-OUT"})


# ============================================================================
# Interfaces
# ============================================================================


class BusinessDataClient(ABC):
    """Looks up a venue in the business-data service."""

    @abstractmethod
    async def fetch_place(self, place_id: str) -> dict[str, Any]:
        """
        Fetch the raw place record.

        Raises:
            ExternalServiceError: On network or service failure.
            MalformedResponseError: If no usable record comes back.
        """


class ImageSearchClient(ABC):
    """Broad-recall image discovery."""

    @abstractmethod
    async def search_images(self, query: str, max_results: int = 50) -> list[dict[str, Any]]:
        """Return raw image-search results for a free-text query."""


class ScrapeClient(ABC):
    """Renders a page (or a search-results page) to markdown/HTML."""

    @abstractmethod
    async def scrape(
        self,
        url: str,
        formats: tuple[str, ...] = ("markdown",),
        only_main_content: bool = True,
        wait_for: int | None = None,
    ) -> ScrapeResult:
        """
        Scrape a single URL.

        Raises:
            ExternalServiceError: On network or service failure.
        """


@dataclass
class DownloadResult:
    """Result of downloading an image."""

    url: str
    content: bytes
    content_hash: str
    content_type: str
    status_code: int
    fetched_at: datetime
    error: str | None = None

    @property
    def success(self) -> bool:
        """Check if the download was successful."""
        return self.error is None and 200 <= self.status_code < 300 and bool(self.content)


class ImageDownloader(ABC):
    """Downloads image bytes."""

    @abstractmethod
    async def download(self, url: str) -> DownloadResult:
        """Download a URL; failures are reported on the result, not raised."""

    @staticmethod
    def compute_hash(content: bytes) -> str:
        """Compute SHA-256 hash of content."""
        return hashlib.sha256(content).hexdigest()


# ============================================================================
# HTTP plumbing
# ============================================================================


class _HttpService:
    """Shared httpx handling for JSON services."""

    service_name = "service"

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._http_client = http_client

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    async def _request_json(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Any:
        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {self.token}"}
        try:
            response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise ExternalServiceError(self.service_name, f"timeout calling {path}") from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(self.service_name, f"{path}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise ExternalServiceError(
                self.service_name,
                f"{method} {path} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"{self.service_name}: {path} did not return JSON", response.text[:500]
            ) from e


# ============================================================================
# Actor-based services (business data, image search)
# ============================================================================


class ActorClient(_HttpService):
    """
    Starts actor runs and polls them to completion.

    Polling is bounded: ``max_poll_attempts`` checks spaced ``poll_interval``
    seconds apart, after which the run is reported as failed.
    """

    service_name = "actor-service"

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.apify.com/v2",
        poll_interval: float = 2.0,
        max_poll_attempts: int = 60,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(base_url, token, timeout, http_client)
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts

    async def run(self, actor_id: str, run_input: dict[str, Any]) -> list[dict[str, Any]]:
        """
        Run an actor and return its dataset items.

        Raises:
            ExternalServiceError: If the run fails or does not finish in time.
            MalformedResponseError: If the service responds with an unexpected shape.
        """
        async with self._client() as client:
            started = await self._request_json(
                client, "POST", f"/acts/{actor_id}/runs", json=run_input
            )
            run = self._run_data(started)
            run_id = run["id"]
            status = run.get("status", "")
            dataset_id = run.get("defaultDatasetId")
            logger.info(f"Started actor {actor_id} run {run_id}")

            attempts = 0
            while status not in ACTOR_TERMINAL_STATUSES:
                if attempts >= self.max_poll_attempts:
                    raise ExternalServiceError(
                        self.service_name,
                        f"run {run_id} of {actor_id} not finished after {attempts} polls",
                    )
                await asyncio.sleep(self.poll_interval)
                attempts += 1
                run = self._run_data(
                    await self._request_json(client, "GET", f"/actor-runs/{run_id}")
                )
                status = run.get("status", "")
                dataset_id = run.get("defaultDatasetId") or dataset_id

            if status != "SUCCEEDED":
                raise ExternalServiceError(
                    self.service_name, f"run {run_id} of {actor_id} ended with {status}"
                )
            if not dataset_id:
                raise MalformedResponseError(f"run {run_id} has no dataset")

            items = await self._request_json(
                client, "GET", f"/datasets/{dataset_id}/items", params={"clean": "true"}
            )
            if not isinstance(items, list):
                raise MalformedResponseError(f"dataset {dataset_id} is not a list")
            logger.info(f"Actor {actor_id} run {run_id} returned {len(items)} items")
            return items

    @staticmethod
    def _run_data(body: Any) -> dict[str, Any]:
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict) or "id" not in data:
            raise MalformedResponseError("actor run response has no data.id")
        return data


class ActorBusinessDataClient(BusinessDataClient):
    """Business-data lookup backed by a places crawler actor."""

    def __init__(self, actor_client: ActorClient, actor_id: str, max_images: int = 20) -> None:
        self.actor_client = actor_client
        self.actor_id = actor_id
        self.max_images = max_images

    async def fetch_place(self, place_id: str) -> dict[str, Any]:
        items = await self.actor_client.run(
            self.actor_id,
            {"placeIds": [place_id], "maxImages": self.max_images, "language": "en"},
        )
        if not items or not isinstance(items[0], dict):
            raise MalformedResponseError(f"No business data returned for place {place_id}")
        return items[0]


class ActorImageSearchClient(ImageSearchClient):
    """Image search backed by a search-engine image scraper actor."""

    def __init__(self, actor_client: ActorClient, actor_id: str) -> None:
        self.actor_client = actor_client
        self.actor_id = actor_id

    async def search_images(self, query: str, max_results: int = 50) -> list[dict[str, Any]]:
        items = await self.actor_client.run(
            self.actor_id, {"queries": [query], "maxResultsPerQuery": max_results}
        )
        return [item for item in items if isinstance(item, dict)][:max_results]


# ============================================================================
# Scraping
# ============================================================================


class HttpScrapeClient(_HttpService, ScrapeClient):
    """Scrape client for a hosted page-rendering API."""

    service_name = "scrape-service"

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.firecrawl.dev/v1",
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(base_url, token, timeout, http_client)

    async def scrape(
        self,
        url: str,
        formats: tuple[str, ...] = ("markdown",),
        only_main_content: bool = True,
        wait_for: int | None = None,
    ) -> ScrapeResult:
        payload: dict[str, Any] = {
            "url": url,
            "formats": list(formats),
            "onlyMainContent": only_main_content,
        }
        if wait_for is not None:
            payload["waitFor"] = wait_for

        async with self._client() as client:
            body = await self._request_json(client, "POST", "/scrape", json=payload)

        if not isinstance(body, dict) or not body.get("success", False):
            error = body.get("error") if isinstance(body, dict) else None
            raise ExternalServiceError(self.service_name, f"scrape of {url} failed: {error}")

        data = body.get("data") or {}
        return ScrapeResult(
            url=url,
            success=True,
            markdown=data.get("markdown") or "",
            html=data.get("html") or "",
            metadata=data.get("metadata") or {},
        )


# ============================================================================
# Downloads
# ============================================================================


class HttpImageDownloader(ImageDownloader):
    """Downloads images over HTTP without retries."""

    def __init__(
        self,
        user_agent: str = "VenueAgent/0.1",
        timeout: float = 30.0,
        max_bytes: int = 20 * 1024 * 1024,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_bytes = max_bytes
        self._http_client = http_client

    async def download(self, url: str) -> DownloadResult:
        fetched_at = datetime.now(UTC)
        try:
            if self._http_client is not None:
                response = await self._get(self._http_client, url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._get(client, url)
        except httpx.TimeoutException:
            logger.warning(f"Timeout downloading {url}")
            return self._failed(url, fetched_at, f"Timeout after {self.timeout}s")
        except httpx.HTTPError as e:
            logger.warning(f"HTTP error downloading {url}: {e}")
            return self._failed(url, fetched_at, str(e))

        content = response.content
        error = None
        if not 200 <= response.status_code < 300:
            error = f"HTTP {response.status_code}"
        elif len(content) > self.max_bytes:
            error = f"Image larger than {self.max_bytes} bytes"

        return DownloadResult(
            url=url,
            content=content if error is None else b"",
            content_hash=self.compute_hash(content) if error is None else "",
            content_type=response.headers.get("content-type", "").split(";")[0].strip(),
            status_code=response.status_code,
            fetched_at=fetched_at,
            error=error,
        )

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        return await client.get(url, headers={"User-Agent": self.user_agent}, follow_redirects=True)

    @staticmethod
    def _failed(url: str, fetched_at: datetime, error: str) -> DownloadResult:
        return DownloadResult(
            url=url,
            content=b"",
            content_hash="",
            content_type="",
            status_code=0,
            fetched_at=fetched_at,
            error=error,
        )
