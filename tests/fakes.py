"""In-memory fakes for the external services, plus canned responses."""

import asyncio
import json
from datetime import UTC, datetime
from typing import Any

from venue_agent.core.errors import ExternalServiceError
from venue_agent.core.schema import ScrapeResult
from venue_agent.ingestion.clients import (
    BusinessDataClient,
    DownloadResult,
    ImageDownloader,
    ImageSearchClient,
    ScrapeClient,
)
from venue_agent.services.ai.client import AIClient, AIProvider, GenerationResult

JPEG_MAGIC = b"\xff\xd8\xff\xe0"

SEED_ADDRESS = "12 Upper St Martin's Ln, London WC2H 9FB, United Kingdom"
WEBSITE = "https://www.dishoom.com"

BUSINESS_PAYLOAD: dict[str, Any] = {
    "title": "Dishoom Covent Garden",
    "address": SEED_ADDRESS,
    "phone": "+44 20 7420 9320",
    "website": WEBSITE,
    "price": "$$",
    "categoryName": "Indian restaurant",
    "totalScore": 4.7,
    "reviewsCount": 21000,
    "reviews": [{"text": "The black daal is worth the queue."}, {"text": ""}],
    "openingHours": [
        {"day": "Monday", "hours": "8 AM to 11 PM"},
        {"day": "Sunday", "hours": "Closed"},
    ],
    "imageUrls": ["https://lh5.googleusercontent.com/p/AF1QipAbc=w1600-h1200"],
    "location": {"lat": 51.5124, "lng": -0.1269},
    "neighborhood": "Covent Garden",
}

HOMEPAGE_MARKDOWN = """# Dishoom Covent Garden

![Dining room](https://www.dishoom.com/images/dining-room.jpg)

[Menu](/menu)
[Book a table](/book)
"""

MENU_MARKDOWN = "STARTERS\nSoup\n£6\nSalad - £8"

CONTENT_DOCUMENT: dict[str, Any] = {
    "slug": "ignored-slug",
    "phone": "+44 20 7420 9320",
    "price_range": "$$",
    "about": "A Bombay cafe in the heart of Covent Garden.",
    "dress_code": "Casual",
    "faqs": [{"question": "Do they take bookings?", "answer": "For groups of six or more."}],
    "cuisines": ["Indian", "indian", "Street Food"],
    "categories": ["Restaurant"],
    "features": ["Breakfast", "Outdoor Seating"],
    "neighbourhood": "Covent Garden",
    "award": "Bib Gourmand",
    "social_media_urls": {"instagram": "https://instagram.com/dishoom", "tiktok": None},
}

VISION_DOCUMENT = {
    "category": "interior",
    "descriptor": "Dining Room",
    "alt_text": "Dining room with marble tables",
    "title": "Dining room",
    "confidence": 0.9,
}


def fenced(document: dict[str, Any]) -> str:
    """Wrap a JSON document the way chat models often do."""
    return f"```json\n{json.dumps(document)}\n```"


# ============================================================================
# Fakes
# ============================================================================


class FakeBusinessClient(BusinessDataClient):
    def __init__(
        self,
        payload: dict[str, Any] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.payload = payload if payload is not None else dict(BUSINESS_PAYLOAD)
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def fetch_place(self, place_id: str) -> dict[str, Any]:
        self.calls.append(place_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload


class FakeScraper(ScrapeClient):
    """Serves canned pages by URL; unknown URLs return an empty successful page."""

    def __init__(
        self,
        pages: dict[str, ScrapeResult | Exception] | None = None,
        fail_all: bool = False,
    ):
        self.pages = pages or {}
        self.fail_all = fail_all
        self.calls: list[str] = []

    async def scrape(
        self,
        url: str,
        formats: tuple[str, ...] = ("markdown",),
        only_main_content: bool = True,
        wait_for: int | None = None,
    ) -> ScrapeResult:
        self.calls.append(url)
        if self.fail_all:
            raise ExternalServiceError("scrape-service", f"blocked: {url}")
        page = self.pages.get(url)
        if isinstance(page, Exception):
            raise page
        if page is None:
            return ScrapeResult(url=url, success=True)
        return page


class FakeImageSearch(ImageSearchClient):
    def __init__(self, items: list[dict[str, Any]] | None = None, error: Exception | None = None):
        self.items = items or []
        self.error = error
        self.queries: list[str] = []

    async def search_images(self, query: str, max_results: int = 50) -> list[dict[str, Any]]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.items[:max_results]


class FakeDownloader(ImageDownloader):
    """Returns distinct JPEG bytes per URL unless told otherwise."""

    def __init__(
        self,
        failing: set[str] | None = None,
        content: dict[str, bytes] | None = None,
    ):
        self.failing = failing or set()
        self.content = content or {}
        self.calls: list[str] = []

    async def download(self, url: str) -> DownloadResult:
        self.calls.append(url)
        fetched_at = datetime.now(UTC)
        if url in self.failing:
            return DownloadResult(url, b"", "", "", 404, fetched_at, "HTTP 404")
        data = self.content.get(url, JPEG_MAGIC + url.encode())
        return DownloadResult(url, data, self.compute_hash(data), "image/jpeg", 200, fetched_at)


class FakeAIClient(AIClient):
    """Replies with a fixed text, or fails as an API error."""

    provider = AIProvider.ANTHROPIC

    def __init__(self, response: str = "{}", error: Exception | None = None):
        self.model = "fake-model"
        self.response = response
        self.error = error
        self.prompts: list[str] = []

    def _reply(self, prompt: str) -> GenerationResult:
        self.prompts.append(prompt)
        if self.error is not None:
            return GenerationResult.api_failure(self.error)
        return GenerationResult.from_response(self.response)

    def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 2048,
    ) -> GenerationResult:
        return self._reply(user_prompt)

    def analyze_image(
        self,
        image_bytes: bytes,
        media_type: str,
        prompt: str,
        max_tokens: int = 1024,
    ) -> GenerationResult:
        return self._reply(prompt)
