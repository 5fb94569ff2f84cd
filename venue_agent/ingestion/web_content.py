"""
Web Content Fetcher
===================

Gathers what the open web says about a venue:

- search-results pages for its social profiles, review listings and awards
- its own homepage
- its menu, found by (1) a menu search, (2) menu links in the homepage
  navigation, then (3) common menu paths, stopping at the first page the
  menu parser gets at least one item out of

Sub-scrapes are fanned out concurrently under a fixed concurrency limit.
One failing sub-scrape is recorded on its result and does not affect the
others.
"""

import asyncio
import logging
import re
from urllib.parse import parse_qs, quote_plus, urlsplit

from venue_agent.core.config import PipelineConfig
from venue_agent.core.errors import ExternalServiceError, VenueAgentError
from venue_agent.core.schema import MenuData, ScrapeResult, WebContent
from venue_agent.core.text import extract_location, resolve_url, url_host
from venue_agent.ingestion.clients import ScrapeClient
from venue_agent.ingestion.menu_parser import MenuParser

logger = logging.getLogger(__name__)

SEARCH_SUFFIXES: dict[str, str] = {
    "social_instagram": "instagram",
    "social_facebook": "facebook",
    "social_tiktok": "tiktok",
    "reviews_tripadvisor": "tripadvisor",
    "reviews_opentable": "opentable",
    "awards_general": "awards",
    "awards_michelin": "michelin",
}

HOMEPAGE_KEY = "homepage"

MENU_LINK_KEYWORDS = ("menu", "food", "eat", "dining", "lunch", "dinner", "breakfast", "brunch")

# Hosts that never hold a venue's menu.
SEARCH_ENGINE_HOSTS = ("google.com", "maps.google", "accounts.google", "support.google")

METHOD_SEARCH = "search"
METHOD_HOMEPAGE = "homepage_navigation"
METHOD_COMMON_PATH = "common_path"

_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")


def unwrap_search_link(url: str) -> str:
    """Return the target of a ``/url?q=...`` search redirect, or the URL itself."""
    parts = urlsplit(url)
    if parts.path == "/url":
        target = parse_qs(parts.query).get("q") or parse_qs(parts.query).get("url")
        if target:
            return target[0]
    return url


def extract_menu_links(markdown: str, base_url: str) -> list[str]:
    """Menu-looking links in a page's markdown, made absolute, in page order."""
    links: list[str] = []
    for text, href in _LINK_RE.findall(markdown or ""):
        if not any(keyword in text.lower() for keyword in MENU_LINK_KEYWORDS):
            continue
        url = unwrap_search_link(resolve_url(base_url, href))
        if url.startswith("http") and url not in links:
            links.append(url)
    return links


def _is_search_engine_link(url: str) -> bool:
    host = url_host(url)
    return any(h in host for h in SEARCH_ENGINE_HOSTS)


class WebContentFetcher:
    """Runs the web-content stage for one venue."""

    def __init__(
        self,
        scraper: ScrapeClient,
        parser: MenuParser | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.scraper = scraper
        self.parser = parser or MenuParser()
        self.config = config or PipelineConfig()

    def search_url(self, query: str) -> str:
        return self.config.search_url_template.format(query=quote_plus(query))

    async def fetch(self, venue_name: str, address: str, website: str | None = None) -> WebContent:
        """
        Scrape search results, the homepage and the menu.

        Raises:
            ExternalServiceError: If every sub-scrape failed.
        """
        location = extract_location(address)
        base_query = " ".join(part for part in (venue_name, location) if part)
        semaphore = asyncio.Semaphore(self.config.web_max_concurrency)

        targets: dict[str, tuple[str, str | None]] = {
            key: (self.search_url(f"{base_query} {suffix}"), f"{base_query} {suffix}")
            for key, suffix in SEARCH_SUFFIXES.items()
        }
        if website:
            targets[HOMEPAGE_KEY] = (website, None)

        scraped = await asyncio.gather(
            *(self._scrape(semaphore, url, query) for url, query in targets.values())
        )
        results = dict(zip(targets.keys(), scraped))
        content = WebContent(base_query=base_query, location=location, results=results)

        content.menu = await self._discover_menu(base_query, website, results.get(HOMEPAGE_KEY))
        if content.menu.menu_url:
            results["menu"] = ScrapeResult(
                url=content.menu.menu_url,
                success=True,
                markdown=content.menu.raw_markdown,
                metadata={"scrape_method": content.menu.scrape_method},
            )

        logger.info(
            f"Web content for {venue_name}: {len(content.successful_sources)} sources ok, "
            f"{len(content.failed_sources)} failed, menu items: {content.menu.item_count}"
        )
        if not content.successful_sources:
            raise ExternalServiceError(
                "scrape-service", f"all {len(targets)} web scrapes failed for {venue_name}"
            )
        return content

    async def _scrape(
        self,
        semaphore: asyncio.Semaphore,
        url: str,
        query: str | None = None,
        formats: tuple[str, ...] = ("markdown",),
        only_main_content: bool = True,
        wait_for: int | None = 2000,
    ) -> ScrapeResult:
        async with semaphore:
            try:
                result = await self.scraper.scrape(
                    url,
                    formats=formats,
                    only_main_content=only_main_content,
                    wait_for=wait_for,
                )
            except VenueAgentError as e:
                logger.warning(f"Scrape of {url} failed: {e}")
                return ScrapeResult(url=url, query=query, success=False, error=str(e))
        if query is not None:
            result = result.model_copy(update={"query": query})
        return result

    async def _discover_menu(
        self,
        base_query: str,
        website: str | None,
        homepage: ScrapeResult | None,
    ) -> MenuData:
        semaphore = asyncio.Semaphore(self.config.web_max_concurrency)

        search = await self._scrape(semaphore, self.search_url(f"{base_query} menu"), f"{base_query} menu")
        if search.success and search.markdown:
            candidates = [
                link
                for link in extract_menu_links(search.markdown, "https://www.google.com")
                if not _is_search_engine_link(link)
            ][: self.config.max_menu_links]
            menu = await self._try_menu_urls(semaphore, candidates, METHOD_SEARCH)
            if menu:
                return menu

        if website and homepage is not None and homepage.success and homepage.markdown:
            links = extract_menu_links(homepage.markdown, website)
            menu = await self._try_menu_urls(semaphore, links, METHOD_HOMEPAGE)
            if menu:
                return menu

        if website:
            root = website.rstrip("/")
            paths = [f"{root}/{path.lstrip('/')}" for path in self.config.menu_paths]
            menu = await self._try_menu_urls(semaphore, paths, METHOD_COMMON_PATH)
            if menu:
                return menu

        logger.info(f"No menu found for {base_query}")
        return MenuData(error="no menu found")

    async def _try_menu_urls(
        self, semaphore: asyncio.Semaphore, urls: list[str], method: str
    ) -> MenuData | None:
        for url in urls:
            result = await self._scrape(
                semaphore,
                url,
                formats=("markdown", "html"),
                only_main_content=False,
                wait_for=3000,
            )
            if not result.success or not result.markdown or result.status_code == 404:
                continue
            sections = self.parser.parse(result.markdown, result.html)
            if sections:
                logger.info(f"Menu found via {method} at {url}")
                return MenuData(
                    menu_url=url,
                    sections=sections,
                    raw_markdown=result.markdown,
                    scrape_method=method,
                )
        return None
