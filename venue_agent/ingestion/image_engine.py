"""
Image Candidate Engine
======================

Harvests candidate images for a venue from several sources, removes
duplicates, applies hard gates, scores the survivors and returns a bounded,
ranked list.

Sources, in first-seen order:
1. own_site  - images on the venue's website (high precision)
2. business  - photo URLs from the business-data record
3. search    - image search for "<name> <address>" (broad, noisy)

A failing source contributes nothing; the others still count.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable
from typing import Any

from bs4 import BeautifulSoup

from venue_agent.core.config import ImageScoringConfig
from venue_agent.core.schema import HarvestReport, ImageCandidate
from venue_agent.core.text import normalize_url, resolve_url, slugify, url_host
from venue_agent.ingestion.clients import ImageSearchClient, ScrapeClient
from venue_agent.ingestion.image_scoring import ImageScorer, classify_provenance

logger = logging.getLogger(__name__)

SOURCE_OWN_SITE = "own_site"
SOURCE_BUSINESS = "business"
SOURCE_SEARCH = "search"

_MARKDOWN_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(\s*<?([^)\s>]+)>?(?:\s+\"[^\"]*\")?\s*\)")
_SIZED_URL_RE = re.compile(r"=w(\d+)-h(\d+)")
_SQUARE_URL_RE = re.compile(r"=s(\d+)(?:-|$)")


def _as_int(value: Any) -> int | None:
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _best_srcset_entry(srcset: str) -> str:
    """Pick the widest candidate from a ``srcset``; the last one when no widths are given."""
    best_url, best_width = "", -1
    for part in srcset.split(","):
        tokens = part.strip().split()
        if not tokens:
            continue
        width = -1
        if len(tokens) > 1 and tokens[1].lower().endswith("w"):
            width = _as_int(tokens[1][:-1]) or -1
        if width >= best_width:
            best_url, best_width = tokens[0], width
    return best_url


def extract_site_images(markdown: str, html: str, page_url: str) -> list[tuple[str, str]]:
    """
    Pull (absolute url, alt text) pairs from a scraped page.

    Markdown image links come first, then ``<img>`` tags. A tag contributes
    its ``src`` (or lazy-load ``data-src``) and the widest ``srcset``
    entry. Data URIs are ignored.
    """
    found: list[tuple[str, str]] = []
    for alt, src in _MARKDOWN_IMAGE_RE.findall(markdown or ""):
        found.append((src, alt))
    if html:
        soup = BeautifulSoup(html, "html.parser")
        for tag in soup.find_all("img"):
            alt = tag.get("alt") or ""
            found.append((tag.get("src") or tag.get("data-src") or "", alt))
            srcset = _best_srcset_entry(tag.get("srcset") or tag.get("data-srcset") or "")
            if srcset:
                found.append((srcset, alt))

    images = []
    for src, alt in found:
        src = src.strip()
        if not src or src.startswith("data:"):
            continue
        images.append((resolve_url(page_url, src), alt.strip()))
    return images


class ImageCandidateEngine:
    """Harvests, deduplicates, gates, scores and ranks image candidates."""

    def __init__(
        self,
        image_search: ImageSearchClient | None = None,
        scraper: ScrapeClient | None = None,
        scorer: ImageScorer | None = None,
        config: ImageScoringConfig | None = None,
    ) -> None:
        self.image_search = image_search
        self.scraper = scraper
        self.config = config or (scorer.config if scorer else ImageScoringConfig())
        self.scorer = scorer or ImageScorer(self.config)

    async def harvest(
        self,
        venue_name: str,
        address: str = "",
        website: str | None = None,
        business_image_urls: list[str] | None = None,
    ) -> HarvestReport:
        """
        Collect candidates from every available source and rank them.

        Args:
            venue_name: Display name of the venue.
            address: Street address, appended to the search query.
            website: The venue's own website, if known.
            business_image_urls: Photo URLs from the business-data record.

        Returns:
            HarvestReport with at most ``max_candidates`` ranked candidates.
        """
        website_host = url_host(website) if website else ""
        jobs: dict[str, Awaitable[list[ImageCandidate]]] = {}
        if website and self.scraper is not None:
            jobs[SOURCE_OWN_SITE] = self._harvest_own_site(website, website_host)
        if business_image_urls:
            jobs[SOURCE_BUSINESS] = self._harvest_business(business_image_urls, website_host)
        if self.image_search is not None:
            query = " ".join(part for part in (venue_name, address) if part).strip()
            jobs[SOURCE_SEARCH] = self._harvest_search(query, website_host)

        results = await asyncio.gather(*jobs.values(), return_exceptions=True)

        collected: list[ImageCandidate] = []
        source_counts: dict[str, int] = {}
        source_errors: dict[str, str] = {}
        for source, result in zip(jobs.keys(), results):
            if isinstance(result, Exception):
                logger.warning(f"Image source '{source}' failed for {venue_name}: {result}")
                source_errors[source] = f"{type(result).__name__}: {result}"
                source_counts[source] = 0
                continue
            if isinstance(result, BaseException):
                raise result
            source_counts[source] = len(result)
            collected.extend(result)

        report = self.rank(collected, venue_name, website_host)
        report.source_counts = source_counts
        report.source_errors = source_errors
        logger.info(
            f"Harvested {report.total_found} images for {venue_name}: "
            f"{len(report.candidates)} selected, {len(report.rejected)} rejected, "
            f"{report.duplicates_removed} duplicates"
        )
        return report

    def rank(
        self,
        candidates: list[ImageCandidate],
        venue_name: str,
        website_host: str = "",
    ) -> HarvestReport:
        """
        Deduplicate, gate, score and order candidates.

        Duplicates are detected on the normalized URL and the first-seen entry
        is kept. Ordering is by total score, then source authority, then
        discovery order.
        """
        unique: list[ImageCandidate] = []
        seen: set[str] = set()
        for candidate in candidates:
            key = normalize_url(candidate.url) if candidate.url else ""
            if key and key in seen:
                continue
            if key:
                seen.add(key)
            unique.append(candidate)

        venue_slug = slugify(venue_name)
        valid: list[tuple[int, ImageCandidate]] = []
        rejected: list[ImageCandidate] = []
        for index, candidate in enumerate(unique):
            gate = self.scorer.check_gates(candidate, venue_slug)
            if not gate.passed:
                candidate.is_valid = False
                candidate.score = 0.0
                candidate.breakdown = None
                candidate.reasons.append(f"rejected: {gate.reason}")
                rejected.append(candidate)
                continue

            breakdown = self.scorer.score(candidate, venue_name, website_host)
            candidate.is_valid = True
            candidate.breakdown = breakdown
            candidate.score = breakdown.total
            candidate.quality = self.scorer.quality_band(breakdown.total)
            candidate.reasons.append(
                f"size {breakdown.size:g}, ratio {breakdown.aspect_ratio:g}, "
                f"source {breakdown.source:g}, relevance {breakdown.relevance:g}, "
                f"type {breakdown.content_type:g}"
            )
            valid.append((index, candidate))

        valid.sort(
            key=lambda pair: (
                -pair[1].score,
                -self.scorer.authority_rank(pair[1]),
                -(pair[1].breakdown.source if pair[1].breakdown else 0.0),
                pair[0],
            )
        )
        return HarvestReport(
            candidates=[c for _, c in valid[: self.config.max_candidates]],
            rejected=rejected,
            duplicates_removed=len(candidates) - len(unique),
        )

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def _harvest_own_site(self, website: str, website_host: str) -> list[ImageCandidate]:
        page = await self.scraper.scrape(website, formats=("markdown", "html"), only_main_content=False)
        images = extract_site_images(page.markdown, page.html, website)
        return [
            ImageCandidate(
                url=url,
                origin=website_host,
                source=SOURCE_OWN_SITE,
                width=self.config.assumed_width,
                height=self.config.assumed_height,
                title=alt,
                content_url=website,
                provenance=classify_provenance(url, website_host, website_host, website),
            )
            for url, alt in images
        ]

    async def _harvest_business(
        self, image_urls: list[str], website_host: str
    ) -> list[ImageCandidate]:
        candidates = []
        for url in image_urls:
            width, height = self._dimensions_from_url(url)
            candidates.append(
                ImageCandidate(
                    url=url,
                    origin=url_host(url),
                    source=SOURCE_BUSINESS,
                    width=width,
                    height=height,
                    provenance=classify_provenance(url, website_host=website_host),
                )
            )
        return candidates

    async def _harvest_search(self, query: str, website_host: str) -> list[ImageCandidate]:
        items = await self.image_search.search_images(query, self.config.search_max_results)
        candidates = []
        for item in items:
            url = item.get("imageUrl") or item.get("image_url") or ""
            content_url = item.get("contentUrl") or item.get("sourceUrl") or item.get("link") or ""
            origin = item.get("source") or item.get("origin") or url_host(content_url)
            candidates.append(
                ImageCandidate(
                    url=url,
                    origin=str(origin or ""),
                    source=SOURCE_SEARCH,
                    width=_as_int(item.get("imageWidth") or item.get("width")),
                    height=_as_int(item.get("imageHeight") or item.get("height")),
                    title=str(item.get("title") or ""),
                    content_url=content_url,
                    provenance=classify_provenance(
                        url, str(origin or ""), website_host, content_url
                    ),
                )
            )
        return candidates

    def _dimensions_from_url(self, url: str) -> tuple[int, int]:
        """Read size hints embedded in hosted photo URLs, else assume defaults."""
        sized = _SIZED_URL_RE.search(url)
        if sized:
            return int(sized.group(1)), int(sized.group(2))
        square = _SQUARE_URL_RE.search(url)
        if square:
            side = int(square.group(1))
            return side, side
        return self.config.assumed_width, self.config.assumed_height
