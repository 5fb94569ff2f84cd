"""Tests for the image candidate engine."""

import pytest

from tests.fakes import FakeImageSearch, FakeScraper
from venue_agent.core.config import ImageScoringConfig
from venue_agent.core.enums import Provenance
from venue_agent.core.errors import ExternalServiceError
from venue_agent.core.schema import ImageCandidate, ScrapeResult
from venue_agent.ingestion.image_engine import ImageCandidateEngine, extract_site_images


def _candidate(url: str, **overrides) -> ImageCandidate:
    data = {"url": url, "width": 1200, "height": 900}
    data.update(overrides)
    return ImageCandidate(**data)


class TestRank:
    """Tests for ImageCandidateEngine.rank."""

    def test_dedupe_keeps_first_seen(self) -> None:
        """Test that URLs differing only in query string are one candidate."""
        engine = ImageCandidateEngine()
        report = engine.rank(
            [
                _candidate("https://images.example.net/a.jpg?x=1", title="first"),
                _candidate("https://images.example.net/a.jpg?x=2", title="second"),
                _candidate("https://images.example.net/b.jpg"),
            ],
            "Dishoom",
        )

        assert report.duplicates_removed == 1
        assert len(report.candidates) == 2
        titles = {c.url: c.title for c in report.candidates}
        assert titles["https://images.example.net/a.jpg?x=1"] == "first"

    def test_gated_candidates_are_rejected(self) -> None:
        """Test that gate failures are reported and never scored."""
        engine = ImageCandidateEngine()
        report = engine.rank(
            [
                _candidate("https://images.example.net/logo.png"),
                _candidate("https://images.example.net/room.jpg"),
            ],
            "Dishoom",
        )

        assert [c.url for c in report.candidates] == ["https://images.example.net/room.jpg"]
        rejected = report.rejected[0]
        assert rejected.is_valid is False
        assert rejected.score == 0.0
        assert rejected.reasons == ["rejected: logo or icon"]

    def test_result_bounded(self) -> None:
        """Test that at most max_candidates are returned, best first."""
        engine = ImageCandidateEngine(config=ImageScoringConfig(max_candidates=3))
        candidates = [
            _candidate(f"https://images.example.net/{i}.jpg", width=300 * (i + 1), height=225 * (i + 1))
            for i in range(6)
        ]

        report = engine.rank(candidates, "Dishoom")

        assert len(report.candidates) == 3
        scores = [c.score for c in report.candidates]
        assert scores == sorted(scores, reverse=True)
        assert report.candidates[0].url == "https://images.example.net/5.jpg"

    def test_authority_breaks_ties(self) -> None:
        """Test that an own-site image wins a tie against a search-engine image."""
        config = ImageScoringConfig(own_site_points=5.0)
        engine = ImageCandidateEngine(config=config)
        search = _candidate("https://images.example.net/a.jpg", provenance=Provenance.SEARCH_ENGINE)
        own = _candidate("https://venue.example.org/b.jpg", provenance=Provenance.OWN_SITE)

        report = engine.rank([search, own], "Dishoom")

        assert report.candidates[0].score == report.candidates[1].score
        assert report.candidates[0].url == own.url

    def test_scored_candidates_carry_reasons(self) -> None:
        """Test that every selected candidate explains its score."""
        report = ImageCandidateEngine().rank([_candidate("https://images.example.net/a.jpg")], "X")

        candidate = report.candidates[0]
        assert candidate.breakdown is not None
        assert candidate.score == candidate.breakdown.total
        assert candidate.quality is not None
        assert candidate.reasons[0].startswith("size ")


class TestHarvest:
    """Tests for ImageCandidateEngine.harvest."""

    @pytest.mark.asyncio
    async def test_failing_source_does_not_stop_others(self) -> None:
        """Test that a failing image search still returns business photos."""
        engine = ImageCandidateEngine(
            image_search=FakeImageSearch(error=ExternalServiceError("actor-service", "down"))
        )

        report = await engine.harvest(
            "Dishoom",
            "Covent Garden",
            business_image_urls=["https://lh5.googleusercontent.com/p/AF1Qip=w1600-h1200"],
        )

        assert "search" in report.source_errors
        assert report.source_counts == {"business": 1, "search": 0}
        assert len(report.candidates) == 1
        assert report.candidates[0].width == 1600
        assert report.candidates[0].provenance == Provenance.REVIEW_SITE

    @pytest.mark.asyncio
    async def test_search_results_mapped(self) -> None:
        """Test that image-search items become candidates with their dimensions."""
        search = FakeImageSearch(
            [
                {
                    "imageUrl": "https://media-cdn.tripadvisor.com/media/photo-o/dining.jpg",
                    "imageWidth": 1600,
                    "imageHeight": 1067,
                    "title": "Dishoom dining room",
                    "contentUrl": "https://www.tripadvisor.co.uk/Restaurant_Review-dishoom",
                },
                {"imageUrl": "https://images.example.net/tiny.jpg", "imageWidth": 90, "imageHeight": 90},
            ]
        )
        engine = ImageCandidateEngine(image_search=search)

        report = await engine.harvest("Dishoom", "Covent Garden, London")

        assert search.queries == ["Dishoom Covent Garden, London"]
        assert len(report.candidates) == 1
        assert report.candidates[0].provenance == Provenance.REVIEW_SITE
        assert len(report.rejected) == 1

    @pytest.mark.asyncio
    async def test_own_site_images(self) -> None:
        """Test that images on the venue's homepage are tagged own-site."""
        scraper = FakeScraper(
            {
                "https://www.dishoom.com": ScrapeResult(
                    url="https://www.dishoom.com",
                    markdown="![Bar](/img/bar.jpg)",
                    html='<img src="https://www.dishoom.com/img/terrace.jpg" alt="Terrace">',
                )
            }
        )
        engine = ImageCandidateEngine(scraper=scraper)

        report = await engine.harvest("Dishoom", website="https://www.dishoom.com")

        urls = {c.url for c in report.candidates}
        assert urls == {"https://www.dishoom.com/img/bar.jpg", "https://www.dishoom.com/img/terrace.jpg"}
        assert all(c.provenance == Provenance.OWN_SITE for c in report.candidates)
        assert report.source_counts == {"own_site": 2}


class TestExtractSiteImages:
    """Tests for extract_site_images."""

    def test_markdown_and_html(self) -> None:
        """Test markdown images, img tags, relative URLs and data URIs."""
        markdown = '![Room](/a.jpg "Our room")\n![](data:image/png;base64,AAAA)'
        html = '<img data-src="//cdn.example.com/b.jpg" alt="Bar"><img alt="none">'

        images = extract_site_images(markdown, html, "https://venue.example.com/about")

        assert images == [
            ("https://venue.example.com/a.jpg", "Room"),
            ("https://cdn.example.com/b.jpg", "Bar"),
        ]

    def test_awkward_img_markup(self) -> None:
        """Test quoted '>' in attributes, unquoted src and srcset candidates."""
        html = (
            '<img alt="Lamb > beef" src="/img/lamb.jpg">'
            "<img src=/img/unquoted.jpg alt=Bar>"
            '<img srcset="/img/dining-400.jpg 400w, /img/dining-800.jpg 800w" alt="Dining">'
            "<!-- <img src=\"/img/old.jpg\"> -->"
        )

        images = extract_site_images("", html, "https://venue.example.com/")

        assert images == [
            ("https://venue.example.com/img/lamb.jpg", "Lamb > beef"),
            ("https://venue.example.com/img/unquoted.jpg", "Bar"),
            ("https://venue.example.com/img/dining-800.jpg", "Dining"),
        ]
