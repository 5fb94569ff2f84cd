"""Tests for image hard gates and scoring."""

import pytest

from venue_agent.core.config import ImageScoringConfig
from venue_agent.core.enums import Provenance, QualityBand
from venue_agent.core.schema import ImageCandidate
from venue_agent.ingestion.image_scoring import ImageScorer, classify_provenance


def _candidate(**overrides) -> ImageCandidate:
    data = {
        "url": "https://images.example.net/photos/room.jpg",
        "width": 1200,
        "height": 900,
    }
    data.update(overrides)
    return ImageCandidate(**data)


@pytest.fixture
def scorer() -> ImageScorer:
    return ImageScorer(ImageScoringConfig())


class TestHardGates:
    """Tests for ImageScorer.check_gates."""

    def test_plain_photo_passes(self, scorer: ImageScorer) -> None:
        """Test that an ordinary photo passes every gate."""
        assert scorer.check_gates(_candidate(), "dishoom").passed

    @pytest.mark.parametrize(
        "overrides, reason",
        [
            ({"width": None}, "missing url or dimensions"),
            ({"url": "https://encrypted-tbn0.gstatic.com/images?q=tbn"}, "encrypted thumbnail"),
            ({"width": 150, "height": 900}, "smaller than 200px on one side"),
            ({"url": "https://cdn.example.net/profile/123.jpg"}, "profile picture"),
            ({"title": "Avatar of the chef"}, "profile picture"),
            ({"url": "https://cdn.example.net/brand-logo.jpg"}, "logo or icon"),
            ({"url": "https://cdn.example.net/favicon-96.png"}, "logo or icon"),
            ({"url": "https://cdn.example.net/area_map.jpg"}, "map"),
            ({"origin": "YouTube"}, "social video"),
            ({"content_url": "https://www.instagram.com/reel/abc/"}, "social video"),
            ({"title": "The 20 best restaurants in London"}, "listicle thumbnail"),
            ({"title": "Page not found"}, "error page"),
        ],
    )
    def test_gate_failures(self, scorer: ImageScorer, overrides: dict, reason: str) -> None:
        """Test that each gate rejects with its own reason."""
        result = scorer.check_gates(_candidate(**overrides), "dishoom")
        assert not result.passed
        assert result.reason == reason

    def test_venue_name_png_is_logo(self, scorer: ImageScorer) -> None:
        """Test that '<venue>.png' is treated as the venue's logo."""
        candidate = _candidate(url="https://www.dishoom.com/assets/dishoom.png")
        assert scorer.check_gates(candidate, "dishoom").reason == "logo or icon"

    def test_extreme_aspect_ratio(self, scorer: ImageScorer) -> None:
        """Test that banners and slivers are rejected."""
        result = scorer.check_gates(_candidate(width=1600, height=400), "")
        assert not result.passed
        assert result.reason.startswith("aspect ratio")

    def test_too_few_pixels(self) -> None:
        """Test the pixel-count gate independently of the side gate."""
        scorer = ImageScorer(ImageScoringConfig(min_side=100, min_pixels=50_000))
        assert scorer.check_gates(_candidate(width=200, height=200), "").reason == (
            "fewer than 50000 pixels"
        )


class TestScoring:
    """Tests for the additive score."""

    def test_size_points_monotonic(self, scorer: ImageScorer) -> None:
        """Test that more pixels never score lower."""
        sizes = [40_000, 199_999, 200_000, 600_000, 1_000_000, 2_500_000, 8_000_000]
        points = [scorer.size_points(p) for p in sizes]
        assert points == sorted(points)
        assert points[0] == 10.0
        assert points[-1] == 30.0

    def test_ratio_points(self, scorer: ImageScorer) -> None:
        """Test the aspect-ratio tiers."""
        assert scorer.ratio_points(4 / 3) == 15.0
        assert scorer.ratio_points(1.8) == 10.0
        assert scorer.ratio_points(2.8) == 5.0

    def test_source_points(self, scorer: ImageScorer) -> None:
        """Test own site, weighted review sites and the generic fallback."""
        own = _candidate(provenance=Provenance.OWN_SITE)
        review = _candidate(url="https://media-cdn.tripadvisor.com/media/photo-s/room.jpg")
        generic = _candidate()

        assert scorer.source_points(own) == 25.0
        assert scorer.source_points(review) == 18.0
        assert scorer.source_points(generic) == 5.0

    def test_relevance_capped(self, scorer: ImageScorer) -> None:
        """Test that name matches plus the keyword bonus never exceed the cap."""
        candidate = _candidate(
            title="Dishoom dining room",
            content_url="https://www.timeout.com/london/restaurants/dishoom",
        )
        assert scorer.relevance_points(candidate, "Dishoom Covent Garden") == 20.0

    def test_relevance_ignores_short_words(self, scorer: ImageScorer) -> None:
        """Test that name words of three letters or fewer are not matched."""
        candidate = _candidate(title="the bar", content_url="")
        assert scorer.relevance_points(candidate, "The Bar") == 0.0

    def test_content_type_points(self, scorer: ImageScorer) -> None:
        """Test interior, food and default content-type points."""
        assert scorer.content_type_points(_candidate(title="Interior view")) == 10.0
        assert scorer.content_type_points(_candidate(title="Signature dish")) == 9.0
        assert scorer.content_type_points(_candidate()) == 5.0

    def test_total_bounded(self, scorer: ImageScorer) -> None:
        """Test that the best possible candidate scores at most 100."""
        candidate = _candidate(
            url="https://www.dishoom.com/img/interior-food.jpg",
            width=2400,
            height=1800,
            title="Dishoom interior",
            content_url="https://www.dishoom.com/covent-garden",
            provenance=Provenance.OWN_SITE,
        )
        breakdown = scorer.score(candidate, "Dishoom Covent Garden", "dishoom.com")
        assert breakdown.total == 100.0

    def test_quality_band(self, scorer: ImageScorer) -> None:
        """Test the quality band thresholds."""
        assert scorer.quality_band(90) == QualityBand.HIGH
        assert scorer.quality_band(60) == QualityBand.MEDIUM
        assert scorer.quality_band(59.9) == QualityBand.LOW


class TestProvenance:
    """Tests for classify_provenance."""

    def test_own_site(self) -> None:
        """Test that the venue's domain and subdomains are own-site."""
        assert (
            classify_provenance("https://cdn.dishoom.com/a.jpg", website_host="dishoom.com")
            == Provenance.OWN_SITE
        )

    def test_review_and_social(self) -> None:
        """Test known review and social hosts."""
        assert classify_provenance("https://media.tripadvisor.com/a.jpg") == Provenance.REVIEW_SITE
        assert classify_provenance("https://scontent.cdninstagram.com/a.jpg") == Provenance.SOCIAL

    def test_unknown_host(self) -> None:
        """Test that anything else is a search-engine find."""
        assert classify_provenance("https://images.example.net/a.jpg") == Provenance.SEARCH_ENGINE
