"""Tests for downloading, classifying and storing selected images."""

import json

import pytest

from tests.fakes import JPEG_MAGIC, VISION_DOCUMENT, FakeAIClient, FakeDownloader
from venue_agent.core.errors import ExternalServiceError
from venue_agent.core.schema import ImageCandidate
from venue_agent.db.repositories import VenueImageRepository, VenueRepository
from venue_agent.ingestion.image_finalizer import (
    ImageFinalizer,
    build_image_filename,
    build_storage_path,
    detect_media_type,
)
from venue_agent.ingestion.vision import ImageClassifier, QualityGate


@pytest.fixture
def venue(session):
    return VenueRepository(session).create(name="Dishoom", slug="dishoom", city="London")


def _candidates(*names: str, width: int = 1200) -> list[ImageCandidate]:
    return [
        ImageCandidate(url=f"https://images.example.net/{name}.jpg", width=width, height=900, score=70.0)
        for name in names
    ]


def _finalizer(session, storage, downloader=None, vision=None, quality_gate=None, max_images=15):
    return ImageFinalizer(
        session,
        downloader or FakeDownloader(),
        ImageClassifier(vision or FakeAIClient(json.dumps(VISION_DOCUMENT))),
        storage,
        quality_gate=quality_gate,
        max_images=max_images,
    )


class TestHelpers:
    """Tests for naming and media-type helpers."""

    def test_detect_media_type(self) -> None:
        """Test magic bytes first, then the URL extension."""
        assert detect_media_type(JPEG_MAGIC + b"...") == "image/jpeg"
        assert detect_media_type(b"\x89PNG\r\n\x1a\n...") == "image/png"
        assert detect_media_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"
        assert detect_media_type(b"????", "https://example.com/a.gif?w=1") == "image/gif"
        assert detect_media_type(b"????", "https://example.com/image") == "image/jpeg"

    def test_filename_and_path(self) -> None:
        """Test the deterministic filename and storage layout."""
        filename = build_image_filename("dishoom", "soho-london", "bar", 3, "image/png")

        assert filename == "dishoom_soho-london_bar_03.png"
        assert build_storage_path("dishoom", "soho-london", filename) == (
            "venues/dishoom_soho-london/images/dishoom_soho-london_bar_03.png"
        )
        assert build_image_filename("dishoom", "", "", 1) == "dishoom_photo_01.jpg"


class TestImageFinalizer:
    """Tests for ImageFinalizer.finalize."""

    @pytest.mark.asyncio
    async def test_uploads_in_rank_order(self, session, storage, venue) -> None:
        """Test that images are stored, recorded and summarized in order."""
        result = await _finalizer(session, storage).finalize(
            venue, _candidates("a", "b"), "london", "London", job_id="job-1"
        )

        assert result.summary == "2/2"
        assert [p.filename for p in result.photos] == [
            "dishoom_london_dining-room_01.jpg",
            "dishoom_london_dining-room_02.jpg",
        ]
        assert result.photos[0].is_primary and not result.photos[1].is_primary
        assert storage.read(result.photos[0].storage_path).startswith(JPEG_MAGIC)
        assert result.photos[0].url.startswith("https://cdn.example.com/venues/dishoom_london/")

        rows = VenueImageRepository(session).list_for_venue(venue.id)
        assert [r.job_id for r in rows] == ["job-1", "job-1"]
        assert VenueRepository(session).get_by_id(venue.id).photos == result.photos

    @pytest.mark.asyncio
    async def test_failed_download_does_not_stop_batch(self, session, storage, venue) -> None:
        """Test that a failing image is recorded and the next one is processed."""
        candidates = _candidates("a", "b")
        downloader = FakeDownloader(failing={candidates[0].url})

        result = await _finalizer(session, storage, downloader=downloader).finalize(
            venue, candidates, "london"
        )

        assert result.summary == "1/2"
        assert result.failed == 1
        assert result.outcomes[0].reason == "download: HTTP 404"
        assert result.photos[0].filename.endswith("_01.jpg")

    @pytest.mark.asyncio
    async def test_duplicate_content_rejected(self, session, storage, venue) -> None:
        """Test that identical bytes behind two URLs are stored once."""
        candidates = _candidates("a", "b")
        same = JPEG_MAGIC + b"same"
        downloader = FakeDownloader(content={c.url: same for c in candidates})

        result = await _finalizer(session, storage, downloader=downloader).finalize(
            venue, candidates, "london"
        )

        assert result.uploaded == 1
        assert result.outcomes[1].reason == "duplicate content"

    @pytest.mark.asyncio
    async def test_vision_failure_marks_image_failed(self, session, storage, venue) -> None:
        """Test that a vision API error fails only that image."""
        vision = FakeAIClient(error=ExternalServiceError("vision", "rate limited"))

        result = await _finalizer(session, storage, vision=vision).finalize(
            venue, _candidates("a"), "london"
        )

        assert result.summary == "0/1"
        assert result.outcomes[0].status == "failed"
        assert VenueRepository(session).get_by_id(venue.id).photos == []

    @pytest.mark.asyncio
    async def test_quality_gate(self, session, storage, venue) -> None:
        """Test low scores and narrow images are rejected by the quality gate."""
        gate = QualityGate(FakeAIClient(json.dumps({"score": 8})), threshold=7.0, min_width=500)
        candidates = _candidates("a") + _candidates("narrow", width=400)

        result = await _finalizer(session, storage, quality_gate=gate).finalize(
            venue, candidates, "london"
        )

        assert result.uploaded == 1
        assert result.photos[0].quality_score == 8.0
        assert result.outcomes[1].reason == "low resolution (400px wide)"

        low = QualityGate(FakeAIClient(json.dumps({"score": 4})))
        result = await _finalizer(session, storage, quality_gate=low).finalize(
            venue, _candidates("c"), "london"
        )
        assert result.outcomes[0].reason == "score 4 below 7"

    @pytest.mark.asyncio
    async def test_rejected_images_are_not_classified(self, session, storage, venue) -> None:
        """Test that the quality gate runs before the vision model sees an image."""
        vision = FakeAIClient(json.dumps(VISION_DOCUMENT))
        gate = QualityGate(FakeAIClient(json.dumps({"score": 3})), threshold=7.0)

        result = await _finalizer(session, storage, vision=vision, quality_gate=gate).finalize(
            venue, _candidates("a", "b"), "london"
        )

        assert result.uploaded == 0
        assert result.rejected == 2
        assert vision.prompts == []

    @pytest.mark.asyncio
    async def test_bounded_and_rerun_replaces_rows(self, session, storage, venue) -> None:
        """Test max_images and that a rerun replaces earlier image rows."""
        finalizer = _finalizer(session, storage, max_images=2)
        await finalizer.finalize(venue, _candidates("a", "b", "c"), "london")

        result = await finalizer.finalize(venue, _candidates("d"), "london")

        assert result.attempted == 1
        assert len(VenueImageRepository(session).list_for_venue(venue.id)) == 1
