"""
Image Finalizer
===============

Turns ranked image candidates into stored venue photos:

    download -> classify -> (quality gate) -> name -> store -> metadata row

Candidates are processed one at a time in rank order. A failure on one image
is logged and recorded, and processing moves on to the next. When the batch
is done the venue's photo summary is replaced with the accepted images, the
first of which is marked primary.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from sqlalchemy.orm import Session

from venue_agent.core.schema import ImageCandidate, PhotoEntry, Venue, VenueImage
from venue_agent.db.repositories import VenueImageRepository, VenueRepository
from venue_agent.ingestion.clients import ImageDownloader
from venue_agent.ingestion.storage import ObjectStorage
from venue_agent.ingestion.vision import ImageClassifier, QualityGate

logger = logging.getLogger(__name__)

MEDIA_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}

EXTENSION_MEDIA_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}


def detect_media_type(data: bytes, url: str = "") -> str:
    """Detect the image type from magic bytes, falling back to the URL extension."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"GIF87a") or data.startswith(b"GIF89a"):
        return "image/gif"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    extension = urlsplit(url).path.rsplit(".", 1)[-1].lower() if "." in urlsplit(url).path else ""
    return EXTENSION_MEDIA_TYPES.get(extension, "image/jpeg")


def build_image_filename(
    venue_slug: str,
    location_slug: str,
    descriptor: str,
    sequence: int,
    media_type: str = "image/jpeg",
) -> str:
    """``{venue}_{location}_{descriptor}_{NN}.{ext}``, e.g. ``dishoom_soho-london_bar_01.jpg``."""
    extension = MEDIA_EXTENSIONS.get(media_type, "jpg")
    parts = [p for p in (venue_slug, location_slug, descriptor or "photo") if p]
    return f"{'_'.join(parts)}_{sequence:02d}.{extension}"


def build_storage_path(venue_slug: str, location_slug: str, filename: str) -> str:
    folder = f"{venue_slug}_{location_slug}" if location_slug else venue_slug
    return f"venues/{folder}/images/{filename}"


@dataclass
class ImageOutcome:
    """What happened to one candidate."""

    url: str
    status: str  # uploaded, rejected, failed
    filename: str | None = None
    reason: str | None = None


@dataclass
class FinalizeResult:
    """Result of processing a batch of candidates."""

    attempted: int = 0
    uploaded: int = 0
    rejected: int = 0
    photos: list[PhotoEntry] = field(default_factory=list)
    outcomes: list[ImageOutcome] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "failed")

    @property
    def summary(self) -> str:
        return f"{self.uploaded}/{self.attempted}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "attempted": self.attempted,
            "uploaded": self.uploaded,
            "rejected": self.rejected,
            "failed": self.failed,
            "summary": self.summary,
            "photos": [p.model_dump(mode="json") for p in self.photos],
            "outcomes": [
                {"url": o.url, "status": o.status, "filename": o.filename, "reason": o.reason}
                for o in self.outcomes
            ],
        }


class ImageFinalizer:
    """Downloads, classifies, stores and records selected images for a venue."""

    def __init__(
        self,
        session: Session,
        downloader: ImageDownloader,
        classifier: ImageClassifier,
        storage: ObjectStorage,
        quality_gate: QualityGate | None = None,
        max_images: int = 15,
    ) -> None:
        self.session = session
        self.downloader = downloader
        self.classifier = classifier
        self.storage = storage
        self.quality_gate = quality_gate
        self.max_images = max_images
        self.venue_repo = VenueRepository(session)
        self.image_repo = VenueImageRepository(session)

    async def finalize(
        self,
        venue: Venue,
        candidates: list[ImageCandidate],
        location_slug: str,
        location_label: str = "",
        job_id: str | None = None,
    ) -> FinalizeResult:
        """
        Process ranked candidates up to ``max_images``.

        Args:
            venue: The venue the images belong to.
            candidates: Candidates in rank order.
            location_slug: Slug used in filenames and storage folders.
            location_label: Human-readable location passed to the vision model.
            job_id: Ingestion job recorded on each image row.

        Returns:
            FinalizeResult with ``uploaded / attempted`` counts and the new photo list.
        """
        result = FinalizeResult()
        batch = candidates[: self.max_images]
        seen_hashes: set[str] = set()

        self.image_repo.delete_for_venue(venue.id)

        for rank, candidate in enumerate(batch):
            result.attempted += 1
            try:
                outcome = await self._process_one(
                    venue, candidate, rank, location_slug, location_label, job_id,
                    sequence=result.uploaded + 1,
                    seen_hashes=seen_hashes,
                    photos=result.photos,
                )
            except Exception as e:
                logger.warning(f"Image {candidate.url} failed for {venue.slug}: {e}")
                outcome = ImageOutcome(url=candidate.url, status="failed", reason=str(e))

            result.outcomes.append(outcome)
            if outcome.status == "uploaded":
                result.uploaded += 1
            elif outcome.status == "rejected":
                result.rejected += 1

        for order, photo in enumerate(result.photos):
            photo.display_order = order
            photo.is_primary = order == 0

        self.venue_repo.replace_photos(venue.id, result.photos)
        logger.info(
            f"Uploaded {result.summary} images for {venue.slug} "
            f"({result.rejected} rejected, {result.failed} failed)"
        )
        return result

    async def _process_one(
        self,
        venue: Venue,
        candidate: ImageCandidate,
        rank: int,
        location_slug: str,
        location_label: str,
        job_id: str | None,
        sequence: int,
        seen_hashes: set[str],
        photos: list[PhotoEntry],
    ) -> ImageOutcome:
        download = await self.downloader.download(candidate.url)
        if not download.success:
            return ImageOutcome(
                url=candidate.url, status="failed", reason=f"download: {download.error}"
            )
        if download.content_hash in seen_hashes:
            return ImageOutcome(url=candidate.url, status="rejected", reason="duplicate content")
        seen_hashes.add(download.content_hash)

        media_type = detect_media_type(download.content, candidate.url)

        quality_score = None
        if self.quality_gate is not None:
            assessment = await asyncio.to_thread(
                self.quality_gate.assess,
                download.content,
                media_type,
                venue.name,
                candidate.width,
            )
            quality_score = assessment.score
            if not assessment.accepted:
                return ImageOutcome(
                    url=candidate.url, status="rejected", reason=assessment.rejection_reason
                )

        analysis = await asyncio.to_thread(
            self.classifier.classify, download.content, media_type, venue.name, location_label
        )

        filename = build_image_filename(
            venue.slug, location_slug, analysis.descriptor, sequence, media_type
        )
        path = build_storage_path(venue.slug, location_slug, filename)
        public_url = await asyncio.to_thread(self.storage.write, path, download.content, media_type)

        with self.session.begin_nested():
            self.image_repo.create(
                VenueImage(
                    venue_id=venue.id,
                    job_id=job_id,
                    source_url=candidate.url,
                    storage_path=path,
                    public_url=public_url,
                    filename=filename,
                    content_hash=download.content_hash,
                    media_type=media_type,
                    category=analysis.category,
                    descriptor=analysis.descriptor,
                    alt_text=analysis.alt_text,
                    title=analysis.title,
                    caption=analysis.caption,
                    description=analysis.description,
                    dog_friendly_relevant=analysis.dog_friendly_relevant,
                    dog_amenity_type=analysis.dog_amenity_type,
                    is_primary=not photos,
                    display_order=len(photos),
                    candidate_score=candidate.score,
                    quality_score=quality_score,
                    width=candidate.width,
                    height=candidate.height,
                )
            )

        photos.append(
            PhotoEntry(
                url=public_url,
                storage_path=path,
                filename=filename,
                source_url=candidate.url,
                category=analysis.category,
                alt_text=analysis.alt_text,
                title=analysis.title,
                caption=analysis.caption,
                quality_score=quality_score,
                width=candidate.width,
                height=candidate.height,
            )
        )
        logger.debug(f"Stored image #{rank + 1} for {venue.slug} as {path}")
        return ImageOutcome(url=candidate.url, status="uploaded", filename=filename)
