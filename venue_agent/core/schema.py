"""Pydantic v2 models for Venue Agent.

These models are the typed boundaries between pipeline stages:
- VenueSeed (input to a run)
- BusinessData, OpeningHours (business-data fetch output)
- ScrapeResult, WebContent, MenuData, MenuSection, MenuItem (web-content fetch output)
- ImageCandidate, ScoreBreakdown, HarvestReport (image harvest output)
- ImageAnalysis, QualityAssessment, PhotoEntry (image processing)
- GeneratedContent, FAQ (content generation output)
- MappedFields (field mapping output)
- ReferenceEntity, Venue, IngestionJob, JobProgress (persisted entities)
"""

import re
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from venue_agent.core.enums import (
    ImageCategory,
    JobState,
    Provenance,
    QualityBand,
    ReferenceKind,
    StageName,
    StageStatus,
)


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _none_to_list(value: Any) -> Any:
    return [] if value is None else value


# ============================================================================
# Run Input
# ============================================================================


class VenueSeed(BaseModel):
    """Minimal data needed to start onboarding a venue."""

    name: str = Field(min_length=1, max_length=255)
    place_id: str = Field(min_length=1)
    address: str = ""
    latitude: float | None = None
    longitude: float | None = None
    website: str | None = None
    venue_id: str | None = None

    @field_validator("name", "place_id")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


# ============================================================================
# Business Data
# ============================================================================


class OpeningHours(BaseModel):
    """Opening hours for one day, times in 24-hour HH:MM."""

    day: str
    open: str | None = None
    close: str | None = None
    closed: bool = False
    raw: str = ""


class BusinessData(BaseModel):
    """Normalized subset of the business-data lookup response."""

    name: str | None = None
    address: str | None = None
    phone: str | None = None
    website: str | None = None
    price_range: str | None = None
    category: str | None = None
    rating: float | None = None
    review_count: int | None = None
    reviews: list[str] = Field(default_factory=list)
    opening_hours: list[OpeningHours] = Field(default_factory=list)
    popular_times: dict[str, Any] = Field(default_factory=dict)
    image_urls: list[str] = Field(default_factory=list)
    latitude: float | None = None
    longitude: float | None = None
    neighbourhood: str | None = None

    @field_validator("reviews", "opening_hours", "image_urls", mode="before")
    @classmethod
    def null_lists(cls, v: Any) -> Any:
        return _none_to_list(v)

    @field_validator("popular_times", mode="before")
    @classmethod
    def null_dict(cls, v: Any) -> Any:
        return {} if v is None else v


# ============================================================================
# Web Content and Menus
# ============================================================================


class ScrapeResult(BaseModel):
    """Result of one scrape or search-style query."""

    url: str
    query: str | None = None
    success: bool = True
    markdown: str = ""
    html: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None

    @property
    def status_code(self) -> int | None:
        code = self.metadata.get("statusCode") or self.metadata.get("status_code")
        return int(code) if code is not None else None


class MenuItem(BaseModel):
    """A single dish or drink parsed from a menu page."""

    name: str
    description: str | None = None
    price: Decimal | None = None

    @property
    def is_valid(self) -> bool:
        """An item needs a sane name and a positive price."""
        return 2 <= len(self.name.strip()) <= 200 and self.price is not None and self.price > 0


class MenuSection(BaseModel):
    """A named group of menu items."""

    name: str
    items: list[MenuItem] = Field(default_factory=list)

    @property
    def valid_items(self) -> list[MenuItem]:
        return [item for item in self.items if item.is_valid]


class MenuData(BaseModel):
    """Menu discovered for a venue, with how it was found."""

    menu_url: str | None = None
    sections: list[MenuSection] = Field(default_factory=list)
    raw_markdown: str = ""
    scrape_method: str | None = None
    error: str | None = None

    @property
    def item_count(self) -> int:
        return sum(len(section.items) for section in self.sections)


class WebContent(BaseModel):
    """Everything gathered by the web-content fetch stage."""

    base_query: str
    location: str = ""
    results: dict[str, ScrapeResult] = Field(default_factory=dict)
    menu: MenuData = Field(default_factory=MenuData)

    @property
    def successful_sources(self) -> list[str]:
        return [key for key, result in self.results.items() if result.success]

    @property
    def failed_sources(self) -> dict[str, str]:
        return {
            key: result.error or "unknown error"
            for key, result in self.results.items()
            if not result.success
        }


# ============================================================================
# Image Candidates
# ============================================================================


class ScoreBreakdown(BaseModel):
    """Per-criterion points for an image candidate."""

    size: float = 0.0
    aspect_ratio: float = 0.0
    source: float = 0.0
    relevance: float = 0.0
    content_type: float = 0.0

    @property
    def total(self) -> float:
        return round(
            self.size + self.aspect_ratio + self.source + self.relevance + self.content_type, 2
        )


class ImageCandidate(BaseModel):
    """An image URL discovered during harvesting."""

    url: str
    origin: str = ""
    source: str = ""
    width: int | None = None
    height: int | None = None
    title: str = ""
    content_url: str = ""
    provenance: Provenance = Provenance.SEARCH_ENGINE
    is_valid: bool = True
    score: float = 0.0
    breakdown: ScoreBreakdown | None = None
    reasons: list[str] = Field(default_factory=list)
    quality: QualityBand | None = None

    @property
    def pixels(self) -> int:
        return (self.width or 0) * (self.height or 0)

    @property
    def aspect_ratio(self) -> float | None:
        if not self.width or not self.height:
            return None
        return self.width / self.height


class HarvestReport(BaseModel):
    """Ranked candidates plus per-source observability data."""

    candidates: list[ImageCandidate] = Field(default_factory=list)
    rejected: list[ImageCandidate] = Field(default_factory=list)
    source_counts: dict[str, int] = Field(default_factory=dict)
    source_errors: dict[str, str] = Field(default_factory=dict)
    duplicates_removed: int = 0

    @property
    def total_found(self) -> int:
        return sum(self.source_counts.values())


# ============================================================================
# Image Processing
# ============================================================================


_KEBAB_RE = re.compile(r"[^a-z0-9]+")


class ImageAnalysis(BaseModel):
    """Vision classification of a downloaded image."""

    model_config = ConfigDict(populate_by_name=True)

    category: ImageCategory = ImageCategory.INTERIOR
    descriptor: str = "photo"
    alt_text: str = Field(default="", validation_alias=AliasChoices("alt_text", "altText"))
    title: str = ""
    caption: str = ""
    description: str = Field(
        default="", validation_alias=AliasChoices("description", "aiDescription")
    )
    dog_friendly_relevant: bool = Field(
        default=False,
        validation_alias=AliasChoices("dog_friendly_relevant", "isDogFriendlyRelevant"),
    )
    dog_amenity_type: str | None = Field(
        default=None, validation_alias=AliasChoices("dog_amenity_type", "dogAmenityType")
    )
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            if v == "ambience":
                return "ambiance"
        return v

    @field_validator("descriptor", mode="before")
    @classmethod
    def kebab_descriptor(cls, v: Any) -> str:
        text = _KEBAB_RE.sub("-", str(v or "").lower()).strip("-")
        return "-".join(text.split("-")[:6]) or "photo"


class QualityAssessment(BaseModel):
    """Quality gate verdict for a downloaded image."""

    score: float = Field(ge=0.0, le=10.0)
    is_logo: bool = False
    is_screenshot: bool = False
    is_text_heavy: bool = False
    notes: str = ""
    accepted: bool = True
    rejection_reason: str | None = None


class PhotoEntry(BaseModel):
    """One entry of the denormalized photo summary on a venue."""

    url: str
    storage_path: str
    filename: str
    source_url: str
    category: ImageCategory
    alt_text: str = ""
    title: str = ""
    caption: str = ""
    is_primary: bool = False
    display_order: int = 0
    quality_score: float | None = None
    width: int | None = None
    height: int | None = None


# ============================================================================
# Generated Content
# ============================================================================


class FAQ(BaseModel):
    """A single question/answer pair."""

    question: str
    answer: str


class GeneratedContent(BaseModel):
    """Structured content returned by the content-generation model."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    slug: str | None = None
    phone: str | None = None
    price_range: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    hours: dict[str, Any] = Field(default_factory=dict)
    dress_code: str | None = None
    reservations_url: str | None = None
    reservations_required: bool | None = None
    best_times_buzzing: list[str] = Field(default_factory=list)
    best_times_relaxed: list[str] = Field(default_factory=list)
    best_times_with_dogs: list[str] = Field(default_factory=list)
    best_times_description: str | None = None
    getting_there_public: str | None = None
    getting_there_car: str | None = None
    nearest_dog_parks: list[Any] = Field(default_factory=list)
    public_review_sentiment: str | None = None
    sentiment_score: float | None = None
    restaurant_awards: list[Any] = Field(default_factory=list)
    accessibility_features: list[str] = Field(default_factory=list)
    social_media_urls: dict[str, str | None] = Field(default_factory=dict)
    about: str | None = None
    faqs: list[FAQ] = Field(default_factory=list)
    cuisines: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    neighbourhood: str | None = Field(
        default=None, validation_alias=AliasChoices("neighbourhood", "neighborhood")
    )
    award: str | None = Field(
        default=None, validation_alias=AliasChoices("award", "michelin_guide_award")
    )

    @field_validator(
        "best_times_buzzing",
        "best_times_relaxed",
        "best_times_with_dogs",
        "nearest_dog_parks",
        "restaurant_awards",
        "accessibility_features",
        "faqs",
        "cuisines",
        "categories",
        "features",
        mode="before",
    )
    @classmethod
    def null_lists(cls, v: Any) -> Any:
        return _none_to_list(v)

    @field_validator("hours", "social_media_urls", mode="before")
    @classmethod
    def null_dicts(cls, v: Any) -> Any:
        return {} if v is None else v


# ============================================================================
# Field Mapping
# ============================================================================


class MappedFields(BaseModel):
    """Field-mapper output: scalar columns and link sets, kept disjoint."""

    direct_fields: dict[str, Any] = Field(default_factory=dict)
    links: dict[ReferenceKind, list[str]] = Field(default_factory=dict)
    created: dict[ReferenceKind, list[str]] = Field(default_factory=dict)
    skipped: list[str] = Field(default_factory=list)


# ============================================================================
# Persisted Entities
# ============================================================================


class ReferenceEntity(BaseModel):
    """Canonical taxonomy entry (cuisine, category, feature, neighbourhood, award)."""

    id: str
    kind: ReferenceKind
    name: str
    slug: str
    scope: str = ""
    stars: int | None = None
    created_at: datetime = Field(default_factory=_utc_now)


class Venue(BaseModel):
    """Read model of a venue record."""

    id: str
    name: str
    slug: str
    place_id: str | None = None
    address: str = ""
    city: str = ""
    country: str = ""
    latitude: float | None = None
    longitude: float | None = None
    phone: str | None = None
    website: str | None = None
    price_range: str | None = None
    about: str | None = None
    neighbourhood_id: str | None = None
    award_id: str | None = None
    award_stars: int | None = None
    photos: list[PhotoEntry] = Field(default_factory=list)
    published: bool = False
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class VenueImage(BaseModel):
    """Metadata row for an image persisted to object storage."""

    id: str | None = None
    venue_id: str
    job_id: str | None = None
    source_url: str
    storage_path: str
    public_url: str
    filename: str
    content_hash: str = ""
    media_type: str = "image/jpeg"
    category: ImageCategory
    descriptor: str = ""
    alt_text: str = ""
    title: str = ""
    caption: str = ""
    description: str = ""
    dog_friendly_relevant: bool = False
    dog_amenity_type: str | None = None
    is_primary: bool = False
    display_order: int = 0
    candidate_score: float | None = None
    quality_score: float | None = None
    width: int | None = None
    height: int | None = None


class IngestionJob(BaseModel):
    """One onboarding attempt for a venue."""

    id: str
    venue_id: str | None = None
    state: JobState = JobState.PENDING
    stage_statuses: dict[StageName, StageStatus] = Field(default_factory=dict)
    payload_keys: list[str] = Field(default_factory=list)
    error: dict[str, Any] | None = None
    superseded_by: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None


class JobProgress(BaseModel):
    """Caller-facing status map for progress displays."""

    job_id: str
    venue_id: str | None = None
    state: JobState
    stages: dict[str, str] = Field(default_factory=dict)
    error: dict[str, Any] | None = None
    published: bool = False

    @classmethod
    def from_job(cls, job: IngestionJob, published: bool = False) -> "JobProgress":
        return cls(
            job_id=job.id,
            venue_id=job.venue_id,
            state=job.state,
            stages={
                stage.value: job.stage_statuses.get(stage, StageStatus.PENDING).display
                for stage in StageName.ordered()
            },
            error=job.error,
            published=published,
        )
