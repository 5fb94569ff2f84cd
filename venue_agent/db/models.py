"""SQLAlchemy ORM models for Venue Agent.

These models define the database tables:
- VenueDB (the published directory record)
- ReferenceEntityDB, VenueLinkDB (canonical taxonomy and venue links)
- VenueImageDB (uploaded image metadata)
- IngestionJobDB (one onboarding attempt with stage statuses and raw payloads)
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ============================================================================
# Reference Entities
# ============================================================================


class ReferenceEntityDB(Base):
    """
    Database model for canonical taxonomy entries.

    One table holds every kind (cuisine, category, feature, neighbourhood,
    award). ``name_key`` is the case-folded name; the unique constraint on
    (kind, scope, name_key) is what keeps concurrent creators from inserting
    case-insensitive duplicates. ``scope`` is the city for neighbourhoods and
    empty for every other kind.
    """

    __tablename__ = "reference_entities"
    __table_args__ = (
        UniqueConstraint("kind", "scope", "name_key", name="uq_reference_kind_scope_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    scope: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    stars: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    def __repr__(self) -> str:
        return f"<ReferenceEntityDB(id={self.id}, kind={self.kind}, name='{self.name}')>"


# ============================================================================
# Venues
# ============================================================================


class VenueDB(Base):
    """
    Database model for venue records.

    ``published`` stays False until the publish stage finishes.
    """

    __tablename__ = "venues"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    place_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    address: Mapped[str] = mapped_column(Text, default="")
    city: Mapped[str] = mapped_column(String(100), default="", index=True)
    country: Mapped[str] = mapped_column(String(100), default="")
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)
    price_range: Mapped[str | None] = mapped_column(String(10), nullable=True)
    hours_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    dress_code: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reservations_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reservations_required: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    best_times_buzzing_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    best_times_relaxed_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    best_times_with_dogs_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    best_times_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    getting_there_public: Mapped[str | None] = mapped_column(Text, nullable=True)
    getting_there_car: Mapped[str | None] = mapped_column(Text, nullable=True)
    nearest_dog_parks_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    public_review_sentiment: Mapped[str | None] = mapped_column(Text, nullable=True)
    sentiment_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    restaurant_awards_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    accessibility_features_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    social_media_urls_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    about: Mapped[str | None] = mapped_column(Text, nullable=True)
    faqs_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    photos_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    neighbourhood_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("reference_entities.id"), nullable=True
    )
    award_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("reference_entities.id"), nullable=True
    )
    award_stars: Mapped[int | None] = mapped_column(Integer, nullable=True)
    published: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    def __repr__(self) -> str:
        return f"<VenueDB(id={self.id}, slug='{self.slug}', published={self.published})>"


class VenueLinkDB(Base):
    """Many-to-many link between a venue and a cuisine/category/feature entity."""

    __tablename__ = "venue_links"
    __table_args__ = (
        UniqueConstraint("venue_id", "link_type", "entity_id", name="uq_venue_link"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    venue_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("venues.id"), nullable=False, index=True
    )
    link_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("reference_entities.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<VenueLinkDB(venue={self.venue_id}, type={self.link_type}, entity={self.entity_id})>"


class VenueImageDB(Base):
    """Metadata for an image uploaded to object storage."""

    __tablename__ = "venue_images"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    venue_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("venues.id"), nullable=False, index=True
    )
    job_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    storage_path: Mapped[str] = mapped_column(String(500), nullable=False)
    public_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), default="")
    media_type: Mapped[str] = mapped_column(String(50), default="image/jpeg")
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    descriptor: Mapped[str] = mapped_column(String(100), default="")
    alt_text: Mapped[str] = mapped_column(Text, default="")
    title: Mapped[str] = mapped_column(String(255), default="")
    caption: Mapped[str] = mapped_column(Text, default="")
    description: Mapped[str] = mapped_column(Text, default="")
    dog_friendly_relevant: Mapped[bool] = mapped_column(Boolean, default=False)
    dog_amenity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    candidate_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    quality_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    def __repr__(self) -> str:
        return f"<VenueImageDB(id={self.id}, filename='{self.filename}')>"


# ============================================================================
# Ingestion Jobs
# ============================================================================


class IngestionJobDB(Base):
    """
    Database model for onboarding jobs.

    Stage statuses and raw payloads are JSON objects keyed by stage name and
    payload key respectively. Rows are never deleted; a new run for the same
    venue sets ``superseded_by`` on the older rows.
    """

    __tablename__ = "ingestion_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    venue_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("venues.id"), nullable=True, index=True
    )
    state: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    seed_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    stage_statuses_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    payloads_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    error_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON object
    superseded_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<IngestionJobDB(id={self.id}, venue={self.venue_id}, state={self.state})>"
