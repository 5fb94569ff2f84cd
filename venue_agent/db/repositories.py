"""Repository classes for database operations."""

import json
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from venue_agent.core.enums import JobState, ReferenceKind, StageName, StageStatus
from venue_agent.core.schema import (
    IngestionJob,
    PhotoEntry,
    ReferenceEntity,
    Venue,
    VenueImage,
    VenueSeed,
)
from venue_agent.core.text import slugify
from venue_agent.db.models import (
    IngestionJobDB,
    ReferenceEntityDB,
    VenueDB,
    VenueImageDB,
    VenueLinkDB,
)


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def name_key(name: str) -> str:
    """Case-folded, whitespace-collapsed comparison key for reference names."""
    return " ".join(name.split()).casefold()


# ============================================================================
# Venue Repository
# ============================================================================

# Venue attributes stored as JSON text columns.
VENUE_JSON_FIELDS: dict[str, str] = {
    "hours": "hours_json",
    "best_times_buzzing": "best_times_buzzing_json",
    "best_times_relaxed": "best_times_relaxed_json",
    "best_times_with_dogs": "best_times_with_dogs_json",
    "nearest_dog_parks": "nearest_dog_parks_json",
    "restaurant_awards": "restaurant_awards_json",
    "accessibility_features": "accessibility_features_json",
    "social_media_urls": "social_media_urls_json",
    "faqs": "faqs_json",
}

# Venue attributes stored as plain columns and writable by the mapper.
VENUE_SCALAR_FIELDS: frozenset[str] = frozenset(
    {
        "phone",
        "website",
        "price_range",
        "latitude",
        "longitude",
        "dress_code",
        "reservations_url",
        "reservations_required",
        "best_times_description",
        "getting_there_public",
        "getting_there_car",
        "public_review_sentiment",
        "sentiment_score",
        "about",
        "neighbourhood_id",
        "award_id",
        "award_stars",
    }
)


class VenueRepository:
    """Repository for venue records."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        name: str,
        slug: str,
        place_id: str | None = None,
        address: str = "",
        city: str = "",
        country: str = "",
        latitude: float | None = None,
        longitude: float | None = None,
        website: str | None = None,
    ) -> Venue:
        """Create a new, unpublished venue."""
        db_item = VenueDB(
            name=name,
            slug=slug,
            place_id=place_id,
            address=address,
            city=city,
            country=country,
            latitude=latitude,
            longitude=longitude,
            website=website,
            published=False,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_by_id(self, venue_id: str) -> Venue | None:
        """Get a venue by ID."""
        db_item = self._get_db(venue_id)
        return self._to_domain(db_item) if db_item else None

    def get_by_slug(self, slug: str) -> Venue | None:
        """Get a venue by slug."""
        stmt = select(VenueDB).where(VenueDB.slug == slug)
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def update_fields(self, venue_id: str, fields: dict[str, Any]) -> Venue:
        """
        Write direct fields onto a venue.

        Keys must be known scalar or JSON attributes; JSON attributes are
        serialized into their ``*_json`` column.

        Raises:
            ValueError: If the venue does not exist or a key is unknown.
        """
        db_item = self._get_db(venue_id)
        if db_item is None:
            raise ValueError(f"Venue with id {venue_id} not found")

        for key, value in fields.items():
            if key in VENUE_JSON_FIELDS:
                setattr(db_item, VENUE_JSON_FIELDS[key], json.dumps(value, default=str))
            elif key in VENUE_SCALAR_FIELDS:
                setattr(db_item, key, value)
            else:
                raise ValueError(f"Unknown venue field: {key}")

        db_item.updated_at = _utc_now()
        self.session.flush()
        return self._to_domain(db_item)

    def set_published(self, venue_id: str, published: bool) -> None:
        """Set the published flag."""
        db_item = self._get_db(venue_id)
        if db_item is None:
            raise ValueError(f"Venue with id {venue_id} not found")
        db_item.published = published
        db_item.updated_at = _utc_now()
        self.session.flush()

    def replace_photos(self, venue_id: str, photos: list[PhotoEntry]) -> None:
        """Replace the denormalized photo summary wholesale."""
        db_item = self._get_db(venue_id)
        if db_item is None:
            raise ValueError(f"Venue with id {venue_id} not found")
        db_item.photos_json = json.dumps([p.model_dump(mode="json") for p in photos])
        db_item.updated_at = _utc_now()
        self.session.flush()

    def _get_db(self, venue_id: str) -> VenueDB | None:
        stmt = select(VenueDB).where(VenueDB.id == str(venue_id))
        return self.session.execute(stmt).scalar_one_or_none()

    def _to_domain(self, db_item: VenueDB) -> Venue:
        return Venue(
            id=db_item.id,
            name=db_item.name,
            slug=db_item.slug,
            place_id=db_item.place_id,
            address=db_item.address or "",
            city=db_item.city or "",
            country=db_item.country or "",
            latitude=db_item.latitude,
            longitude=db_item.longitude,
            phone=db_item.phone,
            website=db_item.website,
            price_range=db_item.price_range,
            about=db_item.about,
            neighbourhood_id=db_item.neighbourhood_id,
            award_id=db_item.award_id,
            award_stars=db_item.award_stars,
            photos=[PhotoEntry.model_validate(p) for p in json.loads(db_item.photos_json or "[]")],
            published=db_item.published,
            created_at=db_item.created_at,
            updated_at=db_item.updated_at,
        )


# ============================================================================
# Reference Entity Repository
# ============================================================================


class ReferenceRepository:
    """Repository for canonical reference entities."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        kind: ReferenceKind,
        name: str,
        scope: str = "",
        stars: int | None = None,
    ) -> ReferenceEntity:
        """
        Insert a new reference entity.

        Raises:
            sqlalchemy.exc.IntegrityError: If an entity with the same
                case-folded name already exists for this kind and scope.
        """
        clean_name = " ".join(name.split())
        db_item = ReferenceEntityDB(
            kind=kind.value,
            name=clean_name,
            name_key=name_key(clean_name),
            slug=slugify(clean_name),
            scope=name_key(scope) if scope else "",
            stars=stars,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_by_id(self, entity_id: str) -> ReferenceEntity | None:
        """Get an entity by ID."""
        stmt = select(ReferenceEntityDB).where(ReferenceEntityDB.id == str(entity_id))
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def find_by_name(
        self, kind: ReferenceKind, name: str, scope: str = ""
    ) -> ReferenceEntity | None:
        """Case-insensitive exact lookup within a kind and scope."""
        stmt = select(ReferenceEntityDB).where(
            ReferenceEntityDB.kind == kind.value,
            ReferenceEntityDB.scope == (name_key(scope) if scope else ""),
            ReferenceEntityDB.name_key == name_key(name),
        )
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def list_by_kind(self, kind: ReferenceKind, scope: str | None = None) -> list[ReferenceEntity]:
        """List entities of a kind, optionally restricted to one scope."""
        stmt = select(ReferenceEntityDB).where(ReferenceEntityDB.kind == kind.value)
        if scope is not None:
            stmt = stmt.where(ReferenceEntityDB.scope == (name_key(scope) if scope else ""))
        stmt = stmt.order_by(ReferenceEntityDB.name)
        return [self._to_domain(e) for e in self.session.execute(stmt).scalars().all()]

    def list_names(self, kind: ReferenceKind, scope: str | None = None) -> list[str]:
        """Names of all entities of a kind, for prompt context."""
        return [entity.name for entity in self.list_by_kind(kind, scope)]

    def count(self, kind: ReferenceKind | None = None) -> int:
        """Count entities, optionally of one kind."""
        stmt = select(func.count()).select_from(ReferenceEntityDB)
        if kind is not None:
            stmt = stmt.where(ReferenceEntityDB.kind == kind.value)
        return self.session.execute(stmt).scalar() or 0

    def _to_domain(self, db_item: ReferenceEntityDB) -> ReferenceEntity:
        return ReferenceEntity(
            id=db_item.id,
            kind=ReferenceKind(db_item.kind),
            name=db_item.name,
            slug=db_item.slug,
            scope=db_item.scope,
            stars=db_item.stars,
            created_at=db_item.created_at,
        )


# ============================================================================
# Venue Link Repository
# ============================================================================


class VenueLinkRepository:
    """Repository for venue-to-reference links."""

    def __init__(self, session: Session):
        self.session = session

    def replace_links(self, venue_id: str, kind: ReferenceKind, entity_ids: list[str]) -> int:
        """
        Delete every link of ``kind`` for the venue, then insert ``entity_ids``.

        Duplicate IDs are collapsed, keeping first position.

        Returns:
            Number of links inserted.
        """
        self.session.execute(
            delete(VenueLinkDB).where(
                VenueLinkDB.venue_id == str(venue_id),
                VenueLinkDB.link_type == kind.value,
            )
        )
        seen: set[str] = set()
        position = 0
        for entity_id in entity_ids:
            if entity_id in seen:
                continue
            seen.add(entity_id)
            self.session.add(
                VenueLinkDB(
                    venue_id=str(venue_id),
                    link_type=kind.value,
                    entity_id=entity_id,
                    position=position,
                )
            )
            position += 1
        self.session.flush()
        return position

    def list_entity_ids(self, venue_id: str, kind: ReferenceKind) -> list[str]:
        """Linked entity IDs of one kind, in link order."""
        stmt = (
            select(VenueLinkDB.entity_id)
            .where(VenueLinkDB.venue_id == str(venue_id), VenueLinkDB.link_type == kind.value)
            .order_by(VenueLinkDB.position)
        )
        return list(self.session.execute(stmt).scalars().all())

    def list_linked_names(self, venue_id: str, kind: ReferenceKind) -> list[str]:
        """Linked entity names of one kind, in link order."""
        stmt = (
            select(ReferenceEntityDB.name)
            .join(VenueLinkDB, VenueLinkDB.entity_id == ReferenceEntityDB.id)
            .where(VenueLinkDB.venue_id == str(venue_id), VenueLinkDB.link_type == kind.value)
            .order_by(VenueLinkDB.position)
        )
        return list(self.session.execute(stmt).scalars().all())


# ============================================================================
# Venue Image Repository
# ============================================================================


class VenueImageRepository:
    """Repository for uploaded image metadata."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, image: VenueImage) -> VenueImage:
        """Insert an image metadata row."""
        db_item = VenueImageDB(**image.model_dump(exclude={"id"}, mode="python"))
        db_item.category = image.category.value
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def list_for_venue(self, venue_id: str) -> list[VenueImage]:
        """Images of a venue in display order."""
        stmt = (
            select(VenueImageDB)
            .where(VenueImageDB.venue_id == str(venue_id))
            .order_by(VenueImageDB.display_order)
        )
        return [self._to_domain(i) for i in self.session.execute(stmt).scalars().all()]

    def delete_for_venue(self, venue_id: str) -> int:
        """Remove all image rows of a venue."""
        result = self.session.execute(
            delete(VenueImageDB).where(VenueImageDB.venue_id == str(venue_id))
        )
        self.session.flush()
        return result.rowcount or 0

    def _to_domain(self, db_item: VenueImageDB) -> VenueImage:
        return VenueImage.model_validate(
            {c.name: getattr(db_item, c.name) for c in VenueImageDB.__table__.columns}
        )


# ============================================================================
# Ingestion Job Repository
# ============================================================================


class IngestionJobRepository:
    """Repository for onboarding jobs, their stage statuses and raw payloads."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, seed: VenueSeed, venue_id: str | None = None) -> IngestionJob:
        """Create a job with every stage pending."""
        db_item = IngestionJobDB(
            venue_id=venue_id,
            state=JobState.PENDING.value,
            seed_json=seed.model_dump_json(),
            stage_statuses_json=json.dumps(
                {stage.value: StageStatus.PENDING.value for stage in StageName.ordered()}
            ),
            payloads_json="{}",
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_by_id(self, job_id: str) -> IngestionJob | None:
        """Get a job by ID."""
        db_item = self._get_db(job_id)
        return self._to_domain(db_item) if db_item else None

    def get_seed(self, job_id: str) -> VenueSeed:
        """The seed the job was started with."""
        return VenueSeed.model_validate_json(self._require(job_id).seed_json)

    def list_for_venue(self, venue_id: str) -> list[IngestionJob]:
        """Jobs for a venue, oldest first."""
        stmt = (
            select(IngestionJobDB)
            .where(IngestionJobDB.venue_id == str(venue_id))
            .order_by(IngestionJobDB.created_at)
        )
        return [self._to_domain(j) for j in self.session.execute(stmt).scalars().all()]

    def list_recent(self, limit: int = 20) -> list[IngestionJob]:
        """Most recent jobs first."""
        stmt = select(IngestionJobDB).order_by(IngestionJobDB.created_at.desc()).limit(limit)
        return [self._to_domain(j) for j in self.session.execute(stmt).scalars().all()]

    def set_venue(self, job_id: str, venue_id: str) -> None:
        db_item = self._require(job_id)
        db_item.venue_id = venue_id
        self.session.flush()

    def set_stage_status(self, job_id: str, stage: StageName, status: StageStatus) -> None:
        """Record one stage transition."""
        db_item = self._require(job_id)
        statuses = json.loads(db_item.stage_statuses_json or "{}")
        statuses[stage.value] = status.value
        db_item.stage_statuses_json = json.dumps(statuses)
        db_item.updated_at = _utc_now()
        self.session.flush()

    def set_state(
        self,
        job_id: str,
        state: JobState,
        error: dict[str, Any] | None = None,
    ) -> None:
        """Set the overall job state; terminal states stamp ``completed_at``."""
        db_item = self._require(job_id)
        db_item.state = state.value
        db_item.error_json = json.dumps(error) if error else None
        now = _utc_now()
        if state == JobState.RUNNING:
            db_item.started_at = db_item.started_at or now
            db_item.completed_at = None
        elif state in (JobState.COMPLETED, JobState.FAILED):
            db_item.completed_at = now
        db_item.updated_at = now
        self.session.flush()

    def save_payload(self, job_id: str, key: str, value: Any) -> None:
        """Store a raw payload, overwriting any previous value for the key."""
        db_item = self._require(job_id)
        payloads = json.loads(db_item.payloads_json or "{}")
        payloads[key] = value
        db_item.payloads_json = json.dumps(payloads, default=str)
        db_item.updated_at = _utc_now()
        self.session.flush()

    def delete_payload(self, job_id: str, key: str) -> bool:
        """Remove a stored payload; False when there was none."""
        db_item = self._require(job_id)
        payloads = json.loads(db_item.payloads_json or "{}")
        if payloads.pop(key, None) is None:
            return False
        db_item.payloads_json = json.dumps(payloads, default=str)
        db_item.updated_at = _utc_now()
        self.session.flush()
        return True

    def get_payload(self, job_id: str, key: str) -> Any | None:
        """Latest stored payload for a key, or None."""
        return self.get_payloads(job_id).get(key)

    def get_payloads(self, job_id: str) -> dict[str, Any]:
        return json.loads(self._require(job_id).payloads_json or "{}")

    def supersede_previous(self, venue_id: str, new_job_id: str) -> int:
        """Point every older job of the venue at ``new_job_id``."""
        stmt = select(IngestionJobDB).where(
            IngestionJobDB.venue_id == str(venue_id),
            IngestionJobDB.id != str(new_job_id),
            IngestionJobDB.superseded_by.is_(None),
        )
        count = 0
        for db_item in self.session.execute(stmt).scalars().all():
            db_item.superseded_by = str(new_job_id)
            if db_item.state != JobState.COMPLETED.value:
                db_item.state = JobState.SUPERSEDED.value
            count += 1
        self.session.flush()
        return count

    def _get_db(self, job_id: str) -> IngestionJobDB | None:
        stmt = select(IngestionJobDB).where(IngestionJobDB.id == str(job_id))
        return self.session.execute(stmt).scalar_one_or_none()

    def _require(self, job_id: str) -> IngestionJobDB:
        db_item = self._get_db(job_id)
        if db_item is None:
            raise ValueError(f"Ingestion job with id {job_id} not found")
        return db_item

    def _to_domain(self, db_item: IngestionJobDB) -> IngestionJob:
        statuses = json.loads(db_item.stage_statuses_json or "{}")
        return IngestionJob(
            id=db_item.id,
            venue_id=db_item.venue_id,
            state=JobState(db_item.state),
            stage_statuses={
                StageName(stage): StageStatus(status) for stage, status in statuses.items()
            },
            payload_keys=sorted(json.loads(db_item.payloads_json or "{}").keys()),
            error=json.loads(db_item.error_json) if db_item.error_json else None,
            superseded_by=db_item.superseded_by,
            created_at=db_item.created_at,
            updated_at=db_item.updated_at,
            started_at=db_item.started_at,
            completed_at=db_item.completed_at,
        )
