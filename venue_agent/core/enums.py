"""Enums for venue onboarding fields."""

from enum import Enum


class StageName(str, Enum):
    """Ordered stages of a venue onboarding run."""

    CREATE_RECORD = "create_record"
    FETCH_BUSINESS_DATA = "fetch_business_data"
    FETCH_WEB_CONTENT = "fetch_web_content"
    HARVEST_IMAGES = "harvest_images"
    PROCESS_IMAGES = "process_images"
    GENERATE_CONTENT = "generate_content"
    MAP_FIELDS = "map_fields"
    PUBLISH = "publish"

    @classmethod
    def ordered(cls) -> list["StageName"]:
        """Return stages in execution order."""
        return list(cls)

    @property
    def position(self) -> int:
        return StageName.ordered().index(self)


class StageStatus(str, Enum):
    """Status of a single pipeline stage."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def display(self) -> str:
        """Caller-facing label used by progress displays."""
        if self == StageStatus.FAILED:
            return "error"
        return self.value


class JobState(str, Enum):
    """Overall state of an ingestion job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SUPERSEDED = "superseded"


class ReferenceKind(str, Enum):
    """Kinds of canonical reference entities."""

    CUISINE = "cuisine"
    CATEGORY = "category"
    FEATURE = "feature"
    NEIGHBOURHOOD = "neighbourhood"
    AWARD = "award"

    @property
    def is_link_kind(self) -> bool:
        """Whether this kind is stored through the venue link table."""
        return self in (ReferenceKind.CUISINE, ReferenceKind.CATEGORY, ReferenceKind.FEATURE)


class Provenance(str, Enum):
    """Where an image candidate was discovered."""

    OWN_SITE = "own-site"
    REVIEW_SITE = "review-site"
    SOCIAL = "social"
    SEARCH_ENGINE = "search-engine"


class QualityBand(str, Enum):
    """Coarse quality band derived from a candidate's total score."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ImageCategory(str, Enum):
    """Vision classification category for a venue photo."""

    INTERIOR = "interior"
    FOOD = "food"
    EXTERIOR = "exterior"
    AMBIANCE = "ambiance"
