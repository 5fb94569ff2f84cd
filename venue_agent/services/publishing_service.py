"""Publishing service for onboarded venues."""

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from venue_agent.core.enums import ReferenceKind
from venue_agent.core.schema import MappedFields, Venue
from venue_agent.db.repositories import VenueLinkRepository, VenueRepository

logger = logging.getLogger(__name__)

LINK_KINDS = [kind for kind in ReferenceKind if kind.is_link_kind]


@dataclass
class PublishResult:
    """Result of a publish operation."""

    success: bool
    venue: Venue | None = None
    link_counts: dict[str, int] = field(default_factory=dict)
    error_message: str | None = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "venue_id": self.venue.id if self.venue else None,
            "link_counts": self.link_counts,
            "error_message": self.error_message,
        }


class PublishingService:
    """Writes mapped fields onto a venue and marks it published."""

    def __init__(self, session: Session):
        """
        Initialize the publishing service.

        Args:
            session: SQLAlchemy database session.
        """
        self.session = session
        self.venue_repo = VenueRepository(session)
        self.link_repo = VenueLinkRepository(session)

    def publish(self, venue_id: str, mapped: MappedFields) -> PublishResult:
        """
        Publish a venue.

        Direct fields are written, then every link type is replaced
        (delete-then-insert) so repeated runs never accumulate links, then
        the venue is flagged published. All of it happens in one savepoint:
        on failure nothing is changed.

        Args:
            venue_id: The venue to publish.
            mapped: Field-mapper output.

        Returns:
            PublishResult with the published venue and per-type link counts.
        """
        if self.venue_repo.get_by_id(venue_id) is None:
            return PublishResult(success=False, error_message=f"Venue {venue_id} not found")

        link_counts: dict[str, int] = {}
        try:
            with self.session.begin_nested():
                if mapped.direct_fields:
                    self.venue_repo.update_fields(venue_id, mapped.direct_fields)
                for kind in LINK_KINDS:
                    link_counts[kind.value] = self.link_repo.replace_links(
                        venue_id, kind, mapped.links.get(kind, [])
                    )
                self.venue_repo.set_published(venue_id, True)
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"Failed to publish venue {venue_id}: {e}")
            return PublishResult(success=False, error_message=f"Failed to publish: {e}")

        venue = self.venue_repo.get_by_id(venue_id)
        logger.info(f"Published venue {venue_id} with links {link_counts}")
        return PublishResult(success=True, venue=venue, link_counts=link_counts)
