"""Tests for the publishing service."""

import pytest

from venue_agent.core.enums import ReferenceKind
from venue_agent.core.schema import MappedFields
from venue_agent.db.repositories import ReferenceRepository, VenueLinkRepository, VenueRepository
from venue_agent.services.publishing_service import PublishingService


@pytest.fixture
def venue(session):
    return VenueRepository(session).create(name="Dishoom", slug="dishoom", city="London")


@pytest.fixture
def cuisines(session) -> list[str]:
    repo = ReferenceRepository(session)
    return [repo.create(ReferenceKind.CUISINE, name).id for name in ("Indian", "Street Food", "Thai")]


class TestPublish:
    """Tests for PublishingService.publish."""

    def test_publish_writes_fields_links_and_flag(self, session, venue, cuisines) -> None:
        """Test a first publish."""
        service = PublishingService(session)
        mapped = MappedFields(
            direct_fields={"about": "Bombay cafe.", "hours": {"sunday": {"closed": True}}},
            links={ReferenceKind.CUISINE: cuisines[:2]},
        )

        result = service.publish(venue.id, mapped)

        assert result.success
        assert result.venue.published is True
        assert result.venue.about == "Bombay cafe."
        assert result.link_counts == {"cuisine": 2, "category": 0, "feature": 0}
        assert VenueRepository(session).get_by_id(venue.id).hours == {"sunday": {"closed": True}}

    def test_republish_replaces_links(self, session, venue, cuisines) -> None:
        """Test that a second publish replaces rather than accumulates links."""
        service = PublishingService(session)
        service.publish(venue.id, MappedFields(links={ReferenceKind.CUISINE: cuisines[:2]}))

        service.publish(venue.id, MappedFields(links={ReferenceKind.CUISINE: [cuisines[2]]}))

        names = VenueLinkRepository(session).list_linked_names(venue.id, ReferenceKind.CUISINE)
        assert names == ["Thai"]

    def test_unknown_field_leaves_venue_untouched(self, session, venue, cuisines) -> None:
        """Test that a failed publish changes nothing."""
        service = PublishingService(session)
        mapped = MappedFields(
            direct_fields={"about": "x", "not_a_column": 1},
            links={ReferenceKind.CUISINE: cuisines},
        )

        result = service.publish(venue.id, mapped)

        assert not result.success
        assert "not_a_column" in result.error_message
        after = VenueRepository(session).get_by_id(venue.id)
        assert after.published is False
        assert after.about is None
        assert VenueLinkRepository(session).list_entity_ids(venue.id, ReferenceKind.CUISINE) == []

    def test_missing_venue(self, session) -> None:
        """Test publishing a venue that does not exist."""
        result = PublishingService(session).publish("missing", MappedFields())

        assert not result.success
        assert result.to_dict()["venue_id"] is None

