"""Tests for reference reconciliation."""

import logging

import pytest

from venue_agent.core.enums import ReferenceKind
from venue_agent.core.errors import ReferenceConflictError
from venue_agent.db.repositories import ReferenceRepository
from venue_agent.ingestion.reconciler import MatchAction, ReferenceReconciler


@pytest.fixture
def reconciler(session) -> ReferenceReconciler:
    return ReferenceReconciler(session)


def _lose_first_lookup(monkeypatch, reconciler: ReferenceReconciler, always: bool = False) -> None:
    """Make the first find_by_name miss, as if another writer created the row meanwhile."""
    real_find = reconciler.repo.find_by_name
    calls = {"n": 0}

    def find(kind, name, scope=""):
        calls["n"] += 1
        if always or calls["n"] == 1:
            return None
        return real_find(kind, name, scope)

    monkeypatch.setattr(reconciler.repo, "find_by_name", find)


class TestMatchOrCreate:
    """Tests for ReferenceReconciler.match_or_create."""

    def test_creates_then_matches_case_insensitively(self, reconciler, session) -> None:
        """Test that 'Italian' and 'italian' resolve to one entity."""
        first = reconciler.match_or_create(ReferenceKind.CUISINE, "Italian")
        second = reconciler.match_or_create(ReferenceKind.CUISINE, "  italian ")

        assert first.action == MatchAction.CREATED
        assert second.action == MatchAction.MATCHED
        assert first.entity_id == second.entity_id
        assert ReferenceRepository(session).count(ReferenceKind.CUISINE) == 1

    def test_kinds_are_independent(self, reconciler) -> None:
        """Test that the same label under two kinds gives two entities."""
        cuisine = reconciler.match_or_create(ReferenceKind.CUISINE, "Brunch")
        feature = reconciler.match_or_create(ReferenceKind.FEATURE, "Brunch")

        assert cuisine.entity_id != feature.entity_id

    def test_neighbourhood_scoped_by_city(self, reconciler) -> None:
        """Test that a neighbourhood name is matched only within its city."""
        london = reconciler.match_or_create(ReferenceKind.NEIGHBOURHOOD, "Chinatown", scope="London")
        again = reconciler.match_or_create(ReferenceKind.NEIGHBOURHOOD, "chinatown", scope="london")
        manchester = reconciler.match_or_create(
            ReferenceKind.NEIGHBOURHOOD, "Chinatown", scope="Manchester"
        )

        assert again.entity_id == london.entity_id
        assert manchester.action == MatchAction.CREATED
        assert manchester.entity_id != london.entity_id
        assert london.entity.scope == "london"

    def test_empty_label_skipped(self, reconciler) -> None:
        """Test that blank labels are never created."""
        result = reconciler.match_or_create(ReferenceKind.CUISINE, "   ")

        assert result.action == MatchAction.SKIPPED
        assert result.resolved is False

    def test_lost_create_race_rereads_winner(self, reconciler, session, monkeypatch) -> None:
        """Test that a unique-constraint failure falls back to the existing row."""
        winner = ReferenceRepository(session).create(ReferenceKind.CUISINE, "Thai")
        _lose_first_lookup(monkeypatch, reconciler)

        result = reconciler.match_or_create(ReferenceKind.CUISINE, "THAI")

        assert result.action == MatchAction.REREAD
        assert result.entity_id == winner.id
        assert ReferenceRepository(session).count(ReferenceKind.CUISINE) == 1

    def test_conflict_without_winner_raises(self, reconciler, session, monkeypatch) -> None:
        """Test that a conflict with nothing to re-read is an error."""
        ReferenceRepository(session).create(ReferenceKind.CUISINE, "Thai")
        _lose_first_lookup(monkeypatch, reconciler, always=True)

        with pytest.raises(ReferenceConflictError):
            reconciler.match_or_create(ReferenceKind.CUISINE, "Thai")


class TestAwards:
    """Tests for match-only award resolution."""

    def test_award_matched(self, reconciler, session) -> None:
        """Test that a known award is matched case-insensitively."""
        award = ReferenceRepository(session).create(ReferenceKind.AWARD, "Michelin Star", stars=1)

        result = reconciler.match_or_create(ReferenceKind.AWARD, "michelin star")

        assert result.action == MatchAction.MATCHED
        assert result.entity_id == award.id
        assert result.entity.stars == 1

    def test_unknown_award_not_created(self, reconciler, session, caplog) -> None:
        """Test that an unknown award is dropped with a warning."""
        with caplog.at_level(logging.WARNING):
            result = reconciler.match_award("Bib Gourmand")

        assert result.action == MatchAction.NOT_FOUND
        assert result.entity is None
        assert ReferenceRepository(session).count(ReferenceKind.AWARD) == 0
        assert "Award not found" in caplog.text


class TestResolveMany:
    """Tests for batch resolution."""

    def test_duplicates_resolved_once(self, reconciler) -> None:
        """Test that labels differing only in case or spacing resolve once."""
        results = reconciler.resolve_many(
            ReferenceKind.CUISINE, ["Indian", "indian", " Street  Food", "", "Street Food"]
        )

        assert [r.label for r in results] == ["Indian", "Street Food"]
        assert all(r.action == MatchAction.CREATED for r in results)

    def test_failing_label_skipped(self, reconciler, session, monkeypatch) -> None:
        """Test that one failing label does not stop the rest of the batch."""
        ReferenceRepository(session).create(ReferenceKind.CUISINE, "Thai")
        _lose_first_lookup(monkeypatch, reconciler, always=True)

        results = reconciler.resolve_many(ReferenceKind.CUISINE, ["Thai", "Greek"])

        assert results[0].action == MatchAction.SKIPPED
        assert results[0].error
        assert results[1].action == MatchAction.CREATED
