"""
Reference Reconciler
====================

Matches free-text taxonomy labels (cuisines, categories, features,
neighbourhoods, awards) to canonical reference entities.

Matching is case-insensitive and exact. An unmatched label creates a new
canonical entity, except for awards, which are matched only. Uniqueness is
enforced by the store: when two writers create the same label at once the
loser's insert fails on the unique constraint, its savepoint is rolled back,
and the winner's row is read instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from venue_agent.core.enums import ReferenceKind
from venue_agent.core.errors import ReferenceConflictError
from venue_agent.core.schema import ReferenceEntity
from venue_agent.db.repositories import ReferenceRepository, name_key

logger = logging.getLogger(__name__)


class MatchAction(str, Enum):
    """How a label was resolved."""

    MATCHED = "matched"  # Existing entity found
    CREATED = "created"  # New entity inserted
    REREAD = "reread"  # Lost a create race, winner's row used
    NOT_FOUND = "not_found"  # Match-only kind with no match
    SKIPPED = "skipped"  # Empty label or failed resolution


@dataclass
class ReconcileResult:
    """Outcome of resolving one label."""

    kind: ReferenceKind
    label: str
    action: MatchAction
    entity: ReferenceEntity | None = None
    error: str | None = None

    @property
    def entity_id(self) -> str | None:
        return self.entity.id if self.entity else None

    @property
    def resolved(self) -> bool:
        return self.entity is not None


class ReferenceReconciler:
    """Match-or-create for canonical reference entities."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.repo = ReferenceRepository(session)

    def match_or_create(
        self,
        kind: ReferenceKind,
        name: str,
        scope: str = "",
    ) -> ReconcileResult:
        """
        Resolve a label, creating the entity when there is no match.

        Args:
            kind: Reference kind.
            name: Free-text label.
            scope: Scope the match is restricted to (the city, for neighbourhoods).

        Returns:
            ReconcileResult with the matched or created entity.

        Raises:
            ReferenceConflictError: If the insert conflicted and no row can be re-read.
        """
        label = " ".join((name or "").split())
        if not label:
            return ReconcileResult(kind=kind, label=label, action=MatchAction.SKIPPED, error="empty label")
        if kind == ReferenceKind.AWARD:
            return self.match_award(label)

        existing = self.repo.find_by_name(kind, label, scope)
        if existing is not None:
            logger.debug(f"Matched {kind.value} '{label}' -> {existing.id}")
            return ReconcileResult(kind=kind, label=label, action=MatchAction.MATCHED, entity=existing)

        try:
            with self.session.begin_nested():
                created = self.repo.create(kind, label, scope=scope)
        except IntegrityError as e:
            winner = self.repo.find_by_name(kind, label, scope)
            if winner is None:
                raise ReferenceConflictError(
                    f"Could not create or re-read {kind.value} '{label}': {e.orig}"
                ) from e
            logger.info(f"Concurrent create of {kind.value} '{label}', using {winner.id}")
            return ReconcileResult(kind=kind, label=label, action=MatchAction.REREAD, entity=winner)

        logger.info(f"Created {kind.value} '{label}' ({created.id})")
        return ReconcileResult(kind=kind, label=label, action=MatchAction.CREATED, entity=created)

    def match_award(self, name: str | None) -> ReconcileResult:
        """Match an award by name. Awards are never created; a miss logs a warning."""
        label = " ".join((name or "").split())
        if not label:
            return ReconcileResult(
                kind=ReferenceKind.AWARD, label=label, action=MatchAction.SKIPPED, error="empty label"
            )
        existing = self.repo.find_by_name(ReferenceKind.AWARD, label)
        if existing is None:
            logger.warning(f"Award not found, dropping: {label}")
            return ReconcileResult(
                kind=ReferenceKind.AWARD,
                label=label,
                action=MatchAction.NOT_FOUND,
                error="no matching award",
            )
        return ReconcileResult(
            kind=ReferenceKind.AWARD, label=label, action=MatchAction.MATCHED, entity=existing
        )

    def resolve_many(
        self,
        kind: ReferenceKind,
        names: list[str],
        scope: str = "",
    ) -> list[ReconcileResult]:
        """
        Resolve a batch of labels of one kind.

        Each label is independent: a failure is logged, reported as SKIPPED,
        and the rest of the batch continues. Labels differing only in case
        or spacing are resolved once.
        """
        results: list[ReconcileResult] = []
        seen: set[str] = set()
        for name in names:
            key = name_key(name or "")
            if not key or key in seen:
                continue
            seen.add(key)
            try:
                results.append(self.match_or_create(kind, name, scope))
            except (ReferenceConflictError, SQLAlchemyError) as e:
                logger.warning(f"Skipping {kind.value} '{name}': {e}")
                results.append(
                    ReconcileResult(kind=kind, label=name, action=MatchAction.SKIPPED, error=str(e))
                )
        return results
