"""
Field Mapper
============

Splits generated content into the two things publishing needs:

- direct fields: scalar and JSON columns written onto the venue row
- link sets: ordered, de-duplicated reference ids per link kind

Taxonomy labels go through the ReferenceReconciler. A generated value of
null (or an empty collection) leaves the venue's current value in place.
"""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from venue_agent.core.enums import ReferenceKind
from venue_agent.core.errors import ReferenceConflictError
from venue_agent.core.schema import GeneratedContent, MappedFields, Venue
from venue_agent.ingestion.business import convert_price_tier
from venue_agent.ingestion.reconciler import MatchAction, ReconcileResult, ReferenceReconciler

logger = logging.getLogger(__name__)

SCALAR_CONTENT_FIELDS = (
    "phone",
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
)

JSON_CONTENT_FIELDS = (
    "hours",
    "best_times_buzzing",
    "best_times_relaxed",
    "best_times_with_dogs",
    "nearest_dog_parks",
    "restaurant_awards",
    "accessibility_features",
    "social_media_urls",
    "faqs",
)

LINK_SOURCES: dict[ReferenceKind, str] = {
    ReferenceKind.CUISINE: "cuisines",
    ReferenceKind.CATEGORY: "categories",
    ReferenceKind.FEATURE: "features",
}


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (list, dict, str)) and not value:
        return False
    return True


class FieldMapper:
    """Maps GeneratedContent onto venue columns and reference links."""

    def __init__(self, reconciler: ReferenceReconciler, default_city: str = "London") -> None:
        self.reconciler = reconciler
        self.default_city = default_city

    def map(self, content: GeneratedContent, venue: Venue) -> MappedFields:
        """
        Map generated content for a venue.

        Args:
            content: Validated model output.
            venue: The venue being onboarded; its city scopes the neighbourhood.

        Returns:
            MappedFields with disjoint direct fields and link sets.
        """
        mapped = MappedFields()
        mapped.direct_fields = self._direct_fields(content)

        for kind, attr in LINK_SOURCES.items():
            results = self.reconciler.resolve_many(kind, getattr(content, attr))
            mapped.links[kind] = self._collect(mapped, kind, results)

        city = venue.city or self.default_city
        if content.neighbourhood:
            result = self._resolve_single(ReferenceKind.NEIGHBOURHOOD, content.neighbourhood, city)
            ids = self._collect(mapped, ReferenceKind.NEIGHBOURHOOD, [result])
            if ids:
                mapped.direct_fields["neighbourhood_id"] = ids[0]

        if content.award:
            result = self.reconciler.match_award(content.award)
            if result.entity is not None:
                mapped.direct_fields["award_id"] = result.entity.id
                mapped.direct_fields["award_stars"] = result.entity.stars
            else:
                mapped.skipped.append(f"{ReferenceKind.AWARD.value}:{result.label}")

        logger.info(
            f"Mapped {venue.slug}: {len(mapped.direct_fields)} direct fields, "
            + ", ".join(f"{len(ids)} {kind.value}" for kind, ids in mapped.links.items())
            + (f", skipped {mapped.skipped}" if mapped.skipped else "")
        )
        return mapped

    def _direct_fields(self, content: GeneratedContent) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        for name in SCALAR_CONTENT_FIELDS:
            value = getattr(content, name)
            if _present(value):
                fields[name] = value
        price_range = convert_price_tier(content.price_range)
        if price_range:
            fields["price_range"] = price_range
        for name in JSON_CONTENT_FIELDS:
            value = getattr(content, name)
            if _present(value):
                if name == "faqs":
                    value = [faq.model_dump() for faq in value]
                fields[name] = value
        return fields

    def _resolve_single(self, kind: ReferenceKind, label: str, scope: str) -> ReconcileResult:
        try:
            return self.reconciler.match_or_create(kind, label, scope)
        except (ReferenceConflictError, SQLAlchemyError) as e:
            logger.warning(f"Skipping {kind.value} '{label}': {e}")
            return ReconcileResult(kind=kind, label=label, action=MatchAction.SKIPPED, error=str(e))

    @staticmethod
    def _collect(
        mapped: MappedFields, kind: ReferenceKind, results: list[ReconcileResult]
    ) -> list[str]:
        ids: list[str] = []
        for result in results:
            if result.entity is None:
                mapped.skipped.append(f"{kind.value}:{result.label}")
                continue
            if result.entity.id not in ids:
                ids.append(result.entity.id)
            if result.action == MatchAction.CREATED:
                mapped.created.setdefault(kind, []).append(result.entity.name)
        return ids
