"""
Business Data Normalizer
========================

Reads the handful of fields the pipeline needs out of a business-listing
record and converts them into a validated BusinessData model.
"""

import logging
import re
from typing import Any

from pydantic import ValidationError

from venue_agent.core.errors import MalformedResponseError
from venue_agent.core.schema import BusinessData, OpeningHours
from venue_agent.ingestion.clients import BusinessDataClient

logger = logging.getLogger(__name__)

PRICE_TIERS = {
    "$": "£",
    "$$": "££",
    "$$$": "£££",
    "$$$$": "££££",
}

DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# "12:00 PM - 11:00 PM", also tolerating en dashes and "to".
_HOURS_RANGE_RE = re.compile(
    r"(\d{1,2})(?::(\d{2}))?\s*([AP]M)\s*(?:-|–|—|to)\s*(\d{1,2})(?::(\d{2}))?\s*([AP]M)",
    re.IGNORECASE,
)
_HOURS_24H_RE = re.compile(r"(\d{1,2}):(\d{2})\s*(?:-|–|—|to)\s*(\d{1,2}):(\d{2})")

# Fields that may carry the venue's neighbourhood, in preference order.
NEIGHBOURHOOD_FIELDS = ("neighborhood", "neighbourhood", "subLocality", "district")


def convert_price_tier(price: str | None) -> str | None:
    """Map ``$``-style price tiers to ``£``; anything else is dropped."""
    if not price:
        return None
    price = price.strip()
    if price in PRICE_TIERS.values():
        return price
    return PRICE_TIERS.get(price)


def to_24h(hour: str, minute: str | None, meridiem: str) -> str:
    """Convert a 12-hour clock reading to ``HH:MM``."""
    h = int(hour) % 12
    if meridiem.upper() == "PM":
        h += 12
    return f"{h:02d}:{int(minute or 0):02d}"


def parse_hours_entry(day: str, hours: str) -> OpeningHours | None:
    """
    Parse one day of opening hours.

    Returns None when the day is unknown or the text cannot be read.
    """
    day_key = (day or "").strip().lower()
    if day_key not in DAYS:
        return None
    raw = (hours or "").strip()
    if raw.lower() == "closed":
        return OpeningHours(day=day_key, closed=True, raw=raw)
    if raw.lower() in ("open 24 hours", "24 hours"):
        return OpeningHours(day=day_key, open="00:00", close="23:59", raw=raw)

    match = _HOURS_RANGE_RE.search(raw)
    if match:
        return OpeningHours(
            day=day_key,
            open=to_24h(match.group(1), match.group(2), match.group(3)),
            close=to_24h(match.group(4), match.group(5), match.group(6)),
            raw=raw,
        )
    match = _HOURS_24H_RE.search(raw)
    if match:
        return OpeningHours(
            day=day_key,
            open=f"{int(match.group(1)):02d}:{match.group(2)}",
            close=f"{int(match.group(3)):02d}:{match.group(4)}",
            raw=raw,
        )
    logger.debug(f"Unreadable opening hours for {day_key}: {raw!r}")
    return None


def _review_texts(reviews: Any) -> list[str]:
    texts = []
    for review in reviews or []:
        if isinstance(review, str):
            text = review
        elif isinstance(review, dict):
            text = review.get("text") or review.get("textTranslated") or ""
        else:
            continue
        if text.strip():
            texts.append(text.strip())
    return texts


def _image_urls(payload: dict[str, Any]) -> list[str]:
    urls = []
    for item in payload.get("imageUrls") or payload.get("images") or []:
        url = item if isinstance(item, str) else (item or {}).get("imageUrl")
        if url:
            urls.append(url)
    if payload.get("imageUrl") and payload["imageUrl"] not in urls:
        urls.insert(0, payload["imageUrl"])
    return urls


def normalize_place(payload: dict[str, Any]) -> BusinessData:
    """
    Normalize a raw business-listing record.

    Args:
        payload: One dataset item from the business-data service.

    Returns:
        Validated BusinessData.

    Raises:
        MalformedResponseError: If the payload is not a mapping or fails validation.
    """
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            f"Business data must be an object, got {type(payload).__name__}"
        )

    hours = []
    for entry in payload.get("openingHours") or []:
        if isinstance(entry, dict):
            parsed = parse_hours_entry(entry.get("day", ""), entry.get("hours", ""))
            if parsed is not None:
                hours.append(parsed)

    location = payload.get("location") or {}
    neighbourhood = next(
        (payload[f] for f in NEIGHBOURHOOD_FIELDS if isinstance(payload.get(f), str) and payload[f]),
        None,
    )

    try:
        return BusinessData(
            name=payload.get("title") or payload.get("name"),
            address=payload.get("address"),
            phone=payload.get("phone") or payload.get("phoneUnformatted"),
            website=payload.get("website"),
            price_range=convert_price_tier(payload.get("price")),
            category=payload.get("categoryName"),
            rating=payload.get("totalScore"),
            review_count=payload.get("reviewsCount"),
            reviews=_review_texts(payload.get("reviews")),
            opening_hours=hours,
            popular_times=payload.get("popularTimesHistogram") or {},
            image_urls=_image_urls(payload),
            latitude=location.get("lat"),
            longitude=location.get("lng"),
            neighbourhood=neighbourhood,
        )
    except ValidationError as e:
        raise MalformedResponseError(f"Invalid business data: {e}") from e


def hours_to_dict(hours: list[OpeningHours]) -> dict[str, dict[str, Any]]:
    """Venue ``hours`` column shape: ``{day: {open, close}}`` or ``{day: {closed: true}}``."""
    result: dict[str, dict[str, Any]] = {}
    for entry in hours:
        if entry.closed:
            result[entry.day] = {"closed": True}
        else:
            result[entry.day] = {"open": entry.open, "close": entry.close}
    return result


class BusinessDataFetcher:
    """Fetches and normalizes the business listing for a place."""

    def __init__(self, client: BusinessDataClient) -> None:
        self.client = client

    async def fetch(self, place_id: str) -> tuple[dict[str, Any], BusinessData]:
        """
        Fetch one place.

        Returns:
            The raw payload (kept verbatim for reuse) and its normalized form.
        """
        raw = await self.client.fetch_place(place_id)
        data = normalize_place(raw)
        logger.info(
            f"Business data for {place_id}: {data.name!r}, "
            f"{len(data.opening_hours)} days of hours, {len(data.image_urls)} images"
        )
        return raw, data
