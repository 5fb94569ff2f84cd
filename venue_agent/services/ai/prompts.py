"""Prompt templates for venue content generation and image classification."""

import json
from typing import Any

PROMPT_VERSION = "1.0"

# Characters of scraped markdown kept per web source.
MAX_SOURCE_CHARS = 3000
MAX_REVIEWS = 10

# JSON Schema for the generated venue content (simplified for AI)
VENUE_CONTENT_JSON_SCHEMA = {
    "type": "object",
    "properties": {
        "slug": {"type": "string", "description": "URL slug, lowercase with hyphens"},
        "phone": {"type": ["string", "null"]},
        "price_range": {"type": ["string", "null"], "enum": ["£", "££", "£££", "££££", None]},
        "latitude": {"type": ["number", "null"]},
        "longitude": {"type": ["number", "null"]},
        "hours": {
            "type": "object",
            "description": "Keys monday..sunday; value {open, close} in HH:MM or {closed: true}",
        },
        "dress_code": {"type": ["string", "null"]},
        "reservations_url": {"type": ["string", "null"]},
        "reservations_required": {"type": ["boolean", "null"]},
        "best_times_buzzing": {"type": "array", "items": {"type": "string"}},
        "best_times_relaxed": {"type": "array", "items": {"type": "string"}},
        "best_times_with_dogs": {"type": "array", "items": {"type": "string"}},
        "best_times_description": {"type": ["string", "null"]},
        "getting_there_public": {"type": ["string", "null"]},
        "getting_there_car": {"type": ["string", "null"]},
        "nearest_dog_parks": {
            "type": "array",
            "items": {"type": "object", "properties": {"name": {"type": "string"}, "distance": {"type": "string"}}},
        },
        "public_review_sentiment": {"type": ["string", "null"]},
        "sentiment_score": {"type": ["number", "null"], "description": "0-10"},
        "restaurant_awards": {"type": "array", "items": {"type": "string"}},
        "accessibility_features": {"type": "array", "items": {"type": "string"}},
        "social_media_urls": {
            "type": "object",
            "properties": {
                "instagram": {"type": ["string", "null"]},
                "facebook": {"type": ["string", "null"]},
                "tiktok": {"type": ["string", "null"]},
            },
        },
        "about": {"type": ["string", "null"], "description": "2-3 paragraph description"},
        "faqs": {
            "type": "array",
            "items": {"type": "object", "properties": {"question": {"type": "string"}, "answer": {"type": "string"}}},
        },
        "cuisines": {"type": "array", "items": {"type": "string"}},
        "categories": {"type": "array", "items": {"type": "string"}},
        "features": {"type": "array", "items": {"type": "string"}},
        "neighbourhood": {"type": ["string", "null"]},
        "award": {"type": ["string", "null"], "description": "Exact name of a listed award or null"},
    },
}

CONTENT_SYSTEM_PROMPT = """You are an experienced restaurant editor writing listings for a venue directory. You turn raw research (business listings, scraped web pages, menus and reviews) into accurate, structured venue data.

RULES:
1. Output ONLY valid JSON matching the schema. No markdown, no commentary.
2. Never invent facts. Use null (or an empty list) when the research does not support a value.
3. For cuisines, categories, features, neighbourhood and award, prefer the EXACT names from the reference lists provided. Only introduce a new cuisine, category, feature or neighbourhood name when none of the listed names fits.
4. The award must be one of the listed award names exactly, or null.
5. Write in British English. Prices use £ symbols.
"""

CONTENT_PROMPT_TEMPLATE = """Create the directory listing for this venue.

VENUE:
- Name: {name}
- Address: {address}
- City: {city}

BUSINESS LISTING DATA:
{business_section}

WEB RESEARCH:
{web_section}

MENU:
{menu_section}

REFERENCE LISTS (prefer these exact names):
{reference_section}

OUTPUT JSON SCHEMA:
{schema}

Return ONLY the JSON object."""

VISION_PROMPT_TEMPLATE = """You are cataloguing photos for the venue "{venue_name}" in {location}.

Classify this image and return ONLY a JSON object with:
- "category": one of "interior", "food", "exterior", "ambiance"
- "descriptor": 1-4 word kebab-case description, e.g. "dining-room", "lamb-chops"
- "alt_text": concise accessible alt text (max 125 characters)
- "title": short human title
- "caption": one-sentence caption suitable for a gallery
- "description": two or three sentences describing what is shown
- "dog_friendly_relevant": true if the image shows anything relevant to visiting with a dog
- "dog_amenity_type": e.g. "water-bowl", "outdoor-seating", "dog-on-premises", or null
- "confidence": 0.0-1.0
"""

QUALITY_PROMPT_TEMPLATE = """You are screening photos for the directory listing of "{venue_name}".

Rate this image from 0 to 10 for use as a listing photo. Reject (score 0-3) logos, icons, screenshots, text-heavy graphics, menus photographed as documents, maps and low-resolution thumbnails.

Return ONLY a JSON object with:
- "score": number 0-10
- "is_logo": boolean
- "is_screenshot": boolean
- "is_text_heavy": boolean
- "notes": one short sentence
"""


def _truncate(text: str, limit: int = MAX_SOURCE_CHARS) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "\n[...truncated]"


def _format_business(business: dict[str, Any] | None) -> str:
    if not business:
        return "(not available)"
    data = dict(business)
    reviews = data.pop("reviews", []) or []
    data.pop("image_urls", None)
    lines = [json.dumps(data, indent=2, default=str)]
    if reviews:
        lines.append("Recent reviews:")
        lines.extend(f"- {_truncate(str(r), 500)}" for r in reviews[:MAX_REVIEWS])
    return "\n".join(lines)


def _format_web(web: dict[str, Any] | None) -> str:
    if not web:
        return "(not available)"
    sections = []
    for key, result in sorted((web.get("results") or {}).items()):
        if not result.get("success"):
            continue
        body = _truncate(result.get("markdown", ""))
        if body:
            sections.append(f"### {key} ({result.get('query') or result.get('url')})\n{body}")
    return "\n\n".join(sections) or "(no usable pages)"


def _format_menu(menu: dict[str, Any] | None) -> str:
    if not menu or not menu.get("sections"):
        return "(no menu found)"
    lines = [f"Source: {menu.get('menu_url') or 'unknown'}"]
    for section in menu["sections"]:
        lines.append(f"{section['name']}:")
        for item in section.get("items", []):
            description = f" - {item['description']}" if item.get("description") else ""
            lines.append(f"  - {item['name']} £{item.get('price')}{description}")
    return "\n".join(lines)


def _format_references(references: dict[str, list[str]]) -> str:
    if not references:
        return "(none yet)"
    lines = []
    for kind, names in references.items():
        listed = ", ".join(names) if names else "(none yet)"
        lines.append(f"- {kind}: {listed}")
    return "\n".join(lines)


def build_content_prompt(
    name: str,
    address: str,
    city: str,
    business: dict[str, Any] | None,
    web: dict[str, Any] | None,
    references: dict[str, list[str]],
) -> str:
    """
    Build the content-generation prompt.

    Args:
        name: Venue name.
        address: Venue address.
        city: Venue city.
        business: Normalized business data (JSON-ready dict).
        web: Web content payload (JSON-ready dict), or None if that stage failed.
        references: Existing reference names keyed by kind label.

    Returns:
        The formatted prompt string.
    """
    return CONTENT_PROMPT_TEMPLATE.format(
        name=name,
        address=address or "(unknown)",
        city=city or "(unknown)",
        business_section=_format_business(business),
        web_section=_format_web(web),
        menu_section=_format_menu((web or {}).get("menu")),
        reference_section=_format_references(references),
        schema=json.dumps(VENUE_CONTENT_JSON_SCHEMA, indent=2),
    )


def build_vision_prompt(venue_name: str, location: str) -> str:
    """Build the image classification prompt."""
    return VISION_PROMPT_TEMPLATE.format(venue_name=venue_name, location=location or "London")


def build_quality_prompt(venue_name: str) -> str:
    """Build the image quality gate prompt."""
    return QUALITY_PROMPT_TEMPLATE.format(venue_name=venue_name)
