"""Text helpers shared by the ingestion stages: slugs, address parsing, URLs."""

import re
import unicodedata
from urllib.parse import urljoin, urlsplit, urlunsplit

UK_POSTCODE_RE = re.compile(r"\b[A-Z]{1,2}\d{1,2}[A-Z]?\s*\d[A-Z]{2}\b", re.IGNORECASE)

_APOSTROPHES_RE = re.compile(r"['’‘`]")
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """
    Build a URL slug from a display name.

    Apostrophes are removed rather than replaced so "Dishoom's" becomes
    "dishooms", accents are folded to ASCII, and any other run of
    non-alphanumerics collapses to a single hyphen.
    """
    if not value:
        return ""
    folded = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    folded = _APOSTROPHES_RE.sub("", folded.lower())
    return _NON_SLUG_RE.sub("-", folded).strip("-")


def strip_postcode(value: str) -> str:
    """Remove a UK postcode from an address fragment."""
    return re.sub(r"\s{2,}", " ", UK_POSTCODE_RE.sub("", value)).strip(" ,")


def _address_parts(address: str) -> list[str]:
    return [part.strip() for part in (address or "").split(",") if part.strip()]


def extract_city(address: str, default: str = "") -> str:
    """
    Extract the city from a comma-separated address.

    The city is taken as the second-to-last component ("..., London W1F 0DE, UK"),
    with any postcode removed.
    """
    parts = _address_parts(address)
    if not parts:
        return default
    candidate = parts[-2] if len(parts) >= 2 else parts[0]
    city = strip_postcode(candidate)
    return city or default


def extract_location(address: str) -> str:
    """
    Extract a short location string for search queries.

    Uses the third-from-last component when the address has at least three
    parts (typically the street or district), otherwise the first part.
    """
    parts = _address_parts(address)
    if not parts:
        return ""
    candidate = parts[-3] if len(parts) >= 3 else parts[0]
    return strip_postcode(candidate)


def build_location_slug(neighbourhood: str | None, city: str | None) -> str:
    """Slug used in image paths: neighbourhood plus city, or the city alone."""
    city_slug = slugify(city or "")
    hood_slug = slugify(neighbourhood or "")
    if not hood_slug or hood_slug == city_slug:
        return city_slug or hood_slug
    if not city_slug:
        return hood_slug
    return f"{hood_slug}-{city_slug}"


def normalize_url(url: str) -> str:
    """
    Normalize an image URL for duplicate detection.

    Scheme and host are lower-cased; query string and fragment are dropped.
    The path is kept as-is because it is case-sensitive on most hosts.
    """
    parts = urlsplit(url.strip())
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, "", ""))


def url_host(url: str) -> str:
    """Return the host of a URL without a leading "www."."""
    host = urlsplit(url or "").netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    return host.split(":")[0]


def resolve_url(base_url: str, href: str) -> str:
    """Resolve a possibly relative href against a page URL."""
    if href.startswith("//"):
        return f"{urlsplit(base_url).scheme or 'https'}:{href}"
    return urljoin(base_url, href)
