"""
Image Scoring
=============

Hard gates and additive scoring for image candidates.

Gates run first and are pass/fail: a candidate that fails any gate is
marked invalid with a reason and never receives a score. Valid candidates
are scored 0-100 across five independent criteria:

    size          up to 30   pixel count tiers
    aspect ratio  up to 15   closeness to a photo-friendly ratio
    source        up to 25   authority of the hosting site
    relevance     up to 20   venue-name words and food keywords
    content type  up to 10   interior / food / exterior cues

All thresholds and weights come from ``ImageScoringConfig``.
"""

import re
from dataclasses import dataclass

from venue_agent.core.config import ImageScoringConfig
from venue_agent.core.enums import Provenance, QualityBand
from venue_agent.core.schema import ImageCandidate, ScoreBreakdown
from venue_agent.core.text import url_host

# (host fragment, provenance) for sites whose provenance is known.
PROVENANCE_BY_HOST: tuple[tuple[str, Provenance], ...] = (
    ("opentable.", Provenance.REVIEW_SITE),
    ("tripadvisor.", Provenance.REVIEW_SITE),
    ("googleusercontent.", Provenance.REVIEW_SITE),
    ("timeout.", Provenance.REVIEW_SITE),
    ("hot-dinners.", Provenance.REVIEW_SITE),
    ("hardens.", Provenance.REVIEW_SITE),
    ("squaremeal.", Provenance.REVIEW_SITE),
    ("yelp.", Provenance.REVIEW_SITE),
    ("michelin.", Provenance.REVIEW_SITE),
    ("instagram.", Provenance.SOCIAL),
    ("cdninstagram.", Provenance.SOCIAL),
    ("facebook.", Provenance.SOCIAL),
    ("fbcdn.", Provenance.SOCIAL),
    ("tiktok.", Provenance.SOCIAL),
    ("twitter.", Provenance.SOCIAL),
    ("pinterest.", Provenance.SOCIAL),
)

# Tie-break rank: own-site > premium review platform > blog/social > search engine.
AUTHORITY_RANK: dict[Provenance, int] = {
    Provenance.OWN_SITE: 4,
    Provenance.REVIEW_SITE: 3,
    Provenance.SOCIAL: 2,
    Provenance.SEARCH_ENGINE: 1,
}

_PLUS_ICON_RE = re.compile(r"plus\.(png|svg)", re.IGNORECASE)
_FAVICON_RE = re.compile(r"favicon", re.IGNORECASE)
_MAP_URL_RE = re.compile(r"[-_/]map\.", re.IGNORECASE)
_VIDEO_URL_RE = re.compile(r"/reel/|/video/|/watch\?v=", re.IGNORECASE)
_WORD_RE = re.compile(r"[a-z0-9]+")

LISTICLE_PHRASES: tuple[str, ...] = ("restaurants in", "best restaurants", "top restaurants")
ERROR_TITLE_PHRASES: tuple[str, ...] = ("not found", "error")


@dataclass
class GateResult:
    """Outcome of the hard gates for one candidate."""

    passed: bool
    reason: str | None = None


def _host_of(value: str) -> str:
    value = (value or "").strip().lower()
    if "://" in value:
        return url_host(value)
    return value[4:] if value.startswith("www.") else value


def classify_provenance(
    url: str, origin: str = "", website_host: str = "", content_url: str = ""
) -> Provenance:
    """Tag a candidate with where it came from, based on its hosting site."""
    hosts = [h for h in (_host_of(origin), url_host(url), url_host(content_url)) if h]
    if website_host and any(h == website_host or h.endswith("." + website_host) for h in hosts):
        return Provenance.OWN_SITE
    for fragment, provenance in PROVENANCE_BY_HOST:
        if any(fragment in h for h in hosts):
            return provenance
    return Provenance.SEARCH_ENGINE


class ImageScorer:
    """Applies hard gates and computes score breakdowns for image candidates."""

    def __init__(self, config: ImageScoringConfig | None = None):
        self.config = config or ImageScoringConfig()

    # ------------------------------------------------------------------
    # Hard gates
    # ------------------------------------------------------------------

    def check_gates(self, candidate: ImageCandidate, venue_slug: str = "") -> GateResult:
        """
        Run every hard gate in order; stop at the first failure.

        Args:
            candidate: The candidate to check.
            venue_slug: Slugified venue name, used to spot "<venue>.png" logos.

        Returns:
            GateResult with the failing gate's reason.
        """
        cfg = self.config
        url = candidate.url or ""
        url_lower = url.lower()
        title = (candidate.title or "").lower()
        content_url = (candidate.content_url or "").lower()

        if not url or not candidate.width or not candidate.height:
            return GateResult(False, "missing url or dimensions")
        if "encrypted-tbn" in url_lower:
            return GateResult(False, "encrypted thumbnail")
        if candidate.width < cfg.min_side or candidate.height < cfg.min_side:
            return GateResult(False, f"smaller than {cfg.min_side}px on one side")
        if candidate.pixels < cfg.min_pixels:
            return GateResult(False, f"fewer than {cfg.min_pixels} pixels")
        if "profile" in url_lower or "profile picture" in title or "avatar" in title:
            return GateResult(False, "profile picture")
        if self._is_logo(url_lower, venue_slug):
            return GateResult(False, "logo or icon")
        if _MAP_URL_RE.search(url_lower) or ("map" in title and "location" in title):
            return GateResult(False, "map")
        if self._is_social_video(candidate, content_url):
            return GateResult(False, "social video")
        if any(phrase in title for phrase in LISTICLE_PHRASES) or "guide.michelin.com" in content_url:
            return GateResult(False, "listicle thumbnail")
        if "404" in url_lower or "404" in title or any(p in title for p in ERROR_TITLE_PHRASES):
            return GateResult(False, "error page")

        ratio = candidate.aspect_ratio or 0.0
        if ratio > cfg.max_aspect_ratio or ratio < cfg.min_aspect_ratio:
            return GateResult(False, f"aspect ratio {ratio:.2f} out of range")

        return GateResult(True)

    @staticmethod
    def _is_logo(url_lower: str, venue_slug: str) -> bool:
        if "logo" in url_lower or "/icon" in url_lower:
            return True
        if _PLUS_ICON_RE.search(url_lower) or _FAVICON_RE.search(url_lower):
            return True
        if venue_slug:
            compact = venue_slug.replace("-", "")
            filename = url_lower.rsplit("/", 1)[-1]
            stem, _, extension = filename.partition(".")
            if extension in ("png", "svg") and stem.replace("-", "").replace("_", "") == compact:
                return True
        return False

    @staticmethod
    def _is_social_video(candidate: ImageCandidate, content_url: str) -> bool:
        origin = (candidate.origin or "").lower()
        if any(site in origin for site in ("youtube", "tiktok")):
            return True
        if any(site in content_url for site in ("youtube.com", "tiktok.com")):
            return True
        return bool(_VIDEO_URL_RE.search(content_url))

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score(
        self,
        candidate: ImageCandidate,
        venue_name: str,
        website_host: str = "",
    ) -> ScoreBreakdown:
        """Compute the per-criterion breakdown for a candidate that passed the gates."""
        return ScoreBreakdown(
            size=self.size_points(candidate.pixels),
            aspect_ratio=self.ratio_points(candidate.aspect_ratio or 0.0),
            source=self.source_points(candidate, website_host),
            relevance=self.relevance_points(candidate, venue_name),
            content_type=self.content_type_points(candidate),
        )

    def size_points(self, pixels: int) -> float:
        """Monotonic in pixel count: more pixels never score lower."""
        for threshold, points in sorted(self.config.size_tiers, reverse=True):
            if pixels >= threshold:
                return points
        return self.config.size_floor_points

    def ratio_points(self, ratio: float) -> float:
        for low, high, points in self.config.ratio_tiers:
            if low <= ratio <= high:
                return points
        return self.config.ratio_floor_points

    def source_points(self, candidate: ImageCandidate, website_host: str = "") -> float:
        if candidate.provenance == Provenance.OWN_SITE:
            return self.config.own_site_points
        hosts = " ".join(
            h for h in (candidate.origin.lower(), url_host(candidate.url), url_host(candidate.content_url)) if h
        )
        if website_host and website_host in hosts:
            return self.config.own_site_points
        best = None
        for fragment, points in self.config.source_weights.items():
            if fragment in hosts and (best is None or points > best):
                best = points
        return best if best is not None else self.config.generic_source_points

    def relevance_points(self, candidate: ImageCandidate, venue_name: str) -> float:
        """Venue-name words (longer than three letters) plus a food-keyword bonus."""
        cfg = self.config
        title = (candidate.title or "").lower()
        content_url = (candidate.content_url or "").lower()
        name_words = [w for w in _WORD_RE.findall(venue_name.lower()) if len(w) > 3]

        in_title = any(word in title for word in name_words)
        in_content = any(word in content_url for word in name_words)
        points = 0.0
        if in_title and in_content:
            points = cfg.relevance_both_points
        elif in_title or in_content:
            points = cfg.relevance_one_points

        haystack = f"{title} {candidate.url.lower()}"
        if any(keyword in haystack for keyword in cfg.content_keywords):
            points += cfg.keyword_bonus_points
        return min(points, cfg.relevance_max_points)

    def content_type_points(self, candidate: ImageCandidate) -> float:
        haystack = f"{(candidate.title or '').lower()} {candidate.url.lower()}"
        for words, points in self.config.type_keywords:
            if any(word in haystack for word in words):
                return points
        return self.config.type_default_points

    def quality_band(self, total: float) -> QualityBand:
        if total >= self.config.high_quality_threshold:
            return QualityBand.HIGH
        if total >= self.config.medium_quality_threshold:
            return QualityBand.MEDIUM
        return QualityBand.LOW

    @staticmethod
    def authority_rank(candidate: ImageCandidate) -> int:
        return AUTHORITY_RANK.get(candidate.provenance, 0)
