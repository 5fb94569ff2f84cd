"""
Menu Parser
===========

Turns scraped menu pages (markdown, or HTML when no markdown is available)
into sections of priced items.

The parser is a single forward pass over cleaned lines driven by an explicit
state machine:

    NO_SECTION                 no header seen yet
    IN_SECTION_AWAITING_ITEM   inside a section, no item waiting for a price
    IN_ITEM_AWAITING_PRICE     an item name has been read, its price has not

Two registers sit beside the state: a pending price (a price line that came
before its item name) and a pending description (a line that could not yet be
attached to anything). The parser is heuristic: it aims to recover as many
well-formed name + price pairs as possible and never invents a price.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum

from bs4 import BeautifulSoup, Comment

from venue_agent.core.schema import MenuItem, MenuSection

logger = logging.getLogger(__name__)

SECTION_KEYWORDS: tuple[str, ...] = (
    # Meals
    "breakfast",
    "brunch",
    "lunch",
    "dinner",
    "supper",
    "all day",
    "afternoon tea",
    "petit dejeuner",
    "petit déjeuner",
    "déjeuner",
    "dejeuner",
    "dîner",
    "diner",
    # Courses
    "snacks",
    "small plates",
    "sharing",
    "bar snacks",
    "nibbles",
    "starters",
    "starter",
    "appetizers",
    "appetisers",
    "antipasti",
    "entrées",
    "entrees",
    "hors d'oeuvres",
    "amuses",
    "amuse-bouche",
    "mains",
    "main courses",
    "main",
    "plats",
    "plats principaux",
    "pasta",
    "pizza",
    "grill",
    "from the grill",
    "fish",
    "seafood",
    "poissons",
    "meat",
    "viandes",
    "salads",
    "salades",
    "soups",
    "soupes",
    "sides",
    "side dishes",
    "accompagnements",
    "garnitures",
    "desserts",
    "dessert",
    "puddings",
    "sweets",
    "cheese",
    "cheeses",
    "fromages",
    "kids",
    "children",
    # Set menus
    "set menu",
    "prix fixe",
    "tasting menu",
    "menu dégustation",
    "menu degustation",
    "à la carte",
    "a la carte",
    "formule",
    "specials",
    "vegetarian",
    "vegan",
    # Drinks
    "drinks",
    "boissons",
    "cocktails",
    "mocktails",
    "wine",
    "wines",
    "vins",
    "red wine",
    "white wine",
    "rosé",
    "sparkling",
    "champagne",
    "beer",
    "beers",
    "bières",
    "bieres",
    "cider",
    "spirits",
    "spiritueux",
    "soft drinks",
    "hot drinks",
    "coffee",
    "café",
    "cafe",
    "tea",
    "thé",
)

MAX_HEADER_LENGTH = 50
MAX_NOISE_LENGTH = 200
MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 150
MIN_DESCRIPTION_LENGTH = 10
DEFAULT_SECTION_NAME = "Menu"

_PRICE = r"[£$€]\s*(\d+(?:\.\d{1,2})?)"
STANDALONE_PRICE_RE = re.compile(rf"^{_PRICE}$")
INLINE_PRICE_RE = re.compile(rf"^(.+?)\s*[-–—]?\s*{_PRICE}$")
NOISE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\badd\s", re.IGNORECASE),
    re.compile(r"\|"),
    re.compile(r"^\+\s*[£$€]?\d+"),
)
NAVIGATION_MARKERS: tuple[str, ...] = ("open menu", "close menu", "skip to content")

_HEADING_PREFIX_RE = re.compile(r"^#{1,6}\s*")
_BULLET_PREFIX_RE = re.compile(r"^(?:[-*•·]\s+|\d+\.\s+)")
_EMPHASIS_RE = re.compile(r"(\*\*|__|\*|_)(.+?)\1")
_HTML_BLOCK_TAGS = [
    "p", "li", "h1", "h2", "h3", "h4", "h5", "h6", "div", "tr", "td", "th", "dt", "dd", "section",
]
_HTML_DROP_TAGS = ["script", "style", "noscript", "template"]
_KEYWORD_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(rf"(?<![\w]){re.escape(keyword)}(?![\w])") for keyword in SECTION_KEYWORDS
)


class ParserState(str, Enum):
    """States of the menu parsing state machine."""

    NO_SECTION = "no-section"
    IN_SECTION_AWAITING_ITEM = "in-section-awaiting-item"
    IN_ITEM_AWAITING_PRICE = "in-item-awaiting-price"


# ============================================================================
# Line classification
# ============================================================================


def parse_price(text: str) -> Decimal | None:
    """Parse a bare number into a Decimal; None when it does not parse."""
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def standalone_price(line: str) -> Decimal | None:
    """Return the price if the whole line is a currency amount."""
    match = STANDALONE_PRICE_RE.match(line)
    return parse_price(match.group(1)) if match else None


def inline_item(line: str) -> tuple[str, Decimal] | None:
    """Return (name, price) if the line is a name followed by a price."""
    match = INLINE_PRICE_RE.match(line)
    if not match:
        return None
    name = match.group(1).strip().rstrip(".-–—:").strip()
    price = parse_price(match.group(2))
    if not name or price is None:
        return None
    return name, price


def is_section_header(line: str) -> bool:
    """
    A header is all upper-case, short, and names a meal, course or drink.

    The keyword may match the whole line or appear in it as a whole word,
    so "SET LUNCH MENU" is a header but "STEAK" is not.
    """
    if len(line) <= 2 or len(line) >= MAX_HEADER_LENGTH:
        return False
    if line != line.upper() or not any(ch.isalpha() for ch in line):
        return False
    lowered = line.lower().strip(" :")
    if lowered in SECTION_KEYWORDS:
        return True
    return any(pattern.search(lowered) for pattern in _KEYWORD_PATTERNS)


def is_noise(line: str) -> bool:
    """Add-on notices, table rows and over-long lines are skipped."""
    if len(line) > MAX_NOISE_LENGTH:
        return True
    return any(pattern.search(line) for pattern in NOISE_PATTERNS)


def is_navigation(line: str) -> bool:
    """Links, images and site chrome left over from the scrape."""
    if line.startswith("[") or line.startswith("!"):
        return True
    lowered = line.lower()
    return any(marker in lowered for marker in NAVIGATION_MARKERS)


def looks_like_name(line: str) -> bool:
    return MIN_NAME_LENGTH <= len(line) <= MAX_NAME_LENGTH and line[0].isupper()


def section_title(line: str) -> str:
    """Title-case a header word by word ("SET MENU" -> "Set Menu")."""
    return " ".join(word.capitalize() for word in line.strip(" :").split())


# ============================================================================
# Input normalization
# ============================================================================


def html_to_lines(html: str) -> list[str]:
    """
    Flatten HTML into text lines at block boundaries.

    Scripts, styles and comments are dropped so commented-out dishes and
    prices never reach the parser.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(_HTML_DROP_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(_HTML_BLOCK_TAGS):
        block.append("\n")
    return [" ".join(line.split()) for line in soup.get_text(" ").splitlines()]


def clean_line(raw: str) -> str:
    """Strip markdown decoration from a single line."""
    line = raw.strip().replace(" ", " ").replace(" ", " ")
    line = _HEADING_PREFIX_RE.sub("", line)
    line = _BULLET_PREFIX_RE.sub("", line)
    line = _EMPHASIS_RE.sub(r"\2", line)
    line = line.replace("\\", "")
    return " ".join(line.split())


def normalize_lines(markdown: str = "", html: str = "") -> list[str]:
    """Return cleaned, navigation-free, non-empty lines from the page."""
    raw_lines = markdown.splitlines() if markdown.strip() else html_to_lines(html)
    lines = []
    for raw in raw_lines:
        stripped = raw.strip()
        if not stripped or is_navigation(stripped):
            continue
        line = clean_line(stripped)
        if line and not is_navigation(line):
            lines.append(line)
    return lines


# ============================================================================
# Parser
# ============================================================================


@dataclass
class _Cursor:
    """Mutable parse position for one run of the state machine."""

    state: ParserState = ParserState.NO_SECTION
    section: MenuSection | None = None
    item: MenuItem | None = None
    pending_price: Decimal | None = None
    pending_description: str | None = None
    sections: list[MenuSection] = field(default_factory=list)


class MenuParser:
    """Heuristic menu parser built on an explicit finite-state machine."""

    def parse(self, markdown: str = "", html: str = "") -> list[MenuSection]:
        """
        Parse a menu page into sections of valid items.

        Args:
            markdown: Page content as markdown (preferred).
            html: Page content as HTML, used when markdown is empty.

        Returns:
            Sections with at least one item, each item having a name and a
            positive price.
        """
        lines = normalize_lines(markdown, html)
        cursor = _Cursor()

        for index, line in enumerate(lines):
            next_line = lines[index + 1] if index + 1 < len(lines) else None
            self._step(cursor, line, next_line)

        self._flush_section(cursor)
        sections = self._cleanup(cursor.sections)
        logger.debug(
            f"Parsed {len(sections)} menu sections with "
            f"{sum(len(s.items) for s in sections)} items from {len(lines)} lines"
        )
        return sections

    def _step(self, cursor: _Cursor, line: str, next_line: str | None) -> None:
        """Advance the state machine by one line."""
        if is_section_header(line):
            self._flush_section(cursor)
            cursor.section = MenuSection(name=section_title(line))
            cursor.item = None
            cursor.pending_price = None
            cursor.pending_description = None
            cursor.state = ParserState.IN_SECTION_AWAITING_ITEM
            return

        if is_noise(line):
            return

        price = standalone_price(line)
        if price is not None:
            if cursor.state == ParserState.IN_ITEM_AWAITING_PRICE and cursor.item is not None:
                cursor.item.price = price
                cursor.state = ParserState.IN_SECTION_AWAITING_ITEM
            else:
                cursor.pending_price = price
            return

        complete = inline_item(line)
        if complete is not None:
            name, price = complete
            self._start_item(cursor, name, price)
            return

        if cursor.pending_price is not None:
            self._start_item(cursor, line, cursor.pending_price)
            cursor.pending_price = None
            return

        next_is_price = next_line is not None and standalone_price(next_line) is not None
        name_like = looks_like_name(line)

        # A name directly above its price starts a new item, unless the item
        # still waiting for a price would take that price instead.
        if name_like and next_is_price and cursor.state != ParserState.IN_ITEM_AWAITING_PRICE:
            self._start_item(cursor, line, None)
            return

        if (
            cursor.item is not None
            and cursor.item.description is None
            and len(line) > MIN_DESCRIPTION_LENGTH
        ):
            cursor.item.description = line
            return

        if name_like and (next_is_price or cursor.item is not None or cursor.section is not None):
            self._start_item(cursor, line, None)
            return

        cursor.pending_description = line

    def _start_item(self, cursor: _Cursor, name: str, price: Decimal | None) -> None:
        if cursor.section is None:
            cursor.section = MenuSection(name=DEFAULT_SECTION_NAME)

        item = MenuItem(name=name, price=price)
        if price is None and cursor.pending_description:
            item.description = cursor.pending_description
        cursor.pending_description = None

        cursor.section.items.append(item)
        cursor.item = item
        cursor.state = (
            ParserState.IN_SECTION_AWAITING_ITEM
            if price is not None
            else ParserState.IN_ITEM_AWAITING_PRICE
        )

    def _flush_section(self, cursor: _Cursor) -> None:
        section = cursor.section
        if section is not None and section.valid_items:
            cursor.sections.append(section)
        cursor.section = None

    @staticmethod
    def _cleanup(sections: list[MenuSection]) -> list[MenuSection]:
        """Drop invalid items, then sections left empty."""
        cleaned = []
        for section in sections:
            items = [
                MenuItem(name=item.name.strip(), description=item.description, price=item.price)
                for item in section.items
                if item.is_valid
            ]
            if items:
                cleaned.append(MenuSection(name=section.name, items=items))
        return cleaned


def parse_menu(markdown: str = "", html: str = "") -> list[MenuSection]:
    """Convenience wrapper around ``MenuParser().parse``."""
    return MenuParser().parse(markdown, html)
