"""Tests for the menu parser state machine."""

from decimal import Decimal

from venue_agent.ingestion.menu_parser import (
    MenuParser,
    clean_line,
    inline_item,
    is_noise,
    is_section_header,
    parse_menu,
    standalone_price,
)


def _items(sections, index: int = 0) -> list[tuple[str, Decimal]]:
    return [(item.name, item.price) for item in sections[index].items]


class TestLineClassification:
    """Tests for the single-line helpers."""

    def test_standalone_price(self) -> None:
        """Test that a bare currency amount is read as a price."""
        assert standalone_price("£6") == Decimal("6")
        assert standalone_price("€ 12.50") == Decimal("12.50")
        assert standalone_price("Soup £6") is None

    def test_inline_item(self) -> None:
        """Test name-then-price lines with and without a dash."""
        assert inline_item("Salad - £8") == ("Salad", Decimal("8"))
        assert inline_item("Chicken Ruby £14.50") == ("Chicken Ruby", Decimal("14.50"))
        assert inline_item("Chicken Ruby") is None

    def test_section_header_keywords(self) -> None:
        """Test that headers must be upper case and name a meal, course or drink."""
        assert is_section_header("STARTERS")
        assert is_section_header("SET LUNCH MENU")
        assert is_section_header("DESSERTS:")
        assert not is_section_header("Starters")
        assert not is_section_header("STEAK")

    def test_section_header_whole_words(self) -> None:
        """Test that keywords only match as whole words."""
        assert not is_section_header("MAINSTAY")
        assert not is_section_header("TEASPOON")

    def test_noise(self) -> None:
        """Test add-on notices and table rows are noise."""
        assert is_noise("Add chicken for £3")
        assert is_noise("| Dish | Price |")
        assert is_noise("+£2 for extra cheese")
        assert not is_noise("Soup")

    def test_clean_line_strips_markdown(self) -> None:
        """Test heading, bullet and emphasis markers are removed."""
        assert clean_line("## STARTERS") == "STARTERS"
        assert clean_line("- **Soup** £6") == "Soup £6"
        assert clean_line("1. _Bread_") == "Bread"


class TestMenuParser:
    """Tests for MenuParser.parse."""

    def test_round_trip(self) -> None:
        """Test a name above its price and an inline item in one section."""
        sections = parse_menu("STARTERS\nSoup\n£6\nSalad - £8")

        assert len(sections) == 1
        assert sections[0].name == "Starters"
        assert _items(sections) == [("Soup", Decimal("6")), ("Salad", Decimal("8"))]

    def test_price_before_name(self) -> None:
        """Test a price line that precedes its item name."""
        sections = parse_menu("MAINS\n£14\nChicken Ruby")

        assert _items(sections) == [("Chicken Ruby", Decimal("14"))]

    def test_description_attached(self) -> None:
        """Test that a line between name and price becomes the description."""
        sections = parse_menu("DESSERTS\nKulfi\nPistachio ice cream on a stick\n£5")

        item = sections[0].items[0]
        assert item.name == "Kulfi"
        assert item.description == "Pistachio ice cream on a stick"
        assert item.price == Decimal("5")

    def test_items_before_any_header(self) -> None:
        """Test that items before the first header land in a default section."""
        sections = parse_menu("Bread - £3\nSTARTERS\nSoup - £6")

        assert [s.name for s in sections] == ["Menu", "Starters"]
        assert _items(sections, 0) == [("Bread", Decimal("3"))]

    def test_unpriced_items_and_empty_sections_dropped(self) -> None:
        """Test that items without a price never survive, nor do empty sections."""
        sections = parse_menu("SIDES\nChips\nGreens\nDESSERTS\nKulfi - £5")

        assert [s.name for s in sections] == ["Desserts"]

    def test_noise_and_navigation_skipped(self) -> None:
        """Test that add-ons, links and images do not become items."""
        markdown = (
            "[Home](/)\n"
            "![Logo](/logo.png)\n"
            "## MAINS\n"
            "- **Lamb Chops** £18\n"
            "Add fries +£3\n"
            "Skip to content\n"
        )
        sections = parse_menu(markdown)

        assert _items(sections) == [("Lamb Chops", Decimal("18"))]

    def test_html_input(self) -> None:
        """Test that HTML is used when no markdown is given."""
        html = (
            "<html><head><style>.x{}</style></head><body>"
            "<h2>DESSERTS</h2><p>Kulfi - &pound;5</p><p>Gulab Jamun - £6.50</p>"
            "</body></html>"
        )
        sections = MenuParser().parse(html=html)

        assert sections[0].name == "Desserts"
        assert _items(sections) == [("Kulfi", Decimal("5")), ("Gulab Jamun", Decimal("6.50"))]

    def test_html_comments_ignored(self) -> None:
        """Test that a commented-out dish never takes another dish's price."""
        html = (
            "<h2>STARTERS</h2><!-- <p>Old dish</p> -->"
            "<p>Soup</p><p>&pound;6</p><p>Salad - &pound;8</p>"
        )
        sections = MenuParser().parse(html=html)

        assert [s.name for s in sections] == ["Starters"]
        assert _items(sections) == [("Soup", Decimal("6")), ("Salad", Decimal("8"))]

    def test_markdown_preferred_over_html(self) -> None:
        """Test that HTML is ignored when markdown is present."""
        sections = MenuParser().parse(
            markdown="STARTERS\nSoup - £6", html="<p>MAINS</p><p>Steak - £30</p>"
        )

        assert [s.name for s in sections] == ["Starters"]

    def test_empty_input(self) -> None:
        """Test that empty input yields no sections."""
        assert parse_menu("") == []
        assert parse_menu("   \n\n") == []
