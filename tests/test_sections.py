"""tests for section location."""

from builders import datum, document, empty_section, field, located, section

from metarecord.core.document import load_document
from metarecord.core.fields import Field
from metarecord.core.sections import (
    SECTION_NAMES,
    LayoutVariant,
    locate_section,
    locate_sections,
)


def test_locate_section_by_structural_id() -> None:
    """sections with a property id are located structurally."""
    html = document(section("devices", "Devices", field("Uuid", "abc")))

    found = located(html, "devices")

    assert found.variant is LayoutVariant.BY_STRUCTURAL_ID
    assert found.line_based is False
    assert found.empty is False


def test_section_tokens_drop_title_field() -> None:
    """the title label is not part of the token stream."""
    html = document(section("devices", "Devices", field("Uuid", "abc")))

    labels = [f.label for f in located(html, "devices").fields()]

    assert labels == ["Uuid"]


def test_section_values_include_title_values() -> None:
    """single-datum sections keep values written under their title."""
    html = document(datum("emails", "Emails", "a@example.com", "b@example.com"))

    assert located(html, "emails").values() == ["a@example.com", "b@example.com"]


def test_no_responsive_records_marks_section_empty() -> None:
    """the no-records marker makes a found but empty section."""
    html = document(empty_section("photos", "Photos"))

    found = located(html, "photos")

    assert found.empty is True
    assert found.values() == []


def test_marker_beside_records_is_not_empty() -> None:
    """a no-records note next to real records leaves the section non-empty."""
    html = document(
        section(
            "unified_messages",
            "Unified Messages",
            field("Thread", "(1234567890123)"),
            field("Reported Conversations", "No responsive records located"),
        )
    )

    assert located(html, "unified_messages").empty is False


def test_locate_section_absent() -> None:
    """absent sections yield None."""
    doc = load_document(document(section("devices", "Devices", field("Uuid", "abc"))))

    assert locate_section(doc, "photos") is None


def test_locate_section_by_heading_among_peers() -> None:
    """headings sharing a parent delimit their own runs of content."""
    html = document(
        "<h2>Following</h2><ul><li>carol (Instagram: 333)</li></ul>"
        "<h2>Followers</h2><ul><li>dave (Instagram: 444)</li></ul>"
    )

    following = located(html, "following")
    followers = located(html, "followers")

    assert following.variant is LayoutVariant.BY_FLAT_TEXT_PATTERN
    assert "carol" in following.text
    assert "dave" not in following.text
    assert "dave" in followers.text


def test_locate_section_by_heading_takes_content_ancestor() -> None:
    """a lone heading's section is the nearest ancestor holding content."""
    html = document(
        "<div><div><h3>Logins</h3></div>"
        "<table><tr><td>2024-01-01 10:00:00 UTC 198.51.100.7</td></tr></table></div>"
    )

    found = located(html, "logins")

    assert found.variant is LayoutVariant.BY_FLAT_TEXT_PATTERN
    assert "198.51.100.7" in found.text


def test_locate_section_by_top_level_label() -> None:
    """a top-level label carrying the title locates the section."""
    html = document(field("Devices", children=field("Uuid", "abc")))

    found = located(html, "devices")

    assert found.variant is LayoutVariant.BY_HEADER_HEURISTIC
    assert [f.label for f in found.fields()] == ["Uuid"]


def test_flat_section_is_line_based() -> None:
    """sections without label classes are tokenized line by line."""
    html = document(
        '<div id="property-devices">'
        "<p>Devices</p><p>Uuid: abc</p><p>Model: Pixel</p>"
        "</div>"
    )

    found = located(html, "devices")

    assert found.line_based is True
    fields = [t for t in found.tokens() if isinstance(t, Field)]
    assert [(f.label, f.value) for f in fields] == [("Uuid", "abc"), ("Model", "Pixel")]


def test_locate_sections_in_declaration_order() -> None:
    """locate_sections keys found sections by name in known order."""
    html = document(
        section("devices", "Devices", field("Uuid", "abc")),
        empty_section("photos", "Photos"),
        datum("vanity", "Vanity", "alice"),
    )

    found = locate_sections(load_document(html))

    expected = ("devices", "photos", "vanity")
    assert list(found) == [n for n in SECTION_NAMES if n in expected]
