"""tests for HTML report exporter."""

from datetime import datetime, timezone
from pathlib import Path

from builders import PHOTO_PATH, media_map, minimal_record_html, png_bytes

from metarecord.core.archive import MediaBlob
from metarecord.core.models import (
    Conversation,
    Message,
    Participant,
    Profile,
    Record,
)
from metarecord.core.parser import parse_record
from metarecord.exporters.html import HTMLReportExporter, thumbnail_data_url

PARSED = datetime(2025, 6, 1, tzinfo=timezone.utc)


def test_render_is_standalone_html() -> None:
    """reports are complete HTML documents with a titled heading."""
    record = parse_record(minimal_record_html())

    html = HTMLReportExporter().render(record)

    assert html.startswith("<!DOCTYPE html>")
    assert "<title>Meta Business Record: records.html</title>" in html
    assert "<h1>Meta Business Record: records.html</h1>" in html
    assert "<h3>Thread 1234567890123</h3>" in html
    assert "<table>" in html


def test_markdown_lists_section_status() -> None:
    """found, empty and absent sections are distinguished."""
    record = Record(
        parsed_at=PARSED,
        sections_found=["unified_messages", "photos"],
        empty_sections=["photos"],
    )

    markdown = HTMLReportExporter().build_markdown(record)

    assert "| unified_messages | found |" in markdown
    assert "| photos | empty |" in markdown
    assert "| devices | not present in this export |" in markdown
    assert "No profile data present in this export." in markdown


def test_markdown_lists_other_section_values() -> None:
    """sections without a dedicated table are listed by their title."""
    record = Record(
        parsed_at=PARSED,
        sections_found=["comments", "notes"],
        other_sections={"comments": ["nice pic", "a|b"], "notes": []},
    )

    markdown = HTMLReportExporter().build_markdown(record)

    assert "## Comments" in markdown
    assert "| nice pic |" in markdown
    assert "| a\\|b |" in markdown
    assert "## Notes" not in markdown


def test_markdown_conversation_summary() -> None:
    """conversation headers carry counts and message rows."""
    record = parse_record(minimal_record_html())

    markdown = HTMLReportExporter().build_markdown(record)

    assert "## Conversations (1)" in markdown
    assert "3 message(s), 1 attachment(s), 0 share(s), 1 call(s)." in markdown
    assert "[video call, 42s]" in markdown
    assert "photo_123456789012345.jpg" in markdown


def test_render_escapes_message_markup() -> None:
    """message content never becomes live HTML."""
    message = Message(
        id="1-0",
        thread_id="1",
        author=Participant("mallory", "666"),
        sent=None,
        body="<script>alert(1)</script>",
    )
    record = Record(
        parsed_at=PARSED,
        conversations=[Conversation("1", [], [message], parsed_at=PARSED)],
    )

    html = HTMLReportExporter().render(record)

    assert "<script>" not in html
    assert "&lt;script&gt;" in html


def test_profile_emails_are_capped() -> None:
    """only max_display_emails addresses are listed."""
    record = Record(
        parsed_at=PARSED,
        profile=Profile(
            username="alice",
            display_name="Alice",
            emails=[f"a{n}@example.com" for n in range(7)],
        ),
    )

    markdown = HTMLReportExporter(max_display_emails=3).build_markdown(record)

    assert "a2@example.com" in markdown
    assert "a3@example.com" not in markdown
    assert "(+4 more)" in markdown


def test_thumbnail_data_url() -> None:
    """images become PNG data URLs, other data is skipped."""
    image = MediaBlob(path="a.jpg", data=png_bytes((600, 400)))

    url = thumbnail_data_url(image)

    assert url is not None and url.startswith("data:image/png;base64,")
    assert thumbnail_data_url(MediaBlob(path="b.jpg", data=b"junk")) is None


def test_embed_media_adds_thumbnails() -> None:
    """embedding places resolved images inline."""
    record = parse_record(minimal_record_html(), media_map(PHOTO_PATH))

    embedded = HTMLReportExporter(embed_media=True).render(record)
    plain = HTMLReportExporter().render(record)

    assert "data:image/png;base64," in embedded
    assert "data:image/png;base64," not in plain


def test_export_writes_html_file(tmp_path: Path) -> None:
    """export writes <stem>.html and honors dry runs."""
    record = parse_record(minimal_record_html())
    exporter = HTMLReportExporter()

    assert exporter.export(record, str(tmp_path), dry_run=True) is None
    written = exporter.export(record, str(tmp_path))

    assert written == tmp_path / "records.html"
    assert "Thread 1234567890123" in written.read_text(encoding="utf-8")
