"""Top-level parse of a Meta Business Record export."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar

from bs4 import BeautifulSoup

from metarecord.core.archive import ArchiveSource, MediaMap, load_archive
from metarecord.core.document import load_document
from metarecord.core.entities import (
    build_directory,
    find_mentions,
    identify_profile,
    parse_follow_section,
)
from metarecord.core.errors import ParseCancelled
from metarecord.core.media import MediaStore, associate_media
from metarecord.core.models import Record
from metarecord.core.sections import Section, locate_sections
from metarecord.core.sections_aux import (
    parse_devices,
    parse_disappearing_messages,
    parse_ip_addresses,
    parse_logins,
    parse_ncmec_reports,
    parse_photos,
    parse_profile_picture,
    parse_request_parameters,
    parse_threads_posts,
    section_values,
)
from metarecord.core.threads import extract_conversations

logger = logging.getLogger(__name__)

PROFILE_SECTIONS = (
    "name",
    "vanity",
    "emails",
    "phone_numbers",
    "registration_ip",
    "registration_date",
)
# sections with a parser of their own; the rest are kept as value lines
DEDICATED_SECTIONS = frozenset(
    {
        *PROFILE_SECTIONS,
        "request_parameters",
        "unified_messages",
        "profile_picture",
        "photos",
        "ncmec_reports",
        "threads_posts_and_replies",
        "reported_disappearing_messages",
        "devices",
        "logins",
        "ip_addresses",
        "following",
        "followers",
    }
)

ProgressCallback = Callable[[str, int], None]
T = TypeVar("T")


@dataclass
class ParseOptions:
    """caller-tunable parse behaviour."""

    sniff_images: bool = True


@dataclass
class ParseContext:
    """per-parse state passed explicitly between stages."""

    media: MediaMap
    options: ParseOptions
    parsed_at: datetime
    cancel: Any = None
    on_progress: Optional[ProgressCallback] = None
    diagnostics: list[str] = field(default_factory=list)

    def checkpoint(self, step: str, percent: int) -> None:
        """reports progress and aborts if the caller asked to cancel."""
        if self.cancel is not None and self.cancel.is_set():
            logger.info("Parse cancelled before %s", step)
            raise ParseCancelled(f"Parse cancelled before {step}")
        if self.on_progress is not None:
            self.on_progress(step, percent)

    def guarded(self, name: str, default: T, parse: Callable[..., T], *args: Any) -> T:
        """runs one section parser; a failure leaves default and a diagnostic."""
        try:
            return parse(*args)
        except Exception as e:
            logger.warning("Could not parse %s: %s", name, e)
            self.diagnostics.append(f"Could not parse {name} ({e})")
            return default


def _extract_sections(
    doc: BeautifulSoup, sections: dict[str, Section], ctx: ParseContext, record: Record
) -> None:
    """fills record from located sections, checking for cancellation in between."""
    request = sections.get("request_parameters")
    if request is not None:
        ctx.checkpoint("request parameters", 20)
        record.request_parameters = ctx.guarded(
            "request_parameters",
            None,
            parse_request_parameters,
            request,
            ctx.diagnostics,
        )

    messages = sections.get("unified_messages")
    if messages is not None:
        ctx.checkpoint("conversations", 30)
        record.conversations = extract_conversations(
            messages, ctx.media, ctx.parsed_at, ctx.diagnostics
        )

    ctx.checkpoint("media sections", 60)
    if "profile_picture" in sections:
        record.profile_picture = ctx.guarded(
            "profile_picture",
            None,
            parse_profile_picture,
            sections["profile_picture"],
            ctx.media,
        )
    if "photos" in sections:
        record.photos = ctx.guarded(
            "photos", [], parse_photos, sections["photos"], ctx.media
        )

    ctx.checkpoint("report sections", 70)
    if "ncmec_reports" in sections:
        record.ncmec_reports = ctx.guarded(
            "ncmec_reports", [], parse_ncmec_reports, sections["ncmec_reports"]
        )
    if "threads_posts_and_replies" in sections:
        record.threads_posts = ctx.guarded(
            "threads_posts_and_replies",
            [],
            parse_threads_posts,
            sections["threads_posts_and_replies"],
        )
    if "reported_disappearing_messages" in sections:
        record.disappearing_messages = ctx.guarded(
            "reported_disappearing_messages",
            [],
            parse_disappearing_messages,
            sections["reported_disappearing_messages"],
            ctx.media,
        )

    ctx.checkpoint("account activity", 80)
    if "devices" in sections:
        record.devices = ctx.guarded("devices", [], parse_devices, sections["devices"])
    if "logins" in sections:
        record.logins = ctx.guarded("logins", [], parse_logins, sections["logins"])
    if "ip_addresses" in sections:
        record.ip_addresses = ctx.guarded(
            "ip_addresses", [], parse_ip_addresses, sections["ip_addresses"]
        )
    if "following" in sections:
        record.following = ctx.guarded(
            "following",
            [],
            parse_follow_section,
            sections["following"],
            "following",
        )
    if "followers" in sections:
        record.followers = ctx.guarded(
            "followers",
            [],
            parse_follow_section,
            sections["followers"],
            "followers",
        )

    for name, section in sections.items():
        if name not in DEDICATED_SECTIONS:
            record.other_sections[name] = ctx.guarded(
                name, [], section_values, section
            )

    ctx.checkpoint("profile", 90)
    mentions = ctx.guarded("mentions", [], find_mentions, doc)
    record.users = build_directory(record.conversations, mentions)
    values = ctx.guarded("profile", {}, _profile_values, sections)
    record.profile = identify_profile(
        values, record.users, record.request_parameters, record.profile_picture
    )


def _profile_values(sections: dict[str, Section]) -> dict[str, list[str]]:
    return {
        name: section_values(sections[name])
        for name in PROFILE_SECTIONS
        if name in sections
    }


def parse_record(
    html_text: str,
    media: Optional[MediaMap] = None,
    options: Optional[ParseOptions] = None,
    cancel: Any = None,
    on_progress: Optional[ProgressCallback] = None,
    store: Optional[MediaStore] = None,
    source_name: str = "records.html",
    total_files: int = 0,
) -> Record:
    """
    parses record HTML and its media map into a Record.

    only a missing or unusable document and cancellation raise; everything
    else degrades to partial results with notes in ``Record.diagnostics``.

    Args:
        html_text: raw record document
        media: media map of the archive (empty when None)
        options: parse options
        cancel: object with ``is_set()`` (e.g. threading.Event), polled between sections
        on_progress: callback receiving (step, percent)
        store: optional MediaStore handing out file URLs for resolved media
        source_name: name of the document or archive, for reporting
        total_files: number of archive entries, for reporting

    Returns:
        parsed Record

    Raises:
        MalformedDocument: if the document yields no tree at all
        ParseCancelled: if cancel was set
    """
    ctx = ParseContext(
        media=media if media is not None else MediaMap(),
        options=options or ParseOptions(),
        parsed_at=datetime.now(timezone.utc),
        cancel=cancel,
        on_progress=on_progress,
    )

    ctx.checkpoint("document", 5)
    doc = load_document(html_text)

    ctx.checkpoint("sections", 10)
    sections = locate_sections(doc)

    record = Record(
        parsed_at=ctx.parsed_at,
        sections_found=list(sections),
        empty_sections=[name for name, section in sections.items() if section.empty],
        diagnostics=ctx.diagnostics,
        source_name=source_name,
        total_files=total_files,
    )
    _extract_sections(doc, sections, ctx, record)

    ctx.checkpoint("media", 95)
    ctx.guarded(
        "media",
        0,
        associate_media,
        record,
        ctx.media,
        store,
        ctx.options.sniff_images,
    )

    if on_progress is not None:
        on_progress("done", 100)
    logger.info(
        "Parsed %s: %d conversation(s), %d section(s), %d diagnostic(s)",
        source_name,
        len(record.conversations),
        len(record.sections_found),
        len(record.diagnostics),
    )
    return record


def parse_archive(
    source: ArchiveSource,
    options: Optional[ParseOptions] = None,
    cancel: Any = None,
    on_progress: Optional[ProgressCallback] = None,
    store: Optional[MediaStore] = None,
) -> Record:
    """
    parses a ZIP export.

    Raises:
        NoRecordDocumentFound: if the source is not a ZIP or holds no record document
        MalformedDocument: if the document yields no tree at all
        ParseCancelled: if cancel was set
    """
    contents = load_archive(source)
    if on_progress is not None:
        on_progress("archive", 0)
    return parse_record(
        contents.document_text,
        contents.media,
        options=options,
        cancel=cancel,
        on_progress=on_progress,
        store=store,
        source_name=contents.document_name,
        total_files=contents.total_files,
    )
