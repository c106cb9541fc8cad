"""Extraction of the auxiliary report sections."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from metarecord.core.archive import MediaMap
from metarecord.core.entities import find_ips
from metarecord.core.fields import Field, MediaRef, Token, clean_lines
from metarecord.core.messages import extract_attachments, photo_id_from, sub_block
from metarecord.core.models import (
    DateRange,
    Device,
    DisappearingMessage,
    IpAddressEntry,
    Login,
    MediaReference,
    NcmecMedia,
    NcmecReport,
    Photo,
    RequestParameters,
    ThreadsPost,
)
from metarecord.core.sections import Section
from metarecord.core.timestamps import parse_utc, parse_utc_range

logger = logging.getLogger(__name__)

NCMEC_TERMINATORS = frozenset({"Cybertip Id", "Responsible Id", "Recipients", "Time"})
DEVICE_KEYWORDS = (
    ("tablet", ("ipad", "tablet")),
    ("mobile", ("iphone", "android", "mobile", "phone", "ios")),
    ("desktop", ("windows", "mac", "linux", "desktop", "chrome os")),
)


@dataclass
class RecordGroup:
    """run of tokens forming one entry of a repeated-record section."""

    tokens: list[Token]
    depth: int

    def get(self, *labels: str) -> str:
        """returns the first value at record depth for any of labels."""
        fields = [
            t for t in self.tokens if isinstance(t, Field) and t.depth == self.depth
        ]
        for label in labels:
            for found in fields:
                if found.label == label:
                    return found.value.strip()
        return ""

    def block(
        self, label: str, line_based: bool, terminators: frozenset
    ) -> list[Token]:
        for i, token in enumerate(self.tokens):
            if isinstance(token, Field) and token.label == label:
                return sub_block(self.tokens, i, line_based, terminators)
        return []


def group_records(tokens: list[Token]) -> list[RecordGroup]:
    """
    groups a section's tokens into records.

    fields at the shallowest depth belong to records; a record ends when a
    label already seen in it repeats.
    """
    fields = [t for t in tokens if isinstance(t, Field)]
    if not fields:
        return []
    depth = min(f.depth for f in fields)

    groups: list[RecordGroup] = []
    current: list[Token] = []
    labels: set[str] = set()
    for token in tokens:
        if isinstance(token, Field) and token.depth == depth:
            if token.label in labels:
                groups.append(RecordGroup(tokens=current, depth=depth))
                current, labels = [], set()
            labels.add(token.label)
        current.append(token)
    if current:
        groups.append(RecordGroup(tokens=current, depth=depth))
    return groups


def _first_value(section: Section, label: str) -> str:
    for f in section.fields():
        if f.label == label:
            return f.value.strip()
    return ""


def parse_request_parameters(
    section: Section, diagnostics: list[str]
) -> RequestParameters:
    """
    parses the request parameters block.

    a reversed date range is swapped and noted in diagnostics.
    """
    start, end = parse_utc_range(_first_value(section, "Date Range"))
    if start and end and start > end:
        logger.warning("Date range is reversed; swapping %s and %s", start, end)
        diagnostics.append("Request date range was reversed and has been swapped")
        start, end = end, start

    return RequestParameters(
        service=_first_value(section, "Service"),
        internal_ticket_number=_first_value(section, "Internal Ticket Number"),
        target=_first_value(section, "Target"),
        account_identifier=_first_value(section, "Account Identifier"),
        account_type=_first_value(section, "Account Type"),
        generated=parse_utc(_first_value(section, "Generated")),
        date_range=DateRange(start, end) if (start or end) else None,
    )


def parse_profile_picture(
    section: Section, media: MediaMap
) -> Optional[MediaReference]:
    """returns the first media reference of the profile picture section."""
    for token in section.tokens():
        if isinstance(token, MediaRef):
            return MediaReference(
                path=token.src,
                filename=token.src.rsplit("/", 1)[-1],
                resolved_blob=media.resolve(token.src),
            )
    return None


def parse_photos(section: Section, media: MediaMap) -> list[Photo]:
    """builds one photo per media reference with the fields preceding it."""
    photos: list[Photo] = []
    pending: dict[str, str] = {}
    for token in section.tokens():
        if isinstance(token, Field):
            pending.setdefault(token.label, token.value.strip())
            continue
        filename = token.src.rsplit("/", 1)[-1]
        photo_id = (
            pending.get("Id") or photo_id_from(token.src) or f"photo-{len(photos)}"
        )
        blob = media.resolve(token.src)
        if blob is None:
            logger.debug("Photo %s not found in archive", token.src)
        photos.append(
            Photo(
                id=photo_id,
                path=token.src,
                filename=filename,
                taken=parse_utc(pending.get("Taken")),
                caption=pending.get("Caption") or None,
                upload_ip=pending.get("Upload Ip") or None,
                resolved_blob=blob,
            )
        )
        pending = {}
    logger.info("Parsed %d photo(s)", len(photos))
    return photos


def _split_list(value: str) -> list[str]:
    items = []
    for line in clean_lines(value):
        items.extend(part.strip() for part in line.split(",") if part.strip())
    return items


def parse_ncmec_reports(section: Section) -> list[NcmecReport]:
    """parses NCMEC CyberTip reports and their uploaded media lists."""
    reports: list[NcmecReport] = []
    for group in group_records(section.tokens()):
        media_block = group.block(
            "Media Uploaded", section.line_based, NCMEC_TERMINATORS
        )
        uploaded = []
        for item in group_records(media_block):
            media_id = item.get("Id")
            if media_id:
                uploaded.append(
                    NcmecMedia(
                        id=media_id,
                        upload_time=parse_utc(item.get("Upload Time")),
                        ncmec_file_id=item.get("Ncmec File Id") or None,
                    )
                )
        reports.append(
            NcmecReport(
                cybertip_id=group.get("Cybertip Id") or None,
                time=parse_utc(group.get("Time")),
                responsible_id=group.get("Responsible Id") or None,
                media_uploaded=uploaded,
                recipients=_split_list(group.get("Recipients")),
            )
        )
    return [r for r in reports if r.cybertip_id or r.time or r.media_uploaded]


def parse_threads_posts(section: Section) -> list[ThreadsPost]:
    """parses Threads posts and replies."""
    posts = []
    for n, group in enumerate(group_records(section.tokens())):
        post = ThreadsPost(
            id=group.get("Id") or f"post-{n}",
            post_author_id=group.get("Post Author Id") or None,
            post_content_id=group.get("Post Content Id") or None,
            timestamp=parse_utc(group.get("Timestamp", "Time")),
            post_setting=group.get("Post Setting") or None,
            reply_to_author=group.get("Reply To Author") or None,
            reply_to_post_id=group.get("Reply To Post Id") or None,
            quoting_post_author=group.get("Quoting Post Author") or None,
            quoting_id=group.get("Quoting Id") or None,
            reposting_author_id=group.get("Reposting Author Id") or None,
            reposting_id=group.get("Reposting Id") or None,
        )
        if post.post_author_id or post.post_content_id or group.get("Id"):
            posts.append(post)
    return posts


def parse_disappearing_messages(
    section: Section, media: MediaMap
) -> list[DisappearingMessage]:
    """parses reported disappearing messages with their attachments."""
    reported = []
    for group in group_records(section.tokens()):
        entry = DisappearingMessage(
            participants=_split_list(group.get("Participants")),
            reporter=group.get("Reporter") or None,
            time_reported=parse_utc(group.get("Time Reported")),
            thread_id=group.get("Thread Id", "Thread") or None,
            sender=group.get("Sender", "Author") or None,
            sent=parse_utc(group.get("Sent")),
            message=group.get("Message", "Body"),
            attachments=extract_attachments(group.tokens, media, section.line_based),
        )
        if entry.sender or entry.message or entry.attachments or entry.thread_id:
            reported.append(entry)
    return reported


def classify_device(*descriptions: str) -> str:
    """maps a device description to mobile, tablet, desktop or unknown."""
    text = " ".join(descriptions).lower()
    for device_type, keywords in DEVICE_KEYWORDS:
        if any(k in text for k in keywords):
            return device_type
    return "unknown"


def parse_devices(section: Section) -> list[Device]:
    """parses registered devices."""
    devices = []
    for n, group in enumerate(group_records(section.tokens())):
        model = group.get("Model", "Device") or None
        os_name = group.get("Os") or None
        device_type = group.get("Device Type").lower() or classify_device(
            model or "", os_name or ""
        )
        device = Device(
            uuid=group.get("Uuid", "Device Id", "Id") or f"device-{n}",
            device_type=device_type,
            model=model,
            os=os_name,
            app_version=group.get("App Version") or None,
            status=group.get("Status").lower() or "active",
            first_seen=parse_utc(group.get("First Seen")),
            last_seen=parse_utc(group.get("Last Seen")),
            ip_addresses=find_ips(group.get("Ip Addresses", "Ip Address")),
        )
        if device.model or device.os or not device.uuid.startswith("device-"):
            devices.append(device)
    return devices


def _login_lines(section: Section) -> list[Login]:
    """pairs UTC timestamps with addresses on the same or the following line."""
    logins = []
    pending: Optional[datetime] = None
    for line in clean_lines(section.text):
        stamp = parse_utc(line)
        ips = find_ips(line)
        if stamp and ips:
            logins.append(Login(stamp, ips[0], success="fail" not in line.lower()))
            pending = None
        elif stamp:
            pending = stamp
        elif ips and pending:
            logins.append(Login(pending, ips[0], success="fail" not in line.lower()))
            pending = None
    return logins


def parse_logins(section: Section) -> list[Login]:
    """parses login events from labelled records, else from text lines."""
    logins = []
    for group in group_records(section.tokens()):
        ips = find_ips(group.get("Ip Address", "Ip"))
        if not ips:
            continue
        outcome = group.get("Success", "Status").lower()
        logins.append(
            Login(
                timestamp=parse_utc(group.get("Time", "Timestamp")),
                ip=ips[0],
                success=not ("false" in outcome or "fail" in outcome),
                device=group.get("Device") or None,
                device_id=group.get("Device Id") or None,
                location=group.get("Location") or None,
            )
        )
    if not logins:
        logins = _login_lines(section)
    logger.info("Parsed %d login(s)", len(logins))
    return logins


def parse_ip_addresses(section: Section) -> list[IpAddressEntry]:
    """parses the ip addresses section, falling back to one entry per address line."""
    entries = []
    for group in group_records(section.tokens()):
        ips = find_ips(group.get("Ip Address"))
        if ips:
            entries.append(IpAddressEntry(ip=ips[0], time=parse_utc(group.get("Time"))))
    if entries:
        return entries

    for line in clean_lines(section.text):
        ips = find_ips(line)
        if ips:
            entries.append(IpAddressEntry(ip=ips[0], time=parse_utc(line)))
    return entries


def section_values(section: Section) -> list[str]:
    """returns the plain value lines of a single-datum profile section."""
    return section.values()
