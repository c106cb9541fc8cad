"""Message extraction from a thread's token span."""

import logging
import re
from datetime import datetime, timezone
from typing import Optional

from metarecord.core.archive import MediaMap, guess_mime_type
from metarecord.core.fields import (
    BLOCK_TERMINATORS,
    Field,
    MediaRef,
    Token,
    is_linked_media,
)
from metarecord.core.models import Attachment, CallRecord, Message, Participant, Share
from metarecord.core.timestamps import parse_utc

logger = logging.getLogger(__name__)

AUTHOR_PATTERN = re.compile(r"^(.+?)\s*\(Instagram:\s*(\d+)\)")
PHOTO_ID_PATTERN = re.compile(r"(\d{15,})")
SIZE_PATTERN = re.compile(r"(\d+)")

REMOVED_MARKER = "removed by sender"
TAG_MIME_DEFAULTS = {
    "img": "image/jpeg",
    "video": "video/mp4",
    "audio": "audio/mpeg",
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_author(value: str) -> Optional[Participant]:
    """parses '<username> (Instagram: <id>)'."""
    match = AUTHOR_PATTERN.search(value.strip())
    if not match:
        return None
    return Participant(username=match.group(1).strip(), platform_id=match.group(2))


def photo_id_from(name: Optional[str]) -> Optional[str]:
    """returns the first run of 15+ digits in a media file name."""
    if not name:
        return None
    match = PHOTO_ID_PATTERN.search(name.rsplit("/", 1)[-1])
    return match.group(1) if match else None


def parse_size(value: str) -> Optional[int]:
    match = SIZE_PATTERN.search(value.replace(",", ""))
    return int(match.group(1)) if match else None


def sub_block(
    tokens: list[Token],
    index: int,
    line_based: bool = False,
    terminators: frozenset = BLOCK_TERMINATORS,
) -> list[Token]:
    """
    returns the tokens belonging to the block opened by tokens[index].

    nested layouts take the following deeper tokens; flat layouts (and
    nested ones without deeper tokens) take tokens up to the next
    terminating label.
    """
    opener = tokens[index]
    if not line_based:
        deeper: list[Token] = []
        for token in tokens[index + 1 :]:
            if token.depth <= opener.depth:
                break
            deeper.append(token)
        if deeper:
            return deeper

    block: list[Token] = []
    for token in tokens[index + 1 :]:
        if isinstance(token, Field) and token.label in terminators:
            break
        if not line_based and token.depth < opener.depth:
            break
        block.append(token)
    return block


def _first(
    tokens: list[Token], label: str, depth: Optional[int] = None
) -> Optional[int]:
    """returns the index of the first field with label, preferring the given depth."""
    fallback = None
    for i, token in enumerate(tokens):
        if isinstance(token, Field) and token.label == label:
            if depth is None or token.depth == depth:
                return i
            if fallback is None:
                fallback = i
    return fallback


def _block_values(block: list[Token]) -> dict[str, str]:
    """first value per label in a block."""
    values: dict[str, str] = {}
    for token in block:
        if isinstance(token, Field) and token.label not in values:
            values[token.label] = token.value
    return values


def _textual_attachments(block: list[Token]) -> list[Attachment]:
    """builds attachments from Type/Size/URL groups, each Type starting a new one."""
    found: list[Attachment] = []
    current: Optional[Attachment] = None
    for token in block:
        if not isinstance(token, Field):
            continue
        label, value = token.label, token.value.strip()
        opens_reference = label in ("Linked Media File", "Url") and current is None
        if label == "Type" or opens_reference:
            current = Attachment(type=value if label == "Type" else "")
            found.append(current)
        if current is None:
            continue
        if label == "Size":
            current.size = parse_size(value)
        elif label in ("Url", "Linked Media File") and value:
            if is_linked_media(value):
                current.source_path = value
                current.filename = value.rsplit("/", 1)[-1]
                current.photo_id = photo_id_from(value)
            else:
                current.url = value
    return found


def _media_attachment(ref: MediaRef, media: MediaMap) -> Attachment:
    blob = media.resolve(ref.src)
    mime = guess_mime_type(ref.src)
    if mime == "application/octet-stream":
        mime = TAG_MIME_DEFAULTS.get(ref.tag, mime)
    return Attachment(
        type=blob.mime_type if blob is not None else mime,
        size=blob.size if blob is not None else None,
        source_path=ref.src,
        filename=ref.src.rsplit("/", 1)[-1],
        photo_id=photo_id_from(ref.src),
        resolved_blob=blob,
    )


def extract_attachments(
    extent: list[Token], media: MediaMap, line_based: bool = False
) -> list[Attachment]:
    """
    extracts a message's attachments.

    media references in the extent win; textual Type/Size/URL groups from the
    Attachments block fill in type and size or stand alone when no media tag
    exists. unresolved attachments are kept with no blob.
    """
    textual: list[Attachment] = []
    block_index = _first(extent, "Attachments")
    if block_index is not None:
        textual = _textual_attachments(sub_block(extent, block_index, line_based))

    refs = [t for t in extent if isinstance(t, MediaRef)]
    if not refs:
        for attachment in textual:
            if attachment.source_path:
                attachment.resolved_blob = media.resolve(attachment.source_path)
                if attachment.resolved_blob is not None and attachment.size is None:
                    attachment.size = attachment.resolved_blob.size
            if not attachment.type:
                reference = attachment.source_path or attachment.url or ""
                attachment.type = guess_mime_type(reference)
        return textual

    attachments = [_media_attachment(ref, media) for ref in refs]
    for attachment, described in zip(attachments, textual):
        if described.type:
            attachment.type = described.type
        if described.size is not None:
            attachment.size = described.size
    return attachments


def extract_share(extent: list[Token], line_based: bool = False) -> Optional[Share]:
    """parses the Share block, or None when absent or empty."""
    index = _first(extent, "Share")
    if index is None:
        return None
    opener = extent[index]
    values = _block_values(sub_block(extent, index, line_based))

    url = values.get("Url") or None
    if url is None and isinstance(opener, Field) and opener.value.startswith("http"):
        url = opener.value.split()[0]
    share = Share(
        date_created=parse_utc(values.get("Date Created")),
        text=values.get("Text") or None,
        url=url,
    )
    if share.date_created is None and share.text is None and share.url is None:
        return None
    return share


def extract_call_record(
    extent: list[Token], line_based: bool = False
) -> Optional[CallRecord]:
    """parses the Call Record block; missing values take their defaults."""
    index = _first(extent, "Call Record")
    if index is None:
        return None
    values = _block_values(sub_block(extent, index, line_based))

    duration = parse_size(values.get("Duration", ""))
    return CallRecord(
        call_type="video" if "video" in values.get("Type", "").lower() else "audio",
        missed=values.get("Missed", "").strip().lower() == "true",
        duration=duration or 0,
    )


def _is_removed(extent: list[Token]) -> bool:
    return any(
        isinstance(t, Field) and REMOVED_MARKER in t.text.lower() for t in extent
    )


def build_message(
    message_id: str,
    thread_id: str,
    extent: list[Token],
    media: MediaMap,
    line_based: bool = False,
) -> Message:
    """builds one message from its extent; every field is best-effort."""
    opener = extent[0]
    depth = opener.depth
    author = None
    if isinstance(opener, Field) and opener.label == "Author":
        author = parse_author(opener.value)

    sent = None
    sent_index = _first(extent, "Sent", depth)
    if sent_index is not None:
        sent = parse_utc(extent[sent_index].value)
        if sent is None:
            logger.debug(
                "Unparseable sent time in %s: %r", message_id, extent[sent_index].value
            )

    body = ""
    body_index = _first(extent, "Body", depth)
    if body_index is not None:
        body = extent[body_index].value

    return Message(
        id=message_id,
        thread_id=thread_id,
        author=author,
        sent=sent,
        body=body,
        attachments=extract_attachments(extent, media, line_based),
        share=extract_share(extent, line_based),
        call_record=extract_call_record(extent, line_based),
        removed_by_sender=_is_removed(extent),
    )


def split_messages(tokens: list[Token]) -> list[list[Token]]:
    """
    splits a thread span at Author fields of the message depth.

    spans without any Author label fall back to Sent fields as boundaries.
    """
    boundary = "Author"
    first = _first(tokens, boundary)
    if first is None:
        boundary = "Sent"
        first = _first(tokens, boundary)
    if first is None:
        return []

    depth = tokens[first].depth
    starts = [
        i
        for i, t in enumerate(tokens)
        if isinstance(t, Field) and t.label == boundary and t.depth == depth
    ]
    ends = starts[1:] + [len(tokens)]
    return [tokens[s:e] for s, e in zip(starts, ends)]


def sort_messages(messages: list[Message]) -> list[Message]:
    """orders by sent time; undated messages keep source order after dated ones."""
    return sorted(messages, key=lambda m: (m.sent is None, m.sent or _EPOCH))


def extract_messages(
    thread_id: str,
    tokens: list[Token],
    media: MediaMap,
    diagnostics: list[str],
    line_based: bool = False,
    start: int = 0,
) -> list[Message]:
    """
    extracts the messages of one thread.

    Args:
        thread_id: owning thread id
        tokens: the thread's token span
        media: media map for attachment resolution
        diagnostics: receives a note for every skipped message
        line_based: True for layouts without label nesting
        start: first source position, for threads merged from several spans

    Returns:
        messages in chronological order
    """
    messages: list[Message] = []
    for n, extent in enumerate(split_messages(tokens), start=start):
        message_id = f"{thread_id}-{n}"
        try:
            messages.append(
                build_message(message_id, thread_id, extent, media, line_based)
            )
        except Exception as e:
            logger.warning("Skipping message %s: %s", message_id, e)
            diagnostics.append(f"Thread {thread_id}: message {n} skipped ({e})")

    return sort_messages(messages)
