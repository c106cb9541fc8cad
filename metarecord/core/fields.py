"""
Tokenization of record sections into label/value fields and media references.

Record documents encode every datum as a label element (``div.t.i``) whose
own text is the label and whose ``div.m`` child holds the value. Labels nest
arbitrarily, so a section is flattened into a document-ordered token stream
carrying each label's nesting depth. Layouts without label classes are
tokenized line by line against a known label vocabulary instead.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union
from urllib.parse import urlsplit

from bs4 import NavigableString, Tag
from bs4.element import PageElement, PreformattedString

from metarecord.core.archive import is_media_path
from metarecord.core.timestamps import UTC_PATTERN

MEDIA_TAGS = ("img", "video", "audio", "source")
BLOCK_TAGS = frozenset(
    {
        "div", "p", "li", "ul", "ol", "dl", "dt", "dd", "tr", "table",
        "tbody", "thead", "section", "article", "h1", "h2", "h3", "h4",
        "h5", "h6", "pre", "blockquote",
    }
)  # fmt: skip

LABELS = (
    "Thread",
    "Current Participants",
    "Author",
    "Sent",
    "Body",
    "Share",
    "Date Created",
    "Text",
    "Url",
    "Attachments",
    "Type",
    "Size",
    "Linked Media File",
    "Call Record",
    "Missed",
    "Duration",
    "Removed by Sender",
    "Service",
    "Internal Ticket Number",
    "Target",
    "Account Identifier",
    "Account Type",
    "Generated",
    "Date Range",
    "Id",
    "Taken",
    "Caption",
    "Upload Ip",
    "Ip Address",
    "Time",
    "Cybertip Id",
    "Responsible Id",
    "Media Uploaded",
    "Ncmec File Id",
    "Upload Time",
    "Recipients",
    "Post Author Id",
    "Post Content Id",
    "Timestamp",
    "Post Setting",
    "Reply To Author",
    "Reply To Post Id",
    "Quoting Post Author",
    "Quoting Id",
    "Reposting Author Id",
    "Reposting Id",
    "Participants",
    "Reporter",
    "Time Reported",
    "Thread Id",
    "Sender",
    "Message",
    "Device Id",
    "Uuid",
    "Device Type",
    "Model",
    "Os",
    "App Version",
    "Status",
    "First Seen",
    "Last Seen",
    "Ip Addresses",
    "Success",
    "Location",
    "Device",
)
_CANONICAL = {label.lower(): label for label in LABELS}
_CANONICAL.update({"ip": "Ip Address", "photo id": "Id"})

# labels accepted without a colon in line layouts, with the value shape they require
INLINE_LABELS = {
    "Thread": re.compile(r"\(\s*\d{13,}\s*\)"),
    "Author": re.compile(r"\(Instagram:\s*\d+\)"),
    "Sent": UTC_PATTERN,
    "Current Participants": re.compile(r"\S"),
}

# labels that close a block in layouts without nesting
BLOCK_TERMINATORS = frozenset(
    {
        "Author",
        "Sent",
        "Body",
        "Share",
        "Call Record",
        "Attachments",
        "Removed by Sender",
    }
)
# labels that end an open message body in line layouts
BODY_CLOSERS = BLOCK_TERMINATORS | {"Thread", "Current Participants"}


@dataclass
class Field:
    """label with its value text, in document order."""

    label: str
    value: str
    node: Optional[Tag]
    depth: int = 0

    @property
    def text(self) -> str:
        return f"{self.label} {self.value}".strip()


@dataclass
class MediaRef:
    """media element or link found in a section."""

    tag: str
    src: str
    node: Optional[Tag]
    depth: int = 0


Token = Union[Field, MediaRef]


def normalize_label(text: str) -> str:
    """normalizes whitespace, trailing colon and casing of a label."""
    label = " ".join(text.split()).rstrip(":").strip()
    return _CANONICAL.get(label.lower(), label)


def _has_class(tag: Tag, *names: str) -> bool:
    classes = tag.get("class") or []
    return all(name in classes for name in names)


def is_label(tag: Tag) -> bool:
    """checks for a ``div.t.i`` style label element."""
    return _has_class(tag, "t", "i")


def is_linked_media(src: Optional[str]) -> bool:
    """checks that src is a relative reference to a media file."""
    if not src:
        return False
    src = src.strip()
    parts = urlsplit(src)
    if parts.scheme or src.startswith("//"):
        return False
    return is_media_path(parts.path) or "linked_media" in parts.path


def _collect_text(node: Tag, parts: list[str]) -> None:
    """appends node text to parts, skipping nested labels, one line per block."""
    # None on the stack closes a block
    stack: list[Optional[PageElement]] = list(reversed(node.contents))
    while stack:
        child = stack.pop()
        if child is None:
            parts.append("\n")
            continue
        if isinstance(child, NavigableString):
            if not isinstance(child, PreformattedString):
                parts.append(str(child))
            continue
        if not isinstance(child, Tag) or is_label(child):
            continue
        if child.name == "br":
            parts.append("\n")
            continue
        if child.name in BLOCK_TAGS:
            parts.append("\n")
            stack.append(None)
        stack.extend(reversed(child.contents))


def clean_lines(raw: str) -> list[str]:
    """splits raw text into whitespace-collapsed, non-empty lines."""
    lines = (" ".join(line.split()) for line in raw.split("\n"))
    return [line for line in lines if line]


def node_text(node: Tag) -> str:
    """returns node text without nested labels, one line per block."""
    parts: list[str] = []
    _collect_text(node, parts)
    return "\n".join(clean_lines("".join(parts)))


def _own_label_text(tag: Tag) -> str:
    """returns the text of a label element outside its value and nested labels."""
    parts: list[str] = []
    for child in tag.children:
        if isinstance(child, NavigableString):
            if not isinstance(child, PreformattedString):
                parts.append(str(child))
        elif isinstance(child, Tag):
            if not _has_class(child, "m") and not is_label(child):
                parts.append(child.get_text(" "))
    return " ".join("".join(parts).split())


def _value_node(tag: Tag) -> Optional[Tag]:
    """finds the ``.m`` value element of a label, as a child or the next sibling."""
    for child in tag.children:
        if isinstance(child, Tag) and _has_class(child, "m"):
            return child
    sibling = tag.find_next_sibling(True)
    if isinstance(sibling, Tag) and _has_class(sibling, "m"):
        return sibling
    return None


def split_inline(text: str) -> Optional[tuple[str, str]]:
    """
    splits a ``Label: value`` or inline ``Label value`` line.

    Returns:
        (label, value) for a known label, otherwise None
    """
    stripped = text.strip()
    if ":" in stripped:
        head, _, tail = stripped.partition(":")
        label = normalize_label(head)
        if label in LABELS:
            return label, tail.strip()

    lowered = stripped.lower()
    for label, shape in INLINE_LABELS.items():
        prefix = label.lower()
        if lowered.startswith(prefix + " ") or lowered.startswith(prefix + "("):
            rest = stripped[len(label) :].strip()
            if shape.search(rest):
                return label, rest
    return None


def make_field(tag: Tag, depth: int) -> Field:
    """builds a field from a label element."""
    label_text = _own_label_text(tag)
    value_node = _value_node(tag)
    value = node_text(value_node) if value_node is not None else ""

    label = normalize_label(label_text)
    if label not in LABELS and not value:
        split = split_inline(label_text)
        if split:
            label, value = split
    return Field(label=label, value=value, node=tag, depth=depth)


def _media_src(tag: Tag) -> Optional[str]:
    if tag.name == "a":
        src = tag.get("href")
    else:
        src = tag.get("src")
    return src if isinstance(src, str) and is_linked_media(src) else None


def _walk(node: Tag, depth: int, out: list[Token]) -> None:
    stack = [(child, depth) for child in reversed(node.contents)]
    while stack:
        child, level = stack.pop()
        if not isinstance(child, Tag):
            continue
        if is_label(child):
            out.append(make_field(child, level))
            stack.extend((c, level + 1) for c in reversed(child.contents))
            continue

        src = None
        if child.name in MEDIA_TAGS:
            src = _media_src(child)
        elif child.name == "a" and child.find(MEDIA_TAGS) is None:
            src = _media_src(child)

        if src:
            out.append(
                MediaRef(tag=child.name, src=src.strip(), node=child, depth=level)
            )
            # a <video src> also lists the same file as <source>
            if child.name in ("video", "audio"):
                continue
        stack.extend((c, level) for c in reversed(child.contents))


def tokenize(root: Tag) -> list[Token]:
    """
    flattens a label-class section into fields and media references.

    Args:
        root: section root element

    Returns:
        tokens in document order
    """
    out: list[Token] = []
    if is_label(root):
        out.append(make_field(root, 0))
        _walk(root, 1, out)
    else:
        _walk(root, 0, out)
    return out


def _flat_pieces(node: Tag, out: list[Union[str, MediaRef]]) -> None:
    """collects text and media references of an unlabelled layout in order."""
    stack: list[Optional[PageElement]] = list(reversed(node.contents))
    while stack:
        child = stack.pop()
        if child is None:
            out.append("\n")
            continue
        if isinstance(child, NavigableString):
            if not isinstance(child, PreformattedString):
                out.append(str(child))
            continue
        if not isinstance(child, Tag):
            continue
        if child.name == "br":
            out.append("\n")
            continue
        src = None
        if child.name in MEDIA_TAGS:
            src = _media_src(child)
        elif child.name == "a" and child.find(MEDIA_TAGS) is None:
            src = _media_src(child)
        if src:
            out.append(MediaRef(tag=child.name, src=src.strip(), node=child))
            if child.name in ("video", "audio"):
                continue
        if child.name in BLOCK_TAGS:
            out.append("\n")
            stack.append(None)
        stack.extend(reversed(child.contents))


def tokenize_lines(root: Tag, extra_labels: Iterable[str] = ()) -> list[Token]:
    """
    tokenizes a layout without label classes line by line.

    a known label alone on a line or as ``Label: value`` starts a field;
    any other line extends the value of the open field.

    Args:
        root: section root element
        extra_labels: additional labels recognized alone on a line (section titles)

    Returns:
        tokens in document order
    """
    extras = {" ".join(label.split()).lower(): label for label in extra_labels}
    pieces: list[Union[str, MediaRef]] = []
    _flat_pieces(root, pieces)

    out: list[Token] = []
    current: Optional[Field] = None
    buffer: list[str] = []

    for piece in [*pieces, "\n"]:
        if isinstance(piece, str):
            buffer.append(piece)
            continue
        # a media reference ends the pending text run
        for line in clean_lines("".join(buffer)):
            current = _consume_line(line, current, extras, root, out)
        buffer = []
        out.append(piece)

    for line in clean_lines("".join(buffer)):
        current = _consume_line(line, current, extras, root, out)
    return out


def _line_field(line: str, extras: dict[str, str]) -> Optional[tuple[str, str]]:
    """returns (label, value) when line starts a field."""
    normalized = normalize_label(line)
    if normalized in LABELS or normalized.lower() in extras:
        return extras.get(normalized.lower(), normalized), ""
    return split_inline(line)


def _consume_line(
    line: str,
    current: Optional[Field],
    extras: dict[str, str],
    root: Tag,
    out: list[Token],
) -> Optional[Field]:
    """applies one text line to the open field and returns the field left open."""
    found = _line_field(line, extras)
    in_body = current is not None and current.label == "Body"
    # message text may itself read like "Time: ..." or "Status: ..."
    if found and (not in_body or found[0] in BODY_CLOSERS):
        opened = Field(label=found[0], value=found[1], node=root)
        out.append(opened)
        return opened

    if current is not None:
        current.value = f"{current.value}\n{line}" if current.value else line
    return current
