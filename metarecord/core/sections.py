"""Locating logical sections of a record document."""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from bs4 import BeautifulSoup, Tag

from metarecord.core.fields import (
    Field,
    MediaRef,
    Token,
    is_label,
    tokenize,
    tokenize_lines,
)

logger = logging.getLogger(__name__)

NO_RECORDS_MARKER = "no responsive records located"
HEADING_TAGS = ("h1", "h2", "h3", "h4", "strong", "b", "th", "caption")
CONTENT_TAGS = ("table", "tbody", "tr", "ul", "ol", "dl", "li")

SECTION_TITLES: dict[str, tuple[str, ...]] = {
    "request_parameters": ("Request Parameters",),
    "ncmec_reports": ("NCMEC Reports", "NCMEC CyberTip Reports"),
    "name": ("Name",),
    "emails": ("Emails", "Email Addresses"),
    "vanity": ("Vanity", "Username"),
    "registration_date": ("Registration Date",),
    "registration_ip": ("Registration Ip",),
    "phone_numbers": ("Phone Numbers",),
    "logins": ("Logins", "Login History"),
    "ip_addresses": ("Ip Addresses",),
    "devices": ("Devices",),
    "following": ("Following",),
    "followers": ("Followers",),
    "last_location": ("Last Location",),
    "photos": ("Photos",),
    "profile_picture": ("Profile Picture",),
    "comments": ("Comments",),
    "videos": ("Videos",),
    "live_videos": ("Live Videos",),
    "archived_live_videos": ("Archived Live Videos",),
    "notes": ("Notes",),
    "unified_messages": ("Unified Messages", "Messages"),
    "reported_conversations": ("Reported Conversations",),
    "reported_disappearing_messages": ("Reported Disappearing Messages",),
    "archived_stories": ("Archived Stories",),
    "encrypted_groups_info": ("Encrypted Groups Info",),
    "threads_profile_picture": ("Threads Profile Picture",),
    "threads_following": ("Threads Following",),
    "threads_followers": ("Threads Followers",),
    "threads_registration_date": ("Threads Registration Date",),
    "threads_posts_and_replies": ("Threads Posts And Replies",),
    "threads_archived_stories": ("Threads Archived Stories",),
    "community_notes": ("Community Notes",),
    "threads_community_notes": ("Threads Community Notes",),
    "archived_quicksnap": ("Archived Quicksnap",),
    "threads_unified_messages": ("Threads Unified Messages",),
    "shared_access": ("Shared Access",),
    "last_location_area": ("Last Location Area",),
    "account_owner_shared_access": ("Account Owner Shared Access",),
    "unarchived_stories": ("Unarchived Stories",),
}
SECTION_NAMES = tuple(SECTION_TITLES)
ALL_TITLES = tuple(title for titles in SECTION_TITLES.values() for title in titles)


class LayoutVariant(Enum):
    """how a section was located, which decides how it is tokenized."""

    BY_STRUCTURAL_ID = "structural_id"
    BY_HEADER_HEURISTIC = "header_heuristic"
    BY_FLAT_TEXT_PATTERN = "flat_text"


def _key(text: str) -> str:
    return " ".join(text.split()).rstrip(":").strip().lower()


@dataclass
class Section:
    """located section root with its layout variant."""

    name: str
    root: Tag
    variant: LayoutVariant
    _raw: Optional[list[Token]] = field(default=None, init=False, repr=False)

    @property
    def titles(self) -> tuple[str, ...]:
        return SECTION_TITLES.get(self.name, ())

    @property
    def text(self) -> str:
        return self.root.get_text("\n")

    @property
    def empty(self) -> bool:
        """True when the no-records marker is the only content of the section."""
        if NO_RECORDS_MARKER not in " ".join(self.text.split()).lower():
            return False
        for token in self.tokens():
            if isinstance(token, MediaRef):
                return False
            lines = [line for line in token.value.split("\n") if line]
            if any(NO_RECORDS_MARKER not in line.lower() for line in lines):
                return False
        return True

    @property
    def line_based(self) -> bool:
        return self.variant is LayoutVariant.BY_FLAT_TEXT_PATTERN

    def _raw_tokens(self) -> list[Token]:
        if self._raw is None:
            if self.line_based:
                self._raw = tokenize_lines(self.root, extra_labels=ALL_TITLES)
            else:
                self._raw = tokenize(self.root)
        return self._raw

    def tokens(self) -> list[Token]:
        """returns the section's token stream without its title field."""
        title_keys = {_key(t) for t in self.titles}
        return [
            t
            for t in self._raw_tokens()
            if not (isinstance(t, Field) and _key(t.label) in title_keys)
        ]

    def fields(self) -> list[Field]:
        return [t for t in self.tokens() if isinstance(t, Field)]

    def values(self) -> list[str]:
        """returns every value line, title field included, for single-datum sections."""
        lines: list[str] = []
        for token in self._raw_tokens():
            if isinstance(token, Field):
                lines.extend(line for line in token.value.split("\n") if line)
        return [line for line in lines if NO_RECORDS_MARKER not in line.lower()]


def _has_labels(root: Tag) -> bool:
    return is_label(root) or root.find(is_label) is not None


def _classify(name: str, root: Tag, located: LayoutVariant) -> Section:
    variant = located if _has_labels(root) else LayoutVariant.BY_FLAT_TEXT_PATTERN
    return Section(name=name, root=root, variant=variant)


def _is_heading(tag: Tag, title_keys: set[str]) -> bool:
    if tag.name in HEADING_TAGS or "section-header" in (tag.get("class") or []):
        return _key(tag.get_text(" ")) in title_keys
    return False


def _top_level_label(tag: Tag, title_keys: set[str]) -> bool:
    if not is_label(tag) or tag.find_parent(is_label) is not None:
        return False
    own = "".join(s for s in tag.find_all(string=True, recursive=False))
    return _key(own) in title_keys


def _holds_content(ancestor: Tag, heading: Tag) -> bool:
    """checks for tabular or list content in ancestor outside the heading's branch."""
    branch = {id(heading), *(id(p) for p in heading.parents)}
    for found in ancestor.find_all(CONTENT_TAGS):
        if id(found) not in branch:
            return True
    for found in ancestor.find_all("div", class_="t"):
        if id(found) not in branch:
            return True
    return False


def _sibling_run(heading: Tag) -> Tag:
    """copies a heading and its siblings up to the next peer heading into a wrapper."""
    wrapper = BeautifulSoup("", "html.parser").new_tag("div")
    wrapper.append(copy.copy(heading))
    for sibling in heading.next_siblings:
        if isinstance(sibling, Tag) and sibling.name == heading.name:
            break
        wrapper.append(copy.copy(sibling))
    return wrapper


def _root_for_heading(heading: Tag) -> Tag:
    if is_label(heading):
        parent = heading.parent
        if isinstance(parent, Tag) and "o" in (parent.get("class") or []):
            return parent
        return heading

    parent = heading.parent
    if isinstance(parent, Tag):
        peers = parent.find_all(heading.name, recursive=False)
        if len(peers) > 1:
            # several sections share one parent: take this heading's run of siblings
            return _sibling_run(heading)

    for ancestor in heading.parents:
        if not isinstance(ancestor, Tag) or ancestor.name == "[document]":
            break
        if _holds_content(ancestor, heading):
            return ancestor
    return parent if isinstance(parent, Tag) else heading


def locate_section(doc: BeautifulSoup, name: str) -> Optional[Section]:
    """
    finds a logical section by structural id, falling back to header text.

    Args:
        doc: sanitized document tree
        name: section name such as ``unified_messages``

    Returns:
        located Section, or None when the section is absent
    """
    root = doc.find(id=f"property-{name}")
    if isinstance(root, Tag):
        return _classify(name, root, LayoutVariant.BY_STRUCTURAL_ID)

    title_keys = {_key(t) for t in SECTION_TITLES.get(name, (name.replace("_", " "),))}
    heading = doc.find(lambda tag: _is_heading(tag, title_keys))
    if heading is None:
        heading = doc.find(lambda tag: _top_level_label(tag, title_keys))
    if heading is None:
        return None

    logger.debug("Section %s located by header <%s>", name, heading.name)
    root = _root_for_heading(heading)
    return _classify(name, root, LayoutVariant.BY_HEADER_HEURISTIC)


def locate_sections(doc: BeautifulSoup) -> dict[str, Section]:
    """locates every known section, keyed by name, in declaration order."""
    found: dict[str, Section] = {}
    for name in SECTION_NAMES:
        section = locate_section(doc, name)
        if section is not None:
            found[name] = section
    logger.info("Found %d of %d known section(s)", len(found), len(SECTION_NAMES))
    return found
