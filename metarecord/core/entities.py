"""User directory, main profile identification and social graph entries."""

import ipaddress
import logging
import re
from typing import Optional

from bs4 import BeautifulSoup

from metarecord.core.models import (
    Conversation,
    FollowEntry,
    MediaReference,
    Profile,
    RequestParameters,
    UserEntry,
)
from metarecord.core.sections import Section
from metarecord.core.timestamps import parse_utc

logger = logging.getLogger(__name__)

MENTION_PATTERN = re.compile(r"([\w.\-]+)\s*\(Instagram:\s*(\d+)\)")
FOLLOW_PATTERN = re.compile(r"([\w.\-]+)\s*\(Instagram:\s*(\d+)\)(?:\s*\[(.*?)\])?")
EMAIL_PATTERN = re.compile(r"[\w.+\-]+@[\w\-]+(?:\.[\w\-]+)+")
IP_CANDIDATE_PATTERN = re.compile(r"[0-9A-Fa-f:.]{3,}")


def find_mentions(doc: BeautifulSoup) -> list[tuple[str, str]]:
    """returns every (username, platform id) mention in the document text, in order."""
    return MENTION_PATTERN.findall(doc.get_text(" "))


def build_directory(
    conversations: list[Conversation],
    mentions: Optional[list[tuple[str, str]]] = None,
) -> list[UserEntry]:
    """
    builds the record-wide user directory keyed by platform id.

    the first username seen for an id wins; conversation membership and
    authored message counts are aggregated per id.

    Args:
        conversations: extracted conversations
        mentions: (username, platform id) pairs found elsewhere in the document

    Returns:
        entries in first-seen order
    """
    entries: dict[str, UserEntry] = {}

    def entry_for(username: str, platform_id: str) -> UserEntry:
        if platform_id not in entries:
            entries[platform_id] = UserEntry(
                platform_id=platform_id, username=username, display_name=username
            )
        return entries[platform_id]

    for conversation in conversations:
        for participant in conversation.participants:
            entry = entry_for(participant.username, participant.platform_id)
            if conversation.thread_id not in entry.conversation_ids:
                entry.conversation_ids.append(conversation.thread_id)
        for message in conversation.messages:
            if message.author is None:
                continue
            entry = entry_for(message.author.username, message.author.platform_id)
            entry.message_count += 1
            if conversation.thread_id not in entry.conversation_ids:
                entry.conversation_ids.append(conversation.thread_id)

    for username, platform_id in mentions or []:
        entry_for(username, platform_id)

    logger.debug("Directory holds %d user(s)", len(entries))
    return list(entries.values())


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    unique = []
    for value in values:
        key = value.lower()
        if key not in seen:
            seen.add(key)
            unique.append(value)
    return unique


def find_ips(text: str) -> list[str]:
    """returns valid IPv4 and IPv6 addresses in text, in order of appearance."""
    found = []
    for candidate in IP_CANDIDATE_PATTERN.findall(text):
        candidate = candidate.rstrip(".")
        try:
            ipaddress.ip_address(candidate)
        except ValueError:
            continue
        found.append(candidate)
    return found


def _first_ip(values: list[str]) -> Optional[str]:
    for value in values:
        ips = find_ips(value)
        if ips:
            return ips[0]
    return None


def identify_profile(
    values: dict[str, list[str]],
    directory: list[UserEntry],
    request: Optional[RequestParameters] = None,
    profile_picture: Optional[MediaReference] = None,
) -> Optional[Profile]:
    """
    identifies the record's main subject.

    explicit profile sections win; without a vanity section the directory
    entry with the most authored messages (first seen on ties) is assumed
    to be the subject.

    Args:
        values: value lines per profile section name
        directory: record-wide user directory
        request: request parameters, for the account type
        profile_picture: resolved profile picture reference

    Returns:
        Profile, or None when there is no profile data at all
    """
    vanity = values.get("vanity") or []
    names = values.get("name") or []
    emails = _dedupe(
        [m for line in values.get("emails") or [] for m in EMAIL_PATTERN.findall(line)]
    )
    phones = _dedupe(
        [p.strip() for p in values.get("phone_numbers") or [] if p.strip()]
    )
    registration_ip = _first_ip(values.get("registration_ip") or [])
    registration_date = None
    for line in values.get("registration_date") or []:
        registration_date = registration_date or parse_utc(line)

    username = vanity[0].strip() if vanity else ""
    display_name = names[0].strip() if names else ""
    if not username and directory:
        subject = max(directory, key=lambda e: e.message_count)
        logger.debug("No vanity section; assuming %s is the subject", subject.username)
        username = subject.username
        display_name = display_name or subject.display_name

    if not any([username, display_name, emails, phones, registration_ip]):
        return None

    account_type = request.account_type.lower() if request else ""
    return Profile(
        username=username or display_name,
        display_name=display_name or username,
        emails=emails,
        phone_numbers=phones,
        registration_ip=registration_ip,
        registration_date=registration_date,
        business_account="business" in account_type,
        profile_picture=profile_picture,
    )


def parse_follow_section(section: Section, direction: str) -> list[FollowEntry]:
    """
    parses following/followers entries.

    Args:
        section: located following or followers section
        direction: "following" or "followers"

    Returns:
        entries deduplicated by platform id
    """
    entries: list[FollowEntry] = []
    seen: set[str] = set()
    text = " ".join(section.text.split())
    for username, platform_id, display in FOLLOW_PATTERN.findall(text):
        if platform_id in seen:
            continue
        seen.add(platform_id)
        entries.append(
            FollowEntry(
                username=username,
                platform_id=platform_id,
                display_name=display.strip() or username,
                direction=direction,
            )
        )
    logger.info("Parsed %d %s entries", len(entries), direction)
    return entries
