"""Thread segmentation of the unified messages section."""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from bs4 import Tag

from metarecord.core.archive import MediaMap
from metarecord.core.fields import Field, Token
from metarecord.core.messages import extract_messages, sort_messages, split_messages
from metarecord.core.models import Conversation, Participant
from metarecord.core.sections import Section
from metarecord.core.timestamps import parse_utc

logger = logging.getLogger(__name__)

THREAD_ID_PATTERN = re.compile(r"\(\s*(\d{13,})\s*\)")
PARTICIPANT_PATTERN = re.compile(r"([\w.\-]+)\s*\(Instagram:\s*(\d+)\)")
ANCHOR_LABELS = ("Current Participants", "Author")


class SpanStrategy(Enum):
    """how thread content is delimited within the section."""

    CONTAINER = "container"
    SIBLING = "sibling"


@dataclass
class ThreadSpan:
    """tokens belonging to one thread occurrence."""

    thread_id: str
    tokens: list[Token]


def is_thread_marker(token: Token) -> bool:
    return isinstance(token, Field) and token.label == "Thread"


def thread_id_of(marker: Field) -> Optional[str]:
    """returns the 13+ digit id in a Thread field, if any."""
    match = THREAD_ID_PATTERN.search(marker.text)
    return match.group(1) if match else None


def _chain(node: Tag) -> list[Tag]:
    return [node, *(p for p in node.parents if isinstance(p, Tag))]


def _find_containers(
    tokens: list[Token], marker_indexes: list[int], root: Tag
) -> Optional[list[Tag]]:
    """
    finds one container per marker, or None when any marker lacks one.

    a container is the nearest ancestor-or-self of the marker that holds
    exactly one marker and at least one participants or author label.
    """
    marker_counts: Counter = Counter()
    for i in marker_indexes:
        for node in _chain(tokens[i].node):
            marker_counts[id(node)] += 1

    anchored: set[int] = set()
    for token in tokens:
        if not isinstance(token, Field) or token.node is None:
            continue
        if token.label in ANCHOR_LABELS:
            anchored.update(id(node) for node in _chain(token.node))

    containers: list[Tag] = []
    for i in marker_indexes:
        container = None
        for node in _chain(tokens[i].node):
            if marker_counts[id(node)] > 1:
                break
            if id(node) in anchored:
                container = node
                break
            if node is root:
                break
        if container is None:
            return None
        containers.append(container)
    return containers


def _inside(node: Optional[Tag], container: Tag) -> bool:
    return node is not None and any(n is container for n in _chain(node))


def _container_span(tokens: list[Token], index: int, container: Tag) -> list[Token]:
    """returns the contiguous run of tokens inside container around tokens[index]."""
    start = index
    while start > 0 and _inside(tokens[start - 1].node, container):
        start -= 1
    end = index + 1
    while end < len(tokens) and _inside(tokens[end].node, container):
        end += 1
    return [t for t in tokens[start:end] if t is not tokens[index]]


def split_threads(
    section: Section, diagnostics: list[str]
) -> tuple[list[ThreadSpan], SpanStrategy]:
    """
    segments a messages section into per-thread token spans.

    the container strategy is preferred when every thread marker has its own
    wrapping element; otherwise spans run from one marker to the next.

    Args:
        section: located unified messages section
        diagnostics: receives a note for every marker without an id

    Returns:
        spans in document order and the strategy used
    """
    tokens = section.tokens()
    marker_indexes = [i for i, t in enumerate(tokens) if is_thread_marker(t)]
    if not marker_indexes:
        return [], SpanStrategy.SIBLING

    containers = None
    if not section.line_based:
        containers = _find_containers(tokens, marker_indexes, section.root)
    strategy = SpanStrategy.CONTAINER if containers else SpanStrategy.SIBLING
    logger.debug(
        "Splitting %d thread marker(s) by %s", len(marker_indexes), strategy.value
    )

    spans: list[ThreadSpan] = []
    bounds = marker_indexes[1:] + [len(tokens)]
    for n, (index, bound) in enumerate(zip(marker_indexes, bounds)):
        marker = tokens[index]
        thread_id = thread_id_of(marker)
        if thread_id is None:
            logger.warning("Skipping thread without id: %r", marker.text[:80])
            diagnostics.append(f"Thread marker without id skipped: {marker.text[:80]}")
            continue
        if containers:
            span_tokens = _container_span(tokens, index, containers[n])
        else:
            span_tokens = tokens[index + 1 : bound]
        spans.append(ThreadSpan(thread_id=thread_id, tokens=span_tokens))
    return spans, strategy


def extract_participants(
    tokens: list[Token],
) -> tuple[list[Participant], Optional[datetime]]:
    """
    parses participants from the Current Participants fields of a span.

    Returns:
        participants deduplicated by platform id, and the roster timestamp
    """
    participants: list[Participant] = []
    seen: set[str] = set()
    updated_at = None
    for token in tokens:
        if not (isinstance(token, Field) and token.label == "Current Participants"):
            continue
        for username, platform_id in PARTICIPANT_PATTERN.findall(token.value):
            if platform_id not in seen:
                seen.add(platform_id)
                participants.append(
                    Participant(username=username, platform_id=platform_id)
                )
        updated_at = updated_at or parse_utc(token.value)
    return participants, updated_at


def _merge(
    target: Conversation, participants: list[Participant], messages: list
) -> None:
    known = {p.platform_id for p in target.participants}
    target.participants.extend(p for p in participants if p.platform_id not in known)
    target.messages = sort_messages(target.messages + messages)


def extract_conversations(
    section: Section,
    media: MediaMap,
    parsed_at: datetime,
    diagnostics: list[str],
) -> list[Conversation]:
    """
    reconstructs conversations from the unified messages section.

    threads failing extraction are skipped with a diagnostic; a thread id
    seen again is merged into its first occurrence; threads with neither
    participants nor messages are dropped.

    Returns:
        conversations in document order
    """
    try:
        spans, strategy = split_threads(section, diagnostics)
    except Exception as e:
        logger.warning("Could not split unified messages: %s", e)
        diagnostics.append(f"Unified messages could not be split ({e})")
        return []

    by_id: dict[str, Conversation] = {}
    positions: Counter = Counter()
    for span in spans:
        try:
            participants, updated_at = extract_participants(span.tokens)
            messages = extract_messages(
                span.thread_id,
                span.tokens,
                media,
                diagnostics,
                line_based=section.line_based,
                start=positions[span.thread_id],
            )
        except Exception as e:
            logger.warning("Skipping thread %s: %s", span.thread_id, e)
            diagnostics.append(f"Thread {span.thread_id} skipped ({e})")
            continue

        positions[span.thread_id] += len(split_messages(span.tokens))
        existing = by_id.get(span.thread_id)
        if existing is not None:
            logger.debug("Merging repeated thread %s", span.thread_id)
            _merge(existing, participants, messages)
            if existing.participants_updated_at is None:
                existing.participants_updated_at = updated_at
            continue

        by_id[span.thread_id] = Conversation(
            thread_id=span.thread_id,
            participants=participants,
            messages=messages,
            parsed_at=parsed_at,
            participants_updated_at=updated_at,
        )

    conversations = [c for c in by_id.values() if c.participants or c.messages]
    dropped = len(by_id) - len(conversations)
    if dropped:
        logger.debug("Dropped %d empty thread(s)", dropped)
    logger.info(
        "Extracted %d conversation(s) using %s spans",
        len(conversations),
        strategy.value,
    )
    return conversations
