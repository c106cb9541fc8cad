"""Sanitizing HTML loader for record documents."""

import logging

from bs4 import BeautifulSoup, Tag

from metarecord.core.errors import MalformedDocument

logger = logging.getLogger(__name__)

HTML_PARSER = "html.parser"
ACTIVE_TAGS = ("script", "noscript", "iframe", "object", "embed")
URL_ATTRIBUTES = ("href", "src")


def _sanitize(soup: BeautifulSoup) -> int:
    """removes active content in place and returns the number of removals."""
    removed = 0
    for tag in soup.find_all(ACTIVE_TAGS):
        tag.decompose()
        removed += 1

    for tag in soup.find_all(True):
        for attr in list(tag.attrs):
            if attr.lower().startswith("on"):
                del tag.attrs[attr]
                removed += 1
        for attr in URL_ATTRIBUTES:
            value = tag.get(attr)
            if not isinstance(value, str):
                continue
            if value.strip().lower().startswith("javascript:"):
                del tag.attrs[attr]
                removed += 1
    return removed


def load_document(html_text: str) -> BeautifulSoup:
    """
    parses raw record HTML into a sanitized tree.

    parsing is permissive: broken markup degrades to partial structure.

    Args:
        html_text: raw HTML text

    Returns:
        sanitized BeautifulSoup tree

    Raises:
        MalformedDocument: if no element tree can be produced
    """
    if not html_text or not html_text.strip():
        raise MalformedDocument("Record document is empty")

    try:
        soup = BeautifulSoup(html_text, HTML_PARSER)
    except Exception as e:
        raise MalformedDocument(f"Record document could not be parsed: {e}") from e

    if not isinstance(soup.find(True), Tag):
        raise MalformedDocument("Record document contains no markup")

    removed = _sanitize(soup)
    if removed:
        logger.debug("Removed %d active content item(s) from document", removed)
    return soup
