"""Parsing of gateway challenge pages."""

import re
from html import unescape
from html.parser import HTMLParser
from typing import List

import structlog

from .interfaces import ParseError

logger = structlog.get_logger()

QUESTION_MARKER = "Question:"

_QUESTION_PATTERN = re.compile(re.escape(QUESTION_MARKER) + r"([^?]+)\?")
_TAG_PATTERN = re.compile(r"<[a-zA-Z!/][^>]*>")


class _TextExtractor(HTMLParser):
    """Collects the text content of a document, skipping scripts and styles."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self._parts: List[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in ("script", "style"):
            self._skip_depth += 1

    def handle_endtag(self, tag):
        if tag in ("script", "style") and self._skip_depth:
            self._skip_depth -= 1

    def handle_data(self, data):
        if not self._skip_depth:
            self._parts.append(data)

    def text(self) -> str:
        return "".join(self._parts)


def text_content(body: str) -> str:
    """Return the text content of ``body``.

    Bodies without markup are returned unchanged apart from entity
    unescaping.
    """
    if not _TAG_PATTERN.search(body):
        return unescape(body)
    extractor = _TextExtractor()
    extractor.feed(body)
    extractor.close()
    return extractor.text()


def find_question(body: str) -> str:
    """Extract the question following the ``Question:`` marker.

    Returns:
        The trimmed text between the marker and the next ``?``, with the
        ``?`` kept.

    Raises:
        ParseError: If the marker (followed by a question) is absent.
    """
    match = _QUESTION_PATTERN.search(text_content(body))
    if not match:
        raise ParseError(f"No '{QUESTION_MARKER}' marker in challenge body")
    return match.group(1).strip() + "?"


def extract_question(body: str) -> str:
    """Extract the question, falling back to the whole trimmed text.

    A missing marker is logged and never raised.
    """
    try:
        return find_question(body)
    except ParseError as e:
        logger.warning("challenge_marker_missing", error=str(e))
        return text_content(body).strip()
