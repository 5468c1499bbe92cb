"""Slug, excerpt, and read-time helpers for note and post content."""

from __future__ import annotations

import html
import math
import re

# Runs of anything that is not a lowercase letter or digit
_SLUG_SEP_RE = re.compile(r"[^a-z0-9]+")
# Any HTML tag produced by the rich-text editor
_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")

#: Average reading speed used for ``estimated_read_time``.
WORDS_PER_MINUTE = 200


def slugify(text: str) -> str:
    """Lowercase *text* and collapse every non-alphanumeric run to a hyphen.

    >>> slugify("Cardiac Cycle: Phases & Pressures")
    'cardiac-cycle-phases-pressures'
    """
    return _SLUG_SEP_RE.sub("-", text.lower()).strip("-")


def strip_html(content: str) -> str:
    """Return the visible text of an HTML fragment with whitespace collapsed."""
    text = html.unescape(_TAG_RE.sub(" ", content))
    return _SPACE_RE.sub(" ", text).strip()


def estimate_read_time(content: str) -> int:
    """Minutes needed to read *content*; never less than one."""
    words = len(strip_html(content).split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def make_excerpt(content: str, length: int = 160) -> str:
    """Plain-text excerpt of *content*, cut on a word boundary."""
    text = strip_html(content)
    if len(text) <= length:
        return text
    cut = text[:length].rsplit(" ", 1)[0]
    return cut.rstrip(",.;:") + "…"
