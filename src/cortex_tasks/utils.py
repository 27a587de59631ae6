"""Provide helpers for timestamps, slugs and task folder sequence numbers."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Iterable, Optional

from .constants import SEQUENCE_WIDTH, SLUG_FALLBACK, SLUG_MAX_LENGTH

_UNSAFE_CHARS_RE = re.compile(r'[/\\:*?"<>|\x00-\x1f]')
_WHITESPACE_RE = re.compile(r"\s+")
_DASH_RUN_RE = re.compile(r"-{2,}")
_SEQUENCE_PREFIX_RE = re.compile(r"^(\d{%d})-" % SEQUENCE_WIDTH)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        if not isinstance(value, str):
            value = str(value)
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
        # Naive timestamps written by other tools are taken as UTC.
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError:
        return None


def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """Derive a filesystem-safe slug from free text.

    Args:
        text: Arbitrary text, typically task details.
        max_length: Hard cap on the slug length.

    Returns:
        A lower-case slug with single dashes between words, never starting or
        ending with a dash or a dot. Falls back to ``"task"`` when nothing usable is left.
    """
    slug = text.lower()
    slug = _UNSAFE_CHARS_RE.sub("-", slug)
    slug = _WHITESPACE_RE.sub("-", slug)
    slug = _DASH_RUN_RE.sub("-", slug)
    slug = slug.strip("-.")
    if len(slug) > max_length:
        slug = slug[:max_length].rstrip("-.")
    return slug or SLUG_FALLBACK


def pad_sequence(number: int, width: int = SEQUENCE_WIDTH) -> str:
    return str(number).zfill(width)


def sequence_of(folder_name: str) -> Optional[int]:
    """Return the numeric prefix of a task folder name, or None."""
    match = _SEQUENCE_PREFIX_RE.match(folder_name)
    if not match:
        return None
    return int(match.group(1))


def next_sequence(folder_names: Iterable[str]) -> int:
    numbers = [n for n in (sequence_of(name) for name in folder_names) if n is not None]
    return max(numbers, default=0) + 1


def make_task_id(sequence: int, details: str) -> str:
    return f"{pad_sequence(sequence)}-{slugify(details)}"
