"""Handle extraction from content bodies."""

from __future__ import annotations

import re

from tally.errors import ValidationError

HANDLE_MAX_LENGTH = 30
DEFAULT_MENTION_CAP = 25

HANDLE_RE = re.compile(rf"^[A-Za-z0-9_]{{1,{HANDLE_MAX_LENGTH}}}$")

# "@" not glued to a preceding word (emails) and a token that ends at a
# non-word character; over-long tokens do not match at all.
MENTION_RE = re.compile(
    rf"(?<![A-Za-z0-9_@])@([A-Za-z0-9_]{{1,{HANDLE_MAX_LENGTH}}})(?![A-Za-z0-9_])"
)


def normalize_handle(handle: str) -> str:
    """Return the canonical (lower-case) form of *handle* or raise."""
    handle = (handle or "").strip().lstrip("@")
    if not HANDLE_RE.match(handle):
        raise ValidationError(
            f"Malformed handle {handle!r}: use 1-{HANDLE_MAX_LENGTH} letters, digits or underscores"
        )
    return handle.lower()


def extract_mentions(text: str, cap: int = DEFAULT_MENTION_CAP) -> list[str]:
    """Return unique lower-cased handles in order of first appearance.

    At most *cap* handles are returned.
    """
    seen: list[str] = []
    for match in MENTION_RE.finditer(text or ""):
        handle = match.group(1).lower()
        if handle in seen:
            continue
        seen.append(handle)
        if len(seen) >= cap:
            break
    return seen
