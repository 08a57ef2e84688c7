from __future__ import annotations

import re
import time

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
MAX_SLUG_LENGTH = 100

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def generate_slug(text: str, max_length: int = MAX_SLUG_LENGTH, fallback_prefix: str = "article") -> str:
    """
    Lowercase ASCII slug: runs of anything but [a-z0-9] collapse into one
    hyphen, edges are trimmed. Titles with no ASCII alphanumerics (e.g. CJK)
    fall back to `<prefix>-<epoch ms>`.
    """
    slug = _NON_SLUG_CHARS.sub("-", (text or "").lower()).strip("-")
    if not slug:
        slug = f"{fallback_prefix}-{int(time.time() * 1000)}"
    if max_length > 0 and len(slug) > max_length:
        slug = slug[:max_length].rstrip("-")
    return slug


def is_valid_slug(slug: str) -> bool:
    return bool(slug) and bool(SLUG_PATTERN.match(slug))
