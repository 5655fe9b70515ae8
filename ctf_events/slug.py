"""Slug derivation shared by role, forum and record naming."""
from __future__ import annotations

import re

_STRIP = re.compile(r"[^\w\s-]", re.ASCII)
_SEPARATORS = re.compile(r"[\s_-]+")


def slugify(text: str) -> str:
    """Convert a display name to a lowercase hyphenated identifier.

    ``slugify("Pascal CTF 2026") == "pascal-ctf-2026"``. The transform is
    idempotent.
    """

    slug = _STRIP.sub("", text.lower().strip())
    slug = _SEPARATORS.sub("-", slug)
    return slug.strip("-")


__all__ = ["slugify"]
