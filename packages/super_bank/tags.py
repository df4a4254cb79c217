"""Tag vocabulary helpers.

Tags are a shared, user-scoped vocabulary referenced by id from
transactions. Names are unique case-insensitively; colours are assigned
automatically when the caller does not pick one.

Exports
-------
- ``normalize_name(...)`` / ``validate_name(...)``: shared by the CLI for
  early feedback and enforced again by the stores.
- ``find_by_name(...)``: case-insensitive lookup.
- ``pick_color(...)``: first unused palette colour, else a random one.
- ``CreateTagResult``: the created/existing tag and a ``created`` flag.
"""

from __future__ import annotations

import colorsys
import random
import re
from collections.abc import Iterable
from dataclasses import dataclass

from .errors import InvalidTagNameError
from .models import Tag

# ---------------------------
# Name normalization/validation
# ---------------------------

_ALLOWED_RE = re.compile(r"^[A-Za-z0-9 &\-/_.]+$")


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name``.

    Case is preserved; comparisons elsewhere are case-insensitive.
    """

    return " ".join(name.strip().split())


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, min_len: int = 1, max_len: int = 64) -> NameValidation:
    """Validate a tag name.

    Rules
    -----
    - Trim whitespace; enforce length bounds 1..64.
    - Allowed characters: letters, numbers, spaces, and ``& - / _ .``.
    """

    n = normalize_name(name)
    if len(n) < min_len:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if not _ALLOWED_RE.match(n):
        return NameValidation(False, "Only letters, numbers, spaces, and & - / _ . are allowed")
    return NameValidation(True, None)


def require_valid_name(name: str) -> str:
    """Return the normalized ``name`` or raise :class:`InvalidTagNameError`."""

    n = normalize_name(name)
    v = validate_name(n)
    if not v.ok:
        raise InvalidTagNameError(f"Invalid tag name: {v.reason}")
    return n


def find_by_name(tags: Iterable[Tag], name: str) -> Tag | None:
    key = normalize_name(name).casefold()
    for t in tags:
        if t.name.casefold() == key:
            return t
    return None


# ---------------------------
# Colours
# ---------------------------

TAG_COLORS: tuple[str, ...] = (
    "#3B82F6",
    "#10B981",
    "#F59E0B",
    "#EF4444",
    "#8B5CF6",
    "#06B6D4",
    "#F97316",
    "#EC4899",
    "#84CC16",
    "#6366F1",
    "#14B8A6",
    "#F43F5E",
    "#A855F7",
    "#22C55E",
    "#EAB308",
    "#0EA5E9",
    "#F472B6",
    "#A3E635",
    "#34D399",
    "#FBBF24",
)


def _hsl_to_hex(hue: int, saturation: int, lightness: int) -> str:
    r, g, b = colorsys.hls_to_rgb(hue / 360, lightness / 100, saturation / 100)
    return "#{:02X}{:02X}{:02X}".format(round(r * 255), round(g * 255), round(b * 255))


def random_color(rng: random.Random | None = None) -> str:
    """A saturated mid-lightness colour (HSL s=60-89%, l=45-64%) as hex."""

    r = rng or random.Random()
    return _hsl_to_hex(r.randrange(360), 60 + r.randrange(30), 45 + r.randrange(20))


def pick_color(existing: Iterable[Tag], rng: random.Random | None = None) -> str:
    """Return the first palette colour no existing tag uses.

    Once the palette is exhausted a random colour is generated.
    """

    used = {t.color.upper() for t in existing if t.color}
    for c in TAG_COLORS:
        if c.upper() not in used:
            return c
    return random_color(rng)


# ---------------------------
# Service result shape
# ---------------------------


@dataclass(frozen=True, slots=True)
class CreateTagResult:
    """Result of an idempotent create: ``created=False`` means the name existed."""

    tag: Tag
    created: bool


__all__ = [
    "TAG_COLORS",
    "CreateTagResult",
    "NameValidation",
    "find_by_name",
    "normalize_name",
    "pick_color",
    "random_color",
    "require_valid_name",
    "validate_name",
]
