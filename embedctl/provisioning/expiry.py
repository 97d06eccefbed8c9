"""Parse human token lifetimes such as ``90m``, ``24h`` or ``7d``."""

from __future__ import annotations

import re

DEFAULT_EXPIRY = "24h"
DEFAULT_EXPIRY_S = 86_400

_EXPIRY_PATTERN = re.compile(r"^(\d+)([mhd])$")
_UNIT_SECONDS = {"m": 60, "h": 3_600, "d": 86_400}


def parse_expiry(text: str | None) -> int:
    """Convert a lifetime like ``2h`` into seconds.

    Anything that is not a whole number followed by ``m``, ``h`` or ``d``
    falls back to 24 hours rather than failing.

    Examples
    --------
    >>> parse_expiry("90m")
    5400
    >>> parse_expiry("soon")
    86400

    """
    match = _EXPIRY_PATTERN.match((text or "").strip())
    if match is None:
        return DEFAULT_EXPIRY_S
    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit]


def normalize_expiry(text: str | None) -> str:
    """Return the lifetime ``parse_expiry`` will honour, as text.

    Unrecognised input becomes :data:`DEFAULT_EXPIRY`, so what is shown to
    the user always matches the lifetime that was requested.

    Examples
    --------
    >>> normalize_expiry(" 2h ")
    '2h'
    >>> normalize_expiry("garbage")
    '24h'

    """
    candidate = (text or "").strip()
    if _EXPIRY_PATTERN.match(candidate) is None:
        return DEFAULT_EXPIRY
    return candidate


__all__ = ["DEFAULT_EXPIRY", "DEFAULT_EXPIRY_S", "normalize_expiry", "parse_expiry"]
