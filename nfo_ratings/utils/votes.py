from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

_SUFFIX_RE = re.compile(r"^([0-9]+(?:\.[0-9]+)?)([KM])$", re.IGNORECASE)
_DIGITS_RE = re.compile(r"^[0-9]+$")

_SUFFIX_MULTIPLIERS = {
    "K": 1_000,
    "M": 1_000_000,
}


def normalize_vote_count(token: object) -> int | None:
    """
    Convert a displayed vote count into an integer.

    Accepts suffix-abbreviated counts ("125K", "1.2M"), plain digits ("12345")
    and comma-grouped digits ("1,234,567"). Suffix values are truncated, not
    rounded. Returns None when the token cannot be converted.
    """
    if token is None:
        return None
    raw = str(token).strip()
    if not raw:
        return None

    match = _SUFFIX_RE.match(raw)
    if match:
        number, suffix = match.groups()
        try:
            scaled = Decimal(number) * _SUFFIX_MULTIPLIERS[suffix.upper()]
        except InvalidOperation:
            return None
        return int(scaled)

    if _DIGITS_RE.match(raw):
        return int(raw)

    if "," in raw:
        stripped = raw.replace(",", "")
        if _DIGITS_RE.match(stripped):
            return int(stripped)

    return None
