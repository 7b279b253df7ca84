"""Phone number normalization into comparable :class:`PhoneKey` values."""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Optional

from .models import PhoneKey

_EXTENSION_RE = re.compile(r"\s*(?:ext\.?|extension|x|#)\s*\d+\s*$", re.IGNORECASE)
_ALLOWED_RE = re.compile(r"^[\d\s+().\-/]*$")
_TOLL_FREE_AREA_CODES = frozenset({"800", "833", "844", "855", "866", "877", "888"})


class RejectionReason(str, Enum):
    MISSING = "missing"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    INVALID_CHARACTERS = "invalid_characters"
    UNSUPPORTED_COUNTRY = "unsupported_country"
    INVALID_PREFIX = "invalid_prefix"


@dataclass(frozen=True, slots=True)
class NormalizationResult:
    """Outcome of normalizing one raw phone string."""

    original: str
    key: Optional[PhoneKey] = None
    reason: Optional[RejectionReason] = None

    @property
    def ok(self) -> bool:
        return self.key is not None


def _reject(original: str, reason: RejectionReason) -> NormalizationResult:
    return NormalizationResult(original=original, reason=reason)


def normalize_phone(raw: Any, *, country_code: str = "1") -> NormalizationResult:
    """Canonicalize ``raw`` into a ten digit domestic number.

    >>> normalize_phone("(801) 555-0100").key
    PhoneKey(digits='8015550100')
    >>> normalize_phone("+44 20 7946 0958").reason
    <RejectionReason.UNSUPPORTED_COUNTRY: 'unsupported_country'>
    """

    original = "" if raw is None else str(raw)
    text = original.strip()
    if not text:
        return _reject(original, RejectionReason.MISSING)

    text = _EXTENSION_RE.sub("", text)
    if not _ALLOWED_RE.match(text):
        return _reject(original, RejectionReason.INVALID_CHARACTERS)

    digits = re.sub(r"\D", "", text)
    if not digits:
        return _reject(original, RejectionReason.MISSING)

    if text.startswith("+") or digits.startswith("011"):
        international = digits[3:] if digits.startswith("011") else digits
        if not international.startswith(country_code):
            return _reject(original, RejectionReason.UNSUPPORTED_COUNTRY)
        digits = international[len(country_code):]
    elif len(digits) == 10 + len(country_code):
        if not digits.startswith(country_code):
            return _reject(original, RejectionReason.UNSUPPORTED_COUNTRY)
        digits = digits[len(country_code):]

    if len(digits) < 10:
        return _reject(original, RejectionReason.TOO_SHORT)
    if len(digits) > 10:
        return _reject(original, RejectionReason.TOO_LONG)

    # NANP: neither the area code nor the exchange may begin with 0 or 1.
    if digits[0] in "01" or digits[3] in "01":
        return _reject(original, RejectionReason.INVALID_PREFIX)

    return NormalizationResult(original=original, key=PhoneKey(digits))


def normalize_many(values: Iterable[Any]) -> List[NormalizationResult]:
    return [normalize_phone(value) for value in values]


def format_phone(key: PhoneKey, style: str = "dashed") -> str:
    """Format a normalized number for display."""

    if style == "parentheses":
        return f"({key.area_code}) {key.exchange}-{key.subscriber}"
    if style == "dots":
        return f"{key.area_code}.{key.exchange}.{key.subscriber}"
    if style == "dashed":
        return f"{key.area_code}-{key.exchange}-{key.subscriber}"
    raise ValueError(f"Unknown phone display style '{style}'")


def is_toll_free(key: PhoneKey) -> bool:
    return key.area_code in _TOLL_FREE_AREA_CODES


__all__ = [
    "NormalizationResult",
    "RejectionReason",
    "format_phone",
    "is_toll_free",
    "normalize_many",
    "normalize_phone",
]
