"""Strict conversion of parsed tabular rows into :class:`LeadRecord` objects."""
from __future__ import annotations

import logging
import math
import numbers
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .models import InvalidRecord, LeadRecord, RawRecord
from .normalizer import normalize_phone

LOGGER = logging.getLogger(__name__)

_FIELD_SYNONYMS: Mapping[str, Sequence[str]] = {
    "phone": ("phone", "phone_number", "primary_phone", "telephone", "mobile"),
    "name": ("name", "full_name"),
    "first_name": ("first_name", "firstname", "first"),
    "last_name": ("last_name", "lastname", "last"),
    "email": ("email", "email_address", "primary_email"),
    "address": ("address", "street", "street_address", "address1"),
    "city": ("city",),
    "state": ("state", "st", "province"),
    "zip_code": ("zip_code", "zip", "zipcode", "postal_code"),
}

_SYNONYM_LOOKUP: Dict[str, str] = {
    synonym: field_name for field_name, synonyms in _FIELD_SYNONYMS.items() for synonym in synonyms
}

_STATE_CODES: Mapping[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR", "california": "CA",
    "colorado": "CO", "connecticut": "CT", "delaware": "DE", "district of columbia": "DC",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID", "illinois": "IL",
    "indiana": "IN", "iowa": "IA", "kansas": "KS", "kentucky": "KY", "louisiana": "LA",
    "maine": "ME", "maryland": "MD", "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK", "oregon": "OR",
    "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC", "south dakota": "SD",
    "tennessee": "TN", "texas": "TX", "utah": "UT", "vermont": "VT", "virginia": "VA",
    "washington": "WA", "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}
_STATE_ABBREVIATIONS = frozenset(_STATE_CODES.values())


def _normalise_key(value: str) -> str:
    return str(value).strip().lower().replace(" ", "_").replace("-", "_")


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = str(value).strip()
    return text or None


def normalize_state(value: Optional[str]) -> Optional[str]:
    """Return the two letter code for a state name or code, ``None`` if unrecognised."""

    if not value:
        return None
    text = " ".join(value.replace(".", "").split())
    if text.upper() in _STATE_ABBREVIATIONS:
        return text.upper()
    return _STATE_CODES.get(text.lower())


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, numbers.Number))


def split_record(raw: RawRecord) -> Tuple[Dict[str, Optional[str]], Dict[str, str], Tuple[str, ...]]:
    """Split a raw row into known fields, string metadata, and dropped field names."""

    known: Dict[str, Optional[str]] = {}
    metadata: Dict[str, str] = {}
    dropped: List[str] = []

    for column, value in raw.items():
        if not column:
            continue
        if not _is_scalar(value):
            dropped.append(str(column))
            continue
        field_name = _SYNONYM_LOOKUP.get(_normalise_key(column))
        text = _clean_text(value)
        if field_name is not None:
            if known.get(field_name) is None:
                known[field_name] = text
            continue
        if text is not None:
            metadata[str(column)] = text

    if dropped:
        LOGGER.debug("Dropping non-scalar fields %s", dropped)
    return known, metadata, tuple(dropped)


def build_lead_record(index: int, raw: RawRecord) -> Union[LeadRecord, InvalidRecord]:
    """Normalize one raw row, returning either a lead or the reason it was rejected."""

    known, metadata, dropped = split_record(raw)
    raw_phone = known.get("phone") or ""
    result = normalize_phone(raw_phone)
    if not result.ok:
        return InvalidRecord(index=index, raw_phone=raw_phone, reason=result.reason.value)

    raw_state = known.get("state")
    state = normalize_state(raw_state)
    if raw_state and state is None:
        # Unrecognised states stay visible but never match a state registry.
        metadata = {**metadata, "state": raw_state}
        LOGGER.debug("Unrecognised state %r for record %s", raw_state, index)
    return LeadRecord(
        index=index,
        phone=result.key,
        raw_phone=raw_phone,
        name=known.get("name"),
        first_name=known.get("first_name"),
        last_name=known.get("last_name"),
        email=known.get("email"),
        address=known.get("address"),
        city=known.get("city"),
        state=state,
        zip_code=known.get("zip_code"),
        metadata=metadata,
        dropped_fields=dropped,
    )


__all__ = ["build_lead_record", "normalize_state", "split_record"]
