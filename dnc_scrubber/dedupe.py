"""Utility helpers for collapsing leads that share a phone number."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Container, Dict, Iterable, List, Optional

from .models import LeadRecord, PhoneKey


@dataclass(slots=True)
class DuplicateInfo:
    """A record merged away in favour of ``kept_index``."""

    index: int
    phone: PhoneKey
    kept_index: int


@dataclass
class DuplicateResolution:
    """Unique leads for a batch plus the bookkeeping of what was merged."""

    records: List[LeadRecord] = field(default_factory=list)
    duplicates: List[DuplicateInfo] = field(default_factory=list)

    @property
    def duplicates_removed(self) -> int:
        return len(self.duplicates)


def _representative(group: List[LeadRecord]) -> LeadRecord:
    # Most complete record wins; the earliest input index breaks ties.
    return max(group, key=lambda record: (record.completeness(), -record.index))


def resolve_duplicates(
    records: Iterable[LeadRecord],
    existing_phones: Optional[Container[PhoneKey]] = None,
) -> DuplicateResolution:
    """Collapse records with the same :class:`PhoneKey` into one, deterministically.

    Records are grouped in input-index order regardless of the order they are
    supplied in. Phones found in ``existing_phones`` are flagged as already
    existing but are never dropped.
    """

    groups: Dict[PhoneKey, List[LeadRecord]] = {}
    ordered_keys: List[PhoneKey] = []

    for record in sorted(records, key=lambda item: item.index):
        if record.phone not in groups:
            groups[record.phone] = [record]
            ordered_keys.append(record.phone)
        else:
            groups[record.phone].append(record)

    resolution = DuplicateResolution()
    for key in ordered_keys:
        group = groups[key]
        chosen = _representative(group)
        merged = tuple(record.index for record in group if record is not chosen)
        changes = {}
        if merged:
            changes["merged_indices"] = merged
        if existing_phones is not None and key in existing_phones:
            changes["already_exists"] = True
        resolution.records.append(replace(chosen, **changes) if changes else chosen)
        resolution.duplicates.extend(
            DuplicateInfo(index=index, phone=key, kept_index=chosen.index) for index in merged
        )

    return resolution


__all__ = ["DuplicateInfo", "DuplicateResolution", "resolve_duplicates"]
