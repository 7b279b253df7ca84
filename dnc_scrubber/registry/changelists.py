"""Idempotent ingestion of registry change lists (additions and deletions)."""
from __future__ import annotations

import hashlib
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..models import (
    NATIONAL_SOURCE,
    ChangeList,
    ChangeListStatus,
    ChangeType,
    EntryFailure,
    PhoneKey,
    is_valid_source,
)
from ..normalizer import normalize_phone
from .store import RegistryStore

LOGGER = logging.getLogger(__name__)

EntryLike = Tuple[Union[PhoneKey, str], str]


class IngestRejection(str, Enum):
    UNKNOWN_CHANGE_TYPE = "unknown_change_type"
    EMPTY_AREA_CODES = "empty_area_codes"
    UNAUTHORIZED_AREA_CODE = "unauthorized_area_code"
    INVALID_SOURCE = "invalid_source"


class IngestStatus(str, Enum):
    APPLIED = "applied"
    FAILED = "failed"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"


@dataclass
class IngestOutcome:
    """Result of a single :meth:`ChangeListIngestor.ingest` call."""

    status: IngestStatus
    change_list: Optional[ChangeList] = None
    reason: Optional[IngestRejection] = None
    detail: str = ""
    existing_id: Optional[str] = None

    @property
    def failures(self) -> List[EntryFailure]:
        return list(self.change_list.failures) if self.change_list else []


@dataclass
class AreaCodeSubscription:
    area_code: str
    active: bool = True
    last_update_at: Optional[datetime] = None
    last_change_list_id: Optional[str] = None


@dataclass
class AreaCodeSubscriptions:
    """Area codes the registry operator is subscribed to, with update tracking."""

    subscriptions: Dict[str, AreaCodeSubscription] = field(default_factory=dict)

    @classmethod
    def of(cls, area_codes: Iterable[str]) -> "AreaCodeSubscriptions":
        return cls({code: AreaCodeSubscription(code) for code in area_codes})

    def is_active(self, area_code: str) -> bool:
        subscription = self.subscriptions.get(area_code)
        return bool(subscription and subscription.active)

    def active_codes(self) -> List[str]:
        return sorted(code for code, sub in self.subscriptions.items() if sub.active)

    def record_update(self, area_codes: Iterable[str], change_list_id: str, when: datetime) -> None:
        for code in area_codes:
            subscription = self.subscriptions.get(code)
            if subscription is not None:
                subscription.last_update_at = when
                subscription.last_change_list_id = change_list_id


def compute_fingerprint(
    change_type: str,
    source: str,
    area_codes: Iterable[str],
    file_date: date,
    entries: Sequence[EntryLike],
) -> str:
    """SHA-256 over the canonical content of a change list."""

    digest = hashlib.sha256()
    digest.update(f"{change_type}|{source}|{','.join(sorted(area_codes))}|{file_date.isoformat()}".encode())
    for phone, area_code in sorted((str(phone), str(code)) for phone, code in entries):
        digest.update(f"\n{phone},{area_code}".encode())
    return digest.hexdigest()


def parse_change_list_lines(lines: Iterable[str], area_codes: Iterable[str] = ()) -> List[Tuple[PhoneKey, str]]:
    """Extract ``(PhoneKey, area_code)`` entries from an authority file.

    Only the first comma separated column is read. Lines that do not hold a
    valid number, or whose area code is outside ``area_codes`` (when given),
    are skipped.
    """

    allowed = set(area_codes)
    entries: List[Tuple[PhoneKey, str]] = []
    for line in lines:
        text = str(line).strip()
        if not text:
            continue
        result = normalize_phone(text.split(",", 1)[0])
        if not result.ok:
            continue
        if allowed and result.key.area_code not in allowed:
            continue
        entries.append((result.key, result.key.area_code))
    return entries


def _effective_at(file_date: date) -> datetime:
    return datetime.combine(file_date, time.min, tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChangeListIngestor:
    """Applies change lists to a :class:`RegistryStore` exactly once per fingerprint."""

    def __init__(
        self,
        store: RegistryStore,
        subscriptions: AreaCodeSubscriptions,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._subscriptions = subscriptions
        self._clock = clock
        self._ledger_lock = threading.Lock()
        self._by_id: Dict[str, ChangeList] = {}
        self._by_fingerprint: Dict[str, ChangeList] = {}

    @property
    def subscriptions(self) -> AreaCodeSubscriptions:
        return self._subscriptions

    def get(self, change_list_id: str) -> ChangeList:
        return self._by_id[change_list_id]

    def list_change_lists(
        self,
        change_type: Optional[ChangeType] = None,
        status: Optional[ChangeListStatus] = None,
    ) -> List[ChangeList]:
        with self._ledger_lock:
            lists = list(self._by_id.values())
        return [
            item
            for item in sorted(lists, key=lambda cl: cl.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
            if (change_type is None or item.change_type == change_type)
            and (status is None or item.status == status)
        ]

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------
    def ingest(
        self,
        change_type: Union[ChangeType, str],
        area_codes: Iterable[str],
        file_date: date,
        fingerprint: Optional[str],
        entries: Iterable[EntryLike],
        *,
        source: str = NATIONAL_SOURCE,
        submitted_by: Optional[str] = None,
        retry_of: Optional[str] = None,
    ) -> IngestOutcome:
        """Validate, register, and apply a change list."""

        codes = frozenset(str(code).strip() for code in area_codes)
        entry_list = list(entries)

        try:
            kind = ChangeType(change_type)
        except ValueError:
            return self._rejected(IngestRejection.UNKNOWN_CHANGE_TYPE, f"Unknown change type '{change_type}'")
        if not codes:
            return self._rejected(IngestRejection.EMPTY_AREA_CODES, "area_codes must be a non-empty collection")
        unauthorized = sorted(code for code in codes if not self._subscriptions.is_active(code))
        if unauthorized:
            return self._rejected(
                IngestRejection.UNAUTHORIZED_AREA_CODE,
                f"Invalid or inactive area codes: {', '.join(unauthorized)}",
            )
        if not is_valid_source(source):
            return self._rejected(IngestRejection.INVALID_SOURCE, f"Unknown registry source '{source}'")

        if not fingerprint:
            fingerprint = compute_fingerprint(kind.value, source, codes, file_date, entry_list)

        with self._ledger_lock:
            existing = self._by_fingerprint.get(fingerprint)
            if existing is not None:
                LOGGER.info("Change list with fingerprint %s already registered as %s", fingerprint, existing.id)
                return IngestOutcome(
                    status=IngestStatus.DUPLICATE,
                    change_list=existing,
                    existing_id=existing.id,
                    detail="This change list has already been submitted",
                )
            change_list = ChangeList(
                id=uuid.uuid4().hex,
                change_type=kind,
                source=source,
                file_date=file_date,
                area_codes=codes,
                fingerprint=fingerprint,
                submitted_by=submitted_by,
                retry_of=retry_of,
                created_at=self._clock(),
                total_records=len(entry_list),
            )
            self._by_id[change_list.id] = change_list
            self._by_fingerprint[fingerprint] = change_list

        self._apply(change_list, entry_list)
        status = IngestStatus.APPLIED if change_list.status == ChangeListStatus.COMPLETED else IngestStatus.FAILED
        return IngestOutcome(status=status, change_list=change_list, detail=change_list.error_message or "")

    def retry_failed(self, change_list_id: str, *, submitted_by: Optional[str] = None) -> IngestOutcome:
        """Re-submit only the failed entries of a failed change list as a new change list."""

        original = self.get(change_list_id)
        if original.status != ChangeListStatus.FAILED:
            raise ValueError(f"Only failed change lists can be retried (status is {original.status.value})")

        failed = [(failure.phone, failure.area_code) for failure in original.failures]
        with self._ledger_lock:
            attempt = 1 + sum(1 for item in self._by_id.values() if item.retry_of == original.id)
        return self.ingest(
            original.change_type,
            original.area_codes,
            original.file_date,
            f"{original.fingerprint}:retry:{attempt}",
            failed,
            source=original.source,
            submitted_by=submitted_by or original.submitted_by,
            retry_of=original.id,
        )

    def _rejected(self, reason: IngestRejection, detail: str) -> IngestOutcome:
        LOGGER.warning("Rejected change list: %s", detail)
        return IngestOutcome(status=IngestStatus.REJECTED, reason=reason, detail=detail)

    def _apply(self, change_list: ChangeList, entries: List[EntryLike]) -> None:
        change_list.transition(ChangeListStatus.PROCESSING)
        change_list.started_at = self._clock()
        effective_at = _effective_at(change_list.file_date)
        LOGGER.info(
            "Processing %s change list %s (%s entries, area codes %s)",
            change_list.change_type.value,
            change_list.id,
            len(entries),
            ",".join(sorted(change_list.area_codes)),
        )

        position = 0
        try:
            with self._store.update(change_list.area_codes, change_list_id=change_list.id) as update:
                for position, (phone, area_code) in enumerate(entries):
                    failure = self._check_entry(change_list, phone, area_code)
                    if failure is not None:
                        change_list.failures.append(failure)
                        change_list.failed_records += 1
                        continue
                    key = phone if isinstance(phone, PhoneKey) else normalize_phone(phone).key
                    if change_list.change_type == ChangeType.ADDITIONS:
                        applied = update.add(key, change_list.source, area_code, effective_at)
                    else:
                        applied = update.remove(key, change_list.source, area_code, effective_at)
                    if applied:
                        change_list.processed_records += 1
                    else:
                        change_list.skipped_records += 1
                position = len(entries)
        except Exception as exc:
            LOGGER.exception("Change list %s failed while applying entries", change_list.id)
            for phone, area_code in entries[position:]:
                change_list.failures.append(EntryFailure(str(phone), str(area_code), "not_applied"))
                change_list.failed_records += 1
            change_list.error_message = str(exc) or exc.__class__.__name__

        change_list.completed_at = self._clock()
        if change_list.failures or change_list.error_message:
            if not change_list.error_message:
                change_list.error_message = f"{change_list.failed_records} entries could not be applied"
            change_list.transition(ChangeListStatus.FAILED)
            LOGGER.warning("Change list %s failed: %s", change_list.id, change_list.error_message)
            return

        change_list.transition(ChangeListStatus.COMPLETED)
        self._subscriptions.record_update(change_list.area_codes, change_list.id, change_list.completed_at)
        LOGGER.info(
            "Change list %s completed: %s processed, %s skipped",
            change_list.id,
            change_list.processed_records,
            change_list.skipped_records,
        )

    @staticmethod
    def _check_entry(change_list: ChangeList, phone: Union[PhoneKey, str], area_code: str) -> Optional[EntryFailure]:
        if isinstance(phone, PhoneKey):
            key = phone
        else:
            result = normalize_phone(phone)
            if not result.ok:
                return EntryFailure(str(phone), str(area_code), f"invalid_phone:{result.reason.value}")
            key = result.key
        if area_code not in change_list.area_codes:
            return EntryFailure(str(key), str(area_code), "outside_change_list")
        if key.area_code != area_code:
            return EntryFailure(str(key), str(area_code), "area_code_mismatch")
        return None


__all__ = [
    "AreaCodeSubscription",
    "AreaCodeSubscriptions",
    "ChangeListIngestor",
    "IngestOutcome",
    "IngestRejection",
    "IngestStatus",
    "compute_fingerprint",
    "parse_change_list_lines",
]
