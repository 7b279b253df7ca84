"""Versioned, copy-on-write registry of blocked and flagged numbers."""
from __future__ import annotations

import itertools
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Protocol, Tuple

from ..models import LITIGATOR_SOURCE, AuthorizedScope, PhoneKey, RegistryEntry

LOGGER = logging.getLogger(__name__)

_EntryKey = Tuple[PhoneKey, str]


class RegistryUnavailableError(RuntimeError):
    """Raised when the registry cannot currently serve reads or writes."""


class RegistryReader(Protocol):
    """Read interface used by the risk scorer."""

    def lookup(
        self, phone: PhoneKey, area_code: str, scope: AuthorizedScope
    ) -> Mapping[str, RegistryEntry]:  # pragma: no cover - runtime protocol
        """Return active entries for ``phone`` keyed by source, limited to ``scope``.

        Litigator entries are returned whatever the scope.
        """

    def is_listed(
        self, phone: PhoneKey, area_code: str, scope: AuthorizedScope
    ) -> FrozenSet[str]:  # pragma: no cover - runtime protocol
        """Return the sources with an active entry for ``phone`` visible to ``scope``."""


class RegistrySnapshot:
    """Immutable view of the registry at one version.

    ``_entries`` keeps every entry ever created (removed ones included) while
    ``_active`` indexes the currently active entry id per phone and source.
    """

    __slots__ = ("version", "_entries", "_active", "_history")

    def __init__(
        self,
        version: int = 0,
        entries: Optional[Dict[int, RegistryEntry]] = None,
        active: Optional[Dict[PhoneKey, Dict[str, int]]] = None,
        history: Optional[Dict[PhoneKey, Tuple[int, ...]]] = None,
    ) -> None:
        self.version = version
        self._entries = entries or {}
        self._active = active or {}
        self._history = history or {}

    def lookup(self, phone: PhoneKey, area_code: str, scope: AuthorizedScope) -> Dict[str, RegistryEntry]:
        """Active entries for ``phone`` within ``scope``. Litigator entries are never gated."""

        sources = self._active.get(phone)
        if not sources:
            return {}
        return {
            source: self._entries[entry_id]
            for source, entry_id in sources.items()
            if source == LITIGATOR_SOURCE or scope.permits(area_code, source)
        }

    def is_listed(self, phone: PhoneKey, area_code: str, scope: AuthorizedScope) -> FrozenSet[str]:
        return frozenset(self.lookup(phone, area_code, scope))

    def active_entry(self, phone: PhoneKey, source: str) -> Optional[RegistryEntry]:
        entry_id = self._active.get(phone, {}).get(source)
        return self._entries[entry_id] if entry_id is not None else None

    def history(self, phone: PhoneKey) -> List[RegistryEntry]:
        return [self._entries[entry_id] for entry_id in self._history.get(phone, ())]

    def count_active(self, source: Optional[str] = None) -> int:
        return sum(
            1
            for sources in self._active.values()
            for entry_source in sources
            if source is None or entry_source == source
        )

    def __len__(self) -> int:
        return len(self._entries)

    def with_changes(self, changes: Iterable[RegistryEntry]) -> "RegistrySnapshot":
        """Return the next version with ``changes`` applied on top of this one."""

        entries = dict(self._entries)
        active = dict(self._active)
        history = dict(self._history)

        for entry in changes:
            is_new = entry.entry_id not in entries
            entries[entry.entry_id] = entry
            sources = dict(active.get(entry.phone, {}))
            if entry.active:
                sources[entry.source] = entry.entry_id
            elif sources.get(entry.source) == entry.entry_id:
                del sources[entry.source]
            if sources:
                active[entry.phone] = sources
            else:
                active.pop(entry.phone, None)
            if is_new:
                history[entry.phone] = history.get(entry.phone, ()) + (entry.entry_id,)

        return RegistrySnapshot(self.version + 1, entries, active, history)


class RegistryUpdate:
    """Pending changes collected while a writer holds its area-code locks."""

    def __init__(self, store: "RegistryStore", area_codes: FrozenSet[str], change_list_id: Optional[str]) -> None:
        self._store = store
        self.area_codes = area_codes
        self.change_list_id = change_list_id
        self._pending: Dict[_EntryKey, RegistryEntry] = {}

    @property
    def pending(self) -> List[RegistryEntry]:
        return list(self._pending.values())

    def _current(self, phone: PhoneKey, source: str) -> Optional[RegistryEntry]:
        key = (phone, source)
        if key in self._pending:
            entry = self._pending[key]
            return entry if entry.active else None
        return self._store.snapshot().active_entry(phone, source)

    def _check_area_code(self, phone: PhoneKey, area_code: str) -> None:
        if area_code not in self.area_codes:
            raise ValueError(f"Area code {area_code} is not locked by this update")
        if phone.area_code != area_code:
            raise ValueError(f"Phone {phone} does not belong to area code {area_code}")

    def add(self, phone: PhoneKey, source: str, area_code: str, added_at: datetime) -> bool:
        """Create an active entry unless one already exists. Returns ``True`` if applied."""

        self._check_area_code(phone, area_code)
        if self._current(phone, source) is not None:
            return False
        self._pending[(phone, source)] = RegistryEntry(
            entry_id=self._store._next_entry_id(),
            phone=phone,
            source=source,
            area_code=area_code,
            added_at=added_at,
            added_by=self.change_list_id,
        )
        return True

    def remove(self, phone: PhoneKey, source: str, area_code: str, removed_at: datetime) -> bool:
        """Soft-remove the active entry if there is one. Returns ``True`` if applied."""

        self._check_area_code(phone, area_code)
        entry = self._current(phone, source)
        if entry is None:
            return False
        self._pending[(phone, source)] = RegistryEntry(
            entry_id=entry.entry_id,
            phone=entry.phone,
            source=entry.source,
            area_code=entry.area_code,
            added_at=entry.added_at,
            removed_at=removed_at,
            added_by=entry.added_by,
            removed_by=self.change_list_id,
        )
        return True


class RegistryStore:
    """Authoritative registry shared by scorers (readers) and ingestion (writers).

    Readers always see a complete snapshot. Writers are serialised per area
    code and publish a new snapshot when their update block exits.
    """

    def __init__(self, snapshot: Optional[RegistrySnapshot] = None) -> None:
        self._snapshot = snapshot or RegistrySnapshot()
        self._commit_lock = threading.Lock()
        self._locks_guard = threading.Lock()
        self._area_locks: Dict[str, threading.Lock] = {}
        self._ids = itertools.count(max(self._snapshot._entries, default=0) + 1)
        self._available = True

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------
    @property
    def available(self) -> bool:
        return self._available

    def set_available(self, available: bool) -> None:
        LOGGER.info("Registry store marked %s", "available" if available else "unavailable")
        self._available = available

    def _check_available(self) -> None:
        if not self._available:
            raise RegistryUnavailableError("Registry store is unavailable")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def snapshot(self) -> RegistrySnapshot:
        self._check_available()
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def lookup(self, phone: PhoneKey, area_code: str, scope: AuthorizedScope) -> Dict[str, RegistryEntry]:
        return self.snapshot().lookup(phone, area_code, scope)

    def is_listed(self, phone: PhoneKey, area_code: str, scope: AuthorizedScope) -> FrozenSet[str]:
        return self.snapshot().is_listed(phone, area_code, scope)

    def history(self, phone: PhoneKey) -> List[RegistryEntry]:
        return self.snapshot().history(phone)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def _area_lock(self, area_code: str) -> threading.Lock:
        with self._locks_guard:
            return self._area_locks.setdefault(area_code, threading.Lock())

    def _next_entry_id(self) -> int:
        with self._locks_guard:
            return next(self._ids)

    @contextmanager
    def update(self, area_codes: Iterable[str], *, change_list_id: Optional[str] = None) -> Iterator[RegistryUpdate]:
        """Collect changes for ``area_codes`` and publish them atomically on exit.

        Changes recorded before an exception are still published.
        """

        self._check_available()
        codes = frozenset(area_codes)
        locks = [self._area_lock(code) for code in sorted(codes)]
        for lock in locks:
            lock.acquire()
        pending = RegistryUpdate(self, codes, change_list_id)
        try:
            yield pending
        finally:
            try:
                if pending.pending:
                    self._commit(pending.pending)
            finally:
                for lock in reversed(locks):
                    lock.release()

    def _commit(self, changes: List[RegistryEntry]) -> None:
        with self._commit_lock:
            self._snapshot = self._snapshot.with_changes(changes)
        LOGGER.debug("Published registry version %s with %s changes", self._snapshot.version, len(changes))


__all__ = [
    "RegistryReader",
    "RegistrySnapshot",
    "RegistryStore",
    "RegistryUnavailableError",
    "RegistryUpdate",
]
