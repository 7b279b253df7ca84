"""Bounded retry with backoff for registry reads."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from .models import AuthorizedScope, PhoneKey, RegistryEntry
from .registry.store import RegistryReader, RegistryUnavailableError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently a registry read is retried."""

    attempts: int = 3
    backoff_seconds: float = 0.5
    max_backoff_seconds: float = 5.0

    def retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(max(1, self.attempts)),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=self.max_backoff_seconds),
            retry=retry_if_exception_type(RegistryUnavailableError),
            before_sleep=before_sleep_log(LOGGER, logging.WARNING),
            reraise=True,
        )


class RetryingRegistryReader:
    """Wrapper that retries unavailable-registry errors when reading a registry."""

    def __init__(self, reader: RegistryReader, policy: RetryPolicy | None = None) -> None:
        self._reader = reader
        self._policy = policy or RetryPolicy()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def lookup(self, phone: PhoneKey, area_code: str, scope: AuthorizedScope) -> Dict[str, RegistryEntry]:
        return self._policy.retrying()(self._reader.lookup, phone, area_code, scope)

    def is_listed(self, phone: PhoneKey, area_code: str, scope: AuthorizedScope) -> FrozenSet[str]:
        return frozenset(self.lookup(phone, area_code, scope))

    def __getattr__(self, item):  # pragma: no cover - simple delegation
        return getattr(self._reader, item)


__all__ = ["RetryPolicy", "RetryingRegistryReader"]
