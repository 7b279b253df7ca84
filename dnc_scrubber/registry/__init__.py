"""Registry storage and change-list ingestion."""

from .changelists import (
    AreaCodeSubscription,
    AreaCodeSubscriptions,
    ChangeListIngestor,
    IngestOutcome,
    IngestRejection,
    IngestStatus,
    compute_fingerprint,
    parse_change_list_lines,
)
from .store import RegistryReader, RegistrySnapshot, RegistryStore, RegistryUnavailableError, RegistryUpdate

__all__ = [
    "AreaCodeSubscription",
    "AreaCodeSubscriptions",
    "ChangeListIngestor",
    "IngestOutcome",
    "IngestRejection",
    "IngestStatus",
    "RegistryReader",
    "RegistrySnapshot",
    "RegistryStore",
    "RegistryUnavailableError",
    "RegistryUpdate",
    "compute_fingerprint",
    "parse_change_list_lines",
]
