"""Factory helpers for constructing pipeline components from configuration."""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from .config import ConfigurationError, iter_change_list_configs, section
from .ingestion.loaders import load_change_list_entries
from .models import AuthorizedScope, is_valid_source
from .orchestrator import ScrubOrchestrator
from .registry import AreaCodeSubscriptions, ChangeListIngestor, IngestStatus, RegistryStore
from .resilience import RetryPolicy
from .scoring import ScoringSettings

LOGGER = logging.getLogger(__name__)


def _area_codes(values: Any, where: str) -> frozenset:
    if values is None:
        return frozenset()
    if isinstance(values, (str, int)):
        values = [values]
    codes = frozenset(str(value).strip() for value in values)
    invalid = sorted(code for code in codes if len(code) != 3 or not code.isdigit())
    if invalid:
        raise ConfigurationError(f"Invalid area codes in '{where}': {', '.join(invalid)}")
    return codes


def _as_date(value: Any, where: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ConfigurationError(f"'{where}' must be an ISO date, got {value!r}") from exc


def build_scope(config: Mapping[str, Any]) -> AuthorizedScope:
    """Build the caller's :class:`AuthorizedScope` from the ``scope`` section."""

    scope_cfg = section(config, "scope")
    kwargs: Dict[str, Any] = {"area_codes": _area_codes(scope_cfg.get("area_codes"), "scope.area_codes")}

    if "sources" in scope_cfg:
        sources = frozenset(str(source) for source in scope_cfg["sources"] or [])
        unknown = sorted(source for source in sources if not is_valid_source(source))
        if unknown:
            raise ConfigurationError(f"Unknown registry sources in 'scope.sources': {', '.join(unknown)}")
        kwargs["sources"] = sources

    max_records = scope_cfg.get("max_records")
    if max_records is not None:
        try:
            kwargs["max_records"] = int(max_records)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError("'scope.max_records' must be an integer") from exc

    return AuthorizedScope(**kwargs)


def build_scoring_settings(config: Mapping[str, Any]) -> ScoringSettings:
    scoring_cfg = section(config, "scoring")
    defaults = ScoringSettings()
    try:
        return ScoringSettings(
            national_weight=int(scoring_cfg.get("national_weight", defaults.national_weight)),
            state_weight=int(scoring_cfg.get("state_weight", defaults.state_weight)),
            recency_weight=int(scoring_cfg.get("recency_weight", defaults.recency_weight)),
            recency_window=timedelta(
                days=float(scoring_cfg.get("recency_window_days", defaults.recency_window.days))
            ),
            caution_threshold=int(scoring_cfg.get("caution_threshold", defaults.caution_threshold)),
            blocked_threshold=int(scoring_cfg.get("blocked_threshold", defaults.blocked_threshold)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid scoring configuration: {exc}") from exc


def build_retry_policy(config: Mapping[str, Any]) -> RetryPolicy:
    orchestrator_cfg = section(config, "orchestrator")
    defaults = RetryPolicy()
    try:
        return RetryPolicy(
            attempts=int(orchestrator_cfg.get("retry_attempts", defaults.attempts)),
            backoff_seconds=float(orchestrator_cfg.get("retry_backoff_seconds", defaults.backoff_seconds)),
            max_backoff_seconds=float(
                orchestrator_cfg.get("retry_max_backoff_seconds", defaults.max_backoff_seconds)
            ),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid retry configuration: {exc}") from exc


def build_registry(config: Mapping[str, Any]) -> Tuple[RegistryStore, ChangeListIngestor]:
    """Create the registry store and apply every configured change-list file.

    Subscriptions default to the scope's area codes. Change-list paths are
    resolved relative to the configuration file.
    """

    registry_cfg = section(config, "registry")
    if "subscriptions" in registry_cfg:
        subscribed = _area_codes(registry_cfg["subscriptions"], "registry.subscriptions")
    else:
        subscribed = _area_codes(section(config, "scope").get("area_codes"), "scope.area_codes")

    store = RegistryStore()
    ingestor = ChangeListIngestor(store, AreaCodeSubscriptions.of(sorted(subscribed)))
    base_dir = Path(config.get("_base_dir", "."))

    for index, item in enumerate(iter_change_list_configs(config)):
        where = f"registry.change_lists[{index}]"
        if not item.get("path"):
            raise ConfigurationError(f"'{where}' is missing required 'path' field")
        path = Path(item["path"])
        if not path.is_absolute():
            path = base_dir / path
        if not path.exists():
            raise ConfigurationError(f"Change list file '{path}' was not found")

        area_codes = _area_codes(item.get("area_codes", sorted(subscribed)), f"{where}.area_codes")
        entries = load_change_list_entries(path, area_codes)
        outcome = ingestor.ingest(
            item.get("change_type", "additions"),
            area_codes,
            _as_date(item.get("file_date", date.today()), f"{where}.file_date"),
            item.get("fingerprint"),
            entries,
            source=str(item.get("source", "national")),
            submitted_by=item.get("submitted_by"),
        )
        if outcome.status == IngestStatus.REJECTED:
            raise ConfigurationError(f"Change list '{path}' was rejected: {outcome.detail}")
        if outcome.status == IngestStatus.FAILED:
            LOGGER.warning("Change list '%s' was only partially applied: %s", path, outcome.detail)
        else:
            LOGGER.info("Change list '%s': %s", path, outcome.status.value)

    return store, ingestor


def build_orchestrator(
    config: Mapping[str, Any],
    store: RegistryStore,
    *,
    max_workers: Optional[int] = None,
) -> ScrubOrchestrator:
    orchestrator_cfg = section(config, "orchestrator")
    workers = max_workers if max_workers is not None else orchestrator_cfg.get("max_workers")
    try:
        return ScrubOrchestrator(
            store,
            scoring=build_scoring_settings(config),
            retry_policy=build_retry_policy(config),
            max_workers=int(workers) if workers is not None else None,
            max_attempts=int(orchestrator_cfg.get("max_attempts", 3)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid orchestrator configuration: {exc}") from exc


__all__ = [
    "build_orchestrator",
    "build_registry",
    "build_retry_policy",
    "build_scope",
    "build_scoring_settings",
]
