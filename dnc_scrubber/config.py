"""Configuration helpers for the scrub pipeline."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping

import yaml

LOGGER = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when configuration files are missing or malformed."""


_SUPPORTED_EXTENSIONS = {".json", ".yaml", ".yml"}
_KNOWN_SECTIONS = {"scope", "scoring", "orchestrator", "registry"}


def load_configuration(path: str | Path) -> Dict[str, Any]:
    """Load configuration data from a JSON or YAML file.

    The returned mapping carries the directory of the file under
    ``"_base_dir"`` so relative change-list paths can be resolved.
    """

    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file '{file_path}' was not found")

    if file_path.suffix.lower() not in _SUPPORTED_EXTENSIONS:
        raise ConfigurationError(
            f"Unsupported configuration format '{file_path.suffix}'. Supported extensions: {sorted(_SUPPORTED_EXTENSIONS)}"
        )

    text = file_path.read_text(encoding="utf-8")
    try:
        if file_path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Could not parse configuration file '{file_path}': {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file '{file_path}' must contain a mapping at the top level")

    for section in sorted(set(data) - _KNOWN_SECTIONS):
        LOGGER.warning("Ignoring unknown configuration section '%s'", section)

    data["_base_dir"] = str(file_path.resolve().parent)
    return data


def section(config: Mapping[str, Any], name: str) -> Dict[str, Any]:
    """Return a configuration section, defaulting to an empty mapping."""

    value = config.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Configuration section '{name}' must be a mapping")
    return dict(value)


def iter_change_list_configs(config: Mapping[str, Any]) -> Iterable[Dict[str, Any]]:
    change_lists = section(config, "registry").get("change_lists") or []
    if not isinstance(change_lists, list):
        raise ConfigurationError("'registry.change_lists' must be a list")
    for item in change_lists:
        if not isinstance(item, Mapping):
            raise ConfigurationError("Each change list entry must be a mapping")
        if item.get("enabled", True):
            yield dict(item)
        else:
            LOGGER.debug("Skipping disabled change list %s", item.get("path"))


__all__ = ["ConfigurationError", "iter_change_list_configs", "load_configuration", "section"]
