"""
Settings loader (``erp_config.loader``).

Responsibility
--------------
Reads ``defaults.yaml``, merges an optional override file over it section
by section, applies environment overrides and parses the result into
``erp_config.schema`` dataclasses.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key  -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from erp_config.schema import (
    CacheSettings,
    DatabaseSettings,
    ErpSettings,
    LedgerSettings,
    ProductionSettings,
    SequenceSettings,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
DATABASE_URL_ENV = "ERP_DATABASE_URL"

_SECTIONS: dict[str, type] = {
    "database": DatabaseSettings,
    "cache": CacheSettings,
    "ledger": LedgerSettings,
    "production": ProductionSettings,
    "sequences": SequenceSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file into a dict.  An empty file yields ``{}``.

    Raises:
        FileNotFoundError: if the path does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def merge_settings(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Shallow merge per section: override keys replace base keys."""
    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in base.items()}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def _parse_section(name: str, cls: type, data: dict[str, Any]) -> Any:
    known = {f.name: f for f in fields(cls)}
    unknown = set(data) - set(known)
    if unknown:
        raise ValueError(f"Unknown keys in '{name}' settings: {sorted(unknown)}")

    values: dict[str, Any] = {}
    for key, value in data.items():
        default = known[key].default
        if isinstance(default, Decimal):
            try:
                value = Decimal(str(value))
            except InvalidOperation:
                raise ValueError(f"{name}.{key} must be a decimal, got {value!r}") from None
        elif isinstance(default, bool):
            value = bool(value)
        elif isinstance(default, int):
            value = int(value)
        elif isinstance(default, str):
            value = str(value)
        values[key] = value
    return cls(**values)


def parse_settings(data: dict[str, Any]) -> ErpSettings:
    """Parse a merged settings dict into ErpSettings."""
    unknown = set(data) - set(_SECTIONS) - {"log_level"}
    if unknown:
        raise ValueError(f"Unknown settings sections: {sorted(unknown)}")

    sections = {
        name: _parse_section(name, cls, data.get(name) or {})
        for name, cls in _SECTIONS.items()
    }
    return ErpSettings(log_level=str(data.get("log_level", "INFO")), **sections)


def load_settings(
    path: Path | str | None = None,
    environ: dict[str, str] | None = None,
) -> ErpSettings:
    """
    Load settings: defaults, then the override file, then the environment.

    Args:
        path: Optional YAML override file.
        environ: Environment mapping; defaults to ``os.environ``.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        data = merge_settings(data, load_yaml_file(Path(path)))

    env = os.environ if environ is None else environ
    url = env.get(DATABASE_URL_ENV)
    if url:
        data = merge_settings(data, {"database": {"url": url}})

    return parse_settings(data)
