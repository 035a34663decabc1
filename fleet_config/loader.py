"""
Configuration Loader (``fleet_config.loader``).

Responsibility
--------------
Reads the optional YAML settings file, applies environment overrides and
coerces every value to the type declared on ``LedgerConfig``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key, non-mapping document or uncoercible value  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from fleet_config.schema import LedgerConfig

ENV_PREFIX = "FLEET_LEDGER_"

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML settings file.

    Returns:
        The top-level mapping (empty for an empty file).

    Raises:
        FileNotFoundError: the file does not exist.
        ValueError: the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping of settings, got {type(data).__name__}")
    return data


def _coerce(name: str, kind: str, value: Any) -> Any:
    if kind == "bool":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"{name}: expected a boolean, got {value!r}")
    if kind == "int":
        if isinstance(value, bool):
            raise ValueError(f"{name}: expected an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{name}: expected an integer, got {value!r}") from exc
    if value is None:
        raise ValueError(f"{name}: expected a string, got null")
    return str(value)


def _field_kinds() -> dict[str, str]:
    # Annotations are strings under ``from __future__ import annotations``
    return {f.name: str(f.type) for f in fields(LedgerConfig)}


def parse_settings(raw: Mapping[str, Any], source: str) -> dict[str, Any]:
    """Validate keys and coerce values of one settings source."""
    kinds = _field_kinds()
    unknown = sorted(set(raw) - set(kinds))
    if unknown:
        raise ValueError(f"{source}: unknown setting(s): {', '.join(unknown)}")
    return {key: _coerce(key, kinds[key], value) for key, value in raw.items()}


def env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    """
    Settings taken from the environment.

    ``DATABASE_URL`` is honoured for compatibility with hosting platforms;
    ``FLEET_LEDGER_DATABASE_URL`` wins when both are set.  Other
    ``FLEET_LEDGER_*`` variables map to the lower-cased setting name.
    """
    overrides: dict[str, str] = {}
    if environ.get("DATABASE_URL"):
        overrides["database_url"] = environ["DATABASE_URL"]
    for key, value in environ.items():
        if key.startswith(ENV_PREFIX) and key != f"{ENV_PREFIX}CONFIG":
            overrides[key[len(ENV_PREFIX):].lower()] = value
    return overrides


def compute_checksum(config: LedgerConfig) -> str:
    """Deterministic SHA-256 over the public settings."""
    canonical = json.dumps(config.public_dict(), sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
