"""
fleet_config -- runtime configuration for the fleet ledger.

Responsibility:
    ``load_config()`` is the single way scripts and tests obtain settings:
    defaults, then an optional YAML file, then environment variables.

Architecture position:
    Sits beside ``fleet_kernel``.  The kernel MUST NEVER import from
    ``fleet_config``; callers read a ``LedgerConfig`` and hand its values
    to the services they construct.

Failure modes:
    - ``FileNotFoundError`` -- an explicitly named settings file is missing.
    - ``ValueError`` -- unknown setting, bad value, or failed validation.

Audit relevance:
    Every successful ``load_config()`` call emits a ``FLEET_CONFIG_TRACE``
    log entry with the settings checksum and sources.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from fleet_config.loader import (
    ENV_PREFIX,
    compute_checksum,
    env_overrides,
    load_yaml_file,
    parse_settings,
)
from fleet_config.schema import LedgerConfig
from fleet_kernel.logging_config import get_logger

__all__ = ["LedgerConfig", "load_config", "compute_checksum"]

_logger = get_logger("config")


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerConfig:
    """
    Build the effective configuration.

    Args:
        path: YAML settings file.  Defaults to ``$FLEET_LEDGER_CONFIG``;
            with neither set only defaults and the environment apply.
        environ: Environment mapping, ``os.environ`` by default.

    Returns:
        A validated, frozen ``LedgerConfig``.
    """
    env = os.environ if environ is None else environ
    config_path = path or env.get(f"{ENV_PREFIX}CONFIG")

    settings: dict = {}
    sources = ["defaults"]
    if config_path:
        settings.update(parse_settings(load_yaml_file(Path(config_path)), str(config_path)))
        sources.append(str(config_path))

    overrides = env_overrides(env)
    if overrides:
        settings.update(parse_settings(overrides, "environment"))
        sources.append("environment")

    config = LedgerConfig(**settings)

    _logger.info(
        "FLEET_CONFIG_TRACE",
        extra={
            "trace_type": "FLEET_CONFIG_TRACE",
            "checksum": compute_checksum(config),
            "sources": sources,
            "close_requires_settlement": config.close_requires_settlement,
        },
    )
    return config
