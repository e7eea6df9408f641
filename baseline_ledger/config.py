"""
Configuration Loader (``baseline_ledger.config``).

Responsibility
--------------
Builds the runtime ``LedgerConfig`` from an optional YAML file plus
environment overrides.  Consumed by the repair CLI and by any host
application that initialises the engine itself.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or wrongly typed values  -> ``ValueError``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

DEFAULT_DATABASE_URL = "sqlite:///baseline_ledger.db"

ENV_DATABASE_URL = "BASELINE_LEDGER_DATABASE_URL"
ENV_LOG_LEVEL = "BASELINE_LEDGER_LOG_LEVEL"


@dataclass(frozen=True)
class LedgerConfig:
    """Runtime settings for the ledger engine and repair job."""

    database_url: str = DEFAULT_DATABASE_URL
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    log_level: str = "INFO"
    repair_batch_size: int = 500

    @property
    def log_level_value(self) -> int:
        """Numeric ``logging`` level for ``log_level``."""
        level = logging.getLevelName(self.log_level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {self.log_level!r}")
        return level


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """Parse a ``LedgerConfig`` from a dict, rejecting unknown keys."""
    known = {f.name: f for f in fields(LedgerConfig)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ValueError(f"Unknown configuration keys: {unknown}")

    values: dict[str, Any] = {}
    for key, raw in data.items():
        default = known[key].default
        if isinstance(default, bool):
            if not isinstance(raw, bool):
                raise ValueError(f"{key} must be a boolean, got {raw!r}")
            values[key] = raw
        elif isinstance(default, int):
            if isinstance(raw, bool) or not isinstance(raw, int) or raw <= 0:
                raise ValueError(f"{key} must be a positive integer, got {raw!r}")
            values[key] = raw
        else:
            values[key] = str(raw)
    return LedgerConfig(**values)


def load_config(path: Path | str | None = None) -> LedgerConfig:
    """
    Load configuration from ``path`` (if given) and the environment.

    Environment overrides win over the file:
    ``BASELINE_LEDGER_DATABASE_URL`` (falling back to ``DATABASE_URL``)
    and ``BASELINE_LEDGER_LOG_LEVEL``.
    """
    data = load_yaml_file(Path(path)) if path is not None else {}
    config = parse_config(data)

    database_url = os.environ.get(ENV_DATABASE_URL) or os.environ.get("DATABASE_URL")
    if database_url:
        config = replace(config, database_url=database_url)

    log_level = os.environ.get(ENV_LOG_LEVEL)
    if log_level:
        config = replace(config, log_level=log_level)

    config.log_level_value  # raises ValueError on an unknown level name
    return config
