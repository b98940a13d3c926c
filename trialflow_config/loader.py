"""
Configuration Loader (``trialflow_config.loader``).

Responsibility
--------------
Loads a YAML document and parses it into the frozen dataclasses of
``trialflow_config.schema``.  Runtime callers go through
``trialflow_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown top-level sections raise ``ValueError``; a typo never silently
  falls back to a default.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from trialflow_config.schema import (
    DatabaseConfig,
    LoggingConfig,
    PricingConfig,
    SchedulingConfig,
    SettlementConfig,
    SweepConfig,
    TrialflowConfig,
)

_SECTIONS = frozenset(
    {"database", "scheduling", "pricing", "settlement", "sweep", "logging"}
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected a number, got {value!r}")
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name}: expected a number, got {value!r}") from None
    if not result.is_finite() or result < 0:
        raise ValueError(f"{name}: expected a non-negative number, got {value!r}")
    return result


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    return DatabaseConfig(
        url=str(data.get("url", DatabaseConfig.url)),
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 5)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_pre_ping=bool(data.get("pool_pre_ping", True)),
        pool_recycle=int(data.get("pool_recycle", 3600)),
    )


def parse_pricing(data: dict[str, Any]) -> PricingConfig:
    defaults = PricingConfig()
    return PricingConfig(
        **{
            name: parse_decimal(data.get(name, getattr(defaults, name)), f"pricing.{name}")
            for name in ("spread", "tolerance", "low_price_threshold", "low_price_ceiling")
        }
    )


def parse_sweep(data: dict[str, Any]) -> SweepConfig:
    limit = data.get("batch_limit", 500)
    return SweepConfig(
        interval_seconds=int(data.get("interval_seconds", 3600)),
        batch_limit=int(limit) if limit is not None else None,
    )


def parse_config(data: dict[str, Any], source: str | None = None) -> TrialflowConfig:
    """Build a TrialflowConfig from a parsed YAML document."""
    unknown = set(data) - _SECTIONS
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")

    return TrialflowConfig(
        database=parse_database(data.get("database") or {}),
        scheduling=SchedulingConfig(
            lookahead_weeks=int((data.get("scheduling") or {}).get("lookahead_weeks", 4))
        ),
        pricing=parse_pricing(data.get("pricing") or {}),
        settlement=SettlementConfig(
            currency=str((data.get("settlement") or {}).get("currency", "EUR")).upper()
        ),
        sweep=parse_sweep(data.get("sweep") or {}),
        logging=LoggingConfig(
            level=str((data.get("logging") or {}).get("level", "INFO")).upper()
        ),
        source=source,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
