"""
TrialflowConfig schema.

Frozen dataclasses for the runtime configuration.  YAML documents are
parsed into these types by the loader; bridges convert them into the
kernel's policy objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///trialflow.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_pre_ping: bool = True
    pool_recycle: int = 3600


@dataclass(frozen=True)
class SchedulingConfig:
    lookahead_weeks: int = 4

    def __post_init__(self) -> None:
        if self.lookahead_weeks < 1:
            raise ValueError("scheduling.lookahead_weeks must be at least 1")


@dataclass(frozen=True)
class PricingConfig:
    spread: Decimal = Decimal("5")
    tolerance: Decimal = Decimal("0")
    low_price_threshold: Decimal = Decimal("5")
    low_price_ceiling: Decimal = Decimal("5")


@dataclass(frozen=True)
class SettlementConfig:
    currency: str = "EUR"


@dataclass(frozen=True)
class SweepConfig:
    interval_seconds: int = 3600
    batch_limit: int | None = 500

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError("sweep.interval_seconds must be positive")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class TrialflowConfig:
    """The loaded configuration plus the identity of its source."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source: str | None = None
    checksum: str | None = None
