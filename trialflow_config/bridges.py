"""
Config -> Kernel Bridges.

Functions that convert TrialflowConfig sections into the kernel's pure
policy objects.  These live in trialflow_config (the producer) because the
kernel must NEVER import trialflow_config.

Usage:
    from trialflow_config import get_active_config
    from trialflow_config.bridges import price_policy, scheduling_policy

    config = get_active_config()
    orchestrator = SessionOrchestrator(
        factory,
        price_policy=price_policy(config),
        scheduling_policy=scheduling_policy(config),
    )
"""

from __future__ import annotations

from trialflow_config.schema import TrialflowConfig
from trialflow_kernel.domain.pricing import PricePolicy
from trialflow_kernel.domain.scheduling import SchedulingPolicy


def price_policy(config: TrialflowConfig) -> PricePolicy:
    pricing = config.pricing
    return PricePolicy(
        spread=pricing.spread,
        low_price_threshold=pricing.low_price_threshold,
        low_price_ceiling=pricing.low_price_ceiling,
        tolerance=pricing.tolerance,
    )


def scheduling_policy(config: TrialflowConfig) -> SchedulingPolicy:
    return SchedulingPolicy(lookahead_weeks=config.scheduling.lookahead_weeks)


def engine_kwargs(config: TrialflowConfig) -> dict:
    """Keyword arguments for ``init_engine_from_url``."""
    db = config.database
    return {
        "database_url": db.url,
        "echo": db.echo,
        "pool_size": db.pool_size,
        "max_overflow": db.max_overflow,
        "pool_pre_ping": db.pool_pre_ping,
        "pool_recycle": db.pool_recycle,
    }
