#!/usr/bin/env python3
"""
Run the purchase-deadline sweep.

Usage:
    python scripts/run_sweeper.py --once
    python scripts/run_sweeper.py --config prod.yaml
    python scripts/run_sweeper.py --database-url postgresql://... --interval 600

Without ``--once`` the sweep runs every ``sweep.interval_seconds`` until
interrupted (Ctrl-C / SIGTERM).
"""

import argparse
import signal
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from trialflow_batch.services.executor import SweepExecutor
from trialflow_batch.services.scheduler import SweepScheduler
from trialflow_batch.tasks.base import TaskRegistry
from trialflow_batch.tasks.deadline_tasks import ExpiredPurchaseDeadlineTask
from trialflow_config import get_active_config
from trialflow_config.bridges import engine_kwargs, price_policy, scheduling_policy
from trialflow_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from trialflow_kernel.domain.clock import SystemClock
from trialflow_kernel.logging_config import configure_logging, get_logger
from trialflow_services.session_orchestrator import SessionOrchestrator

logger = get_logger("scripts.run_sweeper")


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Cancel test sessions whose scheduled purchase day has passed.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML configuration file (default: $TRIALFLOW_CONFIG or packaged defaults).",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override database.url from the configuration.",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Override sweep.interval_seconds.",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before sweeping.",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    config = get_active_config(args.config)
    configure_logging(level=config.logging.level)

    db_kwargs = engine_kwargs(config)
    if args.database_url:
        db_kwargs["database_url"] = args.database_url
    init_engine_from_url(**db_kwargs)
    if args.create_tables:
        create_tables()

    factory = get_session_factory()
    clock = SystemClock()
    orchestrator = SessionOrchestrator(
        factory,
        clock=clock,
        price_policy=price_policy(config),
        scheduling_policy=scheduling_policy(config),
        currency=config.settlement.currency,
    )

    registry = TaskRegistry()
    task = ExpiredPurchaseDeadlineTask(
        orchestrator.build_engine,
        batch_limit=config.sweep.batch_limit,
    )
    registry.register(task)
    executor = SweepExecutor(factory, registry, clock=clock, publish=orchestrator.publish)

    if args.once:
        result = executor.run(task.task_type)
        print(
            f"checked={result.checked} expired={result.succeeded} "
            f"skipped={result.skipped} failed={result.failed}"
        )
        return 0 if result.is_clean else 1

    scheduler = SweepScheduler(
        executor,
        registry.list_tasks(),
        interval_seconds=args.interval or config.sweep.interval_seconds,
    )

    def _shutdown(signum, frame):
        logger.info("shutdown_requested", extra={"signal": signum})
        scheduler.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    scheduler.start()
    while scheduler.is_running:
        scheduler.wait(timeout=1.0)
    return 0


if __name__ == "__main__":
    sys.exit(main())
