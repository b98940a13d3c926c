"""Database layer - engine, declarative base and column helpers."""

from trialflow_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from trialflow_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    session_scope,
)
from trialflow_kernel.db.types import ZERO, enum_column, round_money, to_money

__all__ = [
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "session_scope",
    "ZERO",
    "enum_column",
    "round_money",
    "to_money",
]
