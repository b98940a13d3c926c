"""
Declarative base for the trialflow tables.

Every model gets a uuid4 primary key.  Python annotations map to column
types once, here: ``Decimal`` to ``Numeric(38, 9)`` so prices, rewards and
bonuses never pass through float, ``datetime`` to a UTC-normalised
timezone-aware ``DateTime``, and ``UUID`` to a 36-character string that behaves the same
on PostgreSQL and SQLite.

Nothing in models/, services/ or domain/ is imported from this module.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Aware ``datetime`` stored and returned in UTC.

    SQLite keeps no offset and hands values back naive.  They were written
    as UTC, so naive results are tagged UTC; PostgreSQL results are
    converted to it.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return _as_utc(value)

    def process_result_value(self, value, dialect):
        return _as_utc(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds ``created_at`` / ``updated_at``, filled by the database.

    These record when a row was written.  Lifecycle facts (accepted,
    cancelled, settled ...) have their own columns and take their time from
    the injected Clock.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
    )
