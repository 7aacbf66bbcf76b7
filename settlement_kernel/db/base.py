"""
Declarative bases for the settlement tables.

Column conventions shared by payments, timeline events, batches and
batch items:

    - ``id``: uuid4 primary key stored as a 36-char string, so SQLite test
      databases and PostgreSQL hold identical values.
    - Amounts: ``Decimal`` maps to ``Numeric(38, 9)``.  SAR amounts are
      quantized to 2 places before they reach the ORM; the wider column
      leaves room for future rate-based amounts without a migration.
    - Timestamps: always timezone-aware UTC on the way in and out.
    - ``TrackedBase`` adds who/when audit columns to mutable records.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class UTCDateTime(TypeDecorator):
    """
    Aware datetime normalized to UTC in both directions.

    SQLite returns naive values; they are re-tagged as UTC on load so
    ``expires_at`` and timeline stamps compare cleanly against the clock.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return _as_utc(value)

    def process_result_value(self, value, dialect):
        return _as_utc(value)


class Base(DeclarativeBase):

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Mutable records (payments, batches) with creation and update audit.

    Services pass ``created_at`` explicitly from the injected Clock; the
    database default only covers rows written outside a service.
    ``updated_at`` is row bookkeeping and always comes from the database.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), onupdate=func.now(), nullable=False,
    )
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
