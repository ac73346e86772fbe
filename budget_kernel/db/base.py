"""
Module: budget_kernel.db.base
Responsibility: Declarative base shared by every ledger table, plus the two
    column types the rest of the schema relies on (string-stored UUIDs and
    UTC-aware timestamps).
Architecture position: Kernel > DB.  Bottom of the import graph; model files
    in budget_kernel/models and budget_modules/*/orm.py import from here.

Invariants enforced:
    - Every row is keyed by a UUID, generated with uuid4 when not supplied.
    - Money, quantities, days and rates are Numeric(38, 9) and round-trip
      as Decimal.
    - Timestamps read back are always timezone-aware UTC, including on
      SQLite which stores naive values.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID held in a 36-character string column."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        return None if value is None else str(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> UUID | None:
        return None if value is None else UUID(str(value))


class UTCDateTime(TypeDecorator):
    """
    Aware datetime, normalized to UTC.

    Naive values are taken to be UTC already.  SQLite gets the naive UTC
    value since it has no zone support; tzinfo is re-attached on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        utc = value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)
        return utc.replace(tzinfo=None) if dialect.name == "sqlite" else utc

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


class Base(DeclarativeBase):
    """Root of the ledger schema.  Annotated columns pick up the types below."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds row bookkeeping: when the row was written and by whom.

    ``created_at``/``updated_at`` are database defaults and say nothing
    about the budget data itself (a version's ``created_date`` is a
    separate, domain-level column).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    created_by: Mapped[str] = mapped_column(String(255), default="system")
    updated_by: Mapped[str | None] = mapped_column(String(255))
