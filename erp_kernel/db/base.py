"""
Module: erp_kernel.db.base
Responsibility: Declarative base for every ERP table: UUID keys, Decimal
    columns as Numeric(38, 9), timezone-aware timestamps, and a constraint
    naming convention so PostgreSQL and SQLite schemas name keys alike.
Architecture position: Kernel > DB.  Imported by every model module; imports
    nothing from models/, services/, selectors/ or domain/.

Invariants enforced:
    - Stock quantities, prices and money are Decimal, stored as
      Numeric(38, 9).  Nothing is stored as float.
    - Row ids are uuid4 values generated in Python, so a service knows the id
      of a movement or payment before the INSERT is flushed.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, MetaData, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """UUID kept as its 36-character text form, identical on every backend."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    """Every ERP table: ``id`` UUID primary key plus the shared type map."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds created/updated timestamps and the acting user.

    Timestamps are set by the database.  created_by_id stays NULL when the
    kernel runs without a logged-in user (scripts, maintenance jobs).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)


UUID = PyUUID
