"""
Module: inventory_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent
    column types, and the TrackedBase mixin for creation metadata.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  ALL model files import from here.  This module MUST NOT import
    from models/, services/, selectors/, or outer layers.

Invariants enforced:
    - UUID primary keys generated with uuid4, stored as String(36).
    - Decimal maps to Numeric(38, 9): unit costs and ledger amounts never
      pass through float.
    - created_at is set explicitly from the injected Clock by services, so
      FIFO ordering is reproducible in tests and replays.

Failure modes:
    - IntegrityError on duplicate primary keys (uuid4 collision, practically
      impossible but guarded by the PK constraint).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID stored as String(36) so the schema runs on PostgreSQL and SQLite.

    Guarantees:
        - UUID -> str on bind, str -> UUID on load.
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all inventory models.

    Guarantees:
        - id is a uuid4-generated UUID.
        - Decimal -> Numeric(38, 9), datetime -> DateTime(timezone=True),
          int -> BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base recording when, and optionally by whom, a row was created.

    Contract:
        Services pass ``created_at`` from their Clock.  The server default
        only applies to rows inserted outside the services (fixtures, manual
        SQL).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )


UUID = PyUUID
