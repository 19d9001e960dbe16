"""
Base ORM Model and Mixins.

============================================================
PURPOSE
============================================================
Provides the declarative base, common mixins and column types
used by all ORM models of the activity store.

============================================================
COMPONENTS
============================================================
- Base: SQLAlchemy declarative base for all models
- TimestampMixin: Common timestamp columns
- TokenAmount: 256-bit unsigned amount column (base units)

============================================================
"""

from datetime import datetime
from decimal import Decimal, localcontext
from typing import Any, Optional

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator, TypeEngine


# Decimal context precision for amounts (a uint256 has 78 digits)
AMOUNT_PRECISION = 80


class TokenAmount(TypeDecorator):
    """
    Exact on-chain amount in base units.

    NUMERIC(78, 0) holds any uint256. SQLite has no exact decimal
    storage, so there the value is kept as its decimal string.
    Values always come back as Decimal.
    """

    impl = Numeric(78, 0)
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine:
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(80))
        return dialect.type_descriptor(Numeric(78, 0, asdecimal=True))

    def process_bind_param(self, value: Any, dialect: Dialect) -> Optional[Any]:
        if value is None:
            return None
        amount = Decimal(value)
        if dialect.name == "sqlite":
            with localcontext() as ctx:
                ctx.prec = AMOUNT_PRECISION
                return str(amount.quantize(Decimal(1)))
        return amount

    def process_result_value(self, value: Any, dialect: Dialect) -> Optional[Decimal]:
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    """
    Declarative base for all ORM models.
    """

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class TimestampMixin:
    """
    Mixin providing standard timestamp columns.

    Adds created_at and updated_at columns to models that
    require temporal tracking. Values are set server-side.

    Usage:
        class MyModel(Base, TimestampMixin):
            __tablename__ = "my_table"
            ...
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Record creation timestamp (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Last update timestamp (UTC)"
    )
