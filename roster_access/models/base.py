"""
Base model classes and mixins.

- TimestampMixin: created_at, updated_at (always use)
- UUIDMixin: UUID primary key
- StandardMixin: both of the above
"""

import enum
from datetime import datetime
from typing import Type
from uuid import UUID as PyUUID, uuid4
from sqlalchemy import DateTime, Enum as SQLEnum, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    # All datetimes are timezone-aware; UUIDs use the portable Uuid type
    type_annotation_map = {
        datetime: DateTime(timezone=True),
        PyUUID: Uuid(),
    }


def value_enum(enum_cls: Type[enum.Enum], length: int = 32) -> SQLEnum:
    """
    Store a str enum by value in a VARCHAR column.

    Usage:
        scope: Mapped[Scope] = mapped_column(value_enum(Scope))
    """
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


# ============================================================
# TIMESTAMP MIXIN
# ============================================================

class TimestampMixin:
    """
    Mixin for created_at and updated_at timestamps (UTC).

    Usage:
        class MyModel(Base, TimestampMixin):
            __tablename__ = "my_table"
            ...
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# ============================================================
# PRIMARY KEY MIXIN
# ============================================================

class UUIDMixin:
    """Mixin for a UUID v4 primary key."""

    id: Mapped[PyUUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid4,
    )


class StandardMixin(UUIDMixin, TimestampMixin):
    """
    Standard mixin combining UUID + timestamps.

    Provides:
        - id: UUID primary key
        - created_at: When created (UTC)
        - updated_at: When last modified (UTC)
    """
    pass
