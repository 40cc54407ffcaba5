"""
Organization models: wings, squadrons, people and unit membership.
"""

from datetime import date
from uuid import UUID
from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, StandardMixin


class ParentUnit(Base, StandardMixin):
    """A wing. Groups squadrons."""

    __tablename__ = "parent_units"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    designation: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )


class Unit(Base, StandardMixin):
    """A squadron. Belongs to exactly one wing."""

    __tablename__ = "units"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    designation: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )
    parent_unit_id: Mapped[UUID] = mapped_column(
        ForeignKey("parent_units.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )


class Person(Base, StandardMixin):
    """A roster member."""

    __tablename__ = "people"

    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    # Subject claim from the identity provider; null for people without a login
    auth_user_id: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        index=True,
    )


class UnitAssignment(Base, StandardMixin):
    """
    Membership of a person in a squadron.

    The current assignment is the one with no end_date.
    """

    __tablename__ = "unit_assignments"
    __table_args__ = (
        Index("ix_unit_assignments_person_current", "person_id", "end_date"),
    )

    person_id: Mapped[UUID] = mapped_column(
        ForeignKey("people.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    unit_id: Mapped[UUID] = mapped_column(
        ForeignKey("units.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
