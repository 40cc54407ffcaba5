"""
Roster models: statuses, standings, qualifications and roles.

Role assignments are the records exclusivity is enforced over.
"""

from datetime import date
from uuid import UUID
from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from roster_access.core.access.scope import ExclusivityScope

from .base import Base, StandardMixin, value_enum


# ============================================================
# STATUSES
# ============================================================

class Status(Base, StandardMixin):
    """Roster status such as Command, Staff or Retired."""

    __tablename__ = "statuses"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class PersonStatus(Base, StandardMixin):
    __tablename__ = "person_statuses"
    __table_args__ = (
        Index("ix_person_statuses_person_current", "person_id", "end_date"),
    )

    person_id: Mapped[UUID] = mapped_column(
        ForeignKey("people.id", ondelete="CASCADE"),
        nullable=False,
    )
    status_id: Mapped[UUID] = mapped_column(
        ForeignKey("statuses.id", ondelete="RESTRICT"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)


# ============================================================
# STANDINGS & QUALIFICATIONS
# ============================================================

class Standing(Base, StandardMixin):
    """Rank-like standing within the organization."""

    __tablename__ = "standings"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class PersonStanding(Base, StandardMixin):
    __tablename__ = "person_standings"

    person_id: Mapped[UUID] = mapped_column(
        ForeignKey("people.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    standing_id: Mapped[UUID] = mapped_column(
        ForeignKey("standings.id", ondelete="RESTRICT"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class Qualification(Base, StandardMixin):
    __tablename__ = "qualifications"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


class PersonQualification(Base, StandardMixin):
    """A qualification achieved by a person. Lapses after expiry_date."""

    __tablename__ = "person_qualifications"

    person_id: Mapped[UUID] = mapped_column(
        ForeignKey("people.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    qualification_id: Mapped[UUID] = mapped_column(
        ForeignKey("qualifications.id", ondelete="RESTRICT"),
        nullable=False,
    )
    achieved_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)


# ============================================================
# ROLES
# ============================================================

class Role(Base, StandardMixin):
    """
    A billet such as Commanding Officer or Instructor.

    exclusivity_scope decides how many active holders the role may have:
    - NONE: any number
    - UNIT: one per squadron
    - PARENT: one per wing
    """

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    exclusivity_scope: Mapped[ExclusivityScope] = mapped_column(
        value_enum(ExclusivityScope),
        default=ExclusivityScope.NONE,
        nullable=False,
    )
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @property
    def is_exclusive(self) -> bool:
        return self.exclusivity_scope is not ExclusivityScope.NONE


class RoleAssignment(Base, StandardMixin):
    """
    A person holding a role.

    The holder is current while end_date is null or in the future.
    unit_id records where the assignment was made and is informational;
    the holder's unit for exclusivity purposes is their current unit
    assignment. accepted_duplicate marks rows committed through an
    explicit decision to allow a second holder.
    """

    __tablename__ = "role_assignments"
    __table_args__ = (
        Index("ix_role_assignments_role_current", "role_id", "end_date"),
        Index("ix_role_assignments_person_current", "person_id", "end_date"),
    )

    person_id: Mapped[UUID] = mapped_column(
        ForeignKey("people.id", ondelete="CASCADE"),
        nullable=False,
    )
    role_id: Mapped[UUID] = mapped_column(
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    unit_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("units.id", ondelete="SET NULL"),
        nullable=True,
    )
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    accepted_duplicate: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
