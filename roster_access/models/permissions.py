"""
Capability catalog and permission rules.

A rule grants one capability, at one scope, to everyone matching a
basis (holders of a role, members of a unit, every authenticated user...).
"""

from uuid import UUID
from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from roster_access.core.access.scope import BasisType, Scope

from .base import Base, StandardMixin, value_enum


class Capability(Base, StandardMixin):
    """A named permission. scoped=False means a boolean capability."""

    __tablename__ = "capabilities"

    name: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(50), default="general", nullable=False)
    scoped: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class PermissionRule(Base, StandardMixin):
    __tablename__ = "permission_rules"
    __table_args__ = (
        Index("ix_permission_rules_basis", "basis_type", "basis_id"),
    )

    capability_id: Mapped[UUID] = mapped_column(
        ForeignKey("capabilities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    basis_type: Mapped[BasisType] = mapped_column(value_enum(BasisType), nullable=False)
    # Null only for AUTHENTICATED_USER
    basis_id: Mapped[UUID | None] = mapped_column(nullable=True)
    scope: Mapped[Scope] = mapped_column(
        value_enum(Scope),
        default=Scope.OWN_UNIT,
        nullable=False,
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("people.id", ondelete="SET NULL"),
        nullable=True,
    )
