"""roster access tables

Revision ID: 3c9e1f7a2b40
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c9e1f7a2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    # Organization
    op.create_table('parent_units',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('designation', sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_parent_units_designation'), 'parent_units', ['designation'], unique=True)

    op.create_table('units',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('designation', sa.String(length=50), nullable=False),
        sa.Column('parent_unit_id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['parent_unit_id'], ['parent_units.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_units_designation'), 'units', ['designation'], unique=True)
    op.create_index(op.f('ix_units_parent_unit_id'), 'units', ['parent_unit_id'], unique=False)

    op.create_table('people',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=False),
        sa.Column('auth_user_id', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_people_auth_user_id'), 'people', ['auth_user_id'], unique=True)

    op.create_table('unit_assignments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('person_id', sa.Uuid(), nullable=False),
        sa.Column('unit_id', sa.Uuid(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['person_id'], ['people.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_unit_assignments_person_id'), 'unit_assignments', ['person_id'], unique=False)
    op.create_index(op.f('ix_unit_assignments_unit_id'), 'unit_assignments', ['unit_id'], unique=False)
    op.create_index('ix_unit_assignments_person_current', 'unit_assignments', ['person_id', 'end_date'], unique=False)

    # Roster
    op.create_table('statuses',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_table('person_statuses',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('person_id', sa.Uuid(), nullable=False),
        sa.Column('status_id', sa.Uuid(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['person_id'], ['people.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['status_id'], ['statuses.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_person_statuses_person_current', 'person_statuses', ['person_id', 'end_date'], unique=False)

    op.create_table('standings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('display_order', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_table('person_standings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('person_id', sa.Uuid(), nullable=False),
        sa.Column('standing_id', sa.Uuid(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['person_id'], ['people.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['standing_id'], ['standings.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_person_standings_person_id'), 'person_standings', ['person_id'], unique=False)

    op.create_table('qualifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_table('person_qualifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('person_id', sa.Uuid(), nullable=False),
        sa.Column('qualification_id', sa.Uuid(), nullable=False),
        sa.Column('achieved_date', sa.Date(), nullable=False),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['person_id'], ['people.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['qualification_id'], ['qualifications.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_person_qualifications_person_id'), 'person_qualifications', ['person_id'], unique=False)

    op.create_table('roles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('exclusivity_scope', sa.String(length=32), nullable=False),
        sa.Column('display_order', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_table('role_assignments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('person_id', sa.Uuid(), nullable=False),
        sa.Column('role_id', sa.Uuid(), nullable=False),
        sa.Column('unit_id', sa.Uuid(), nullable=True),
        sa.Column('effective_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('accepted_duplicate', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['person_id'], ['people.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_role_assignments_role_current', 'role_assignments', ['role_id', 'end_date'], unique=False)
    op.create_index('ix_role_assignments_person_current', 'role_assignments', ['person_id', 'end_date'], unique=False)

    # Permissions
    op.create_table('capabilities',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('scoped', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_capabilities_name'), 'capabilities', ['name'], unique=True)

    op.create_table('permission_rules',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('capability_id', sa.Uuid(), nullable=False),
        sa.Column('basis_type', sa.String(length=32), nullable=False),
        sa.Column('basis_id', sa.Uuid(), nullable=True),
        sa.Column('scope', sa.String(length=32), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['capability_id'], ['capabilities.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by'], ['people.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_permission_rules_capability_id'), 'permission_rules', ['capability_id'], unique=False)
    op.create_index('ix_permission_rules_basis', 'permission_rules', ['basis_type', 'basis_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_permission_rules_basis', table_name='permission_rules')
    op.drop_index(op.f('ix_permission_rules_capability_id'), table_name='permission_rules')
    op.drop_table('permission_rules')
    op.drop_index(op.f('ix_capabilities_name'), table_name='capabilities')
    op.drop_table('capabilities')
    op.drop_index('ix_role_assignments_person_current', table_name='role_assignments')
    op.drop_index('ix_role_assignments_role_current', table_name='role_assignments')
    op.drop_table('role_assignments')
    op.drop_table('roles')
    op.drop_index(op.f('ix_person_qualifications_person_id'), table_name='person_qualifications')
    op.drop_table('person_qualifications')
    op.drop_table('qualifications')
    op.drop_index(op.f('ix_person_standings_person_id'), table_name='person_standings')
    op.drop_table('person_standings')
    op.drop_table('standings')
    op.drop_index('ix_person_statuses_person_current', table_name='person_statuses')
    op.drop_table('person_statuses')
    op.drop_table('statuses')
    op.drop_index('ix_unit_assignments_person_current', table_name='unit_assignments')
    op.drop_index(op.f('ix_unit_assignments_unit_id'), table_name='unit_assignments')
    op.drop_index(op.f('ix_unit_assignments_person_id'), table_name='unit_assignments')
    op.drop_table('unit_assignments')
    op.drop_index(op.f('ix_people_auth_user_id'), table_name='people')
    op.drop_table('people')
    op.drop_index(op.f('ix_units_parent_unit_id'), table_name='units')
    op.drop_index(op.f('ix_units_designation'), table_name='units')
    op.drop_table('units')
    op.drop_index(op.f('ix_parent_units_designation'), table_name='parent_units')
    op.drop_table('parent_units')
