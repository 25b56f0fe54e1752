"""acl_tables

Revision ID: 3c1f7d2a9b40
Revises:
Create Date: 2026-10-18 09:10:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c1f7d2a9b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- Access Roles ---
    op.create_table(
        'access_roles',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('access_role_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('resource_type', sa.String(), nullable=False),
        sa.Column('perm_bits', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_access_roles_access_role_id'), 'access_roles', ['access_role_id'], unique=True)
    op.create_index(op.f('ix_access_roles_resource_type'), 'access_roles', ['resource_type'], unique=False)

    # --- ACL Entries ---
    op.create_table(
        'acl_entries',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('principal_type', sa.String(), nullable=False),
        sa.Column('principal_id', sa.String(), nullable=True),
        sa.Column('resource_type', sa.String(), nullable=False),
        sa.Column('resource_id', sa.String(), nullable=False),
        sa.Column('perm_bits', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.String(), nullable=True),
        sa.Column('granted_by', sa.String(), nullable=True),
        sa.Column('granted_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('inherited_from', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('principal_type', 'principal_id', 'resource_type', 'resource_id', name='uq_acl_principal_resource')
    )
    # NULL principal_id never collides under the constraint above
    op.create_index(
        'uq_acl_public_resource',
        'acl_entries',
        ['principal_type', 'resource_type', 'resource_id'],
        unique=True,
        postgresql_where=sa.text('principal_id IS NULL'),
    )
    op.create_index('ix_acl_resource', 'acl_entries', ['resource_type', 'resource_id'], unique=False)
    op.create_index('ix_acl_principal', 'acl_entries', ['principal_type', 'principal_id', 'resource_type'], unique=False)

    # --- Groups ---
    op.create_table(
        'groups',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('source', sa.String(), server_default='local', nullable=False),
        sa.Column('id_on_the_source', sa.String(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_groups_email'), 'groups', ['email'], unique=False)
    op.create_index('ix_groups_source_external', 'groups', ['source', 'id_on_the_source'], unique=False)

    op.create_table(
        'group_members',
        sa.Column('group_id', sa.String(), nullable=False),
        sa.Column('member_id', sa.String(), nullable=False),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('group_id', 'member_id')
    )
    op.create_index(op.f('ix_group_members_member_id'), 'group_members', ['member_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_group_members_member_id'), table_name='group_members')
    op.drop_table('group_members')
    op.drop_index('ix_groups_source_external', table_name='groups')
    op.drop_index(op.f('ix_groups_email'), table_name='groups')
    op.drop_table('groups')
    op.drop_index('ix_acl_principal', table_name='acl_entries')
    op.drop_index('ix_acl_resource', table_name='acl_entries')
    op.drop_index('uq_acl_public_resource', table_name='acl_entries')
    op.drop_table('acl_entries')
    op.drop_index(op.f('ix_access_roles_resource_type'), table_name='access_roles')
    op.drop_index(op.f('ix_access_roles_access_role_id'), table_name='access_roles')
    op.drop_table('access_roles')
