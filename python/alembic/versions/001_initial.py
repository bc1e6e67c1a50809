"""CCM instruction tables - Baseline migration

Revision ID: 001_initial
Revises:
Create Date: 2024-12-01 00:00:00.000000

Creates the CCM instruction tables. customers, master_leases, lease_riders
and lease_amendments belong to the leasing schema and must already exist.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


SCOPE_COLUMNS = ('customer_id', 'master_lease_id', 'rider_id', 'amendment_id')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('NOW()')),
    ]


def upgrade() -> None:
    """Create CCM instruction schema."""

    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # Create ccm_instructions table
    op.create_table(
        'ccm_instructions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text('uuid_generate_v4()')),

        # Hierarchy scope (exactly one set)
        sa.Column('customer_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('customers.id', ondelete='CASCADE')),
        sa.Column('master_lease_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('master_leases.id', ondelete='CASCADE')),
        sa.Column('rider_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('lease_riders.id', ondelete='CASCADE')),
        sa.Column('amendment_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('lease_amendments.id', ondelete='CASCADE')),
        sa.Column('scope_level', sa.String(20), nullable=False),
        sa.Column('scope_name', sa.String(255)),

        # Cleaning requirements
        sa.Column('food_grade', sa.Boolean),
        sa.Column('mineral_wipe', sa.Boolean),
        sa.Column('kosher_wash', sa.Boolean),
        sa.Column('kosher_wipe', sa.Boolean),
        sa.Column('shop_oil_material', sa.Boolean),
        sa.Column('oil_provider_contact', sa.Text),
        sa.Column('rinse_water_test_procedure', sa.Text),

        # Primary contact
        sa.Column('primary_contact_name', sa.String(200)),
        sa.Column('primary_contact_email', sa.String(200)),
        sa.Column('primary_contact_phone', sa.String(50)),

        # Estimate approval contact
        sa.Column('estimate_approval_contact_name', sa.String(200)),
        sa.Column('estimate_approval_contact_email', sa.String(200)),
        sa.Column('estimate_approval_contact_phone', sa.String(50)),

        # Dispo contact
        sa.Column('dispo_contact_name', sa.String(200)),
        sa.Column('dispo_contact_email', sa.String(200)),
        sa.Column('dispo_contact_phone', sa.String(50)),

        # Outbound dispo
        sa.Column('decal_requirements', sa.Text),
        sa.Column('nitrogen_applied', sa.Boolean),
        sa.Column('nitrogen_psi', sa.String(50)),
        sa.Column('outbound_dispo_contact_email', sa.String(200)),
        sa.Column('outbound_dispo_contact_phone', sa.String(50)),
        sa.Column('documentation_required_prior_to_release', sa.Text),

        # Special fittings and notes
        sa.Column('special_fittings_vendor_requirements', sa.Text),
        sa.Column('additional_notes', sa.Text),

        # Versioning
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('is_current', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('supersedes_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('ccm_instructions.id')),
        sa.Column('created_by_id', postgresql.UUID(as_uuid=True)),
        *_timestamps(),

        sa.CheckConstraint(
            "scope_level IN ('customer', 'master_lease', 'rider', 'amendment')",
            name='ccm_instructions_scope_level_check'
        ),
        sa.CheckConstraint(
            "(CASE WHEN customer_id IS NOT NULL THEN 1 ELSE 0 END"
            " + CASE WHEN master_lease_id IS NOT NULL THEN 1 ELSE 0 END"
            " + CASE WHEN rider_id IS NOT NULL THEN 1 ELSE 0 END"
            " + CASE WHEN amendment_id IS NOT NULL THEN 1 ELSE 0 END) = 1",
            name='ccm_instructions_scope_check'
        )
    )

    op.create_index('ix_ccm_instructions_scope_level', 'ccm_instructions', ['scope_level'])
    op.create_index('ix_ccm_instructions_is_current', 'ccm_instructions', ['is_current'])
    op.create_index('ix_ccm_instructions_customer', 'ccm_instructions', ['customer_id'])
    op.create_index('ix_ccm_instructions_lease', 'ccm_instructions', ['master_lease_id'])
    op.create_index('ix_ccm_instructions_rider', 'ccm_instructions', ['rider_id'])
    op.create_index('ix_ccm_instructions_amendment', 'ccm_instructions', ['amendment_id'])

    # One current instruction per scope entity
    level_names = ('customer', 'master_lease', 'rider', 'amendment')
    for level, column in zip(level_names, SCOPE_COLUMNS):
        op.create_index(
            f'uq_ccm_instructions_current_{level}',
            'ccm_instructions',
            [column],
            unique=True,
            postgresql_where=sa.text(f'{column} IS NOT NULL AND is_current IS TRUE')
        )

    # Create ccm_instruction_sealing table
    op.create_table(
        'ccm_instruction_sealing',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text('uuid_generate_v4()')),
        sa.Column('ccm_instruction_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('ccm_instructions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('commodity', sa.String(200), nullable=False),
        sa.Column('gasket_sealing_material', sa.String(200)),
        sa.Column('alternate_material', sa.String(200)),
        sa.Column('preferred_gasket_vendor', sa.String(200)),
        sa.Column('alternate_vendor', sa.String(200)),
        sa.Column('vsp_ride_tight', sa.Boolean),
        sa.Column('sealing_requirements', sa.Text),
        sa.Column('inherit_from_parent', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
        *_timestamps(),
        sa.UniqueConstraint('ccm_instruction_id', 'commodity', name='uq_ccm_sealing_commodity')
    )
    op.create_index('ix_ccm_instruction_sealing_ccm_instruction_id', 'ccm_instruction_sealing',
                    ['ccm_instruction_id'])
    op.create_index('ix_ccm_instruction_sealing_commodity', 'ccm_instruction_sealing', ['commodity'])

    # Create ccm_instruction_lining table
    op.create_table(
        'ccm_instruction_lining',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text('uuid_generate_v4()')),
        sa.Column('ccm_instruction_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('ccm_instructions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('commodity', sa.String(200), nullable=False),
        sa.Column('lining_required', sa.Boolean),
        sa.Column('lining_inspection_interval', sa.String(100)),
        sa.Column('lining_type', sa.String(200)),
        sa.Column('lining_plan_on_file', sa.Boolean),
        sa.Column('lining_requirements', sa.Text),
        sa.Column('inherit_from_parent', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
        *_timestamps(),
        sa.UniqueConstraint('ccm_instruction_id', 'commodity', name='uq_ccm_lining_commodity')
    )
    op.create_index('ix_ccm_instruction_lining_ccm_instruction_id', 'ccm_instruction_lining',
                    ['ccm_instruction_id'])
    op.create_index('ix_ccm_instruction_lining_commodity', 'ccm_instruction_lining', ['commodity'])


def downgrade() -> None:
    """Drop CCM instruction tables."""
    op.drop_table('ccm_instruction_lining')
    op.drop_table('ccm_instruction_sealing')
    op.drop_table('ccm_instructions')
