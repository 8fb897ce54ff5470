"""fulfillment center lookup and re-fetch attempt markers

Revision ID: mirror_0002
Revises: mirror_0001
Create Date: 2026-10-19 18:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'mirror_0002'
down_revision = 'mirror_0001'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'fulfillment_centers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('provider_fc_id', sa.String(64), nullable=True),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('country', sa.String(8), nullable=False, server_default='US'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.add_column('orders', sa.Column('application_name', sa.String(255), nullable=True))
    op.add_column('orders', sa.Column('children_checked_at', sa.DateTime(timezone=True), nullable=True))
    op.add_column('shipments', sa.Column('ship_option_id', sa.Integer(), nullable=True))
    op.add_column('shipments', sa.Column('fc_id', sa.String(64), nullable=True))
    op.add_column('transactions', sa.Column('reference_lookup_failed_at', sa.DateTime(timezone=True), nullable=True))


def downgrade():
    op.drop_column('transactions', 'reference_lookup_failed_at')
    op.drop_column('shipments', 'fc_id')
    op.drop_column('shipments', 'ship_option_id')
    op.drop_column('orders', 'children_checked_at')
    op.drop_column('orders', 'application_name')
    op.drop_table('fulfillment_centers')
