"""create mirror tables

Revision ID: mirror_0001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'mirror_0001'
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps(updated=True):
    cols = [sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()))
    return cols


def upgrade():
    op.create_table(
        'clients',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('company_name', sa.String(255), nullable=False),
        sa.Column('merchant_id', sa.String(64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        'client_api_credentials',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider', sa.String(32), nullable=False),
        sa.Column('api_token', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('client_id', 'provider', name='uq_client_api_credentials_client_provider'),
    )
    op.create_index('ix_client_api_credentials_client_id', 'client_api_credentials', ['client_id'])

    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('merchant_id', sa.String(64), nullable=True),
        sa.Column('provider_order_id', sa.String(64), nullable=False),
        sa.Column('store_order_id', sa.String(255), nullable=True),
        sa.Column('reference_id', sa.String(255), nullable=True),
        sa.Column('status', sa.String(64), nullable=True),
        sa.Column('order_type', sa.String(32), nullable=True),
        sa.Column('channel_id', sa.String(64), nullable=True),
        sa.Column('channel_name', sa.String(255), nullable=True),
        sa.Column('shipping_method', sa.String(255), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('customer_phone', sa.String(64), nullable=True),
        sa.Column('company_name', sa.String(255), nullable=True),
        sa.Column('address1', sa.String(255), nullable=True),
        sa.Column('address2', sa.String(255), nullable=True),
        sa.Column('city', sa.String(128), nullable=True),
        sa.Column('state', sa.String(64), nullable=True),
        sa.Column('zip_code', sa.String(32), nullable=True),
        sa.Column('country', sa.String(8), nullable=True),
        sa.Column('purchase_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('order_created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('total_shipments', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gift_message', sa.Text(), nullable=True),
        sa.Column('carrier_type', sa.String(64), nullable=True),
        sa.Column('payment_term', sa.String(64), nullable=True),
        sa.Column('tags', JSON_TYPE, nullable=True),
        sa.Column('extra_fields', JSON_TYPE, nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('client_id', 'provider_order_id', name='uq_orders_client_provider_order'),
    )
    op.create_index('ix_orders_client_id', 'orders', ['client_id'])
    op.create_index('ix_orders_client_created', 'orders', ['client_id', 'order_created_at'])

    op.create_table(
        'shipments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('merchant_id', sa.String(64), nullable=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('provider_shipment_id', sa.String(64), nullable=False),
        sa.Column('provider_order_id', sa.String(64), nullable=True),
        sa.Column('status', sa.String(64), nullable=True),
        sa.Column('status_details', JSON_TYPE, nullable=True),
        sa.Column('recipient_name', sa.String(255), nullable=True),
        sa.Column('recipient_email', sa.String(255), nullable=True),
        sa.Column('tracking_number', sa.String(128), nullable=True),
        sa.Column('tracking_url', sa.Text(), nullable=True),
        sa.Column('carrier', sa.String(128), nullable=True),
        sa.Column('carrier_service', sa.String(255), nullable=True),
        sa.Column('zone_used', sa.Integer(), nullable=True),
        sa.Column('fc_name', sa.String(255), nullable=True),
        sa.Column('origin_country', sa.String(8), nullable=True),
        sa.Column('destination_country', sa.String(8), nullable=True),
        sa.Column('actual_weight_oz', sa.Float(), nullable=True),
        sa.Column('dim_weight_oz', sa.Float(), nullable=True),
        sa.Column('billable_weight_oz', sa.Float(), nullable=True),
        sa.Column('length', sa.Float(), nullable=True),
        sa.Column('width', sa.Float(), nullable=True),
        sa.Column('height', sa.Float(), nullable=True),
        sa.Column('insurance_value', sa.Numeric(14, 2), nullable=True),
        sa.Column('require_signature', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('package_material_type', sa.String(64), nullable=True),
        sa.Column('shipment_created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('estimated_fulfillment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_update_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('timeline_completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('extra_fields', JSON_TYPE, nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('client_id', 'provider_shipment_id', name='uq_shipments_client_provider_shipment'),
    )
    op.create_index('ix_shipments_client_id', 'shipments', ['client_id'])
    op.create_index('ix_shipments_order_id', 'shipments', ['order_id'])
    op.create_index('ix_shipments_status', 'shipments', ['status'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider_product_id', sa.BigInteger(), nullable=False),
        sa.Column('sku', sa.String(255), nullable=True),
        sa.Column('reference_id', sa.String(255), nullable=True),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('unit_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('gtin', sa.String(64), nullable=True),
        sa.Column('upc', sa.String(64), nullable=True),
        sa.Column('external_line_id', sa.String(128), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('order_id', 'provider_product_id', name='uq_order_items_order_product'),
    )
    op.create_index('ix_order_items_client_id', 'order_items', ['client_id'])
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'shipment_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('shipment_id', sa.String(36), sa.ForeignKey('shipments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider_product_id', sa.BigInteger(), nullable=False),
        sa.Column('sku', sa.String(255), nullable=True),
        sa.Column('reference_id', sa.String(255), nullable=True),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('is_dangerous_goods', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('lots', JSON_TYPE, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('shipment_id', 'provider_product_id', name='uq_shipment_items_shipment_product'),
    )
    op.create_index('ix_shipment_items_client_id', 'shipment_items', ['client_id'])
    op.create_index('ix_shipment_items_shipment_id', 'shipment_items', ['shipment_id'])

    op.create_table(
        'shipment_cartons',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('shipment_id', sa.String(36), sa.ForeignKey('shipments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('carton_index', sa.Integer(), nullable=False),
        sa.Column('provider_carton_id', sa.BigInteger(), nullable=True),
        sa.Column('barcode', sa.String(128), nullable=True),
        sa.Column('carton_type', sa.String(64), nullable=True),
        sa.Column('parent_barcode', sa.String(128), nullable=True),
        sa.Column('length_in', sa.Float(), nullable=True),
        sa.Column('width_in', sa.Float(), nullable=True),
        sa.Column('depth_in', sa.Float(), nullable=True),
        sa.Column('weight_oz', sa.Float(), nullable=True),
        sa.Column('contents', JSON_TYPE, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('shipment_id', 'carton_index', name='uq_shipment_cartons_shipment_index'),
    )
    op.create_index('ix_shipment_cartons_client_id', 'shipment_cartons', ['client_id'])
    op.create_index('ix_shipment_cartons_shipment_id', 'shipment_cartons', ['shipment_id'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('provider_transaction_id', sa.String(64), nullable=False, unique=True),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=True),
        sa.Column('reference_id', sa.String(128), nullable=True),
        sa.Column('reference_type', sa.String(64), nullable=True),
        sa.Column('transaction_type', sa.String(64), nullable=True),
        sa.Column('fee_type', sa.String(128), nullable=True),
        sa.Column('amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('charge_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('invoiced', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('invoice_id', sa.String(64), nullable=True),
        sa.Column('invoice_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('fulfillment_center', sa.String(255), nullable=True),
        sa.Column('tracking_id', sa.String(128), nullable=True),
        sa.Column('additional_details', JSON_TYPE, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_transactions_client_id', 'transactions', ['client_id'])
    op.create_index('ix_transactions_reference_id', 'transactions', ['reference_id'])
    op.create_index('ix_transactions_charge_date', 'transactions', ['charge_date'])

    op.create_table(
        'returns',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('merchant_id', sa.String(64), nullable=True),
        sa.Column('provider_return_id', sa.String(64), nullable=False),
        sa.Column('reference_id', sa.String(255), nullable=True),
        sa.Column('status', sa.String(64), nullable=True),
        sa.Column('return_type', sa.String(64), nullable=True),
        sa.Column('tracking_number', sa.String(128), nullable=True),
        sa.Column('original_shipment_id', sa.String(64), nullable=True),
        sa.Column('store_order_id', sa.String(255), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('invoice_amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('fc_id', sa.String(64), nullable=True),
        sa.Column('fc_name', sa.String(255), nullable=True),
        sa.Column('channel_id', sa.String(64), nullable=True),
        sa.Column('channel_name', sa.String(255), nullable=True),
        sa.Column('insert_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('arrived_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processing_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status_history', JSON_TYPE, nullable=True),
        sa.Column('inventory', JSON_TYPE, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('client_id', 'provider_return_id', name='uq_returns_client_provider_return'),
    )
    op.create_index('ix_returns_client_id', 'returns', ['client_id'])
    op.create_index('ix_returns_provider_return_id', 'returns', ['provider_return_id'])

    op.create_table(
        'receiving_orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('merchant_id', sa.String(64), nullable=True),
        sa.Column('provider_receiving_id', sa.String(64), nullable=False),
        sa.Column('purchase_order_number', sa.String(255), nullable=True),
        sa.Column('status', sa.String(64), nullable=True),
        sa.Column('package_type', sa.String(64), nullable=True),
        sa.Column('box_packaging_type', sa.String(64), nullable=True),
        sa.Column('expected_arrival_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('insert_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_updated_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('fc_id', sa.String(64), nullable=True),
        sa.Column('fc_name', sa.String(255), nullable=True),
        sa.Column('status_history', JSON_TYPE, nullable=True),
        sa.Column('inventory_quantities', JSON_TYPE, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('client_id', 'provider_receiving_id', name='uq_receiving_orders_client_provider'),
    )
    op.create_index('ix_receiving_orders_client_id', 'receiving_orders', ['client_id'])
    op.create_index('ix_receiving_orders_provider_receiving_id', 'receiving_orders', ['provider_receiving_id'])

    op.create_table(
        'shipment_timeline_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('shipment_id', sa.String(36), sa.ForeignKey('shipments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('log_type_id', sa.Integer(), nullable=False),
        sa.Column('event_name', sa.String(64), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint('shipment_id', 'log_type_id', 'occurred_at', name='uq_timeline_events_shipment_type_time'),
    )
    op.create_index('ix_shipment_timeline_events_client_id', 'shipment_timeline_events', ['client_id'])
    op.create_index('ix_shipment_timeline_events_shipment_id', 'shipment_timeline_events', ['shipment_id'])

    op.create_table(
        'sync_state',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), nullable=False),
        sa.Column('sync_family', sa.String(64), nullable=False),
        sa.Column('cursor_value', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('client_id', 'sync_family', name='uq_sync_state_client_family'),
    )
    op.create_index('ix_sync_state_client_id', 'sync_state', ['client_id'])


def downgrade():
    for table in (
        'sync_state',
        'shipment_timeline_events',
        'receiving_orders',
        'returns',
        'transactions',
        'shipment_cartons',
        'shipment_items',
        'order_items',
        'shipments',
        'orders',
        'client_api_credentials',
        'clients',
    ):
        op.drop_table(table)
