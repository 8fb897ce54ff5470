from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    Integer,
    BigInteger,
    Numeric,
    Float,
    ForeignKey,
    Text,
    JSON,
    UniqueConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shipmirror.models_sqlalchemy import Base

# JSONB on Postgres so upsert change detection can compare values directly.
JsonType = JSON().with_variant(JSONB(), "postgresql")


class Client(Base):
    """A tenant. Created by the admin workflow; never deleted by sync."""

    __tablename__ = "clients"

    id = Column(String(36), primary_key=True)
    company_name = Column(String(255), nullable=False)
    merchant_id = Column(String(64), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    credentials = relationship("ClientApiCredential", back_populates="client")


class ClientApiCredential(Base):
    __tablename__ = "client_api_credentials"
    __table_args__ = (UniqueConstraint("client_id", "provider", name="uq_client_api_credentials_client_provider"),)

    id = Column(String(36), primary_key=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = Column(String(32), nullable=False)
    api_token = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="credentials")


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("client_id", "provider_order_id", name="uq_orders_client_provider_order"),
        Index("ix_orders_client_created", "client_id", "order_created_at"),
    )

    id = Column(String(36), primary_key=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    merchant_id = Column(String(64), nullable=True)
    provider_order_id = Column(String(64), nullable=False)

    store_order_id = Column(String(255), nullable=True)
    reference_id = Column(String(255), nullable=True)
    status = Column(String(64), nullable=True)
    order_type = Column(String(32), nullable=True)
    channel_id = Column(String(64), nullable=True)
    channel_name = Column(String(255), nullable=True)
    application_name = Column(String(255), nullable=True)
    shipping_method = Column(String(255), nullable=True)

    customer_name = Column(String(255), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(64), nullable=True)
    company_name = Column(String(255), nullable=True)
    address1 = Column(String(255), nullable=True)
    address2 = Column(String(255), nullable=True)
    city = Column(String(128), nullable=True)
    state = Column(String(64), nullable=True)
    zip_code = Column(String(32), nullable=True)
    country = Column(String(8), nullable=True)

    purchase_date = Column(DateTime(timezone=True), nullable=True)
    # Provider-side creation time; this is what window filters and
    # reconciliation compare against.
    order_created_at = Column(DateTime(timezone=True), nullable=True)
    total_price = Column(Numeric(14, 2), nullable=True)
    total_shipments = Column(Integer, nullable=False, default=0)
    gift_message = Column(Text, nullable=True)
    carrier_type = Column(String(64), nullable=True)
    payment_term = Column(String(64), nullable=True)
    tags = Column(JsonType, nullable=True)
    extra_fields = Column(JsonType, nullable=True)
    # Last time the backfill pass re-fetched this order. Never written by the
    # order upsert, so candidates rotate instead of repeating.
    children_checked_at = Column(DateTime(timezone=True), nullable=True)

    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Shipment(Base):
    __tablename__ = "shipments"
    __table_args__ = (
        UniqueConstraint("client_id", "provider_shipment_id", name="uq_shipments_client_provider_shipment"),
    )

    id = Column(String(36), primary_key=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    merchant_id = Column(String(64), nullable=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    provider_shipment_id = Column(String(64), nullable=False)
    provider_order_id = Column(String(64), nullable=True)

    status = Column(String(64), nullable=True, index=True)
    status_details = Column(JsonType, nullable=True)
    recipient_name = Column(String(255), nullable=True)
    recipient_email = Column(String(255), nullable=True)
    tracking_number = Column(String(128), nullable=True)
    tracking_url = Column(Text, nullable=True)
    carrier = Column(String(128), nullable=True)
    carrier_service = Column(String(255), nullable=True)
    ship_option_id = Column(Integer, nullable=True)
    zone_used = Column(Integer, nullable=True)
    fc_id = Column(String(64), nullable=True)
    fc_name = Column(String(255), nullable=True)
    origin_country = Column(String(8), nullable=True)
    destination_country = Column(String(8), nullable=True)

    actual_weight_oz = Column(Float, nullable=True)
    dim_weight_oz = Column(Float, nullable=True)
    billable_weight_oz = Column(Float, nullable=True)
    length = Column(Float, nullable=True)
    width = Column(Float, nullable=True)
    height = Column(Float, nullable=True)
    insurance_value = Column(Numeric(14, 2), nullable=True)
    require_signature = Column(Boolean, nullable=False, default=False)
    package_material_type = Column(String(64), nullable=True)

    shipment_created_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    estimated_fulfillment_date = Column(DateTime(timezone=True), nullable=True)
    last_update_at = Column(DateTime(timezone=True), nullable=True)
    # Set once a delivered checkpoint has been stored; the timeline pass
    # ignores such shipments.
    timeline_completed_at = Column(DateTime(timezone=True), nullable=True)
    extra_fields = Column(JsonType, nullable=True)

    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        UniqueConstraint("order_id", "provider_product_id", name="uq_order_items_order_product"),
    )

    id = Column(String(36), primary_key=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_product_id = Column(BigInteger, nullable=False)

    sku = Column(String(255), nullable=True)
    reference_id = Column(String(255), nullable=True)
    name = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=True)
    unit_price = Column(Numeric(14, 2), nullable=True)
    gtin = Column(String(64), nullable=True)
    upc = Column(String(64), nullable=True)
    external_line_id = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ShipmentItem(Base):
    __tablename__ = "shipment_items"
    __table_args__ = (
        UniqueConstraint("shipment_id", "provider_product_id", name="uq_shipment_items_shipment_product"),
    )

    id = Column(String(36), primary_key=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    shipment_id = Column(String(36), ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_product_id = Column(BigInteger, nullable=False)

    sku = Column(String(255), nullable=True)
    reference_id = Column(String(255), nullable=True)
    name = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=True)
    is_dangerous_goods = Column(Boolean, nullable=False, default=False)
    # One entry per inventory lot: {inventory_id, lot, expiration_date, quantity, serial_numbers}
    lots = Column(JsonType, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ShipmentCarton(Base):
    __tablename__ = "shipment_cartons"
    __table_args__ = (
        UniqueConstraint("shipment_id", "carton_index", name="uq_shipment_cartons_shipment_index"),
    )

    id = Column(String(36), primary_key=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    shipment_id = Column(String(36), ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True)
    carton_index = Column(Integer, nullable=False)

    provider_carton_id = Column(BigInteger, nullable=True)
    barcode = Column(String(128), nullable=True)
    carton_type = Column(String(64), nullable=True)
    parent_barcode = Column(String(128), nullable=True)
    length_in = Column(Float, nullable=True)
    width_in = Column(Float, nullable=True)
    depth_in = Column(Float, nullable=True)
    weight_oz = Column(Float, nullable=True)
    contents = Column(JsonType, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Transaction(Base):
    """Billable event. ``client_id`` stays null until it can be attributed."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True)
    provider_transaction_id = Column(String(64), nullable=False, unique=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=True, index=True)

    reference_id = Column(String(128), nullable=True, index=True)
    reference_type = Column(String(64), nullable=True)
    transaction_type = Column(String(64), nullable=True)
    fee_type = Column(String(128), nullable=True)
    amount = Column(Numeric(14, 2), nullable=True)
    charge_date = Column(DateTime(timezone=True), nullable=True, index=True)
    invoiced = Column(Boolean, nullable=False, default=False)
    invoice_id = Column(String(64), nullable=True)
    invoice_date = Column(DateTime(timezone=True), nullable=True)
    fulfillment_center = Column(String(255), nullable=True)
    tracking_id = Column(String(128), nullable=True)
    additional_details = Column(JsonType, nullable=True)
    # Set when the referenced resource answered 404; such references go to
    # the back of the next lookup queue.
    reference_lookup_failed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Return(Base):
    __tablename__ = "returns"
    __table_args__ = (
        UniqueConstraint("client_id", "provider_return_id", name="uq_returns_client_provider_return"),
    )

    id = Column(String(36), primary_key=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    merchant_id = Column(String(64), nullable=True)
    provider_return_id = Column(String(64), nullable=False, index=True)

    reference_id = Column(String(255), nullable=True)
    status = Column(String(64), nullable=True)
    return_type = Column(String(64), nullable=True)
    tracking_number = Column(String(128), nullable=True)
    original_shipment_id = Column(String(64), nullable=True)
    store_order_id = Column(String(255), nullable=True)
    customer_name = Column(String(255), nullable=True)
    invoice_amount = Column(Numeric(14, 2), nullable=True)
    fc_id = Column(String(64), nullable=True)
    fc_name = Column(String(255), nullable=True)
    channel_id = Column(String(64), nullable=True)
    channel_name = Column(String(255), nullable=True)
    insert_date = Column(DateTime(timezone=True), nullable=True)
    arrived_date = Column(DateTime(timezone=True), nullable=True)
    processing_date = Column(DateTime(timezone=True), nullable=True)
    completed_date = Column(DateTime(timezone=True), nullable=True)
    cancelled_date = Column(DateTime(timezone=True), nullable=True)
    status_history = Column(JsonType, nullable=True)
    inventory = Column(JsonType, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ReceivingOrder(Base):
    """Warehouse receiving order (inbound stock)."""

    __tablename__ = "receiving_orders"
    __table_args__ = (
        UniqueConstraint("client_id", "provider_receiving_id", name="uq_receiving_orders_client_provider"),
    )

    id = Column(String(36), primary_key=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    merchant_id = Column(String(64), nullable=True)
    provider_receiving_id = Column(String(64), nullable=False, index=True)

    purchase_order_number = Column(String(255), nullable=True)
    status = Column(String(64), nullable=True)
    package_type = Column(String(64), nullable=True)
    box_packaging_type = Column(String(64), nullable=True)
    expected_arrival_date = Column(DateTime(timezone=True), nullable=True)
    insert_date = Column(DateTime(timezone=True), nullable=True)
    last_updated_date = Column(DateTime(timezone=True), nullable=True)
    fc_id = Column(String(64), nullable=True)
    fc_name = Column(String(255), nullable=True)
    status_history = Column(JsonType, nullable=True)
    inventory_quantities = Column(JsonType, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ShipmentTimelineEvent(Base):
    """Append-only status checkpoint for a shipment."""

    __tablename__ = "shipment_timeline_events"
    __table_args__ = (
        UniqueConstraint("shipment_id", "log_type_id", "occurred_at", name="uq_timeline_events_shipment_type_time"),
    )

    id = Column(String(36), primary_key=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    shipment_id = Column(String(36), ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True)
    log_type_id = Column(Integer, nullable=False)
    event_name = Column(String(64), nullable=True)
    description = Column(Text, nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class FulfillmentCenter(Base):
    """Warehouse reference data, keyed by the name shipments report in ``location.name``."""

    __tablename__ = "fulfillment_centers"

    id = Column(String(36), primary_key=True)
    provider_fc_id = Column(String(64), nullable=True)
    name = Column(String(255), nullable=False, unique=True)
    country = Column(String(8), nullable=False, default="US")

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
