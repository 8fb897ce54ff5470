"""Pure conversions from validated provider records to local row dicts.

Rows carry column values only; ids and created/updated timestamps are filled
in by the upserter. Missing optional fields map to explicit defaults (mostly
None) and never raise.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from shipmirror.services.provider.schemas import (
    ProviderCarton,
    ProviderOrder,
    ProviderProduct,
    ProviderReceivingOrder,
    ProviderReturn,
    ProviderShipment,
    ProviderTimelineEvent,
    ProviderTransaction,
)
from shipmirror.utils.timeutil import parse_datetime

TIMELINE_EVENT_NAMES: Dict[int, str] = {
    601: "created",
    602: "picked",
    603: "packed",
    604: "labeled",
    605: "labelvalidated",
    607: "intransit",
    608: "outfordelivery",
    609: "delivered",
    611: "deliveryattemptfailed",
}
DELIVERED_LOG_TYPE = 609

# Service levels the shipping-method listing does not always name the same way.
MANUAL_SHIP_OPTION_IDS: Dict[str, int] = {"Ground": 3, "1 Day": 8, "2 Day": 9}


def _normalize_name(value: str) -> str:
    return "".join(value.lower().split())


@dataclass
class OrderLookups:
    """Reference data resolved once per client pass and consulted while mapping.

    ``fulfillment_centers`` maps an FC name (and its first word) to
    ``(fc_id, country)``; ``ship_options`` maps service level names, raw and
    normalized, to ids; ``channel_apps`` maps channel ids to the integration
    (application) name.
    """

    fulfillment_centers: Dict[str, Tuple[Optional[str], str]] = field(default_factory=dict)
    ship_options: Dict[str, int] = field(default_factory=dict)
    channel_apps: Dict[str, str] = field(default_factory=dict)

    def add_fulfillment_center(self, name: str, fc_id: Optional[str], country: str) -> None:
        self.fulfillment_centers[name] = (fc_id, country)
        self.fulfillment_centers.setdefault(name.split(" ")[0], (fc_id, country))

    def add_ship_option(self, name: str, option_id: int) -> None:
        name = name.strip()
        self.ship_options[name] = option_id
        self.ship_options[_normalize_name(name)] = option_id

    def fulfillment_center(self, name: Optional[str]) -> Optional[Tuple[Optional[str], str]]:
        if not name:
            return None
        return self.fulfillment_centers.get(name) or self.fulfillment_centers.get(name.split(" ")[0])

    def ship_option_id(self, ship_option: Optional[str]) -> Optional[int]:
        if not ship_option:
            return None
        return (
            self.ship_options.get(ship_option)
            or self.ship_options.get(_normalize_name(ship_option))
            or MANUAL_SHIP_OPTION_IDS.get(ship_option)
        )

    def application_name(self, channel_id: Optional[str]) -> Optional[str]:
        if channel_id is None:
            return None
        return self.channel_apps.get(str(channel_id))


NO_LOOKUPS = OrderLookups()


def _money(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return None


def _positive(value: Optional[float]) -> Optional[float]:
    return value if value else None


def _str_id(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def dim_divisor(origin_country: str, destination_country: str, actual_weight_oz: float) -> Optional[int]:
    """Carrier dimensional-weight divisor for a lane, or None when DIM does not apply."""
    if origin_country == "AU" or destination_country == "AU":
        return 110
    if origin_country == "US" and destination_country == "US":
        return 166 if actual_weight_oz >= 16 else None
    return 139


def map_order(
    order: ProviderOrder,
    *,
    client_id: str,
    merchant_id: Optional[str],
    lookups: OrderLookups = NO_LOOKUPS,
) -> Dict[str, Any]:
    recipient = order.recipient
    address = recipient.address if recipient else None
    return {
        "client_id": client_id,
        "merchant_id": merchant_id,
        "provider_order_id": str(order.id),
        "store_order_id": order.order_number,
        "reference_id": order.reference_id,
        "status": order.status,
        "order_type": order.type,
        "channel_id": order.channel.id if order.channel else None,
        "channel_name": order.channel.name if order.channel else None,
        "application_name": lookups.application_name(order.channel.id) if order.channel else None,
        "shipping_method": order.shipping_method,
        "customer_name": recipient.name if recipient else None,
        "customer_email": recipient.email if recipient else None,
        "customer_phone": recipient.phone_number if recipient else None,
        "company_name": address.company_name if address else None,
        "address1": address.address1 if address else None,
        "address2": address.address2 if address else None,
        "city": address.city if address else None,
        "state": address.state if address else None,
        "zip_code": address.zip_code if address else None,
        "country": address.country if address else None,
        "purchase_date": parse_datetime(order.purchase_date),
        "order_created_at": parse_datetime(order.created_date),
        "total_price": _money(order.financials.total_price if order.financials else None),
        "total_shipments": len(order.shipments),
        "gift_message": order.gift_message,
        "carrier_type": order.carrier.type if order.carrier else None,
        "payment_term": order.carrier.payment_term if order.carrier else None,
        "tags": order.tags,
        "extra_fields": order.unknown_fields or None,
    }


def map_shipment(
    shipment: ProviderShipment,
    order: ProviderOrder,
    *,
    client_id: str,
    merchant_id: Optional[str],
    order_row_id: str,
    lookups: OrderLookups = NO_LOOKUPS,
) -> Dict[str, Any]:
    measurements = shipment.measurements
    length = (measurements.length_in if measurements else None) or 0
    width = (measurements.width_in if measurements else None) or 0
    height = (measurements.depth_in if measurements else None) or 0
    actual_weight = (measurements.total_weight_oz if measurements else None) or 0

    order_address = order.recipient.address if order.recipient else None
    fc_name = shipment.location.name if shipment.location else None
    fc = lookups.fulfillment_center(fc_name)
    origin_country = (fc[1] if fc else None) or "US"
    destination_country = (order_address.country if order_address else None) or "US"

    dim_weight = None
    billable_weight = actual_weight
    divisor = dim_divisor(origin_country, destination_country, actual_weight)
    if divisor and length > 0 and width > 0 and height > 0:
        dim_weight = float(round(length * width * height / divisor * 16))
        billable_weight = max(actual_weight, dim_weight)

    recipient = shipment.recipient
    tracking = shipment.tracking
    return {
        "client_id": client_id,
        "merchant_id": merchant_id,
        "order_id": order_row_id,
        "provider_shipment_id": str(shipment.id),
        "provider_order_id": str(order.id),
        "status": shipment.status,
        "status_details": shipment.status_details,
        "recipient_name": (recipient.name or recipient.full_name) if recipient else None,
        "recipient_email": recipient.email if recipient else None,
        "tracking_number": tracking.tracking_number if tracking else None,
        "tracking_url": tracking.tracking_url if tracking else None,
        "carrier": tracking.carrier if tracking else None,
        "carrier_service": shipment.ship_option,
        "ship_option_id": lookups.ship_option_id(shipment.ship_option),
        "zone_used": shipment.zone.id if shipment.zone else None,
        "fc_id": fc[0] if fc else None,
        "fc_name": fc_name,
        "origin_country": origin_country,
        "destination_country": destination_country,
        "actual_weight_oz": _positive(actual_weight),
        "dim_weight_oz": dim_weight,
        "billable_weight_oz": _positive(billable_weight),
        "length": _positive(length),
        "width": _positive(width),
        "height": _positive(height),
        "insurance_value": _money(shipment.insurance_value),
        "require_signature": bool(shipment.require_signature),
        "package_material_type": shipment.package_material_type,
        "shipment_created_at": parse_datetime(shipment.created_date),
        "delivered_at": parse_datetime(shipment.delivery_date),
        "estimated_fulfillment_date": parse_datetime(shipment.estimated_fulfillment_date),
        "last_update_at": parse_datetime(shipment.last_update_at),
        "extra_fields": shipment.unknown_fields or None,
    }


def map_order_item(product: ProviderProduct, *, client_id: str, order_row_id: str) -> Dict[str, Any]:
    return {
        "client_id": client_id,
        "order_id": order_row_id,
        "provider_product_id": product.id,
        "sku": product.sku,
        "reference_id": product.reference_id,
        "name": product.name,
        "quantity": product.quantity,
        "unit_price": _money(product.unit_price),
        "gtin": product.gtin,
        "upc": product.upc,
        "external_line_id": product.external_line_id,
    }


def resolve_item_quantity(product: ProviderProduct, order_products: List[ProviderProduct]) -> Optional[int]:
    """Quantity for a shipment line.

    The shipment payload often lacks quantities, so the order's lines are used
    as fallback. First positive value wins, in this order: inventory lots on
    the shipment line, order line with the same product id, order line with
    the same SKU, the shipment line's own quantity.
    """
    inventory_qty = sum(inv.quantity for inv in product.inventory if inv.quantity)
    if inventory_qty > 0:
        return inventory_qty

    if product.id is not None:
        for line in order_products:
            if line.id == product.id and line.quantity:
                return line.quantity

    if product.sku:
        for line in order_products:
            if line.sku == product.sku and line.quantity:
                return line.quantity

    if product.quantity:
        return product.quantity
    return None


def map_shipment_items(
    shipment: ProviderShipment,
    order: ProviderOrder,
    *,
    client_id: str,
    shipment_row_id: str,
) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for product in shipment.products:
        lots = [
            {
                "inventory_id": inv.id,
                "lot": inv.lot,
                "expiration_date": inv.expiration_date,
                "quantity": inv.quantity,
                "quantity_committed": inv.quantity_committed,
                "serial_numbers": inv.serial_numbers,
            }
            for inv in product.inventory
        ]
        rows.append(
            {
                "client_id": client_id,
                "shipment_id": shipment_row_id,
                "provider_product_id": product.id,
                "sku": product.sku,
                "reference_id": product.reference_id,
                "name": product.name,
                "quantity": resolve_item_quantity(product, order.products),
                "is_dangerous_goods": bool(product.is_dangerous_goods),
                "lots": lots or None,
            }
        )
    return rows


def map_carton(carton: ProviderCarton, index: int, *, client_id: str, shipment_row_id: str) -> Dict[str, Any]:
    m = carton.measurements
    return {
        "client_id": client_id,
        "shipment_id": shipment_row_id,
        "carton_index": index,
        "provider_carton_id": carton.id,
        "barcode": carton.barcode,
        "carton_type": carton.type,
        "parent_barcode": carton.parent_carton_barcode,
        "length_in": m.length_in if m else None,
        "width_in": m.width_in if m else None,
        "depth_in": m.depth_in if m else None,
        "weight_oz": m.weight_oz if m else None,
        "contents": carton.products,
    }


def map_transaction(tx: ProviderTransaction, *, client_id: Optional[str]) -> Dict[str, Any]:
    details = tx.additional_details or {}
    return {
        "provider_transaction_id": tx.transaction_id,
        "client_id": client_id,
        "reference_id": tx.reference_id,
        "reference_type": tx.reference_type,
        "transaction_type": tx.transaction_type,
        "fee_type": tx.transaction_fee,
        "amount": _money(tx.amount),
        "charge_date": parse_datetime(tx.charge_date),
        "invoiced": bool(tx.invoiced_status),
        "invoice_id": tx.invoice_id,
        "invoice_date": parse_datetime(tx.invoice_date),
        "fulfillment_center": tx.fulfillment_center,
        "tracking_id": _str_id(details.get("TrackingId")),
        "additional_details": tx.additional_details,
    }


def map_return(ret: ProviderReturn, *, client_id: str, merchant_id: Optional[str]) -> Dict[str, Any]:
    fc = ret.fulfillment_center
    return {
        "client_id": client_id,
        "merchant_id": merchant_id,
        "provider_return_id": str(ret.id),
        "reference_id": ret.reference_id,
        "status": ret.status,
        "return_type": ret.return_type,
        "tracking_number": ret.tracking_number,
        "original_shipment_id": ret.original_shipment_id,
        "store_order_id": ret.store_order_id,
        "customer_name": ret.customer_name,
        "invoice_amount": _money(ret.invoice_amount),
        "fc_id": fc.id if fc else None,
        "fc_name": fc.name if fc else None,
        "channel_id": ret.channel.id if ret.channel else None,
        "channel_name": ret.channel.name if ret.channel else None,
        "insert_date": parse_datetime(ret.insert_date),
        "arrived_date": parse_datetime(ret.arrived_date),
        "processing_date": parse_datetime(ret.processing_date),
        "completed_date": parse_datetime(ret.completed_date),
        "cancelled_date": parse_datetime(ret.cancelled_date),
        "status_history": ret.status_history,
        "inventory": ret.inventory,
    }


def map_receiving_order(wro: ProviderReceivingOrder, *, client_id: str, merchant_id: Optional[str]) -> Dict[str, Any]:
    fc = wro.fulfillment_center
    return {
        "client_id": client_id,
        "merchant_id": merchant_id,
        "provider_receiving_id": str(wro.id),
        "purchase_order_number": wro.purchase_order_number,
        "status": wro.status,
        "package_type": wro.package_type,
        "box_packaging_type": wro.box_packaging_type,
        "expected_arrival_date": parse_datetime(wro.expected_arrival_date),
        "insert_date": parse_datetime(wro.insert_date),
        "last_updated_date": parse_datetime(wro.last_updated_date),
        "fc_id": fc.id if fc else None,
        "fc_name": fc.name if fc else None,
        "status_history": wro.status_history,
        "inventory_quantities": wro.inventory_quantities,
    }


def map_timeline_event(
    event: ProviderTimelineEvent, *, client_id: str, shipment_row_id: str
) -> Optional[Dict[str, Any]]:
    occurred_at = parse_datetime(event.timestamp)
    if occurred_at is None:
        return None
    return {
        "client_id": client_id,
        "shipment_id": shipment_row_id,
        "log_type_id": event.log_type_id,
        "event_name": TIMELINE_EVENT_NAMES.get(event.log_type_id),
        "description": event.description,
        "occurred_at": occurred_at,
    }
