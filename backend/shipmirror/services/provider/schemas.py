"""Validated shapes for provider records.

Only the fields the mirror stores are declared. Everything else the provider
sends is kept by ``extra="allow"`` and exposed through ``model_extra`` so new
upstream fields never break mapping.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ProviderRecord(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    @property
    def unknown_fields(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class Address(ProviderRecord):
    address1: Optional[str] = None
    address2: Optional[str] = None
    company_name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None


class Recipient(ProviderRecord):
    name: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[Address] = None


class NamedRef(ProviderRecord):
    id: Optional[str] = None
    name: Optional[str] = None


class Financials(ProviderRecord):
    total_price: Optional[float] = None


class CarrierTerms(ProviderRecord):
    type: Optional[str] = None
    payment_term: Optional[str] = None


class Tracking(ProviderRecord):
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    carrier: Optional[str] = None


class Zone(ProviderRecord):
    id: Optional[int] = None


class ShipmentMeasurements(ProviderRecord):
    length_in: Optional[float] = None
    width_in: Optional[float] = None
    depth_in: Optional[float] = None
    total_weight_oz: Optional[float] = None


class CartonMeasurements(ProviderRecord):
    length_in: Optional[float] = None
    width_in: Optional[float] = None
    depth_in: Optional[float] = None
    weight_oz: Optional[float] = None


class ProviderInventory(ProviderRecord):
    id: Optional[int] = None
    lot: Optional[str] = None
    expiration_date: Optional[str] = None
    quantity: Optional[int] = None
    quantity_committed: Optional[int] = None
    serial_numbers: Optional[List[Any]] = None


class ProviderProduct(ProviderRecord):
    """Line on an order (``order.products``) or shipment (``shipment.products``)."""

    id: Optional[int] = None
    sku: Optional[str] = None
    reference_id: Optional[str] = None
    name: Optional[str] = None
    quantity: Optional[int] = None
    unit_price: Optional[float] = None
    gtin: Optional[str] = None
    upc: Optional[str] = None
    external_line_id: Optional[str] = None
    is_dangerous_goods: Optional[bool] = None
    inventory: List[ProviderInventory] = Field(default_factory=list)


class ProviderCarton(ProviderRecord):
    id: Optional[int] = None
    barcode: Optional[str] = None
    type: Optional[str] = None
    parent_carton_barcode: Optional[str] = None
    measurements: Optional[CartonMeasurements] = None
    products: Optional[List[Any]] = None


class ProviderShipment(ProviderRecord):
    id: int
    status: Optional[str] = None
    status_details: Optional[Any] = None
    recipient: Optional[Recipient] = None
    tracking: Optional[Tracking] = None
    ship_option: Optional[str] = None
    zone: Optional[Zone] = None
    location: Optional[NamedRef] = None
    measurements: Optional[ShipmentMeasurements] = None
    insurance_value: Optional[float] = None
    require_signature: Optional[bool] = None
    package_material_type: Optional[str] = None
    created_date: Optional[str] = None
    delivery_date: Optional[str] = None
    estimated_fulfillment_date: Optional[str] = None
    last_update_at: Optional[str] = None
    products: List[ProviderProduct] = Field(default_factory=list)
    parent_cartons: List[ProviderCarton] = Field(default_factory=list)


class ProviderOrder(ProviderRecord):
    id: int
    order_number: Optional[str] = None
    reference_id: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None
    channel: Optional[NamedRef] = None
    shipping_method: Optional[str] = None
    recipient: Optional[Recipient] = None
    purchase_date: Optional[str] = None
    created_date: Optional[str] = None
    financials: Optional[Financials] = None
    gift_message: Optional[str] = None
    carrier: Optional[CarrierTerms] = None
    tags: Optional[List[Any]] = None
    products: List[ProviderProduct] = Field(default_factory=list)
    shipments: List[ProviderShipment] = Field(default_factory=list)


class ProviderTransaction(ProviderRecord):
    transaction_id: str
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    transaction_type: Optional[str] = None
    transaction_fee: Optional[str] = None
    amount: Optional[float] = None
    charge_date: Optional[str] = None
    invoice_date: Optional[str] = None
    invoiced_status: Optional[bool] = None
    invoice_id: Optional[str] = None
    fulfillment_center: Optional[str] = None
    additional_details: Optional[Dict[str, Any]] = None


class ProviderReturn(ProviderRecord):
    id: int
    reference_id: Optional[str] = None
    status: Optional[str] = None
    return_type: Optional[str] = None
    tracking_number: Optional[str] = None
    original_shipment_id: Optional[str] = None
    store_order_id: Optional[str] = None
    customer_name: Optional[str] = None
    invoice_amount: Optional[float] = None
    fulfillment_center: Optional[NamedRef] = None
    channel: Optional[NamedRef] = None
    insert_date: Optional[str] = None
    arrived_date: Optional[str] = None
    processing_date: Optional[str] = None
    completed_date: Optional[str] = None
    cancelled_date: Optional[str] = None
    status_history: Optional[List[Any]] = None
    inventory: Optional[List[Any]] = None


class ProviderReceivingOrder(ProviderRecord):
    id: int
    purchase_order_number: Optional[str] = None
    status: Optional[str] = None
    package_type: Optional[str] = None
    box_packaging_type: Optional[str] = None
    expected_arrival_date: Optional[str] = None
    insert_date: Optional[str] = None
    last_updated_date: Optional[str] = None
    fulfillment_center: Optional[NamedRef] = None
    status_history: Optional[List[Any]] = None
    inventory_quantities: Optional[List[Any]] = None


class ProviderTimelineEvent(ProviderRecord):
    log_type_id: int
    timestamp: Optional[str] = None
    description: Optional[str] = None


RecordT = TypeVar("RecordT", bound=ProviderRecord)


def parse_records(model: Type[RecordT], raw_items: List[Any]) -> Tuple[List[RecordT], List[str]]:
    """Validate raw dicts, returning (records, error messages).

    A record that fails validation is reported and dropped; it never aborts the
    rest of the batch.
    """
    records: List[RecordT] = []
    errors: List[str] = []
    for raw in raw_items or []:
        try:
            records.append(model.model_validate(raw))
        except ValidationError as exc:
            ident = raw.get("id") or raw.get("transaction_id") if isinstance(raw, dict) else None
            errors.append(f"{model.__name__} {ident}: invalid record ({exc.error_count()} errors)")
    return records, errors
