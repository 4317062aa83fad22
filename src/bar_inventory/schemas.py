"""Pydantic schemas used by the API.

External JSON keeps the camelCase names the frontend already uses
(``pricePerUnitWithoutIVA``, ``stockByLocation``...); Python code works with
the snake_case field names.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from . import models
from .stock import ReconcileMode, coerce_quantity


def _lenient_number(value: Any) -> float | None:
    if value is None:
        return None
    return coerce_quantity(value)


def _lenient_stock_map(value: Any) -> dict[str, float] | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        return {}
    return {str(key): coerce_quantity(qty) for key, qty in value.items()}


LenientNumber = Annotated[float | None, BeforeValidator(_lenient_number)]
LenientStockMap = Annotated[dict[str, float] | None, BeforeValidator(_lenient_stock_map)]


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class InventoryItemIn(CamelModel):
    id: str | None = None
    name: str = Field(..., min_length=1)
    category: str | None = None
    barcode: str | None = None
    price_per_unit_without_iva: float | None = Field(default=None, alias="pricePerUnitWithoutIVA")
    stock_by_location: dict[str, Any] | None = Field(default=None, alias="stockByLocation")


class InventoryItemOut(CamelModel):
    id: str
    name: str
    category: str | None = None
    barcode: str = ""
    price_per_unit_without_iva: float = Field(0, alias="pricePerUnitWithoutIVA")
    stock_by_location: dict[str, float] = Field(default_factory=dict, alias="stockByLocation")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    @classmethod
    def from_model(cls, item: models.InventoryItem) -> "InventoryItemOut":
        return cls(
            id=item.id,
            name=item.name,
            category=item.category,
            barcode=item.barcode or "",
            price_per_unit_without_iva=item.price_per_unit_without_iva or 0,
            stock_by_location=item.stock_by_location,
            created_at=item.created_at,
            updated_at=item.updated_at,
        )


class BulkStockUpdate(CamelModel):
    name: str
    stock: Annotated[float, BeforeValidator(coerce_quantity)] = 0
    mode: ReconcileMode = ReconcileMode.SET


class BulkUpdateResult(BaseModel):
    message: str
    processed: int


class OrderLineIn(CamelModel):
    inventory_item_id: str = Field(..., alias="inventoryItemId")
    quantity: float = Field(..., ge=0)
    cost_at_time_of_purchase: float = Field(0, alias="costAtTimeOfPurchase")
    # Accepted for compatibility; always replaced by the current item price.
    price_per_unit_without_iva: float | None = Field(default=None, alias="pricePerUnitWithoutIVA")


class OrderLineOut(CamelModel):
    inventory_item_id: str = Field(..., alias="inventoryItemId")
    quantity: float
    cost_at_time_of_purchase: float = Field(0, alias="costAtTimeOfPurchase")
    price_per_unit_without_iva: float = Field(0, alias="pricePerUnitWithoutIVA")


class PurchaseOrderIn(CamelModel):
    id: str | None = None
    order_date: str = Field(..., min_length=1, alias="orderDate")
    delivery_date: str | None = Field(default=None, alias="deliveryDate")
    supplier_name: str = Field(..., min_length=1, alias="supplierName")
    status: str = Field(..., min_length=1)
    total_amount: float | None = Field(default=None, alias="totalAmount")
    items: list[OrderLineIn] = Field(default_factory=list)


class PurchaseOrderOut(CamelModel):
    id: str
    order_date: str = Field(..., alias="orderDate")
    delivery_date: str | None = Field(default=None, alias="deliveryDate")
    supplier_name: str = Field(..., alias="supplierName")
    status: str
    total_amount: float | None = Field(default=None, alias="totalAmount")
    items: list[OrderLineOut] = Field(default_factory=list)
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    @classmethod
    def from_model(cls, order: models.PurchaseOrder) -> "PurchaseOrderOut":
        return cls(
            id=order.id,
            order_date=order.order_date,
            delivery_date=order.delivery_date,
            supplier_name=order.supplier_name,
            status=order.status,
            total_amount=order.total_amount,
            items=[
                OrderLineOut(
                    inventory_item_id=line.inventory_item_id,
                    quantity=line.quantity,
                    cost_at_time_of_purchase=line.cost_at_time_of_purchase,
                    price_per_unit_without_iva=line.price_per_unit_without_iva,
                )
                for line in order.lines
            ],
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class RecordItem(CamelModel):
    """One line of a history record; which fields are filled depends on the record type."""

    item_id: str | None = Field(default=None, alias="itemId")
    name: str = ""
    category: str | None = None
    barcode: str | None = None
    price_per_unit_without_iva: LenientNumber = Field(default=None, alias="pricePerUnitWithoutIVA")
    current_stock: LenientNumber = Field(default=None, alias="currentStock")
    pending_stock: LenientNumber = Field(default=None, alias="pendingStock")
    initial_stock: LenientNumber = Field(default=None, alias="initialStock")
    end_stock: LenientNumber = Field(default=None, alias="endStock")
    consumption: LenientNumber = None
    stock_by_location_snapshot: LenientStockMap = Field(default=None, alias="stockByLocationSnapshot")


RecordType = Literal["snapshot", "analysis"]


class InventoryRecordIn(CamelModel):
    id: str | None = None
    date: str | None = None
    label: str | None = None
    type: RecordType
    items: list[RecordItem] | None = None


class InventoryRecordOut(CamelModel):
    id: str
    date: str
    label: str = ""
    type: RecordType
    items: list[RecordItem] = Field(default_factory=list)

    @classmethod
    def from_model(cls, record: models.InventoryRecord) -> "InventoryRecordOut":
        return cls(
            id=record.id,
            date=record.date,
            label=record.label or "",
            type=record.type,
            items=[RecordItem.model_validate(entry) for entry in record.items or []],
        )


class DeleteResult(BaseModel):
    message: str
    deleted: int = 1


class ParsedLine(BaseModel):
    name: str
    quantity: float = 0


class DeliveryNoteRequest(CamelModel):
    image_base64: str = Field(..., min_length=1, alias="imageBase64")
    inventory_names: list[str] | None = Field(default=None, alias="inventoryNames")


class DeliveryNoteResult(BaseModel):
    items: list[ParsedLine]


class HealthStatus(BaseModel):
    status: Literal["ok"] = "ok"
    environment: str


__all__ = [
    "InventoryItemIn",
    "InventoryItemOut",
    "BulkStockUpdate",
    "BulkUpdateResult",
    "OrderLineIn",
    "OrderLineOut",
    "PurchaseOrderIn",
    "PurchaseOrderOut",
    "RecordItem",
    "RecordType",
    "InventoryRecordIn",
    "InventoryRecordOut",
    "DeleteResult",
    "ParsedLine",
    "DeliveryNoteRequest",
    "DeliveryNoteResult",
    "HealthStatus",
]
