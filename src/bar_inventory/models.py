"""Database models for the bar inventory."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base
from .stock import StockMap, as_stock_map


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin providing created/updated timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class InventoryItem(Base, TimestampMixin):
    __tablename__ = "inventory_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    category: Mapped[str | None] = mapped_column(String(128))
    barcode: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    price_per_unit_without_iva: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    stock_levels: Mapped[list["ItemStock"]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ItemStock.id",
    )

    @property
    def stock_by_location(self) -> StockMap:
        return as_stock_map(self.stock_levels)


class ItemStock(Base):
    """One recorded location of an item's sparse stock map."""

    __tablename__ = "inventory_item_stock"
    __table_args__ = (UniqueConstraint("item_id", "location", name="uq_item_stock_location"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_id: Mapped[str] = mapped_column(
        ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location: Mapped[str] = mapped_column(String(128), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    item: Mapped[InventoryItem] = relationship(back_populates="stock_levels")


class PurchaseOrder(Base, TimestampMixin):
    __tablename__ = "purchase_orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_date: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    delivery_date: Mapped[str | None] = mapped_column(String(64))
    supplier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(64), nullable=False)
    total_amount: Mapped[float | None] = mapped_column(Float)

    lines: Mapped[list["PurchaseOrderLine"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseOrderLine.position",
    )


class PurchaseOrderLine(Base):
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_purchase_order_lines_quantity_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[str] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    # Soft reference: items may be deleted without touching past orders.
    inventory_item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    cost_at_time_of_purchase: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    price_per_unit_without_iva: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    order: Mapped[PurchaseOrder] = relationship(back_populates="lines")


class InventoryRecord(Base, TimestampMixin):
    __tablename__ = "inventory_records"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    date: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    label: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)


__all__ = [
    "InventoryItem",
    "ItemStock",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "InventoryRecord",
]
