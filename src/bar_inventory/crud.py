"""Business logic for interacting with the database."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from . import schemas
from .identity import resolve_id
from .models import InventoryItem, InventoryRecord, ItemStock, PurchaseOrder, PurchaseOrderLine
from .stock import StockPatch, current_quantity, reconcile_quantity

logger = logging.getLogger(__name__)


class RecordTypeChangeError(ValueError):
    """Raised when an upsert would change the type of an existing record."""


def _iso_now() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ----------------------------------------------------------------------
# Inventory items
# ----------------------------------------------------------------------


async def list_items(session: AsyncSession) -> Sequence[InventoryItem]:
    stmt = select(InventoryItem).order_by(InventoryItem.name)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_item(session: AsyncSession, item_id: str) -> InventoryItem:
    item = await session.get(InventoryItem, resolve_id(item_id).value)
    if item is None:
        raise NoResultFound(f"Inventory item {item_id} not found")
    return item


def apply_stock_patch(item: InventoryItem, patch: StockPatch) -> None:
    """Write the patched locations onto ``item``; other locations keep their rows."""

    levels = {level.location: level for level in item.stock_levels}
    for location, quantity in patch:
        level = levels.get(location)
        if level is None:
            item.stock_levels.append(ItemStock(location=location, quantity=quantity))
        else:
            level.quantity = quantity


async def upsert_item(session: AsyncSession, data: schemas.InventoryItemIn) -> InventoryItem:
    canonical = resolve_id(data.id)
    item = await session.get(InventoryItem, canonical.value)
    if item is None:
        item = InventoryItem(id=canonical.value, name=data.name, stock_levels=[])
        session.add(item)

    fields = data.model_dump(exclude_unset=True, exclude={"id", "barcode", "stock_by_location"})
    for field, value in fields.items():
        if field == "price_per_unit_without_iva" and value is None:
            value = 0
        setattr(item, field, value)
    item.barcode = data.barcode or ""

    apply_stock_patch(item, StockPatch.from_raw(data.stock_by_location))
    await session.flush()
    return item


async def delete_item(session: AsyncSession, item: InventoryItem) -> None:
    await session.delete(item)
    await session.flush()


async def _reconcile_entry(
    session_factory: async_sessionmaker[AsyncSession],
    update: schemas.BulkStockUpdate,
    location: str,
) -> bool:
    async with session_factory() as session:
        stmt = select(InventoryItem).where(InventoryItem.name == update.name).limit(1)
        result = await session.execute(stmt)
        item = result.scalars().first()
        if item is None:
            logger.info("Bulk stock update skipped unknown item %r", update.name)
            return False
        current = current_quantity(item.stock_levels, location)
        new_quantity = reconcile_quantity(current, update.stock, update.mode)
        apply_stock_patch(item, StockPatch({location: new_quantity}))
        await session.commit()
        return True


async def reconcile_stock(
    session_factory: async_sessionmaker[AsyncSession],
    updates: Sequence[schemas.BulkStockUpdate],
    *,
    location: str,
) -> int:
    """Apply ``set``/``add`` adjustments for one location, each entry in its own session.

    Entries run concurrently. Unknown names and individual failures do not stop
    the rest of the batch; the number of entries processed is returned. When
    every entry fails the first error is raised.
    """

    results = await asyncio.gather(
        *(_reconcile_entry(session_factory, update, location) for update in updates),
        return_exceptions=True,
    )
    failures = [result for result in results if isinstance(result, BaseException)]
    for update, result in zip(updates, results):
        if isinstance(result, BaseException):
            logger.error("Bulk stock update failed for %r", update.name, exc_info=result)
    if failures and len(failures) == len(updates):
        raise failures[0]
    return len(updates)


# ----------------------------------------------------------------------
# Purchase orders
# ----------------------------------------------------------------------


async def current_prices(session: AsyncSession, item_ids: Iterable[str]) -> dict[str, float]:
    wanted = set(item_ids)
    if not wanted:
        return {}
    stmt = select(InventoryItem.id, InventoryItem.price_per_unit_without_iva).where(
        InventoryItem.id.in_(wanted)
    )
    result = await session.execute(stmt)
    return {row.id: row.price_per_unit_without_iva or 0 for row in result.all()}


def stamp_line_prices(
    lines: Sequence[schemas.OrderLineIn], prices: Mapping[str, float]
) -> list[schemas.OrderLineOut]:
    """Freeze the current unit price into each order line; unknown items get 0."""

    stamped = []
    for line in lines:
        item_id = resolve_id(line.inventory_item_id).value
        stamped.append(
            schemas.OrderLineOut(
                inventory_item_id=item_id,
                quantity=line.quantity,
                cost_at_time_of_purchase=line.cost_at_time_of_purchase,
                price_per_unit_without_iva=prices.get(item_id, 0),
            )
        )
    return stamped


async def list_orders(session: AsyncSession) -> Sequence[PurchaseOrder]:
    stmt = select(PurchaseOrder).order_by(PurchaseOrder.order_date.desc())
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_order(session: AsyncSession, order_id: str) -> PurchaseOrder:
    order = await session.get(PurchaseOrder, resolve_id(order_id).value)
    if order is None:
        raise NoResultFound(f"Purchase order {order_id} not found")
    return order


async def upsert_order(session: AsyncSession, data: schemas.PurchaseOrderIn) -> PurchaseOrder:
    canonical = resolve_id(data.id)
    order = await session.get(PurchaseOrder, canonical.value)
    if order is None:
        order = PurchaseOrder(id=canonical.value, lines=[])
        session.add(order)

    fields = data.model_dump(exclude_unset=True, exclude={"id", "items"})
    for field, value in fields.items():
        setattr(order, field, value)

    if "items" in data.model_fields_set:
        item_ids = [resolve_id(line.inventory_item_id).value for line in data.items]
        prices = await current_prices(session, item_ids)
        order.lines = [
            PurchaseOrderLine(
                position=position,
                inventory_item_id=line.inventory_item_id,
                quantity=line.quantity,
                cost_at_time_of_purchase=line.cost_at_time_of_purchase,
                price_per_unit_without_iva=line.price_per_unit_without_iva,
            )
            for position, line in enumerate(stamp_line_prices(data.items, prices))
        ]

    await session.flush()
    logger.info("Order processed successfully: %s", order.id)
    return order


async def delete_order(session: AsyncSession, order: PurchaseOrder) -> None:
    await session.delete(order)
    await session.flush()


# ----------------------------------------------------------------------
# History records
# ----------------------------------------------------------------------


async def list_records(session: AsyncSession) -> Sequence[InventoryRecord]:
    stmt = select(InventoryRecord).order_by(InventoryRecord.date.desc())
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_record(session: AsyncSession, record_id: str) -> InventoryRecord:
    record = await session.get(InventoryRecord, resolve_id(record_id).value)
    if record is None:
        raise NoResultFound(f"Record Not Found for ID: {record_id}")
    return record


async def upsert_record(session: AsyncSession, data: schemas.InventoryRecordIn) -> InventoryRecord:
    canonical = resolve_id(data.id)
    record = await session.get(InventoryRecord, canonical.value)
    if record is None:
        record = InventoryRecord(
            id=canonical.value,
            type=data.type,
            date=data.date or _iso_now(),
            label=data.label or "",
            items=[],
        )
        session.add(record)
    elif record.type != data.type:
        raise RecordTypeChangeError(
            f"Record {record.id} is a {record.type} and cannot become a {data.type}"
        )

    if data.date:
        record.date = data.date
    if data.label is not None:
        record.label = data.label
    if data.items is not None:
        record.items = [
            entry.model_dump(by_alias=True, exclude_none=True) for entry in data.items
        ]

    await session.flush()
    return record


async def delete_record(session: AsyncSession, record: InventoryRecord) -> None:
    await session.delete(record)
    await session.flush()


async def delete_all_records(session: AsyncSession) -> int:
    result = await session.execute(delete(InventoryRecord))
    await session.flush()
    return result.rowcount or 0


__all__ = [name for name in globals() if not name.startswith("_")]
