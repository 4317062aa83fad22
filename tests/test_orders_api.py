from __future__ import annotations

from httpx import AsyncClient

from bar_inventory.crud import stamp_line_prices
from bar_inventory.schemas import OrderLineIn


async def _create_item(client: AsyncClient, **payload) -> dict:
    response = await client.post("/inventory", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _order(order_id: str, *lines: dict, **extra) -> dict:
    payload = {
        "id": order_id,
        "orderDate": "2024-05-02",
        "supplierName": "Distribuciones Norte",
        "status": "Pendiente",
        "items": list(lines),
    }
    payload.update(extra)
    return payload


def test_stamp_line_prices_uses_lookup_and_defaults_to_zero() -> None:
    lines = [
        OrderLineIn(inventory_item_id="a", quantity=2, price_per_unit_without_iva=99),
        OrderLineIn(inventory_item_id="b", quantity=1, cost_at_time_of_purchase=4),
    ]

    stamped = stamp_line_prices(lines, {"a": 3.25})

    assert [line.price_per_unit_without_iva for line in stamped] == [3.25, 0]
    assert stamped[1].cost_at_time_of_purchase == 4


async def test_order_snapshots_current_price(client: AsyncClient) -> None:
    vodka = await _create_item(client, name="Absolut", pricePerUnitWithoutIVA=12.5)

    response = await client.post(
        "/orders",
        json=_order(
            "order-1",
            {"inventoryItemId": vodka["id"], "quantity": 6, "pricePerUnitWithoutIVA": 1},
            {"inventoryItemId": "gone", "quantity": 2},
        ),
    )

    assert response.status_code == 201, response.text
    order = response.json()
    assert order["id"] == "order-1"
    assert [line["pricePerUnitWithoutIVA"] for line in order["items"]] == [12.5, 0]
    assert order["items"][0]["costAtTimeOfPurchase"] == 0


async def test_price_change_does_not_alter_existing_order(client: AsyncClient) -> None:
    ron = await _create_item(client, name="Ron", pricePerUnitWithoutIVA=10)
    await client.post("/orders", json=_order("order-2", {"inventoryItemId": ron["id"], "quantity": 1}))

    await _create_item(client, id=ron["id"], name="Ron", pricePerUnitWithoutIVA=14)

    orders = (await client.get("/orders")).json()
    assert orders[0]["items"][0]["pricePerUnitWithoutIVA"] == 10


async def test_resubmitting_order_updates_in_place(client: AsyncClient) -> None:
    tonic = await _create_item(client, name="Tónica", pricePerUnitWithoutIVA=0.8)
    await client.post("/orders", json=_order("order-3", {"inventoryItemId": tonic["id"], "quantity": 24}))

    response = await client.post(
        "/orders",
        json=_order(
            "order-3",
            {"inventoryItemId": tonic["id"], "quantity": 48},
            status="Recibido",
            deliveryDate="2024-05-04",
        ),
    )

    assert response.status_code == 201
    orders = (await client.get("/orders")).json()
    assert len(orders) == 1
    assert orders[0]["status"] == "Recibido"
    assert orders[0]["deliveryDate"] == "2024-05-04"
    assert [line["quantity"] for line in orders[0]["items"]] == [48]


async def test_orders_listed_newest_first(client: AsyncClient) -> None:
    await client.post("/orders", json=_order("old", orderDate="2024-01-10"))
    await client.post("/orders", json=_order("new", orderDate="2024-03-01"))

    ids = [order["id"] for order in (await client.get("/orders")).json()]
    assert ids == ["new", "old"]


async def test_order_requires_supplier_and_non_negative_quantity(client: AsyncClient) -> None:
    payload = _order("bad", {"inventoryItemId": "x", "quantity": -1})
    assert (await client.post("/orders", json=payload)).status_code == 422

    payload = _order("bad")
    del payload["supplierName"]
    assert (await client.post("/orders", json=payload)).status_code == 422


async def test_delete_order(client: AsyncClient) -> None:
    await client.post("/orders", json=_order("order-4"))

    assert (await client.delete("/orders/order-4")).status_code == 200
    assert (await client.get("/orders")).json() == []
    assert (await client.delete("/orders/order-4")).status_code == 404
