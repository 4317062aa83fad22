from __future__ import annotations

from urllib.parse import unquote

from httpx import AsyncClient

from bar_inventory.export import BOM

SNAPSHOT = {
    "label": "Inventario mayo",
    "type": "snapshot",
    "items": [
        {
            "itemId": "i1",
            "name": "Mahou",
            "category": "🍻 Cerveza",
            "pricePerUnitWithoutIVA": 0.9,
            "stockByLocationSnapshot": {"Nevera": 20, "Almacén": 40},
        },
        {
            "itemId": "i2",
            "name": "Absolut",
            "category": "🧊 Vodka",
            "pricePerUnitWithoutIVA": 11,
            "stockByLocationSnapshot": {"Almacén": 3},
        },
    ],
}


async def test_create_record_defaults_date_and_assigns_id(client: AsyncClient) -> None:
    response = await client.post("/history", json=SNAPSHOT)

    assert response.status_code == 201, response.text
    record = response.json()
    assert len(record["id"]) == 32
    assert record["date"].endswith("Z")
    assert record["items"][0]["stockByLocationSnapshot"] == {"Nevera": 20.0, "Almacén": 40.0}


async def test_put_upserts_same_record(client: AsyncClient) -> None:
    created = (await client.post("/history", json={**SNAPSHOT, "id": "rec-1"})).json()

    response = await client.put("/history", json={"id": "rec-1", "type": "snapshot", "label": "Revisado"})

    assert response.status_code == 200
    assert response.json()["label"] == "Revisado"
    assert response.json()["date"] == created["date"]
    assert len(response.json()["items"]) == 2
    assert len((await client.get("/history")).json()) == 1


async def test_record_type_cannot_change(client: AsyncClient) -> None:
    await client.post("/history", json={**SNAPSHOT, "id": "rec-2"})

    response = await client.put("/history", json={"id": "rec-2", "type": "analysis"})

    assert response.status_code == 409
    assert (await client.get("/history/rec-2")).json()["type"] == "snapshot"


async def test_history_sorted_by_date_descending(client: AsyncClient) -> None:
    for record_id, date in (("a", "2024-01-01T00:00:00.000Z"), ("b", "2024-03-01T00:00:00.000Z"), ("c", "2024-02-01T00:00:00.000Z")):
        await client.post("/history", json={"id": record_id, "date": date, "label": record_id, "type": "analysis", "items": []})

    ids = [record["id"] for record in (await client.get("/history")).json()]
    assert ids == ["b", "c", "a"]


async def test_export_snapshot_csv(client: AsyncClient) -> None:
    await client.post("/history", json={**SNAPSHOT, "id": "rec-3"})

    response = await client.get("/history/rec-3/csv")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    disposition = response.headers["content-disposition"]
    assert unquote(disposition) == 'attachment; filename="Inventario mayo_Inventario.csv"'
    body = response.content.decode("utf-8")
    assert body.startswith(BOM)
    assert body[len(BOM):].split("\n") == [
        "Articulo;P.U. s/IVA;VALOR TOTAL;NEVERA;ALMACÉN;Total",
        "",
        '"🧊 Vodka"',
        '"Absolut";"11,00 €";"33,00 €";"0";"3,0";"3,0"',
        "",
        '"🍻 Cerveza"',
        '"Mahou";"0,90 €";"54,00 €";"20,0";"40,0";"60,0"',
        "",
    ]


async def test_export_analysis_csv_defaults_missing_numbers(client: AsyncClient) -> None:
    payload = {
        "id": "rec-4",
        "label": "Consumo semana",
        "type": "analysis",
        "items": [{"name": "Tequila", "category": "🌵 Tequila", "currentStock": 2, "initialStock": 5}],
    }
    await client.post("/history", json=payload)

    response = await client.get("/history/rec-4/csv")

    assert response.status_code == 200
    assert '"Tequila";2,0;0,0;5,0;0,0' in response.text.split("\n")
    assert "Analisis.csv" in response.headers["content-disposition"]


async def test_export_unknown_record_is_not_found(client: AsyncClient) -> None:
    response = await client.get("/history/does-not-exist/csv")

    assert response.status_code == 404
    assert "does-not-exist" in response.json()["detail"]


async def test_delete_single_and_all_records(client: AsyncClient) -> None:
    for record_id in ("x", "y", "z"):
        await client.post("/history", json={**SNAPSHOT, "id": record_id})

    assert (await client.delete("/history/x")).status_code == 200
    assert (await client.delete("/history/x")).status_code == 404

    response = await client.delete("/history")
    assert response.status_code == 200
    assert response.json() == {"message": "All history records deleted", "deleted": 2}
    assert (await client.get("/history")).json() == []
