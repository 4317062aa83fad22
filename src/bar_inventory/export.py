"""CSV export of history records.

The output is consumed by spreadsheets configured for Spanish locale, so the
format is fixed: UTF-8 byte order mark, ``;`` separator, decimal comma and a
quoted category header line before each category block. Rows are ordered by
the configured category priority and then by item name.
"""
from __future__ import annotations

import math
import re
import unicodedata
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from .config import DEFAULT_CATEGORY_ORDER, DEFAULT_SNAPSHOT_LOCATIONS, Settings
from .schemas import InventoryRecordOut, RecordItem
from .stock import coerce_quantity

BOM = "\ufeff"
SEPARATOR = ";"
UNCATEGORIZED = "Uncategorized"
ANALYSIS_HEADER = ["Articulo", "Stock Actual", "En Pedidos", "Stock Inicial Total", "Consumo"]
SNAPSHOT_HEADER = ["Articulo", "P.U. s/IVA", "VALOR TOTAL"]

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')


@dataclass(frozen=True)
class ExportLayout:
    """Ordering and formatting rules applied to every export."""

    category_order: Sequence[str] = field(default_factory=lambda: tuple(DEFAULT_CATEGORY_ORDER))
    locations: Sequence[str] = field(default_factory=lambda: tuple(DEFAULT_SNAPSHOT_LOCATIONS))
    packaging_marker: str = "embalajes"

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExportLayout":
        return cls(
            category_order=tuple(settings.category_order),
            locations=tuple(settings.snapshot_locations),
            packaging_marker=settings.packaging_marker,
        )

    def is_packaging(self, category: str | None) -> bool:
        return self.packaging_marker.lower() in (category or "").lower()


def _collation_key(name: str) -> tuple[str, str]:
    lowered = name.lower()
    stripped = "".join(
        char for char in unicodedata.normalize("NFD", lowered) if not unicodedata.combining(char)
    )
    return stripped, lowered


def sort_items(items: Sequence[RecordItem], category_order: Sequence[str]) -> list[RecordItem]:
    """Order items by category priority, unlisted categories last, then by name."""

    rank = {category: index for index, category in enumerate(category_order)}
    unlisted = len(category_order)

    def _key(item: RecordItem) -> tuple[int, tuple[str, str]]:
        category = item.category or UNCATEGORIZED
        return rank.get(category, unlisted), _collation_key(item.name or "")

    return sorted(items, key=_key)


def _fixed(value: float, places: int) -> str:
    if value == 0 or not math.isfinite(value):
        value = 0.0
    quantum = Decimal(1).scaleb(-places)
    rounded = Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)
    return format(rounded, "f").replace(".", ",")


def format_quantity(value: float | None) -> str:
    return _fixed(value or 0.0, 1)


def format_money(value: float | None) -> str:
    return f"{_fixed(value or 0.0, 2)} €"


def format_count(value: float | None) -> str:
    return str(int(math.floor((value or 0.0) + 0.5)))


def quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def _join(cells: Sequence[str]) -> str:
    return SEPARATOR.join(cells)


def _with_category_headers(
    items: Sequence[RecordItem], render_row: Callable[[RecordItem], str]
) -> list[str]:
    lines: list[str] = []
    last_category = ""
    for item in items:
        if item.category and item.category != last_category:
            lines.append("")
            lines.append(quote(item.category))
            last_category = item.category
        lines.append(render_row(item))
    return lines


def _render_analysis(record: InventoryRecordOut, layout: ExportLayout) -> list[str]:
    def _row(item: RecordItem) -> str:
        return _join(
            [
                quote(item.name),
                format_quantity(item.current_stock),
                format_quantity(item.pending_stock),
                format_quantity(item.initial_stock),
                format_quantity(item.consumption),
            ]
        )

    items = sort_items(record.items, layout.category_order)
    return [_join(ANALYSIS_HEADER), *_with_category_headers(items, _row)]


def snapshot_locations(items: Sequence[RecordItem], preferred: Sequence[str]) -> list[str]:
    """Preferred locations that at least one item has a recorded quantity for."""

    recorded = set()
    for item in items:
        recorded.update((item.stock_by_location_snapshot or {}).keys())
    return [location for location in preferred if location in recorded]


def _render_snapshot(record: InventoryRecordOut, layout: ExportLayout) -> list[str]:
    locations = snapshot_locations(record.items, layout.locations)

    def _row(item: RecordItem) -> str:
        stock = item.stock_by_location_snapshot or {}
        packaging = layout.is_packaging(item.category)
        total_stock = sum(coerce_quantity(value) for value in stock.values())
        price = item.price_per_unit_without_iva or 0.0
        amount = format_count if packaging else format_quantity

        if packaging:
            cells = [quote(item.name), quote("-"), quote("-")]
        else:
            cells = [quote(item.name), quote(format_money(price)), quote(format_money(price * total_stock))]
        for location in locations:
            cells.append(quote(amount(stock[location]) if location in stock else "0"))
        cells.append(quote(amount(total_stock)))
        return _join(cells)

    header = [*SNAPSHOT_HEADER, *(location.upper() for location in locations), "Total"]
    items = sort_items(record.items, layout.category_order)
    return [_join(header), *_with_category_headers(items, _row)]


_RENDERERS = {
    "analysis": _render_analysis,
    "snapshot": _render_snapshot,
}


def render_record_csv(record: InventoryRecordOut, layout: ExportLayout | None = None) -> str:
    """Serialise ``record`` to CSV text, byte order mark included."""

    layout = layout or ExportLayout()
    lines = _RENDERERS[record.type](record, layout)
    return BOM + "\n".join(lines) + "\n"


def export_filename(record: InventoryRecordOut) -> str:
    label = _UNSAFE_FILENAME_CHARS.sub("", record.label or "")[:50]
    kind = "Analisis" if record.type == "analysis" else "Inventario"
    return f"{label}_{kind}.csv"


__all__ = [
    "BOM",
    "SEPARATOR",
    "ExportLayout",
    "export_filename",
    "format_count",
    "format_money",
    "format_quantity",
    "render_record_csv",
    "snapshot_locations",
    "sort_items",
]
