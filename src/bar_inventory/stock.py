"""Stock-by-location maps: coercion, sparse patches and reconciliation."""
from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

StockMap = Dict[str, float]

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def coerce_quantity(value: Any) -> float:
    """Convert raw user input to a stock quantity.

    Text accepts a decimal comma and, like a lenient number parser, reads the
    leading numeric part only (``"12,5 ud"`` is ``12.5``). Anything that does
    not yield a finite number becomes ``0``.
    """

    if value is None:
        return 0.0
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value.replace(",", ".", 1))
        if match is None:
            return 0.0
        parsed = float(match.group(0))
    else:
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return 0.0
    if not math.isfinite(parsed):
        return 0.0
    return parsed


def as_stock_map(value: Any) -> StockMap:
    """Normalise any stored stock representation to an ordered ``{location: qty}`` dict.

    Accepts a mapping, an iterable of ``(location, quantity)`` pairs or an
    iterable of rows exposing ``location`` and ``quantity`` attributes.
    """

    if value is None:
        return {}
    if isinstance(value, Mapping):
        return {str(key): coerce_quantity(qty) for key, qty in value.items()}
    result: StockMap = {}
    for entry in value:
        if hasattr(entry, "location") and hasattr(entry, "quantity"):
            result[str(entry.location)] = coerce_quantity(entry.quantity)
        else:
            key, qty = entry
            result[str(key)] = coerce_quantity(qty)
    return result


@dataclass(frozen=True)
class StockPatch:
    """Locations to overwrite in a stock map; every other location is left alone."""

    changes: StockMap = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any] | None) -> "StockPatch":
        if not raw:
            return cls()
        return cls({str(key): coerce_quantity(value) for key, value in raw.items()})

    def __bool__(self) -> bool:
        return bool(self.changes)

    def __iter__(self):
        return iter(self.changes.items())


def merge_stock_map(current: Mapping[str, float] | None, patch: StockPatch) -> StockMap:
    merged = as_stock_map(current)
    merged.update(patch.changes)
    return merged


class ReconcileMode(str, Enum):
    SET = "set"
    ADD = "add"


def current_quantity(stock: Any, location: str) -> float:
    return as_stock_map(stock).get(location, 0.0)


def reconcile_quantity(current: float, value: float, mode: ReconcileMode) -> float:
    if mode is ReconcileMode.ADD:
        return current + value
    return value


__all__ = [
    "StockMap",
    "StockPatch",
    "ReconcileMode",
    "as_stock_map",
    "coerce_quantity",
    "current_quantity",
    "merge_stock_map",
    "reconcile_quantity",
]
