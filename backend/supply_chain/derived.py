"""
Derived inventory fields.

Computed by the service layer before every inventory write so that stored
``days_of_cover`` and ``status`` always agree with stock and demand.
"""

from typing import Any

# Days of cover reported for stock with no recorded demand
UNBOUNDED_DAYS_OF_COVER = 999


def compute_days_of_cover(current_stock: float, average_daily_demand: float) -> float:
    if average_daily_demand and average_daily_demand > 0:
        return current_stock / average_daily_demand
    return UNBOUNDED_DAYS_OF_COVER if current_stock > 0 else 0


def derive_inventory_status(current_stock: float, safety_stock: float, reorder_point: float) -> str:
    if current_stock <= 0:
        return "outOfStock"
    if current_stock <= safety_stock:
        return "critical"
    if current_stock <= reorder_point:
        return "low"
    return "adequate"


def apply_inventory_derivations(fields: dict[str, Any], current: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Return ``fields`` with ``days_of_cover`` and ``status`` filled in.

    Values missing from ``fields`` are taken from ``current`` (the stored row)
    so a partial update still derives from the full picture.
    """
    merged = {**(current or {}), **fields}
    stock = merged.get("current_stock") or 0
    demand = merged.get("average_daily_demand") or 0
    return {
        **fields,
        "days_of_cover": compute_days_of_cover(stock, demand),
        "status": derive_inventory_status(
            stock, merged.get("safety_stock") or 0, merged.get("reorder_point") or 0
        ),
    }
