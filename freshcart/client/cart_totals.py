# file: freshcart/client/cart_totals.py
from typing import Iterable, Mapping

from freshcart.core.config import TOTAL_TOLERANCE
from freshcart.pricing.delivery_fee import calculate_subtotal, calculate_total, free_delivery_gap


def estimate_cart_totals(items: Iterable[Mapping]) -> dict:
    """
    Optimistic cart totals for display before the server answers.
    Uses the same fee bands and rounding as the API, so the estimate and
    the confirmed total agree for the same prices.
    """
    items = list(items)
    breakdown = calculate_total(calculate_subtotal(items))
    return {
        **breakdown.model_dump(),
        "item_count": sum(int(item.get("quantity", 0)) for item in items),
        "free_delivery_gap": free_delivery_gap(breakdown.subtotal) if items else 0.0,
    }


def matches_server_total(estimate: float, server_total: float) -> bool:
    return abs(float(estimate) - float(server_total)) <= TOTAL_TOLERANCE
