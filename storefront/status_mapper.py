"""
Translation of raw carrier status strings into canonical order states.

Carriers report free-form strings ("RTO Initiated", "Out for Delivery",
"In Transit - Bagged"). The rules below are matched case-insensitively as
substrings, in order, and the first match wins. Anything unrecognised is
treated as still moving through the network.
"""

from typing import Optional, Sequence, Tuple

from storefront.domain import OrderStatus

CARRIER_STATUS_RULES: Sequence[Tuple[Tuple[str, ...], OrderStatus]] = (
    (("cancel", "rto", "rejected", "returned", "rts"), "cancelled"),
    # must precede "deliv", otherwise "Out for Delivery" reads as delivered
    (("out for", "out_for"), "out_for_delivery"),
    (("deliv",), "delivered"),
    (("picked", "handed"), "picked"),
    (("packed", "bagged"), "packed"),
    (("transit",), "in_transit"),
)

DEFAULT_CARRIER_STATE: OrderStatus = "in_transit"


def map_carrier_status(raw: Optional[str]) -> Optional[OrderStatus]:
    """
    Map a raw carrier status to an order status.

    Returns None only when there is no status at all (None or ""). Every
    other string maps to a state, so callers never have to handle errors.

    >>> map_carrier_status("RTO Initiated")
    'cancelled'
    >>> map_carrier_status("Out for Delivery")
    'out_for_delivery'
    """
    if raw is None or raw == "":
        return None

    value = raw.lower()
    for keywords, state in CARRIER_STATUS_RULES:
        if any(keyword in value for keyword in keywords):
            return state
    return DEFAULT_CARRIER_STATE
