"""Price calculation."""
from price_import.services.pricing.calculator import (
    round_price,
    apply_modifier,
    role_slots,
    compute_from_raw,
    compute_prices,
    price_change,
)

__all__ = [
    "round_price",
    "apply_modifier",
    "role_slots",
    "compute_from_raw",
    "compute_prices",
    "price_change",
]
