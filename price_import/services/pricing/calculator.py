"""Price calculation from raw supplier prices and template rules."""
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional

from price_import.models.normalized_row import NormalizedRow
from price_import.models.pricing import ComputedPrices, PriceChange
from price_import.models.template import ModifierType, PriceMode, PriceModifier, PriceRole, PriceRules

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def round_price(value: Decimal) -> Decimal:
    """Round to 2 decimals, half-up. The only rounding point for prices."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def apply_modifier(raw: Decimal, modifier: PriceModifier) -> Decimal:
    """Apply a modifier without rounding.

    percentage: raw * (1 + value / 100)
    fixed:      raw + value
    none:       raw
    """
    if modifier.type == ModifierType.PERCENTAGE:
        return raw * (1 + modifier.value / HUNDRED)
    if modifier.type == ModifierType.FIXED:
        return raw + modifier.value
    return raw


def _final(raw: Optional[Decimal], modifier: PriceModifier) -> Optional[Decimal]:
    if raw is None:
        return None
    return round_price(apply_modifier(raw, modifier))


def role_slots(rules: PriceRules) -> Dict[PriceRole, str]:
    """Which raw slot (price1 / price2) feeds each role under the rules."""
    if rules.mode == PriceMode.SINGLE_PURCHASE:
        return {PriceRole.PURCHASE: "price1"}
    if rules.mode == PriceMode.SINGLE_RETAIL:
        return {PriceRole.RETAIL: "price1"}
    return {rules.price1_role: "price1", rules.price2_role: "price2"}


def compute_from_raw(
    price1: Optional[Decimal],
    price2: Optional[Decimal],
    rules: PriceRules,
) -> ComputedPrices:
    """Compute final prices from raw slot values.

    A role the mode does not configure, or whose slot is empty, stays None
    so the catalog keeps its current value.
    """
    raw = {"price1": price1, "price2": price2}
    computed: Dict[str, Optional[Decimal]] = {}
    for role, slot in role_slots(rules).items():
        computed[role.value] = _final(raw[slot], rules.modifier_for(role))
    return ComputedPrices(**computed)


def compute_prices(row: NormalizedRow, rules: PriceRules) -> ComputedPrices:
    """Compute purchase and retail prices for a normalized row.

    Examples:
        price1=100 with a -20 percentage purchase modifier gives purchase 80.00;
        price2=100 with a +15 fixed retail modifier gives retail 115.00.
    """
    return compute_from_raw(row.price1, row.price2, rules)


def price_change(current: Optional[Decimal], new: Optional[Decimal]) -> Optional[PriceChange]:
    """Classify a price change for previews (None when there is no new price)."""
    if new is None:
        return None
    if current is None:
        return PriceChange.NEW
    if new > current:
        return PriceChange.INCREASE
    if new < current:
        return PriceChange.DECREASE
    return PriceChange.UNCHANGED
