"""Price update orchestration."""
from price_import.services.price_update.locks import TemplateLockRegistry
from price_import.services.price_update.service import (
    PriceUpdateService,
    build_price_update,
    stock_from_availability,
)

__all__ = [
    "TemplateLockRegistry",
    "PriceUpdateService",
    "build_price_update",
    "stock_from_availability",
]
