"""Pydantic models for computed prices and apply / recalculation results."""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class PriceChange(str, Enum):
    """Direction of a price change shown in previews."""
    NEW = "new"
    INCREASE = "increase"
    DECREASE = "decrease"
    UNCHANGED = "unchanged"


class RecalculateScope(str, Enum):
    """Which catalog prices a recalculation re-derives."""
    PURCHASE = "purchase"
    RETAIL = "retail"
    ALL = "all"


class ComputedPrices(BaseModel):
    """Final prices for one row. None means the role is left untouched."""

    purchase: Optional[Decimal] = None
    retail: Optional[Decimal] = None

    @property
    def is_empty(self) -> bool:
        return self.purchase is None and self.retail is None


class RowOutcome(BaseModel):
    """Why a confirmed match was skipped or failed during apply."""

    product_id: str
    supplier_code: str
    reason: str


class ApplyStats(BaseModel):
    """Result of an apply batch.

    Policy is skip-and-continue: skipped rows do not stop the batch.
    """

    attempted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    updated_ids: List[str] = Field(default_factory=list)
    skipped_rows: List[RowOutcome] = Field(default_factory=list)
    failed_rows: List[RowOutcome] = Field(default_factory=list)
    mappings_saved: int = 0
    zero_stock_set: int = 0
    zero_stock_failed: int = 0
    applied_at: Optional[datetime] = None


class RecalculateStats(BaseModel):
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0


class ConfirmStats(BaseModel):
    confirmed: int = 0
    total_mappings: int = 0
