"""Pydantic models for the product matching pipeline."""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field

from price_import.models.normalized_row import NormalizedRow
from price_import.models.pricing import ComputedPrices, PriceChange


class Confidence(str, Enum):
    """Qualitative confidence attached to a match."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MatchMethod(str, Enum):
    """Strategy that produced a match."""
    PRIOR_MAPPING = "prior-mapping"
    EXACT_CODE = "exact-code"
    FUZZY_NAME = "fuzzy-name"


class MatchResult(BaseModel):
    """Result of matching one normalized row against the candidates.

    Attributes:
        product_id: Matched catalog item (None means unmatched)
        confidence: high / medium / low
        method: Strategy that matched
        ambiguous: Fuzzy tie that could not be broken
        confirmed: Match comes from the persistent mapping
        diagnostics: Strategy-specific details (level, matched n-grams, ...)
    """

    product_id: Optional[str] = None
    confidence: Confidence = Confidence.LOW
    method: MatchMethod
    ambiguous: bool = False
    confirmed: bool = False
    diagnostics: Dict[str, Any] = Field(default_factory=dict)

    @computed_field
    @property
    def requires_confirmation(self) -> bool:
        """Ambiguous or non-high matches must not be auto-applied."""
        if self.confirmed:
            return False
        return self.ambiguous or self.confidence != Confidence.HIGH


class MatchedRow(BaseModel):
    """A normalized row with its match and, in previews, its new prices."""

    row: NormalizedRow
    match: MatchResult
    product_name: Optional[str] = None
    new_prices: Optional[ComputedPrices] = None
    current_prices: Optional[ComputedPrices] = None
    price_changes: Dict[str, PriceChange] = Field(default_factory=dict)


class MatchStats(BaseModel):
    """Counts for a match pass."""

    total: int = 0
    matched: int = 0
    unmatched: int = 0
    ambiguous: int = 0
    by_confidence: Dict[str, int] = Field(
        default_factory=lambda: {c.value: 0 for c in Confidence}
    )
    by_method: Dict[str, int] = Field(default_factory=dict)

    def record(self, result: MatchResult) -> None:
        self.matched += 1
        self.by_confidence[result.confidence.value] = self.by_confidence.get(result.confidence.value, 0) + 1
        self.by_method[result.method.value] = self.by_method.get(result.method.value, 0) + 1
        if result.ambiguous:
            self.ambiguous += 1


class MatchReport(BaseModel):
    matched: List[MatchedRow] = Field(default_factory=list)
    unmatched: List[NormalizedRow] = Field(default_factory=list)
    stats: MatchStats = Field(default_factory=MatchStats)


class MatchPreview(MatchReport):
    """Match report for a template, enriched with prices for display."""

    template_id: str
    source_id: Optional[str] = None
    candidate_count: int = 0


class ConfirmedMatch(BaseModel):
    """A caller-approved pairing of a catalog item and a supplier row code."""

    product_id: str = Field(..., min_length=1)
    supplier_code: str = Field(..., min_length=1)
    persist_mapping: bool = Field(
        default=True,
        description="Fold this pairing into the template's persistent mapping"
    )
