"""Pydantic models for normalized price list rows and file previews."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class NormalizedRow(BaseModel):
    """A price list line after cell-level cleanup, before matching.

    Produced fresh on every parse and always re-derivable from the source
    file plus the column mapping, so it is safe to cache.
    """

    row_number: int = Field(..., ge=1, description="1-indexed row in the source file")
    code: str = Field(default="", description="Supplier code, upper-cased, possibly empty")
    name: str = Field(default="", description="Product name as written by the supplier")
    price1: Optional[Decimal] = None
    price2: Optional[Decimal] = None
    availability: Optional[str] = None
    extra: Dict[str, Any] = Field(
        default_factory=dict,
        description="Passthrough values from additionally mapped columns"
    )
    diagnostics: List[str] = Field(
        default_factory=list,
        description="Per-row data-quality notes (e.g. unparsable price)"
    )

    @property
    def is_blank(self) -> bool:
        """Rows with neither code nor name are separator rows."""
        return not self.code and not self.name

    model_config = {
        "json_schema_extra": {
            "example": {
                "row_number": 7,
                "code": "ABC-1",
                "name": "Steel Hex Bolt M8",
                "price1": "12.50",
                "price2": "17.90",
                "availability": "120",
                "extra": {},
                "diagnostics": []
            }
        }
    }


class NormalizedCache(BaseModel):
    """Cached normalized rows together with the source stamp they came from.

    Body and stamp live in one frozen value so they are always replaced
    together.
    """

    source_id: str
    source_updated_at: datetime
    rows: Tuple[NormalizedRow, ...] = ()

    def is_fresh_for(self, source_id: str, source_updated_at: datetime) -> bool:
        return self.source_id == source_id and self.source_updated_at == source_updated_at

    model_config = {"frozen": True}


class PreviewResult(BaseModel):
    """First rows of a file as raw cell text, keyed by column letter."""

    parser: str
    header_guess: Dict[str, str] = Field(default_factory=dict)
    sample_rows: List[Dict[str, str]] = Field(default_factory=list)
    suggested_start_row: int = Field(default=2, ge=1)
    detected_delimiter: Optional[str] = None
    encoding: Optional[str] = None
