"""Pydantic models for supplier import templates.

A template is the saved, reusable import configuration for one supplier:
column mapping, catalog filters, price rules, the normalized-data cache and
the persistent product to supplier-code mapping.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, RootModel, field_validator, model_validator

from price_import.models.normalized_row import NormalizedCache
from price_import.services.normalizer import column_to_index, normalize_code


ColumnRef = Union[str, int]


class PriceMode(str, Enum):
    """Which price columns a supplier list carries."""
    SINGLE_PURCHASE = "single_purchase"
    SINGLE_RETAIL = "single_retail"
    DUAL = "dual"


class PriceRole(str, Enum):
    """Semantic role of a raw price slot."""
    PURCHASE = "purchase"
    RETAIL = "retail"


class ModifierType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    NONE = "none"


class AvailabilityAction(str, Enum):
    """How an apply treats catalog stock."""
    DONT_CHANGE = "dont_change"
    SET_FROM_PRICE = "set_from_price"
    SET_FIXED = "set_fixed"


class PriceModifier(BaseModel):
    """Modifier applied to a raw price.

    percentage: raw * (1 + value / 100); fixed: raw + value; none: raw.
    """

    type: ModifierType = ModifierType.NONE
    value: Decimal = Decimal("0")


class PriceRules(BaseModel):
    """Price calculation rules for a template."""

    mode: PriceMode = PriceMode.DUAL
    price1_role: PriceRole = PriceRole.PURCHASE
    price2_role: PriceRole = PriceRole.RETAIL
    purchase_modifier: PriceModifier = Field(default_factory=PriceModifier)
    retail_modifier: PriceModifier = Field(default_factory=PriceModifier)
    currency: Optional[str] = Field(
        default=None,
        min_length=3,
        max_length=3,
        description="ISO 4217 currency of the supplier prices"
    )

    @model_validator(mode="after")
    def validate_dual_roles(self) -> "PriceRules":
        """Dual mode needs one slot per role."""
        if self.mode == PriceMode.DUAL and self.price1_role == self.price2_role:
            raise ValueError("dual mode requires price1_role and price2_role to differ")
        return self

    def modifier_for(self, role: PriceRole) -> PriceModifier:
        if role == PriceRole.PURCHASE:
            return self.purchase_modifier
        return self.retail_modifier


class ColumnMapping(BaseModel):
    """Which spreadsheet column holds each field.

    Columns are spreadsheet letters ("A", "AB") or 0-based indices.
    """

    code: Optional[ColumnRef] = None
    name: Optional[ColumnRef] = None
    price1: Optional[ColumnRef] = None
    price2: Optional[ColumnRef] = None
    availability: Optional[ColumnRef] = None
    extra: Dict[str, ColumnRef] = Field(
        default_factory=dict,
        description="Additional passthrough columns: output key -> column"
    )
    start_row: int = Field(default=2, ge=1, description="1-indexed first data row")

    @field_validator("code", "name", "price1", "price2", "availability", mode="before")
    @classmethod
    def validate_column_ref(cls, v):
        if v is None or v == "":
            return None
        column_to_index(v)
        return v.strip().upper() if isinstance(v, str) and not v.strip().isdigit() else int(v)

    @field_validator("extra")
    @classmethod
    def validate_extra_refs(cls, v: Dict[str, ColumnRef]) -> Dict[str, ColumnRef]:
        for ref in v.values():
            column_to_index(ref)
        return v

    @property
    def is_configured(self) -> bool:
        """A mapping must at least identify rows by code or name."""
        return self.code is not None or self.name is not None

    def index_of(self, field: str) -> Optional[int]:
        ref = getattr(self, field)
        return None if ref is None else column_to_index(ref)

    def extra_indices(self) -> Iterator[Tuple[str, int]]:
        for key, ref in self.extra.items():
            yield key, column_to_index(ref)

    def max_index(self) -> int:
        indices = [
            self.index_of(f) for f in ("code", "name", "price1", "price2", "availability")
        ]
        indices.extend(idx for _, idx in self.extra_indices())
        return max((i for i in indices if i is not None), default=0)


class CatalogFilters(BaseModel):
    """Catalog restrictions selecting the candidate items for a template."""

    categories: List[str] = Field(default_factory=list)
    types: List[str] = Field(default_factory=list)
    brands: List[str] = Field(default_factory=list)
    supplier: Optional[str] = None


class StockRules(BaseModel):
    """Stock handling during apply."""

    availability_action: AvailabilityAction = AvailabilityAction.DONT_CHANGE
    fixed_stock: int = Field(default=1000, ge=0)
    zero_stock_for_missing: bool = False


class TemplateConfig(BaseModel):
    filters: CatalogFilters = Field(default_factory=CatalogFilters)
    column_mapping: Optional[ColumnMapping] = None
    price_rules: PriceRules = Field(default_factory=PriceRules)
    stock: StockRules = Field(default_factory=StockRules)
    selected_source_id: Optional[str] = None


class MatchedProductsMap(RootModel[Dict[str, str]]):
    """Durable memory of confirmed matches: catalog item id -> supplier code."""

    root: Dict[str, str] = Field(default_factory=dict)

    def upsert(self, product_id: str, supplier_code: str) -> None:
        """Pair the product with the code; a code belongs to one product only."""
        code = normalize_code(supplier_code)
        for pid in self.find_products(code):
            if pid != product_id:
                del self.root[pid]
        self.root[product_id] = code

    def get(self, product_id: str) -> Optional[str]:
        return self.root.get(product_id)

    def remove(self, product_id: str) -> None:
        self.root.pop(product_id, None)

    def find_product(self, supplier_code: str) -> Optional[str]:
        """Reverse lookup: first product mapped to the code."""
        products = self.find_products(supplier_code)
        return products[0] if products else None

    def find_products(self, supplier_code: str) -> List[str]:
        """Reverse lookup: every product mapped to the code, in insertion order."""
        code = normalize_code(supplier_code)
        if not code:
            return []
        return [pid for pid, stored in self.root.items() if normalize_code(stored) == code]

    def to_dict(self) -> Dict[str, str]:
        return dict(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self.root


class ImportTemplate(BaseModel):
    """Import template for one supplier."""

    id: str
    supplier_id: str
    name: str
    config: TemplateConfig = Field(default_factory=TemplateConfig)
    last_import_source_id: Optional[str] = None
    last_import_source_updated_at: Optional[datetime] = None
    normalized_cache: Optional[NormalizedCache] = None
    matched_products: MatchedProductsMap = Field(default_factory=MatchedProductsMap)
    applied_at: Optional[datetime] = None
    applied_by_user_id: Optional[str] = None
