"""Pydantic models exchanged with the catalog and file storage collaborators."""
from datetime import datetime
from decimal import Decimal
from pathlib import PurePosixPath
from typing import Iterator, List, Optional

from pydantic import BaseModel, Field


class StoredPrices(BaseModel):
    """Raw supplier values kept on a catalog item by the last apply.

    Recalculation re-derives catalog prices from these with the owning
    template's current rules.
    """

    template_id: str
    raw_price1: Optional[Decimal] = None
    raw_price2: Optional[Decimal] = None
    purchase: Optional[Decimal] = None
    retail: Optional[Decimal] = None
    currency: str = Field(..., min_length=3, max_length=3)


class CatalogItem(BaseModel):
    """Catalog item as seen by the import core (read-only view)."""

    id: str
    name: str = ""
    supplier_code: Optional[str] = None
    purchase_price: Optional[Decimal] = None
    retail_price: Optional[Decimal] = None
    stock: Optional[int] = None
    stored_prices: Optional[StoredPrices] = None
    variants: List["CatalogItem"] = Field(default_factory=list)

    def iter_with_variants(self) -> Iterator["CatalogItem"]:
        """Yield the item itself followed by its variants."""
        yield self
        for variant in self.variants:
            yield from variant.iter_with_variants()


class PriceUpdate(BaseModel):
    """Write payload for one catalog item.

    None fields are left untouched by the catalog writer. A None currency
    means the prices are already in the catalog base currency.
    """

    purchase: Optional[Decimal] = None
    retail: Optional[Decimal] = None
    currency: Optional[str] = None
    stock: Optional[int] = Field(default=None, ge=0)
    supplier_code: Optional[str] = None
    stored: Optional[StoredPrices] = None


class FileInfo(BaseModel):
    """File metadata from storage."""

    file_id: str
    name: str
    content_type: Optional[str] = None
    updated_at: datetime
    size: Optional[int] = None


class SourceFile(BaseModel):
    """A stored file loaded for parsing."""

    file_id: str
    name: str
    content_type: Optional[str] = None
    updated_at: datetime
    data: bytes = Field(repr=False)

    @property
    def extension(self) -> str:
        return PurePosixPath(self.name).suffix.lower().lstrip(".")

    @classmethod
    def from_info(cls, info: FileInfo, data: bytes) -> "SourceFile":
        return cls(
            file_id=info.file_id,
            name=info.name,
            content_type=info.content_type,
            updated_at=info.updated_at,
            data=data,
        )
