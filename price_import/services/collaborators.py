"""Interfaces of the external systems the import core talks to.

The storefront catalog, media storage and template persistence live
outside this package. Each is reached through a narrow async Protocol so
that hosts can plug in their own adapters and tests can use fakes.
"""
from decimal import Decimal
from typing import Dict, List, Optional, Protocol, runtime_checkable

from price_import.models.catalog import CatalogItem, FileInfo, PriceUpdate
from price_import.models.template import CatalogFilters, ImportTemplate


@runtime_checkable
class FileStorage(Protocol):
    """Read access to uploaded price list files."""

    async def read_bytes(self, file_id: str) -> Optional[bytes]:
        """Return file contents, or None if the file does not exist."""
        ...

    async def get_info(self, file_id: str) -> Optional[FileInfo]:
        """Return file metadata (name, content type, modification stamp)."""
        ...


@runtime_checkable
class CatalogQuery(Protocol):
    """Read access to the storefront catalog."""

    async def find_candidates(self, filters: CatalogFilters) -> List[CatalogItem]:
        """Return catalog items (with variants) selected by the filters."""
        ...

    async def find_by_id(self, product_id: str) -> Optional[CatalogItem]:
        ...

    async def find_with_stored_prices(self, limit: Optional[int] = None) -> List[CatalogItem]:
        """Return items carrying raw supplier values from a previous apply."""
        ...

    async def get_currency_factors(self) -> Dict[str, Decimal]:
        """Return currency code -> factor converting into the base currency."""
        ...


@runtime_checkable
class CatalogWriter(Protocol):
    """Write access to catalog prices and stock."""

    async def update_prices(self, product_id: str, update: PriceUpdate) -> None:
        ...


@runtime_checkable
class TemplateRepository(Protocol):
    """Persistence for import templates."""

    async def get(self, template_id: str) -> Optional[ImportTemplate]:
        ...

    async def save(self, template: ImportTemplate) -> None:
        ...
