"""In-memory collaborator fakes and builders shared by the tests."""
import asyncio
import io
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl import Workbook

from price_import.errors.exceptions import PersistenceError
from price_import.models.catalog import CatalogItem, FileInfo, PriceUpdate, SourceFile
from price_import.models.template import (
    CatalogFilters,
    ColumnMapping,
    ImportTemplate,
    PriceRules,
    StockRules,
    TemplateConfig,
)
from price_import.parsers.csv_parser import CsvParser

STAMP = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def csv_bytes(lines: Iterable[str], encoding: str = "utf-8") -> bytes:
    return ("\n".join(lines) + "\n").encode(encoding)


def xlsx_bytes(rows: Sequence[Sequence[Any]]) -> bytes:
    """Build an xlsx workbook in memory with one sheet holding the rows."""
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(list(row))
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def source_file(
    data: bytes,
    name: str = "prices.csv",
    content_type: Optional[str] = None,
    file_id: str = "file-1",
) -> SourceFile:
    return SourceFile(
        file_id=file_id,
        name=name,
        content_type=content_type,
        updated_at=STAMP,
        data=data,
    )


def make_template(
    template_id: str = "tpl-1",
    mapping: Optional[ColumnMapping] = None,
    rules: Optional[PriceRules] = None,
    stock: Optional[StockRules] = None,
    source_id: Optional[str] = "file-1",
    with_mapping: bool = True,
) -> ImportTemplate:
    if mapping is None and with_mapping:
        mapping = ColumnMapping(code="A", name="B", price1="C", price2="D", availability="E", start_row=2)
    return ImportTemplate(
        id=template_id,
        supplier_id="supplier-1",
        name="Acme price list",
        config=TemplateConfig(
            filters=CatalogFilters(brands=["acme"]),
            column_mapping=mapping,
            price_rules=rules or PriceRules(),
            stock=stock or StockRules(),
            selected_source_id=source_id,
        ),
    )


class CountingCsvParser(CsvParser):
    """CSV parser that counts full parses."""

    def __init__(self):
        super().__init__()
        self.parse_calls = 0

    def parse_all(self, source, mapping):
        self.parse_calls += 1
        return super().parse_all(source, mapping)


class InMemoryFileStorage:
    """FileStorage fake keyed by file id."""

    def __init__(self, delay: float = 0.0):
        self.files: Dict[str, FileInfo] = {}
        self.contents: Dict[str, bytes] = {}
        self.read_count = 0
        self.delay = delay

    def add(
        self,
        file_id: str,
        name: str,
        data: bytes,
        updated_at: datetime = STAMP,
        content_type: Optional[str] = None,
    ) -> None:
        self.files[file_id] = FileInfo(
            file_id=file_id,
            name=name,
            content_type=content_type,
            updated_at=updated_at,
            size=len(data),
        )
        self.contents[file_id] = data

    def touch(self, file_id: str, updated_at: datetime) -> None:
        self.files[file_id] = self.files[file_id].model_copy(update={"updated_at": updated_at})

    async def read_bytes(self, file_id: str) -> Optional[bytes]:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.read_count += 1
        return self.contents.get(file_id)

    async def get_info(self, file_id: str) -> Optional[FileInfo]:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.files.get(file_id)


class FakeCatalog:
    """CatalogQuery and CatalogWriter fake.

    Writes are recorded in ``updates`` and applied to the stored items.
    """

    def __init__(self, items: Optional[List[CatalogItem]] = None):
        self.items: List[CatalogItem] = list(items or [])
        self.updates: List[tuple] = []
        self.fail_ids: set = set()
        self.write_delay = 0.0
        self.currency_factors: Dict[str, Decimal] = {"UAH": Decimal("1")}
        self.filters_seen: List[CatalogFilters] = []

    def add(self, item: CatalogItem) -> CatalogItem:
        self.items.append(item)
        return item

    def _all(self) -> List[CatalogItem]:
        return [entry for item in self.items for entry in item.iter_with_variants()]

    async def find_candidates(self, filters: CatalogFilters) -> List[CatalogItem]:
        self.filters_seen.append(filters)
        return list(self.items)

    async def find_by_id(self, product_id: str) -> Optional[CatalogItem]:
        for item in self._all():
            if item.id == product_id:
                return item
        return None

    async def find_with_stored_prices(self, limit: Optional[int] = None) -> List[CatalogItem]:
        found = [item for item in self._all() if item.stored_prices is not None]
        return found[:limit] if limit else found

    async def get_currency_factors(self) -> Dict[str, Decimal]:
        return dict(self.currency_factors)

    async def update_prices(self, product_id: str, update: PriceUpdate) -> None:
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        if product_id in self.fail_ids:
            raise RuntimeError(f"catalog rejected write for {product_id}")
        self.updates.append((product_id, update))
        for item in self._all():
            if item.id != product_id:
                continue
            if update.purchase is not None:
                item.purchase_price = update.purchase
            if update.retail is not None:
                item.retail_price = update.retail
            if update.stock is not None:
                item.stock = update.stock
            if update.supplier_code is not None:
                item.supplier_code = update.supplier_code
            if update.stored is not None:
                item.stored_prices = update.stored

    def updated_ids(self) -> List[str]:
        return [product_id for product_id, _ in self.updates]


class InMemoryTemplateRepository:
    """TemplateRepository fake storing deep copies."""

    def __init__(self):
        self.templates: Dict[str, ImportTemplate] = {}
        self.save_count = 0
        self.fail_saves = False

    def put(self, template: ImportTemplate) -> ImportTemplate:
        self.templates[template.id] = template.model_copy(deep=True)
        return template

    async def get(self, template_id: str) -> Optional[ImportTemplate]:
        template = self.templates.get(template_id)
        return template.model_copy(deep=True) if template is not None else None

    async def save(self, template: ImportTemplate) -> None:
        if self.fail_saves:
            raise PersistenceError("database unavailable", details={"template_id": template.id})
        self.save_count += 1
        self.templates[template.id] = template.model_copy(deep=True)
