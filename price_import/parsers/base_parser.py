"""Abstract parser interface for pluggable price list formats."""
import asyncio
from abc import ABC, abstractmethod
from itertools import islice
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import structlog

from price_import.config import settings
from price_import.errors.exceptions import MissingMappingError
from price_import.models.catalog import SourceFile
from price_import.models.normalized_row import NormalizedRow, PreviewResult
from price_import.models.template import ColumnMapping
from price_import.parsers.start_row_detector import detect_start_row
from price_import.services.normalizer import (
    index_to_column,
    normalize_cell,
    normalize_code,
    normalize_price,
)

logger = structlog.get_logger(__name__)

RawRow = Tuple[int, List[Any]]


def build_normalized_row(
    cells: Sequence[Any],
    row_number: int,
    mapping: ColumnMapping,
) -> NormalizedRow:
    """Apply a column mapping to one raw row and normalize every cell.

    Unparsable prices become None and are recorded as row diagnostics.
    """
    def cell(field: str) -> Any:
        idx = mapping.index_of(field)
        if idx is None or idx >= len(cells):
            return None
        return cells[idx]

    diagnostics: List[str] = []
    prices: Dict[str, Any] = {}
    for slot in ("price1", "price2"):
        raw = cell(slot)
        text = normalize_cell(raw)
        value = normalize_price(raw) if text else None
        if text and value is None:
            diagnostics.append(f"{slot}: unparsable price {text!r}")
        prices[slot] = value

    extra = {
        key: normalize_cell(cells[idx]) if idx < len(cells) else ""
        for key, idx in mapping.extra_indices()
    }

    return NormalizedRow(
        row_number=row_number,
        code=normalize_code(cell("code")),
        name=normalize_cell(cell("name")),
        price1=prices["price1"],
        price2=prices["price2"],
        availability=normalize_cell(cell("availability")) or None,
        extra=extra,
        diagnostics=diagnostics,
    )


def cells_by_letter(cells: Sequence[Any]) -> Dict[str, str]:
    """Key raw cells by spreadsheet column letter."""
    return {index_to_column(i): normalize_cell(value) for i, value in enumerate(cells)}


class PriceParserInterface(ABC):
    """Abstract base class for all price list parsers.

    Parsers read a stored file and stream it as raw rows of cells. Mapping
    columns, normalizing cells and skipping separator rows is shared here,
    so a new format only implements iter_raw_rows().

    Readers are blocking; the async parse() and preview() methods run them
    in a worker thread.
    """

    name: str = ""
    extensions: Tuple[str, ...] = ()
    content_types: Tuple[str, ...] = ()
    implemented: bool = True

    def supports_extension(self, extension: str) -> bool:
        return extension.lower().lstrip(".") in self.extensions

    def supports_content_type(self, content_type: Optional[str]) -> bool:
        if not content_type:
            return False
        return content_type.split(";")[0].strip().lower() in self.content_types

    def supports(self, source: SourceFile) -> bool:
        """Return True if this parser can read the file."""
        return self.supports_extension(source.extension) or self.supports_content_type(
            source.content_type
        )

    @abstractmethod
    def iter_raw_rows(
        self,
        source: SourceFile,
        width: Optional[int] = None,
        start_row: int = 1,
    ) -> Iterator[RawRow]:
        """Stream (row_number, cells) pairs from the first sheet or table.

        Args:
            source: File to read
            width: Pad or truncate every row to this many cells (None keeps
                   the reader's own width)
            start_row: 1-indexed first row to yield

        Raises:
            MalformedSourceError: If the file cannot be read as this format
        """

    def iter_rows(self, source: SourceFile, mapping: ColumnMapping) -> Iterator[NormalizedRow]:
        """Stream normalized rows, starting at the mapping's start row.

        Rows with neither code nor name are skipped.

        Raises:
            MissingMappingError: If the mapping identifies neither code nor name
            MalformedSourceError: If the file cannot be read
        """
        if not mapping.is_configured:
            raise MissingMappingError(
                "Column mapping must define a code or name column",
                details={"file_id": source.file_id},
            )

        log = logger.bind(parser=self.name, file_id=source.file_id)
        width = mapping.max_index() + 1
        for row_number, cells in self.iter_raw_rows(source, width=width, start_row=mapping.start_row):
            row = build_normalized_row(cells, row_number, mapping)
            if row.is_blank:
                continue
            if row.diagnostics:
                log.warning(
                    "row_normalization_issue",
                    row_number=row_number,
                    diagnostics=row.diagnostics,
                )
            yield row

    def read_preview(
        self,
        source: SourceFile,
        row_limit: int,
        mapping: Optional[ColumnMapping] = None,
    ) -> PreviewResult:
        """Read the first rows as raw text and suggest where data starts."""
        scan_limit = settings.start_row_scan_limit
        raw_rows = list(islice(self.iter_raw_rows(source), max(row_limit, scan_limit)))

        width = max((len(cells) for _, cells in raw_rows), default=0)
        padded = [list(cells) + [None] * (width - len(cells)) for _, cells in raw_rows]

        suggested = detect_start_row(padded, mapping=mapping, scan_limit=scan_limit)
        header_row = padded[suggested - 2] if 2 <= suggested <= len(padded) + 1 else []

        return PreviewResult(
            parser=self.name,
            header_guess=cells_by_letter(header_row),
            sample_rows=[cells_by_letter(cells) for cells in padded[:row_limit]],
            suggested_start_row=suggested,
        )

    def parse_all(self, source: SourceFile, mapping: ColumnMapping) -> List[NormalizedRow]:
        rows = list(self.iter_rows(source, mapping))
        logger.info(
            "price_list_parsed",
            parser=self.name,
            file_id=source.file_id,
            rows=len(rows),
            rows_with_diagnostics=sum(1 for r in rows if r.diagnostics),
        )
        return rows

    async def parse(self, source: SourceFile, mapping: ColumnMapping) -> List[NormalizedRow]:
        """Parse the whole file into normalized rows off the event loop."""
        return await asyncio.to_thread(self.parse_all, source, mapping)

    async def preview(
        self,
        source: SourceFile,
        row_limit: int,
        mapping: Optional[ColumnMapping] = None,
    ) -> PreviewResult:
        return await asyncio.to_thread(self.read_preview, source, row_limit, mapping)
