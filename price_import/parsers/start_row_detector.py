"""Suggest the first data row of a price list.

Supplier files usually open with a title block and a header line. The
first data row is the first one whose price column holds a positive
number (and whose code column, when mapped, is not empty).
"""
import re
from typing import Any, Optional, Sequence

from price_import.models.template import ColumnMapping
from price_import.services.normalizer import normalize_cell, normalize_price

DEFAULT_START_ROW = 2

PRICE_HEADER_PATTERN = re.compile(r"price|цена|ціна|cost|стоимость", re.IGNORECASE)
_NUMERIC_CELL = re.compile(r"^\s*-?[\d\s,.]+\s*$")


def _cell(row: Sequence[Any], idx: int) -> Any:
    return row[idx] if idx < len(row) else None


def guess_price_column(rows: Sequence[Sequence[Any]]) -> Optional[int]:
    """Guess the price column without a mapping.

    Header keywords win (only in rows with at least two filled cells, so a
    title line is not taken for the header); otherwise the first column
    holding a positive plain number in any row.
    """
    for row in rows:
        if sum(1 for value in row if normalize_cell(value)) < 2:
            continue
        for idx, value in enumerate(row):
            if PRICE_HEADER_PATTERN.search(normalize_cell(value)):
                return idx

    width = max((len(row) for row in rows), default=0)
    for idx in range(width):
        for row in rows:
            text = normalize_cell(_cell(row, idx))
            if not text or not _NUMERIC_CELL.match(text):
                continue
            price = normalize_price(text)
            if price is not None and price > 0:
                return idx
    return None


def detect_start_row(
    rows: Sequence[Sequence[Any]],
    mapping: Optional[ColumnMapping] = None,
    scan_limit: int = 20,
) -> int:
    """Return the 1-indexed first data row.

    Args:
        rows: Raw rows starting at row 1
        mapping: Optional column mapping; its price1 and code columns are used
        scan_limit: Rows inspected before giving up

    Returns:
        Suggested start row, DEFAULT_START_ROW when nothing qualifies
    """
    scanned = rows[:scan_limit]
    price_idx = mapping.index_of("price1") if mapping is not None else None
    code_idx = mapping.index_of("code") if mapping is not None else None

    if price_idx is None:
        price_idx = guess_price_column(scanned)
    if price_idx is None:
        return DEFAULT_START_ROW

    for position, row in enumerate(scanned, start=1):
        price = normalize_price(_cell(row, price_idx))
        if price is None or price <= 0:
            continue
        if code_idx is not None and not normalize_cell(_cell(row, code_idx)):
            continue
        return position
    return DEFAULT_START_ROW
