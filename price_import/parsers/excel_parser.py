"""Excel (xlsx) price list parser."""
import io
from typing import Iterator, Optional
from zipfile import BadZipFile

import structlog
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from price_import.errors.exceptions import MalformedSourceError
from price_import.models.catalog import SourceFile
from price_import.parsers.base_parser import PriceParserInterface, RawRow

logger = structlog.get_logger(__name__)


class ExcelParser(PriceParserInterface):
    """Parser for Office Open XML workbooks.

    Uses openpyxl in read-only mode and streams the first worksheet row by
    row with values_only, so formulas come back as their cached values.
    """

    name = "excel"
    extensions = ("xlsx", "xlsm")
    content_types = (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-excel.sheet.macroenabled.12",
    )

    def _open(self, source: SourceFile):
        try:
            return load_workbook(io.BytesIO(source.data), read_only=True, data_only=True)
        except (BadZipFile, InvalidFileException, KeyError, ValueError, OSError) as e:
            raise MalformedSourceError(
                f"Cannot open workbook '{source.name}': {e}",
                details={"file_id": source.file_id},
            ) from e

    def iter_raw_rows(
        self,
        source: SourceFile,
        width: Optional[int] = None,
        start_row: int = 1,
    ) -> Iterator[RawRow]:
        workbook = self._open(source)
        try:
            if not workbook.worksheets:
                raise MalformedSourceError(
                    f"Workbook '{source.name}' has no worksheets",
                    details={"file_id": source.file_id},
                )
            sheet = workbook.worksheets[0]
            logger.debug("excel_sheet_selected", file_id=source.file_id, sheet=sheet.title)

            rows = sheet.iter_rows(min_row=start_row, values_only=True)
            for row_number, values in enumerate(rows, start=start_row):
                cells = list(values)
                if width is not None:
                    cells = (cells + [None] * width)[:width]
                yield row_number, cells
        finally:
            workbook.close()
