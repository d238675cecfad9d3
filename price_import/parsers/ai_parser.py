"""Extension point for documents that need AI extraction (PDF, images, Word)."""
from typing import Iterator, List, Optional

from price_import.errors.exceptions import ParserNotImplementedError
from price_import.models.catalog import SourceFile
from price_import.models.normalized_row import NormalizedRow, PreviewResult
from price_import.models.template import ColumnMapping
from price_import.parsers.base_parser import PriceParserInterface, RawRow


class AiParser(PriceParserInterface):
    """Claims unstructured document formats but does not read them yet.

    Registered so these uploads fail with a clear not_implemented error
    instead of unsupported_format.
    """

    name = "ai"
    extensions = ("pdf", "png", "jpg", "jpeg", "doc", "docx")
    content_types = (
        "application/pdf",
        "image/png",
        "image/jpeg",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    )
    implemented = False

    def _not_implemented(self, source: SourceFile) -> ParserNotImplementedError:
        return ParserNotImplementedError(
            f"AI parsing of '{source.name}' is not implemented",
            details={"file_id": source.file_id, "parser": self.name},
        )

    def iter_raw_rows(
        self,
        source: SourceFile,
        width: Optional[int] = None,
        start_row: int = 1,
    ) -> Iterator[RawRow]:
        raise self._not_implemented(source)

    async def parse(self, source: SourceFile, mapping: ColumnMapping) -> List[NormalizedRow]:
        raise self._not_implemented(source)

    async def preview(
        self,
        source: SourceFile,
        row_limit: int,
        mapping: Optional[ColumnMapping] = None,
    ) -> PreviewResult:
        raise self._not_implemented(source)
