"""Parser registry: picks the parser for a stored file."""
from typing import Any, Dict, List, Optional

import structlog

from price_import.errors.exceptions import UnsupportedFormatError
from price_import.models.catalog import SourceFile
from price_import.models.normalized_row import NormalizedRow, PreviewResult
from price_import.models.template import ColumnMapping
from price_import.parsers.base_parser import PriceParserInterface

logger = structlog.get_logger(__name__)


class ParserRegistry:
    """Ordered collection of parsers.

    Lookup is by file extension first, then by content type; the first
    registered parser that matches wins.
    """

    def __init__(self, parsers: Optional[List[PriceParserInterface]] = None):
        self._parsers: List[PriceParserInterface] = []
        for parser in parsers or []:
            self.register(parser)

    def register(self, parser: PriceParserInterface) -> None:
        """Register a parser instance.

        Raises:
            TypeError: If parser does not implement PriceParserInterface
            ValueError: If a parser with the same name is already registered
        """
        if not isinstance(parser, PriceParserInterface):
            raise TypeError(
                f"Parser {type(parser).__name__} must inherit from PriceParserInterface"
            )
        if any(existing.name == parser.name for existing in self._parsers):
            raise ValueError(f"Parser '{parser.name}' is already registered")
        self._parsers.append(parser)

    def get_parser(self, source: SourceFile) -> PriceParserInterface:
        """Return the parser for a file.

        Raises:
            UnsupportedFormatError: If no registered parser supports the file
        """
        for parser in self._parsers:
            if parser.supports_extension(source.extension):
                return parser
        for parser in self._parsers:
            if parser.supports_content_type(source.content_type):
                return parser

        raise UnsupportedFormatError(
            f"Unsupported file format: '{source.name}'",
            details={
                "file_id": source.file_id,
                "extension": source.extension,
                "content_type": source.content_type,
                "supported_extensions": self.supported_extensions(),
            },
        )

    async def preview(
        self,
        source: SourceFile,
        row_limit: int,
        mapping: Optional[ColumnMapping] = None,
    ) -> PreviewResult:
        return await self.get_parser(source).preview(source, row_limit, mapping)

    async def parse(self, source: SourceFile, mapping: ColumnMapping) -> List[NormalizedRow]:
        parser = self.get_parser(source)
        logger.debug("parser_selected", parser=parser.name, file_id=source.file_id)
        return await parser.parse(source, mapping)

    def supported_extensions(self) -> List[str]:
        return sorted({ext for parser in self._parsers for ext in parser.extensions})

    def parser_info(self) -> List[Dict[str, Any]]:
        """Describe registered parsers for format listings."""
        return [
            {
                "name": parser.name,
                "extensions": list(parser.extensions),
                "implemented": parser.implemented,
            }
            for parser in self._parsers
        ]

    def __len__(self) -> int:
        return len(self._parsers)


def create_default_registry() -> ParserRegistry:
    """Registry with the built-in CSV, Excel and AI parsers."""
    from price_import.parsers.ai_parser import AiParser
    from price_import.parsers.csv_parser import CsvParser
    from price_import.parsers.excel_parser import ExcelParser

    return ParserRegistry([CsvParser(), ExcelParser(), AiParser()])
