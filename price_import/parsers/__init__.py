"""Price list parsers."""
from price_import.parsers.base_parser import PriceParserInterface, build_normalized_row
from price_import.parsers.csv_parser import CsvParser
from price_import.parsers.excel_parser import ExcelParser
from price_import.parsers.ai_parser import AiParser
from price_import.parsers.parser_registry import ParserRegistry, create_default_registry
from price_import.parsers.start_row_detector import detect_start_row, guess_price_column

__all__ = [
    "PriceParserInterface",
    "build_normalized_row",
    "CsvParser",
    "ExcelParser",
    "AiParser",
    "ParserRegistry",
    "create_default_registry",
    "detect_start_row",
    "guess_price_column",
]
