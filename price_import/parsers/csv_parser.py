"""Delimited text (CSV) price list parser."""
import codecs
import csv
import io
from itertools import islice
from typing import Iterator, Optional, Tuple

import pandas as pd
import structlog

from price_import.config import settings
from price_import.errors.exceptions import MalformedSourceError
from price_import.models.catalog import SourceFile
from price_import.models.normalized_row import PreviewResult
from price_import.models.template import ColumnMapping
from price_import.parsers.base_parser import PriceParserInterface, RawRow

logger = structlog.get_logger(__name__)


class CsvParser(PriceParserInterface):
    """Parser for comma, semicolon, tab or pipe separated price lists.

    Reads with pandas in chunks so rows are yielded before the whole file
    has been processed.

    Features:
    - Delimiter auto-detection by counting candidates in the first lines
    - Encoding detection (UTF-8 with or without BOM, then cp1251, then latin-1)
    - Ragged lines padded or truncated to the mapped width
    """

    name = "csv"
    extensions = ("csv", "tsv", "txt")
    content_types = ("text/csv", "application/csv", "text/plain", "text/tab-separated-values")

    DELIMITERS = (",", ";", "\t", "|")
    ENCODINGS = ("utf-8-sig", "cp1251", "latin-1")
    SAMPLE_BYTES = 64 * 1024
    DELIMITER_SAMPLE_LINES = 3

    def __init__(self, chunk_size: Optional[int] = None):
        self.chunk_size = chunk_size or settings.csv_chunk_size

    def detect_encoding(self, data: bytes) -> str:
        """Return the first candidate encoding that decodes the file head."""
        sample = data[: self.SAMPLE_BYTES]
        for encoding in self.ENCODINGS:
            # Incremental decode tolerates a multi-byte char cut by the sample
            decoder = codecs.getincrementaldecoder(encoding)()
            try:
                decoder.decode(sample, final=False)
            except UnicodeDecodeError:
                continue
            return encoding
        return self.ENCODINGS[-1]

    def detect_delimiter(self, text: str) -> str:
        """Pick the candidate delimiter occurring most often in the first lines."""
        lines = [line for line in text.splitlines() if line.strip()][: self.DELIMITER_SAMPLE_LINES]
        counts = {d: sum(line.count(d) for line in lines) for d in self.DELIMITERS}
        best = max(self.DELIMITERS, key=lambda d: counts[d])
        return best if counts[best] > 0 else ","

    def _dialect(self, source: SourceFile) -> Tuple[str, str, str]:
        encoding = self.detect_encoding(source.data)
        sample_text = source.data[: self.SAMPLE_BYTES].decode(encoding, errors="replace")
        return encoding, self.detect_delimiter(sample_text), sample_text

    def _sample_width(self, sample_text: str, delimiter: str) -> int:
        reader = csv.reader(io.StringIO(sample_text), delimiter=delimiter)
        widths = [len(row) for row in islice(reader, settings.start_row_scan_limit + settings.preview_rows)]
        return max(widths, default=1) or 1

    def iter_raw_rows(
        self,
        source: SourceFile,
        width: Optional[int] = None,
        start_row: int = 1,
    ) -> Iterator[RawRow]:
        encoding, delimiter, sample_text = self._dialect(source)
        if width is None:
            width = self._sample_width(sample_text, delimiter)

        row_number = start_row
        try:
            reader = pd.read_csv(
                io.BytesIO(source.data),
                sep=delimiter,
                header=None,
                # Short lines are padded with NaN; index_col=False drops cells
                # beyond the last name instead of treating them as an index
                names=list(range(width)),
                index_col=False,
                dtype=object,
                keep_default_na=False,
                skip_blank_lines=False,
                skiprows=start_row - 1,
                encoding=encoding,
                engine="python",
                chunksize=self.chunk_size,
            )
            with reader:
                for chunk in reader:
                    for values in chunk.itertuples(index=False, name=None):
                        yield row_number, list(values)
                        row_number += 1
        except pd.errors.EmptyDataError:
            return
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise MalformedSourceError(
                f"CSV parsing error: {e}",
                details={"file_id": source.file_id, "row_number": row_number},
            ) from e

    def read_preview(
        self,
        source: SourceFile,
        row_limit: int,
        mapping: Optional[ColumnMapping] = None,
    ) -> PreviewResult:
        encoding, delimiter, _ = self._dialect(source)
        result = super().read_preview(source, row_limit, mapping)
        logger.debug("csv_dialect_detected", file_id=source.file_id, encoding=encoding, delimiter=delimiter)
        return result.model_copy(update={"detected_delimiter": delimiter, "encoding": encoding})
