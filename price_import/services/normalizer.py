"""Cell-level normalization shared by parsers, matching and templates.

Everything here is pure and never raises on bad supplier data: an
unparsable price is None, an unusable cell is an empty string. Column
helpers are the exception and raise ValueError on invalid references, so
that bad mappings fail at validation time.
"""
import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Union

# First number-looking run in a cell: digits with inner spaces, NBSPs,
# apostrophes and separators ("1 234,56", "1'234.56", "$1,234.56")
_NUMBER_RUN = re.compile(r"-?\d[\d\s',.]*")
_NUMBER_NOISE = re.compile(r"[\s']")
_NON_WORD = re.compile(r"[^\w\s]|_", re.UNICODE)
_WHITESPACE = re.compile(r"\s+", re.UNICODE)
_COLUMN_LETTERS = re.compile(r"^[A-Z]+$")


def normalize_price(raw: Any) -> Optional[Decimal]:
    """Parse a supplier price cell into a Decimal.

    Currency symbols, words and whitespace are dropped. Of the "," and "."
    separators, the right-most one is the decimal point when 1-2 digits
    follow it; every other separator is a thousands separator. A single
    separator followed by exactly three digits is a thousands separator.

    Args:
        raw: Cell value (str, int, float or Decimal)

    Returns:
        Decimal value, or None for empty or garbage input

    Examples:
        >>> normalize_price("1 234,56 UAH")
        Decimal('1234.56')
        >>> normalize_price("$1,234.56")
        Decimal('1234.56')
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else None
    if isinstance(raw, int):
        return Decimal(raw)
    if isinstance(raw, float):
        if math.isnan(raw) or math.isinf(raw):
            return None
        return Decimal(str(raw))

    match = _NUMBER_RUN.search(str(raw))
    if match is None:
        return None

    number = _NUMBER_NOISE.sub("", match.group(0)).rstrip(",.")
    negative = number.startswith("-")
    digits = number.lstrip("-")
    if not digits:
        return None

    last_sep = max(digits.rfind(","), digits.rfind("."))
    if last_sep >= 0:
        integer_part = digits[:last_sep]
        fraction = digits[last_sep + 1:]
        separators = {c for c in digits if c in ",."}
        lone_separator = len(separators) == 1 and digits.count(digits[last_sep]) == 1
        if len(separators) == 1 and not lone_separator:
            # "1.234.567": same separator repeated is always grouping
            digits = digits.replace(digits[last_sep], "")
        elif lone_separator and len(fraction) == 3:
            digits = integer_part + fraction
        else:
            integer_part = integer_part.replace(",", "").replace(".", "")
            digits = f"{integer_part or '0'}.{fraction}"

    try:
        value = Decimal(digits)
    except InvalidOperation:
        return None
    return -value if negative else value


def normalize_text(raw: Any) -> str:
    """Lowercase text and drop everything but letters, digits and whitespace.

    Unicode aware, so Cyrillic (including Ukrainian і, ї, є, ґ) survives.
    Whitespace runs collapse to one space.
    """
    if raw is None:
        return ""
    text = _NON_WORD.sub("", str(raw).lower())
    return _WHITESPACE.sub(" ", text).strip()


def tokenize(normalized: str) -> List[str]:
    """Split normalized text on whitespace, keeping order."""
    return [token for token in normalized.split() if token]


def normalize_cell(raw: Any) -> str:
    """Render any spreadsheet cell as trimmed text.

    Integral floats lose their ".0" so codes typed as numbers in Excel
    keep their written form.
    """
    if raw is None:
        return ""
    if isinstance(raw, float):
        if math.isnan(raw):
            return ""
        if raw.is_integer():
            return str(int(raw))
    if isinstance(raw, (datetime, date)):
        return raw.isoformat()
    return str(raw).strip()


def normalize_code(raw: Any) -> str:
    """Supplier code comparison form: trimmed and upper-cased."""
    return normalize_cell(raw).upper()


def column_to_index(ref: Union[str, int]) -> int:
    """Convert a column reference to a 0-based index.

    Accepts spreadsheet letters ("A" -> 0, "AB" -> 27), digit strings and
    ints (already 0-based).

    Raises:
        ValueError: If the reference is not a valid column
    """
    if isinstance(ref, bool):
        raise ValueError(f"Invalid column reference: {ref!r}")
    if isinstance(ref, int):
        if ref < 0:
            raise ValueError(f"Column index cannot be negative: {ref}")
        return ref
    if not isinstance(ref, str):
        raise ValueError(f"Invalid column reference: {ref!r}")

    text = ref.strip().upper()
    if text.isdigit():
        return int(text)
    if not _COLUMN_LETTERS.match(text):
        raise ValueError(f"Invalid column reference: {ref!r}")

    index = 0
    for char in text:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def index_to_column(index: int) -> str:
    """Convert a 0-based index to spreadsheet letters (0 -> "A", 26 -> "AA")."""
    if index < 0:
        raise ValueError(f"Column index cannot be negative: {index}")
    letters = ""
    n = index + 1
    while n > 0:
        n, remainder = divmod(n - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters
