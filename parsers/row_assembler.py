"""
Product row assembler.

Turns one data row, its column map and its located image into a
ParsedProduct.
"""

import math
import random
import re
import string
import time
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence

from config.settings import settings
from exceptions import MissingRequiredFieldError
from models.catalog_import import ParsedProduct
from parsers.header_mapper import CanonicalField, ColumnMap
from parsers.tabular_reader import RawGrid, is_empty_row
from utils.image_utils import is_data_uri

BASE36_ALPHABET = string.digits + string.ascii_lowercase

# Currency symbols, spaces and letters around a price
PRICE_NOISE = re.compile(r"[^\d.,\-]")
NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")

__all__ = [
    "assemble_row",
    "generate_product_id",
    "is_empty_row",
    "parse_price",
    "parse_quantity",
]


def to_base36(value: int) -> str:
    """Non-negative int -> lower-case base-36 string."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_product_id(
    part_number: str,
    now_ms: Optional[int] = None,
    rng: Optional[random.Random] = None
) -> str:
    """
    Synthesize an id for a row whose file has no id column.

    "AB-12/X" -> "p_AB_12_X_<base36 ms>_<4 base36 chars>"
    """
    clean = NON_ALPHANUMERIC.sub("_", part_number)[:20]
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    rng = rng or random
    suffix = "".join(rng.choice(BASE36_ALPHABET) for _ in range(4))
    return f"p_{clean}_{to_base36(now_ms)}_{suffix}"


def parse_price(raw: str) -> Optional[Decimal]:
    """
    "$1,299.50" -> Decimal("1299.50"), "1.299,50" -> Decimal("1299.50").

    When both "." and "," appear the right-most one is the decimal point;
    a lone "," groups thousands. A sign is only accepted in front.
    Unparseable -> None.
    """
    cleaned = PRICE_NOISE.sub("", raw or "")
    if not cleaned or "-" in cleaned[1:]:
        return None
    if "." in cleaned and cleaned.rfind(",") > cleaned.rfind("."):
        cleaned = cleaned.replace(".", "").replace(",", ".")
    else:
        cleaned = cleaned.replace(",", "")
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def parse_quantity(raw: str) -> Optional[float]:
    cleaned = (raw or "").replace(",", "").strip()
    if not cleaned:
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _text(cells: Sequence[str], column_map: ColumnMap, name: CanonicalField) -> str:
    return RawGrid.cell(cells, column_map.get(name))


def assemble_row(
    cells: Sequence[str],
    column_map: ColumnMap,
    row_number: int,
    category: str,
    image: Optional[str] = None
) -> ParsedProduct:
    """
    Build a ParsedProduct from one data row.

    Args:
        cells: Raw row cells
        column_map: Header mapping for the file
        row_number: 1-based spreadsheet row
        category: Category derived from the file name
        image: Extracted or resolved data URI, if any

    Returns:
        ParsedProduct

    Raises:
        MissingRequiredFieldError: Part number is empty after trimming
    """
    part_number = _text(cells, column_map, CanonicalField.PART_NUMBER)
    if not part_number:
        raise MissingRequiredFieldError(CanonicalField.PART_NUMBER.value, row_number)

    # ParsedProduct truncates after its own whitespace strip
    description = (
        _text(cells, column_map, CanonicalField.DESCRIPTION)
        or part_number[:settings.max_part_number_length]
        or settings.default_description
    )

    if image is None:
        raw_image = _text(cells, column_map, CanonicalField.IMAGE)
        image = raw_image if is_data_uri(raw_image) else None

    source_id = _text(cells, column_map, CanonicalField.ID)

    return ParsedProduct(
        id=source_id or generate_product_id(part_number),
        id_from_source=bool(source_id),
        part_number=part_number,
        description=description,
        image=image,
        category=category,
        row_number=row_number,
        price=parse_price(_text(cells, column_map, CanonicalField.PRICE)),
        quantity=parse_quantity(_text(cells, column_map, CanonicalField.QUANTITY)),
        unit=_text(cells, column_map, CanonicalField.UNIT) or None,
        brand=_text(cells, column_map, CanonicalField.BRAND) or None,
        model=_text(cells, column_map, CanonicalField.MODEL) or None,
    )
