"""
Header mapper for catalog uploads.

Catalog exports have no fixed schema, so headers are matched to canonical
fields by substring: a header belongs to a field if it contains any of that
field's synonyms. Matching is best-effort; missing fields are not an error
here and callers check for the fields they require.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Sequence
import structlog

logger = structlog.get_logger(__name__)


class CanonicalField(str, Enum):
    """Canonical product fields, in mapping priority order."""
    ID = "id"
    PART_NUMBER = "part_number"
    DESCRIPTION = "description"
    IMAGE = "image"
    CATEGORY = "category"
    PRICE = "price"
    QUANTITY = "quantity"
    UNIT = "unit"
    BRAND = "brand"
    MODEL = "model"


HEADER_SYNONYMS: Mapping[CanonicalField, tuple[str, ...]] = MappingProxyType({
    CanonicalField.ID: (
        "id", "product id", "product_id", "productid", "uuid",
    ),
    CanonicalField.PART_NUMBER: (
        "part number", "part no", "partno", "part_number", "partnumber",
        "sku", "item code", "itemcode", "part code", "part_code",
    ),
    CanonicalField.DESCRIPTION: (
        "description", "desc", "product description", "product_desc",
        "part description", "part_description", "name", "product name",
        "productname",
    ),
    CanonicalField.IMAGE: (
        "part image", "partimage", "image", "photo", "picture", "img",
        "part_image", "product image", "product_image",
    ),
    CanonicalField.CATEGORY: (
        "category", "cat", "type", "product type", "product_type", "group",
        "product group",
    ),
    CanonicalField.PRICE: (
        "price", "cost", "unit price", "unit_price", "selling price",
        "selling_price", "rate",
    ),
    CanonicalField.QUANTITY: (
        "quantity", "qty", "stock", "available", "inventory",
    ),
    CanonicalField.UNIT: (
        "unit", "uom", "unit of measure", "unit_of_measure",
    ),
    CanonicalField.BRAND: (
        "brand", "manufacturer", "make", "company",
    ),
    CanonicalField.MODEL: (
        "model", "model number", "model_number", "version",
    ),
})

# Enum definition order is the tie-break order
FIELD_PRIORITY: tuple[CanonicalField, ...] = tuple(CanonicalField)

REQUIRED_FIELDS: tuple[CanonicalField, ...] = (CanonicalField.PART_NUMBER,)


@dataclass(frozen=True)
class ColumnMap:
    """
    Canonical field -> zero-based column index.

    A field is absent when no header matched it. No two fields share a
    column.
    """
    indices: Mapping[CanonicalField, int] = field(default_factory=dict)

    def get(self, name: CanonicalField) -> Optional[int]:
        return self.indices.get(CanonicalField(name))

    def has(self, name: CanonicalField) -> bool:
        return CanonicalField(name) in self.indices

    def missing(self, required: Sequence[CanonicalField] = REQUIRED_FIELDS) -> list[CanonicalField]:
        """Required fields that no header matched."""
        return [f for f in required if not self.has(f)]

    def to_dict(self) -> dict[str, int]:
        return {f.value: idx for f, idx in self.indices.items()}

    def __len__(self) -> int:
        return len(self.indices)


def header_matches(header: str, synonyms: Sequence[str]) -> bool:
    """True if the header contains any synonym (case-insensitive)."""
    normalized = (header or "").strip().lower()
    if not normalized:
        return False
    return any(synonym in normalized for synonym in synonyms)


def map_columns(
    headers: Sequence[str],
    synonyms: Mapping[CanonicalField, Sequence[str]] = HEADER_SYNONYMS,
) -> ColumnMap:
    """
    Map header strings to canonical fields.

    Fields are resolved in FIELD_PRIORITY order. Each takes the lowest-index
    matching header that an earlier field has not already claimed.

    Args:
        headers: Header row cells (any case; trimmed here)
        synonyms: Field -> synonym phrases

    Returns:
        ColumnMap with one entry per matched field
    """
    indices: dict[CanonicalField, int] = {}
    claimed: set[int] = set()

    for canonical in FIELD_PRIORITY:
        phrases = synonyms.get(canonical, ())
        for idx, header in enumerate(headers):
            if idx in claimed:
                continue
            if header_matches(header, phrases):
                indices[canonical] = idx
                claimed.add(idx)
                break

    column_map = ColumnMap(indices=MappingProxyType(indices))

    logger.info(
        "columns_mapped",
        mapped=column_map.to_dict(),
        unmapped_headers=[
            h for i, h in enumerate(headers) if i not in claimed and h
        ]
    )

    return column_map
