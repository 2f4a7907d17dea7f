"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    CatalogAttributes,
    TimestampMixin,
)
from models.product import ProductRecord
from models.catalog_import import (
    ParsedProduct,
    SkippedProduct,
    ImportOutcome,
    ImportMetadata,
    ImportResult,
)

__all__ = [
    # Base
    "BaseSchema",
    "CatalogAttributes",
    "TimestampMixin",

    # Product
    "ProductRecord",

    # Import
    "ParsedProduct",
    "SkippedProduct",
    "ImportOutcome",
    "ImportMetadata",
    "ImportResult",
]
