"""
Catalog file parsers.

Reading, header mapping, image location and row assembly. Nothing in this
package touches the catalog store.
"""

from parsers.tabular_reader import (
    RawGrid,
    read_grid,
    detect_format,
    derive_category,
    is_empty_row,
)
from parsers.header_mapper import (
    CanonicalField,
    ColumnMap,
    HEADER_SYNONYMS,
    REQUIRED_FIELDS,
    map_columns,
)
from parsers.embedded_images import (
    ExtractedImage,
    ImageTier,
    IMAGE_STRATEGIES,
    extract_embedded_images,
)
from parsers.image_resolver import ImageResolver
from parsers.row_assembler import assemble_row, generate_product_id

__all__ = [
    # Reader
    "RawGrid",
    "read_grid",
    "detect_format",
    "derive_category",
    "is_empty_row",

    # Headers
    "CanonicalField",
    "ColumnMap",
    "HEADER_SYNONYMS",
    "REQUIRED_FIELDS",
    "map_columns",

    # Images
    "ExtractedImage",
    "ImageTier",
    "IMAGE_STRATEGIES",
    "extract_embedded_images",
    "ImageResolver",

    # Rows
    "assemble_row",
    "generate_product_id",
]
