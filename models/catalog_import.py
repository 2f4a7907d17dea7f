"""
Catalog import schemas.

ParsedProduct is the validated output of one spreadsheet row; ImportOutcome
and ImportResult are what an import job hands back to its caller.
"""

from typing import Optional

from pydantic import Field, field_validator

from config.settings import settings
from models.base import BaseSchema, CatalogAttributes
from models.product import ProductRecord
from utils.image_utils import is_data_uri


class ParsedProduct(BaseSchema, CatalogAttributes):
    """
    One assembled catalog row, ready for reconciliation.

    part_number is trimmed and truncated; image is a data URI or None.
    """

    id: str = Field(..., min_length=1, description="Row identifier")
    id_from_source: bool = Field(
        False,
        description="True when the id came from the file rather than being synthesized"
    )
    part_number: str = Field(..., min_length=1, description="Part number")
    description: str = Field(..., min_length=1, description="Description")
    image: Optional[str] = Field(None, description="Data URI image")
    category: str = Field(..., min_length=1, description="Category derived from file name")
    row_number: int = Field(..., ge=1, description="1-based spreadsheet row")

    @field_validator("part_number")
    @classmethod
    def part_number_truncated(cls, v: str) -> str:
        """Cut the already-trimmed part number to the configured maximum length."""
        return v[:settings.max_part_number_length]

    @field_validator("image")
    @classmethod
    def image_self_contained(cls, v: Optional[str]) -> Optional[str]:
        """Image must be an embedded data URI, never a bare reference."""
        if v is None or v == "":
            return None
        if not is_data_uri(v):
            raise ValueError("image must be a data:image/... URI")
        return v

    def store_fields(self) -> dict:
        """Fields written to the catalog store (row bookkeeping excluded)."""
        return {
            "part_number": self.part_number,
            "description": self.description,
            "image": self.image,
            "category": self.category,
            **self.captured_attributes(),
        }


class SkippedProduct(BaseSchema):
    """A row that was not written, with the reason."""

    part_number: str = Field("unknown", description="Part number, if known")
    id: Optional[str] = None
    row_number: int = Field(..., description="1-based spreadsheet row")
    error: str = Field(..., description="Error message")
    error_type: str = Field(..., description="Error code or exception class name")


class ImportOutcome(BaseSchema):
    """Per-row reconciliation result for one import job."""

    total: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0
    added_products: list[ProductRecord] = Field(default_factory=list)
    updated_products: list[ProductRecord] = Field(default_factory=list)
    skipped_products: list[SkippedProduct] = Field(default_factory=list)
    superseded_rows: list[int] = Field(
        default_factory=list,
        description="Rows dropped because a later row had the same part number"
    )

    def merge_skipped(self, extra: list[SkippedProduct]) -> "ImportOutcome":
        """Return a copy with extra skipped rows folded in, in row order."""
        skipped = sorted(
            [*self.skipped_products, *extra],
            key=lambda s: s.row_number
        )
        return self.model_copy(update={
            "skipped_products": skipped,
            "skipped": len(skipped),
            "total": self.added + self.updated + len(skipped),
        })


class ImportMetadata(BaseSchema):
    """Summary of the parse stage."""

    file_name: str
    category: Optional[str] = None
    total_rows: int = 0
    valid_products: int = 0
    parse_errors: int = 0
    images_attached: int = 0
    low_confidence_images: int = 0


class ImportResult(BaseSchema):
    """
    Top-level import job result.

    success=False means the import aborted before any row was processed;
    row-level failures live in outcome.skipped_products.
    """

    success: bool
    error: Optional[str] = None
    error_code: Optional[str] = None
    outcome: Optional[ImportOutcome] = None
    metadata: Optional[ImportMetadata] = None
