"""
Catalog product schemas for store records.
"""

from typing import Optional

from pydantic import Field

from models.base import BaseSchema, CatalogAttributes, TimestampMixin


class ProductRecord(BaseSchema, TimestampMixin, CatalogAttributes):
    """
    Product as persisted in the catalog store.

    Returned by store lookups, creates and updates.
    """

    id: str = Field(..., description="Persistent product identifier")
    part_number: str = Field(..., description="Unique part number")
    description: str = Field(..., description="Product description")
    image: Optional[str] = Field(None, description="Data URI image, if any")
    category: Optional[str] = Field("General", description="Catalog category")
    last_import_source: Optional[str] = Field(
        None,
        description="File name of the import that last wrote this record"
    )

    @property
    def has_image(self) -> bool:
        return bool(self.image)
