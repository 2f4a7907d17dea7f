"""
Shared schema base and field mixins for catalog models.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """
    Base for catalog schemas.

    Cell text arrives with stray whitespace, so strings are stripped on
    the way in. Assignment is re-validated and store rows (dicts or
    objects) load directly.
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class TimestampMixin(BaseModel):
    """Store-managed timestamps."""
    created_at: datetime
    updated_at: Optional[datetime] = None


class CatalogAttributes(BaseModel):
    """Optional attributes captured from a catalog row without business rules."""
    price: Optional[Decimal] = Field(None, description="Captured unit price")
    quantity: Optional[float] = Field(None, description="Captured stock quantity")
    unit: Optional[str] = Field(None, description="Unit of measure")
    brand: Optional[str] = Field(None, description="Brand or manufacturer")
    model: Optional[str] = Field(None, description="Model number")

    def captured_attributes(self) -> dict:
        """Non-empty captured attributes, with prices as floats for JSON stores."""
        fields = {}
        for name in ("price", "quantity", "unit", "brand", "model"):
            value = getattr(self, name)
            if value is not None:
                fields[name] = float(value) if isinstance(value, Decimal) else value
        return fields
