"""
Catalog store access.

The import pipeline only needs four operations from the store: two lookups,
create and update. CatalogStore names that contract; SupabaseCatalogStore
implements it over the products table and InMemoryCatalogStore keeps
records in a dict for local runs.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, runtime_checkable
import structlog

from config import get_supabase_client
from config.settings import settings
from exceptions import DatabaseError, ProductPartNumberExistsError
from models.product import ProductRecord

logger = structlog.get_logger(__name__)

UNIQUE_VIOLATION = "23505"


@runtime_checkable
class CatalogStore(Protocol):
    """What the reconciler needs from a catalog backend."""

    def find_by_id(self, product_id: str) -> Optional[ProductRecord]:
        ...

    def find_by_part_number(self, part_number: str) -> Optional[ProductRecord]:
        ...

    def create(self, fields: dict[str, Any]) -> ProductRecord:
        ...

    def update(self, record: ProductRecord, fields: dict[str, Any]) -> ProductRecord:
        ...


def is_duplicate_key_error(error: Exception) -> bool:
    """True for Postgres unique violations, however the client wraps them."""
    if str(getattr(error, "code", "")) == UNIQUE_VIOLATION:
        return True
    return "duplicate key" in str(error).lower()


class SupabaseCatalogStore:
    """
    Catalog store backed by a Supabase table.

    Part-number lookups are exact; deployments that need case-insensitive
    matching declare the column as citext.
    """

    def __init__(self, client=None, table: Optional[str] = None):
        self.db = client or get_supabase_client()
        self.table = table or settings.products_table

    # ===================
    # READ OPERATIONS
    # ===================

    def find_by_id(self, product_id: str) -> Optional[ProductRecord]:
        """
        Get a product by ID.

        Returns:
            ProductRecord or None if not found
        """
        logger.debug("finding_product_by_id", product_id=product_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", product_id)
                .execute()
            )
        except Exception as e:
            logger.error("find_product_by_id_failed", product_id=product_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            return None
        return ProductRecord(**result.data[0])

    def find_by_part_number(self, part_number: str) -> Optional[ProductRecord]:
        """
        Get a product by part number.

        Returns:
            ProductRecord or None if not found
        """
        logger.debug("finding_product_by_part_number", part_number=part_number)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("part_number", part_number)
                .execute()
            )
        except Exception as e:
            logger.error(
                "find_product_by_part_number_failed",
                part_number=part_number,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

        if not result.data:
            return None
        return ProductRecord(**result.data[0])

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, fields: dict[str, Any]) -> ProductRecord:
        """
        Insert a product.

        Raises:
            ProductPartNumberExistsError: id or part number already taken
            DatabaseError: Any other insert failure
        """
        logger.info("creating_product", part_number=fields.get("part_number"))

        try:
            result = (
                self.db.table(self.table)
                .insert(fields)
                .execute()
            )
        except Exception as e:
            if is_duplicate_key_error(e):
                raise ProductPartNumberExistsError(fields.get("part_number", ""))
            logger.error(
                "create_product_failed",
                part_number=fields.get("part_number"),
                error=str(e)
            )
            raise DatabaseError("insert", str(e))

        product = ProductRecord(**result.data[0])
        logger.info("product_created", product_id=product.id, part_number=product.part_number)
        return product

    def update(self, record: ProductRecord, fields: dict[str, Any]) -> ProductRecord:
        """
        Overwrite fields on an existing product. The record's id is kept.

        Raises:
            ProductPartNumberExistsError: New part number collides
            DatabaseError: Any other update failure
        """
        logger.info("updating_product", product_id=record.id)

        update_data = {k: v for k, v in fields.items() if k != "id"}
        if not update_data:
            return record

        try:
            result = (
                self.db.table(self.table)
                .update(update_data)
                .eq("id", record.id)
                .execute()
            )
        except Exception as e:
            if is_duplicate_key_error(e):
                raise ProductPartNumberExistsError(fields.get("part_number", record.part_number))
            logger.error("update_product_failed", product_id=record.id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise DatabaseError("update", f"product {record.id} no longer exists")

        product = ProductRecord(**result.data[0])
        logger.info("product_updated", product_id=record.id, fields=list(update_data.keys()))
        return product


class InMemoryCatalogStore:
    """
    Dict-backed catalog store.

    Same contract as SupabaseCatalogStore: part numbers are unique
    (case-insensitive), ids are assigned when not supplied.
    """

    def __init__(self, records: Optional[list[dict[str, Any]]] = None):
        self._records: dict[str, dict[str, Any]] = {}
        now = datetime.now(timezone.utc)
        for row in records or []:
            record = ProductRecord(**{"created_at": now, **row})
            self._records[record.id] = record.model_dump()

    def __len__(self) -> int:
        return len(self._records)

    def all(self) -> list[ProductRecord]:
        return [ProductRecord(**row) for row in self._records.values()]

    def find_by_id(self, product_id: str) -> Optional[ProductRecord]:
        row = self._records.get(product_id)
        return ProductRecord(**row) if row else None

    def find_by_part_number(self, part_number: str) -> Optional[ProductRecord]:
        key = part_number.lower()
        for row in self._records.values():
            if row["part_number"].lower() == key:
                return ProductRecord(**row)
        return None

    def _check_part_number_free(self, part_number: str, owner_id: Optional[str] = None):
        existing = self.find_by_part_number(part_number)
        if existing and existing.id != owner_id:
            raise ProductPartNumberExistsError(part_number)

    def create(self, fields: dict[str, Any]) -> ProductRecord:
        product_id = fields.get("id") or str(uuid.uuid4())
        if product_id in self._records:
            raise ProductPartNumberExistsError(fields.get("part_number", ""))
        self._check_part_number_free(fields["part_number"])

        now = datetime.now(timezone.utc)
        row = {**fields, "id": product_id, "created_at": now, "updated_at": now}
        record = ProductRecord(**row)
        self._records[product_id] = record.model_dump()
        return record

    def update(self, record: ProductRecord, fields: dict[str, Any]) -> ProductRecord:
        current = self._records.get(record.id)
        if current is None:
            raise DatabaseError("update", f"product {record.id} no longer exists")

        update_data = {k: v for k, v in fields.items() if k != "id"}
        if "part_number" in update_data:
            self._check_part_number_free(update_data["part_number"], owner_id=record.id)

        row = {**current, **update_data, "updated_at": datetime.now(timezone.utc)}
        updated = ProductRecord(**row)
        self._records[record.id] = updated.model_dump()
        return updated
