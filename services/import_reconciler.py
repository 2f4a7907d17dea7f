"""
Import reconciler.

Upserts assembled products into the catalog store one row at a time. A row
that fails is recorded as skipped and the loop carries on; rows already
written stay written.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union
import structlog

from exceptions import AppError
from models.catalog_import import ImportOutcome, ParsedProduct, SkippedProduct
from models.product import ProductRecord
from services.catalog_store import CatalogStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RowAdded:
    row_number: int
    product: ProductRecord


@dataclass(frozen=True)
class RowUpdated:
    row_number: int
    product: ProductRecord


@dataclass(frozen=True)
class RowSkipped:
    row_number: int
    skipped: SkippedProduct


RowResult = Union[RowAdded, RowUpdated, RowSkipped]


def error_type_of(error: Exception) -> str:
    """Error code for AppErrors, class name for anything else."""
    if isinstance(error, AppError):
        return error.code
    return type(error).__name__


def skipped_from_error(
    error: Exception,
    row_number: int,
    part_number: Optional[str] = None,
    product_id: Optional[str] = None
) -> SkippedProduct:
    message = error.message if isinstance(error, AppError) else str(error)
    return SkippedProduct(
        part_number=part_number or "unknown",
        id=product_id,
        row_number=row_number,
        error=message or type(error).__name__,
        error_type=error_type_of(error),
    )


def collapse_duplicates(products: Iterable[ParsedProduct]) -> tuple[list[ParsedProduct], list[int]]:
    """
    Keep the last row for each part number (case-insensitive).

    Returns:
        (surviving products in row order, row numbers that were superseded)
    """
    latest: dict[str, ParsedProduct] = {}
    superseded: list[int] = []
    for product in products:
        key = product.part_number.lower()
        previous = latest.get(key)
        if previous is not None:
            superseded.append(previous.row_number)
        latest[key] = product

    survivors = sorted(latest.values(), key=lambda p: p.row_number)
    return survivors, sorted(superseded)


class ImportReconciler:
    """
    Matches parsed products against the store and writes them.

    Lookup order is explicit id (only if the id came from the file), then
    part number. A match is updated in place and keeps its stored id.
    """

    def __init__(self, store: CatalogStore):
        self.store = store

    def reconcile(
        self,
        products: Iterable[ParsedProduct],
        source_name: Optional[str] = None
    ) -> ImportOutcome:
        """
        Upsert every product and fold the per-row results.

        Args:
            products: Assembled rows, in row order
            source_name: Import file name stored on each written record

        Returns:
            ImportOutcome with added/updated/skipped counts and lists
        """
        survivors, superseded = collapse_duplicates(products)
        if superseded:
            logger.info("duplicate_rows_superseded", rows=superseded)

        logger.info("reconciliation_started", products=len(survivors), source=source_name)

        results = [self.reconcile_one(product, source_name) for product in survivors]
        outcome = self.fold(results).model_copy(update={"superseded_rows": superseded})

        logger.info(
            "reconciliation_complete",
            added=outcome.added,
            updated=outcome.updated,
            skipped=outcome.skipped
        )

        return outcome

    def reconcile_one(
        self,
        product: ParsedProduct,
        source_name: Optional[str] = None
    ) -> RowResult:
        """Write one product. Never raises."""
        try:
            existing = None
            if product.id_from_source:
                existing = self.store.find_by_id(product.id)
            if existing is None:
                existing = self.store.find_by_part_number(product.part_number)

            fields = product.store_fields()
            if source_name:
                fields["last_import_source"] = source_name

            if existing is not None:
                record = self.store.update(existing, fields)
                logger.debug("row_updated", row=product.row_number, product_id=record.id)
                return RowUpdated(product.row_number, record)

            if product.id_from_source:
                fields["id"] = product.id
            record = self.store.create(fields)
            logger.debug("row_added", row=product.row_number, product_id=record.id)
            return RowAdded(product.row_number, record)

        except Exception as e:
            logger.warning(
                "row_reconcile_failed",
                row=product.row_number,
                part_number=product.part_number,
                error=str(e),
                error_type=error_type_of(e)
            )
            return RowSkipped(
                product.row_number,
                skipped_from_error(
                    e,
                    product.row_number,
                    part_number=product.part_number,
                    product_id=product.id,
                )
            )

    @staticmethod
    def fold(results: Iterable[RowResult]) -> ImportOutcome:
        """Collect tagged row results into an ImportOutcome."""
        added: list[ProductRecord] = []
        updated: list[ProductRecord] = []
        skipped: list[SkippedProduct] = []

        for result in results:
            if isinstance(result, RowAdded):
                added.append(result.product)
            elif isinstance(result, RowUpdated):
                updated.append(result.product)
            else:
                skipped.append(result.skipped)

        skipped.sort(key=lambda s: s.row_number)
        return ImportOutcome(
            total=len(added) + len(updated) + len(skipped),
            added=len(added),
            updated=len(updated),
            skipped=len(skipped),
            added_products=added,
            updated_products=updated,
            skipped_products=skipped,
        )
