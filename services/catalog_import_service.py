"""
Catalog import service.

Runs one import job end to end: read the file, map headers, attach images,
assemble rows and reconcile them against the catalog store.
"""

import csv
from pathlib import Path
from typing import Optional, Union
import structlog

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from config.settings import settings
from exceptions import (
    AppError,
    EmptyFileError,
    FileDecodeError,
    FileTooLargeError,
    MissingColumnsError,
    MissingRequiredFieldError,
)
from models.catalog_import import (
    ImportMetadata,
    ImportResult,
    ParsedProduct,
    SkippedProduct,
)
from parsers.embedded_images import extract_embedded_images
from parsers.header_mapper import CanonicalField, ColumnMap, map_columns
from parsers.image_resolver import ImageResolver
from parsers.row_assembler import assemble_row
from parsers.tabular_reader import RawGrid, derive_category, is_empty_row, read_grid
from services.catalog_store import CatalogStore, SupabaseCatalogStore
from services.import_reconciler import ImportReconciler, collapse_duplicates, skipped_from_error

logger = structlog.get_logger(__name__)

TEMPLATE_FILE_NAME = "product_template.csv"
TEMPLATE_HEADERS = ["id", "part_number", "partimage", "part description"]
TEMPLATE_ROWS = [
    ["", "JPCWC032", "https://via.placeholder.com/100x100/cccccc/666666?text=JPCWC032", "WINDING SCHAFT BRAKE LEVER"],
    ["", "JPCWP015", "https://via.placeholder.com/100x100/cccccc/666666?text=JPCWP015", "BRAKE BUSH"],
    ["", "SAMPLE-001", "https://via.placeholder.com/100x100/cccccc/666666?text=SAMPLE-001", "Sample Product 1"],
]


class CatalogImportService:
    """
    Catalog import orchestration.

    Pipeline-fatal errors (bad format, empty file, missing part number
    column) end the job with success=False before anything is written.
    Row failures never end the job.
    """

    def __init__(
        self,
        store: Optional[CatalogStore] = None,
        resolver: Optional[ImageResolver] = None
    ):
        self.store = store if store is not None else SupabaseCatalogStore()
        self.resolver = resolver or ImageResolver()
        self.reconciler = ImportReconciler(self.store)

    # ===================
    # IMPORT OPERATIONS
    # ===================

    def import_bytes(
        self,
        content: bytes,
        filename: str,
        base_dir: Optional[Union[str, Path]] = None
    ) -> ImportResult:
        """
        Import an uploaded file.

        Args:
            content: Raw file bytes
            filename: Original file name (format and category come from it)
            base_dir: Directory for relative image paths in CSV files

        Returns:
            ImportResult
        """
        logger.info("catalog_import_started", file_name=filename, size=len(content))

        try:
            result = self._run(content, filename, base_dir)
        except AppError as e:
            logger.warning(
                "catalog_import_failed",
                file_name=filename,
                error_code=e.code,
                error=e.message
            )
            return ImportResult(
                success=False,
                error=e.message,
                error_code=e.code,
                metadata=ImportMetadata(file_name=filename),
            )

        outcome = result.outcome
        logger.info(
            "catalog_import_complete",
            file_name=filename,
            total=outcome.total,
            added=outcome.added,
            updated=outcome.updated,
            skipped=outcome.skipped
        )
        return result

    def import_path(
        self,
        path: Union[str, Path],
        original_name: Optional[str] = None
    ) -> ImportResult:
        """
        Import a file from disk. Relative image paths resolve against its
        directory.
        """
        path = Path(path)
        filename = original_name or path.name

        try:
            content = path.read_bytes()
        except OSError as e:
            logger.error("import_file_unreadable", path=str(path), error=str(e))
            error = FileDecodeError(
                message=f"Cannot read file: {path}",
                details={"original_error": str(e)}
            )
            return ImportResult(
                success=False,
                error=error.message,
                error_code=error.code,
                metadata=ImportMetadata(file_name=filename),
            )

        return self.import_bytes(content, filename, base_dir=path.parent)

    def _run(
        self,
        content: bytes,
        filename: str,
        base_dir: Optional[Union[str, Path]]
    ) -> ImportResult:
        if len(content) > settings.max_upload_bytes:
            raise FileTooLargeError(len(content), settings.max_upload_bytes)
        if not content:
            raise EmptyFileError(filename)

        grid = read_grid(content, filename)
        column_map = map_columns(grid.header)

        missing = column_map.missing()
        if missing:
            raise MissingColumnsError([f.value for f in missing], grid.header)

        category = derive_category(filename)
        products, parse_skipped = self._assemble(grid, column_map, category)

        # Superseded rows never get an image fetched
        products, superseded = collapse_duplicates(products)
        if superseded:
            logger.info("duplicate_rows_superseded", rows=superseded)

        images, low_confidence = self._collect_images(
            content, grid, column_map, base_dir, {p.row_number for p in products}
        )
        products = [
            p.model_copy(update={"image": images[p.row_number]}) if p.row_number in images else p
            for p in products
        ]

        outcome = self.reconciler.reconcile(products, source_name=filename)
        outcome = outcome.merge_skipped(parse_skipped)
        outcome = outcome.model_copy(update={"superseded_rows": superseded})

        metadata = ImportMetadata(
            file_name=filename,
            category=category,
            total_rows=grid.data_row_count,
            valid_products=len(products),
            parse_errors=len(parse_skipped),
            images_attached=sum(1 for p in products if p.image),
            low_confidence_images=low_confidence,
        )

        return ImportResult(success=True, outcome=outcome, metadata=metadata)

    def _collect_images(
        self,
        content: bytes,
        grid: RawGrid,
        column_map: ColumnMap,
        base_dir: Optional[Union[str, Path]],
        rows: set[int]
    ) -> tuple[dict[int, str], int]:
        """
        Images for the given rows keyed by row number, plus how many were
        placed by heuristic.
        """
        image_column = column_map.get(CanonicalField.IMAGE)
        if image_column is None:
            logger.info("no_image_column")
            return {}, 0

        if grid.is_spreadsheet:
            extracted = extract_embedded_images(content, grid, image_column)
            images = {}
            for row_number, image in extracted.items():
                data_uri = image.data_uri
                if data_uri and row_number in rows:
                    images[row_number] = data_uri
            low_confidence = sum(
                1 for r, image in extracted.items()
                if r in images and not image.confident
            )
            return images, low_confidence

        return self.resolver.resolve_rows(grid, image_column, base_dir, rows=rows), 0

    def _assemble(
        self,
        grid: RawGrid,
        column_map: ColumnMap,
        category: str
    ) -> tuple[list[ParsedProduct], list[SkippedProduct]]:
        products: list[ParsedProduct] = []
        skipped: list[SkippedProduct] = []

        for row_number, cells in grid.data_rows():
            if is_empty_row(cells):
                continue
            try:
                products.append(assemble_row(
                    cells,
                    column_map,
                    row_number,
                    category,
                ))
            except (MissingRequiredFieldError, PydanticValidationError) as e:
                part_number = grid.cell(cells, column_map.get(CanonicalField.PART_NUMBER))
                logger.info(
                    "row_skipped",
                    row=row_number,
                    part_number=part_number or None,
                    error=str(e)
                )
                skipped.append(skipped_from_error(
                    e,
                    row_number,
                    part_number=part_number,
                    product_id=grid.cell(cells, column_map.get(CanonicalField.ID)) or None,
                ))

        logger.info(
            "rows_assembled",
            valid=len(products),
            skipped=len(skipped),
            total_rows=grid.data_row_count
        )

        return products, skipped

    # ===================
    # TEMPLATE
    # ===================

    @staticmethod
    def template_csv() -> str:
        """Sample import file with the column layout the importer expects."""
        df = pd.DataFrame(TEMPLATE_ROWS, columns=TEMPLATE_HEADERS)
        return df.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")


# Singleton instance for convenience
_catalog_import_service: Optional[CatalogImportService] = None

def get_catalog_import_service() -> CatalogImportService:
    """Get or create CatalogImportService instance."""
    global _catalog_import_service
    if _catalog_import_service is None:
        _catalog_import_service = CatalogImportService()
    return _catalog_import_service
