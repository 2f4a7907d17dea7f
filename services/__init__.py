"""
Business logic services.

Each service handles one domain area.
"""

from services.catalog_store import (
    CatalogStore,
    SupabaseCatalogStore,
    InMemoryCatalogStore,
)
from services.import_reconciler import (
    ImportReconciler,
    RowAdded,
    RowUpdated,
    RowSkipped,
)
from services.catalog_import_service import (
    CatalogImportService,
    get_catalog_import_service,
)

__all__ = [
    "CatalogStore",
    "SupabaseCatalogStore",
    "InMemoryCatalogStore",
    "ImportReconciler",
    "RowAdded",
    "RowUpdated",
    "RowSkipped",
    "CatalogImportService",
    "get_catalog_import_service",
]
