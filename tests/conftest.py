"""
Shared test fixtures.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

import pytest
from unittest.mock import patch
from datetime import datetime
from typing import Generator

from services.catalog_store import InMemoryCatalogStore

# ===================
# MOCK SUPABASE CLIENT
# ===================

def _now() -> str:
    return datetime.utcnow().isoformat() + "Z"


class MockSupabaseResponse:
    """What execute() hands back: rows plus an exact count."""

    def __init__(self, data: list, count: int = None):
        self.data = data
        self.count = len(data) if count is None else count


class MockSupabaseQuery:
    """
    Chainable query over one mock table.

    eq() filters are applied at execute() time, so select/update calls
    only see the rows they would match in Postgres.
    """

    def __init__(self, rows: list, count: int = None):
        self._rows = rows
        self._count = count
        self._filters = []
        self._changes = None
        self._inserted = None

    def select(self, *columns, **kwargs):
        return self

    def eq(self, column, value):
        self._filters.append((column, value))
        return self

    def insert(self, data):
        items = [data] if isinstance(data, dict) else data
        self._inserted = []
        for item in items:
            row = {"id": "test-uuid-123", **item, "created_at": _now(), "updated_at": _now()}
            self._inserted.append(row)
        return self

    def update(self, changes: dict):
        self._changes = changes
        return self

    def _matching(self) -> list:
        return [
            row for row in self._rows
            if all(row.get(column) == value for column, value in self._filters)
        ]

    def execute(self) -> MockSupabaseResponse:
        if self._inserted is not None:
            self._rows.extend(self._inserted)
            return MockSupabaseResponse(list(self._inserted))

        matched = self._matching()
        if self._changes is not None:
            for row in matched:
                row.update(self._changes, updated_at=_now())
            return MockSupabaseResponse([dict(row) for row in matched])

        count = self._count if not self._filters else None
        return MockSupabaseResponse([dict(row) for row in matched], count)


class MockSupabaseClient:
    """Mock Supabase client holding rows per table name."""

    def __init__(self):
        self._tables = {}

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Seed a table; count overrides the unfiltered select count."""
        self._tables[table_name] = ([dict(row) for row in data], count)

    def table(self, name: str) -> MockSupabaseQuery:
        rows, count = self._tables.setdefault(name, ([], None))
        return MockSupabaseQuery(rows, count)


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("products", [
                {"id": "1", "part_number": "X-100", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("products", [...])
            # Now any code using get_supabase_client() gets the mock
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.catalog_store.get_supabase_client", return_value=mock_supabase):
            yield mock_supabase


@pytest.fixture
def memory_store() -> InMemoryCatalogStore:
    """Empty in-memory catalog store."""
    return InMemoryCatalogStore()


@pytest.fixture
def sample_product_data() -> dict:
    """Sample product data for testing."""
    return {
        "id": "test-uuid-123",
        "part_number": "JPCWC032",
        "description": "WINDING SCHAFT BRAKE LEVER",
        "image": None,
        "category": "Brake Parts",
        "created_at": "2025-12-05T10:00:00Z",
        "updated_at": "2025-12-05T10:00:00Z"
    }


@pytest.fixture
def sample_products_list() -> list:
    """Sample list of products for testing."""
    return [
        {
            "id": "uuid-1",
            "part_number": "JPCWC032",
            "description": "WINDING SCHAFT BRAKE LEVER",
            "image": None,
            "category": "Brake Parts",
            "created_at": "2025-12-05T10:00:00Z",
            "updated_at": "2025-12-05T10:00:00Z"
        },
        {
            "id": "uuid-2",
            "part_number": "JPCWP015",
            "description": "BRAKE BUSH",
            "image": None,
            "category": "Brake Parts",
            "created_at": "2025-12-05T10:00:00Z",
            "updated_at": "2025-12-05T10:00:00Z"
        },
    ]
