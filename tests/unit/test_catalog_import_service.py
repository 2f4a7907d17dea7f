"""
Unit tests for CatalogImportService (full pipeline against an in-memory store).

Run: pytest tests/unit/test_catalog_import_service.py -v
"""

import base64
from unittest.mock import MagicMock, patch

import pytest

from config.settings import settings
from services.catalog_import_service import (
    CatalogImportService,
    TEMPLATE_HEADERS,
    get_catalog_import_service,
)
from services.catalog_store import InMemoryCatalogStore, SupabaseCatalogStore
from parsers.image_resolver import ImageResolver
from tests.factories import ProductFactory, add_archive_entries, build_workbook, png_bytes


EXAMPLE_CSV = (
    "part no,image,description\n"
    "X-100,https://example.com/a.png,Widget\n"
    ",,Orphan\n"
    "X-100,,Updated widget\n"
).encode("utf-8")


def image_response(content=b"png-bytes", content_type="image/png"):
    response = MagicMock()
    response.status_code = 200
    response.content = content
    response.headers = {"Content-Type": content_type}
    return response


@pytest.fixture
def service(memory_store):
    return CatalogImportService(store=memory_store, resolver=ImageResolver(timeout=1, max_workers=2))


@pytest.fixture
def mock_get():
    with patch("parsers.image_resolver.requests.get") as get:
        get.return_value = image_response()
        yield get


class TestImportCsv:
    """CSV imports"""

    def test_two_runs_add_then_update(self, service, memory_store, mock_get):
        """
        Same file twice: the first run adds X-100, the second updates it.
        The orphan row is skipped both times.
        """
        first = service.import_bytes(EXAMPLE_CSV, "widgets.csv")

        assert first.success
        assert first.outcome.added == 1
        assert first.outcome.updated == 0
        assert first.outcome.skipped == 1
        assert first.outcome.skipped_products[0].row_number == 3
        assert first.outcome.skipped_products[0].error_type == "MISSING_REQUIRED_FIELD"
        original_id = first.outcome.added_products[0].id

        second = service.import_bytes(EXAMPLE_CSV, "widgets.csv")

        assert second.outcome.added == 0
        assert second.outcome.updated == 1
        assert second.outcome.skipped == 1
        assert second.outcome.updated_products[0].id == original_id
        assert memory_store.find_by_part_number("X-100").description == "Updated widget"

    def test_superseded_rows_reported_and_not_downloaded(self, service, mock_get):
        result = service.import_bytes(EXAMPLE_CSV, "widgets.csv")

        assert result.outcome.superseded_rows == [2]
        assert result.outcome.total == result.outcome.added + result.outcome.updated + result.outcome.skipped
        mock_get.assert_not_called()

    def test_category_from_file_name(self, service, memory_store, mock_get):
        service.import_bytes(b"part no,description\nB-1,Bush\n", "Brake Parts.csv")

        assert memory_store.find_by_part_number("B-1").category == "Brake Parts"

    def test_images_downloaded_and_attached(self, service, memory_store, mock_get):
        content = b"sku,photo\nA-1,https://example.com/a.png\nA-2,https://example.com/b.png\n"

        result = service.import_bytes(content, "parts.csv")

        assert result.metadata.images_attached == 2
        image = memory_store.find_by_part_number("A-1").image
        assert base64.b64decode(image.split(",", 1)[1]) == b"png-bytes"

    def test_failed_download_still_imports_row(self, service, memory_store, mock_get):
        mock_get.return_value.status_code = 404

        result = service.import_bytes(b"sku,photo\nA-1,https://example.com/a.png\n", "parts.csv")

        assert result.outcome.added == 1
        assert memory_store.find_by_part_number("A-1").image is None

    def test_relative_image_paths_use_file_directory(self, service, memory_store, tmp_path):
        (tmp_path / "img").mkdir()
        (tmp_path / "img" / "a.png").write_bytes(png_bytes())
        catalog = tmp_path / "parts.csv"
        catalog.write_bytes(b"sku,image\nA-1,img/a.png\n")

        result = service.import_path(catalog)

        assert result.success
        assert memory_store.find_by_part_number("A-1").image.startswith("data:image/png;base64,")

    def test_unresolvable_image_path_still_imports_row(self, service, memory_store, tmp_path):
        catalog = tmp_path / "parts.csv"
        catalog.write_bytes(b"sku,image\nA-1,~nosuchuserxyz/pic.png\n")

        result = service.import_path(catalog)

        assert result.success
        assert result.outcome.added == 1
        assert memory_store.find_by_part_number("A-1").image is None

    def test_stray_comma_does_not_abort_import(self, service, memory_store, mock_get):
        content = b"part no,description\nA-1,Widget\nA-2,Bolt, large\nA-3,Nut\n"

        result = service.import_bytes(content, "parts.csv")

        assert result.success
        assert result.outcome.added == 3
        assert memory_store.find_by_part_number("A-2").description == "Bolt"

    def test_empty_rows_skipped_silently(self, service, mock_get):
        result = service.import_bytes(b"sku,description\nA-1,x\n,\n\nA-2,y\n", "parts.csv")

        assert result.outcome.added == 2
        assert result.outcome.skipped == 0

    def test_existing_catalog_updated_in_place(self, mock_get):
        store = InMemoryCatalogStore([ProductFactory.create(id="keep-me", part_number="A-1")])
        service = CatalogImportService(store=store, resolver=ImageResolver())

        result = service.import_bytes(b"sku,description\nA-1,New text\n", "parts.csv")

        assert result.outcome.updated == 1
        assert store.find_by_id("keep-me").description == "New text"
        assert store.find_by_id("keep-me").last_import_source == "parts.csv"


class TestImportSpreadsheet:
    """xlsx imports"""

    def test_embedded_images_attached_by_anchor(self, service, memory_store):
        red, blue = png_bytes("red"), png_bytes("blue")
        content = build_workbook(
            [["Part No", "Image", "Description"], ["A-1", None, "One"], ["A-2", None, "Two"], ["A-3", None, "Three"]],
            images={"B4": blue, "B2": red},
        )

        result = service.import_bytes(content, "Catalog.xlsx")

        assert result.success
        assert result.outcome.added == 3
        assert result.metadata.images_attached == 2
        assert result.metadata.low_confidence_images == 0
        stored = {p.part_number: p for p in memory_store.all()}
        assert base64.b64decode(stored["A-1"].image.split(",", 1)[1]) == red
        assert stored["A-2"].image is None
        assert base64.b64decode(stored["A-3"].image.split(",", 1)[1]) == blue

    def test_positional_images_flagged(self, service):
        content = build_workbook([["sku", "image"], ["A-1"], ["A-2"]])
        content = add_archive_entries(content, [("xl/media/image1.png", png_bytes())])

        result = service.import_bytes(content, "Catalog.xlsx")

        assert result.metadata.images_attached == 1
        assert result.metadata.low_confidence_images == 1

    def test_cell_urls_not_downloaded_for_spreadsheets(self, service, mock_get):
        content = build_workbook([["sku", "image"], ["A-1", "https://example.com/a.png"]])

        result = service.import_bytes(content, "Catalog.xlsx")

        assert result.outcome.added == 1
        mock_get.assert_not_called()


class TestPipelineFailures:
    """Pipeline-fatal errors end the job before any write"""

    def test_unsupported_format(self, service, memory_store):
        result = service.import_bytes(b"%PDF-1.4", "catalog.pdf")

        assert not result.success
        assert result.error_code == "UNSUPPORTED_FORMAT"
        assert len(memory_store) == 0

    def test_empty_file(self, service):
        result = service.import_bytes(b"", "catalog.csv")

        assert not result.success
        assert result.error_code == "EMPTY_FILE"

    def test_missing_part_number_column(self, service, memory_store):
        result = service.import_bytes(b"description,image\nWidget,\n", "catalog.csv")

        assert not result.success
        assert result.error_code == "MISSING_COLUMNS"
        assert len(memory_store) == 0

    def test_corrupt_spreadsheet(self, service):
        result = service.import_bytes(b"not a spreadsheet", "catalog.xlsx")

        assert not result.success
        assert result.error_code == "FILE_DECODE_ERROR"

    def test_file_too_large(self, service, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_bytes", 10)

        result = service.import_bytes(b"sku\n" + b"A" * 20, "catalog.csv")

        assert not result.success
        assert result.error_code == "FILE_TOO_LARGE"

    def test_missing_path(self, service, tmp_path):
        result = service.import_path(tmp_path / "nope.csv")

        assert not result.success
        assert result.metadata.file_name == "nope.csv"


class TestTemplate:
    """Tests for template_csv()"""

    def test_template_headers_quoted(self):
        content = CatalogImportService.template_csv()

        assert content.splitlines()[0] == ",".join(f'"{h}"' for h in TEMPLATE_HEADERS)
        assert len(content.strip().splitlines()) == 4

    def test_template_imports_cleanly(self, service, memory_store, mock_get):
        content = CatalogImportService.template_csv().encode("utf-8")

        result = service.import_bytes(content, "product_template.csv")

        assert result.success
        assert result.outcome.added == 3
        assert memory_store.find_by_part_number("JPCWP015").description == "BRAKE BUSH"
        assert memory_store.find_by_part_number("JPCWP015").image is not None


class TestServiceSingleton:
    """Tests for get_catalog_import_service()"""

    def test_default_service_reused(self, mock_db):
        with patch("services.catalog_import_service._catalog_import_service", None):
            first = get_catalog_import_service()
            second = get_catalog_import_service()

        assert first is second
        assert isinstance(first.store, SupabaseCatalogStore)
