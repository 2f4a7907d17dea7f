"""
Unit tests for the command-line entry point.

Run: pytest tests/unit/test_main.py -v
"""

import json
from unittest.mock import patch

import main
from config.database import DatabaseConnectionError
from services.catalog_import_service import TEMPLATE_HEADERS


class TestImportCommand:
    """Tests for `main.py import`"""

    def test_memory_import_prints_json(self, tmp_path, capsys):
        catalog = tmp_path / "Brake Parts.csv"
        catalog.write_bytes(b"part no,description\nB-1,Bush\n,Orphan\n")

        code = main.main(["import", str(catalog), "--memory", "--json"])

        result = json.loads(capsys.readouterr().out)
        assert code == 0
        assert result["success"] is True
        assert result["outcome"]["added"] == 1
        assert result["outcome"]["skipped"] == 1
        assert result["metadata"]["category"] == "Brake Parts"

    def test_name_overrides_category(self, tmp_path, capsys):
        catalog = tmp_path / "upload-123.csv"
        catalog.write_bytes(b"sku\nA-1\n")

        main.main(["import", str(catalog), "--memory", "--name", "Filters.csv"])

        assert "Category: Filters" in capsys.readouterr().out

    def test_failed_import_exits_non_zero(self, tmp_path, capsys):
        catalog = tmp_path / "catalog.csv"
        catalog.write_bytes(b"description\nNo part numbers here\n")

        code = main.main(["import", str(catalog), "--memory"])

        assert code == 1
        assert "MISSING_COLUMNS" in capsys.readouterr().out

    def test_admin_without_service_key(self, tmp_path, capsys):
        catalog = tmp_path / "catalog.csv"
        catalog.write_bytes(b"sku\nA-1\n")

        with patch("main.get_admin_client", return_value=None):
            code = main.main(["import", str(catalog), "--admin"])

        assert code == 1
        assert "SUPABASE_SERVICE_KEY" in capsys.readouterr().out


    def test_unconfigured_default_store(self, tmp_path, capsys):
        catalog = tmp_path / "catalog.csv"
        catalog.write_bytes(b"sku\nA-1\n")
        error = DatabaseConnectionError("SUPABASE_URL and SUPABASE_KEY must be set")

        with patch("services.catalog_import_service._catalog_import_service", None), \
                patch("services.catalog_store.get_supabase_client", side_effect=error):
            code = main.main(["import", str(catalog)])

        assert code == 1
        assert "--memory" in capsys.readouterr().out


class TestTemplateCommand:
    """Tests for `main.py template`"""

    def test_stdout(self, capsys):
        code = main.main(["template", "-o", "-"])

        first_line = capsys.readouterr().out.splitlines()[0]
        assert code == 0
        assert first_line == ",".join(f'"{h}"' for h in TEMPLATE_HEADERS)

    def test_file(self, tmp_path):
        output = tmp_path / "template.csv"

        main.main(["template", "-o", str(output)])

        assert output.read_text(encoding="utf-8").startswith('"')


class TestCheckCommand:
    """Tests for `main.py check`"""

    def test_healthy(self):
        with patch("main.check_connection", return_value={"status": "healthy", "products_count": 3}):
            assert main.main(["check"]) == 0

    def test_unhealthy(self):
        with patch("main.check_connection", return_value={"status": "unhealthy", "error": "down"}):
            assert main.main(["check"]) == 1
