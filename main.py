"""
Catalog import command-line entry point.

Usage:
    # Import a catalog into the configured Supabase table
    python main.py import "data/Brake Parts.xlsx"

    # Write with the service-role key (bypasses row-level security)
    python main.py import products.csv --admin

    # Dry run against an in-memory store, print the full result as JSON
    python main.py import products.csv --memory --json

    # Write the sample template
    python main.py template -o product_template.csv

    # Check the database connection
    python main.py check
"""

import argparse
import logging
import sys
from pathlib import Path

import structlog

from config import settings, check_connection, get_admin_client, DatabaseConnectionError

logging.basicConfig(
    format="%(message)s",
    stream=sys.stderr,
    level=getattr(logging, settings.log_level, logging.INFO),
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer() if settings.is_production
            else structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


# ===================
# COMMANDS
# ===================

def run_import(args) -> int:
    """Import one file and print a summary."""
    from services.catalog_import_service import CatalogImportService, get_catalog_import_service
    from services.catalog_store import InMemoryCatalogStore, SupabaseCatalogStore

    path = Path(args.file)
    if args.memory:
        store = InMemoryCatalogStore()
    elif args.admin:
        client = get_admin_client()
        if client is None:
            print("ERROR: --admin needs SUPABASE_URL and SUPABASE_SERVICE_KEY")
            return 1
        store = SupabaseCatalogStore(client=client)
    else:
        store = None

    try:
        service = CatalogImportService(store=store) if store is not None else get_catalog_import_service()
    except DatabaseConnectionError as e:
        logger.error("catalog_store_unavailable", error=str(e))
        print(f"ERROR: {e} (use --memory for a dry run)")
        return 1

    result = service.import_path(path, original_name=args.name)

    if args.json:
        print(result.model_dump_json(indent=2))
        return 0 if result.success else 1

    if not result.success:
        print(f"ERROR [{result.error_code}]: {result.error}")
        return 1

    outcome = result.outcome
    metadata = result.metadata
    print(f"File:     {metadata.file_name}")
    print(f"Category: {metadata.category}")
    print(f"Rows:     {metadata.total_rows}")
    print(f"Images:   {metadata.images_attached} ({metadata.low_confidence_images} low confidence)")
    print(f"Added:    {outcome.added}")
    print(f"Updated:  {outcome.updated}")
    print(f"Skipped:  {outcome.skipped}")
    if outcome.superseded_rows:
        print(f"Superseded rows (same part number later in file): {outcome.superseded_rows}")
    for skipped in outcome.skipped_products:
        print(f"  row {skipped.row_number}: {skipped.part_number} [{skipped.error_type}] {skipped.error}")

    return 0


def run_template(args) -> int:
    """Write the sample CSV template."""
    from services.catalog_import_service import CatalogImportService, TEMPLATE_FILE_NAME

    content = CatalogImportService.template_csv()
    if args.output == "-":
        sys.stdout.write(content)
        return 0

    output = Path(args.output or TEMPLATE_FILE_NAME)
    output.write_text(content, encoding="utf-8")
    logger.info("template_written", path=str(output))
    return 0


def run_check(args) -> int:
    """Report database connection health."""
    status = check_connection()
    if status["status"] == "healthy":
        logger.info("database_connected", products=status["products_count"])
        return 0
    logger.error("database_connection_failed", error=status.get("error"))
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Import product catalogs (xlsx, xlsm, csv) into the catalog store."
    )
    commands = parser.add_subparsers(dest="command", required=True)

    import_cmd = commands.add_parser("import", help="Import a catalog file")
    import_cmd.add_argument("file", help="Path to the xlsx/xlsm/csv file")
    import_cmd.add_argument(
        "--name",
        default=None,
        help="Original file name, if different from the path (sets category)",
    )
    import_cmd.add_argument(
        "--memory",
        action="store_true",
        help="Use an in-memory store instead of Supabase (dry run)",
    )
    import_cmd.add_argument(
        "--admin",
        action="store_true",
        help="Write with the Supabase service-role key",
    )
    import_cmd.add_argument(
        "--json",
        action="store_true",
        help="Print the full import result as JSON",
    )
    import_cmd.set_defaults(handler=run_import)

    template_cmd = commands.add_parser("template", help="Write the sample import template")
    template_cmd.add_argument(
        "-o", "--output",
        default=None,
        help="Output path (default: product_template.csv, '-' for stdout)",
    )
    template_cmd.set_defaults(handler=run_template)

    check_cmd = commands.add_parser("check", help="Check the database connection")
    check_cmd.set_defaults(handler=run_check)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logger.debug("command_started", command=args.command, environment=settings.environment)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
