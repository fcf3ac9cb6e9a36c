"""Standalone export script: export parts or invoices from command line."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shop_ledger.config import Config
from shop_ledger.database.connection import DatabaseConnection
from shop_ledger.database.schema import initialize_database
from shop_ledger.database.repository import Repository
from shop_ledger.io.csv_handler import export_invoices_csv, export_parts_csv
from shop_ledger.io.excel_handler import (
    export_invoices_excel,
    export_parts_excel,
)
from shop_ledger.utils.logging_setup import configure_logging

EXPORTERS = {
    ("parts", ".csv"): export_parts_csv,
    ("parts", ".xlsx"): export_parts_excel,
    ("invoices", ".csv"): export_invoices_csv,
    ("invoices", ".xlsx"): export_invoices_excel,
}


def main():
    if len(sys.argv) < 3:
        print("Usage: python export_data.py <parts|invoices> <output.csv|output.xlsx>")
        sys.exit(1)

    configure_logging()
    data_type = sys.argv[1].lower()
    filepath = Path(sys.argv[2])

    exporter = EXPORTERS.get((data_type, filepath.suffix.lower()))
    if exporter is None:
        print(f"Cannot export '{data_type}' to '{filepath.suffix}'. "
              "Use 'parts' or 'invoices' with a .csv or .xlsx file.")
        sys.exit(1)

    db = DatabaseConnection(Config.DATABASE_PATH)
    initialize_database(db)
    repo = Repository(db)

    count = exporter(repo, filepath)
    print(f"Exported {count} {data_type} to {filepath}")


if __name__ == "__main__":
    main()
