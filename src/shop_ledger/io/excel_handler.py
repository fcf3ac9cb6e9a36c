"""Excel (XLSX) import and export for parts and invoices."""

import logging
import sqlite3
import zipfile
from pathlib import Path

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from shop_ledger.database.repository import Repository
from shop_ledger.io.csv_handler import invoice_summary_row, save_imported_part
from shop_ledger.io.validators import validate_part_row

logger = logging.getLogger(__name__)

PART_HEADERS = [
    "Part #", "Name", "Description", "Price", "Quantity", "Unit",
    "Reorder Level", "Manufacturer", "Category", "Location", "Vendor",
]

INVOICE_HEADERS = [
    "Invoice #", "Date", "Due Date", "Status", "Customer", "Vehicle",
    "Items", "Subtotal", "Total", "Paid", "Balance",
]

ITEM_HEADERS = [
    "Invoice #", "Line", "Description", "Type", "Quantity", "Unit",
    "Price", "Line Total", "Part ID", "Task ID",
]


def _autofit(ws):
    # Approximate: widest cell text, capped
    for col in ws.columns:
        max_len = max(len(str(cell.value or "")) for cell in col)
        ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 40)


def export_parts_excel(repo: Repository, filepath: str | Path) -> int:
    """Export all parts to an Excel workbook. Returns row count."""
    parts = repo.get_all_parts()
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = "Parts"
    ws.append(PART_HEADERS)

    for part in parts:
        ws.append([
            part.part_number,
            part.name,
            part.description,
            part.price,
            part.quantity,
            part.unit,
            part.reorder_level,
            part.manufacturer,
            part.category,
            part.location,
            part.vendor_name,
        ])

    _autofit(ws)
    wb.save(filepath)
    return len(parts)


def export_invoices_excel(repo: Repository, filepath: str | Path) -> int:
    """Export invoices to a workbook with Invoices and Items sheets.

    Returns the number of invoices written.
    """
    invoices = repo.get_all_invoices()
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = "Invoices"
    ws.append(INVOICE_HEADERS)
    items_ws = wb.create_sheet("Items")
    items_ws.append(ITEM_HEADERS)

    for inv in invoices:
        ws.append(list(invoice_summary_row(inv).values()))
        for line, item in enumerate(inv.items, start=1):
            items_ws.append([
                inv.id,
                line,
                item.description,
                item.item_type,
                item.quantity,
                item.unit_of_measure,
                item.price,
                item.line_total,
                item.part_id,
                item.task_id,
            ])

    _autofit(ws)
    _autofit(items_ws)
    wb.save(filepath)
    return len(invoices)


def import_parts_excel(
    repo: Repository,
    filepath: str | Path,
    update_existing: bool = False,
) -> dict:
    """Import parts from the first sheet of a workbook. Returns results dict."""
    filepath = Path(filepath)
    results = {"imported": 0, "updated": 0, "skipped": 0, "errors": []}

    try:
        wb = load_workbook(filepath, read_only=True)
        ws = wb.active

        rows = list(ws.iter_rows(values_only=True))
        if not rows:
            results["errors"].append("Empty workbook")
            wb.close()
            return results

        # Use first row as header
        header = [str(h or "").strip().lower().replace(" ", "_")
                  .replace("#", "number") for h in rows[0]]

        # Map common variations
        header_map = {
            "part_number": "part_number",
            "part_#": "part_number",
            "qty": "quantity",
            "unit_price": "price",
        }
        header = [header_map.get(h, h) for h in header]

        for row_num, row_data in enumerate(rows[1:], start=2):
            row = dict(zip(
                header,
                [str(v) if v is not None else "" for v in row_data],
            ))

            errors = validate_part_row(row, row_num)
            if errors:
                results["errors"].extend(errors)
                results["skipped"] += 1
                continue
            save_imported_part(repo, row, results, update_existing)

        wb.close()

    except (OSError, InvalidFileException, zipfile.BadZipFile,
            sqlite3.Error) as e:
        logger.error(f"Parts import from {filepath} failed: {e}")
        results["errors"].append(f"File error: {e}")

    return results
