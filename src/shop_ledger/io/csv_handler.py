"""CSV import and export for parts and invoices."""

import csv
import logging
import sqlite3
from pathlib import Path

from shop_ledger.config import Config
from shop_ledger.database.models import Part
from shop_ledger.database.repository import Repository
from shop_ledger.invoicing.calculations import (
    calculate_amount_paid,
    calculate_balance_due,
    calculate_invoice_total,
    calculate_subtotal,
)
from shop_ledger.io.validators import validate_part_row

logger = logging.getLogger(__name__)

PART_CSV_COLUMNS = [
    "part_number", "name", "description", "price", "quantity",
    "unit", "reorder_level", "manufacturer", "category", "location",
    "vendor",
]

INVOICE_CSV_COLUMNS = [
    "invoice_id", "date", "due_date", "status", "customer", "vehicle",
    "items", "subtotal", "total", "paid", "balance",
]


def export_parts_csv(repo: Repository, filepath: str | Path) -> int:
    """Export all parts to CSV. Returns the number of rows written."""
    parts = repo.get_all_parts()
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=PART_CSV_COLUMNS)
        writer.writeheader()
        for part in parts:
            writer.writerow({
                "part_number": part.part_number,
                "name": part.name,
                "description": part.description,
                "price": part.price,
                "quantity": part.quantity,
                "unit": part.unit,
                "reorder_level": part.reorder_level,
                "manufacturer": part.manufacturer,
                "category": part.category,
                "location": part.location,
                "vendor": part.vendor_name,
            })
    return len(parts)


def export_invoices_csv(repo: Repository, filepath: str | Path) -> int:
    """Export one summary row per invoice. Returns the number of rows."""
    invoices = repo.get_all_invoices()
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=INVOICE_CSV_COLUMNS)
        writer.writeheader()
        for inv in invoices:
            writer.writerow(invoice_summary_row(inv))
    return len(invoices)


def invoice_summary_row(inv) -> dict:
    """Flatten an invoice into the exported summary columns."""
    return {
        "invoice_id": inv.id,
        "date": inv.date,
        "due_date": inv.due_date or "",
        "status": inv.status,
        "customer": inv.customer_name,
        "vehicle": inv.vehicle_info,
        "items": len(inv.items),
        "subtotal": round(calculate_subtotal(inv), 2),
        "total": round(calculate_invoice_total(inv), 2),
        "paid": round(calculate_amount_paid(inv), 2),
        "balance": round(calculate_balance_due(inv), 2),
    }


def part_from_row(row: dict, existing: Part = None) -> Part:
    """Build a Part from a validated import row."""
    vendor_id = existing.vendor_id if existing else None
    return Part(
        id=existing.id if existing else None,
        part_number=str(row.get("part_number", "") or "").strip(),
        name=str(row.get("name", "") or "").strip(),
        description=str(row.get("description", "") or "").strip(),
        price=float(row.get("price", 0) or 0),
        quantity=float(row.get("quantity", 0) or 0),
        unit=(str(row.get("unit", "") or "").strip()
              or Config.DEFAULT_UNIT_OF_MEASURE),
        reorder_level=int(float(
            row.get("reorder_level", "") or Config.DEFAULT_REORDER_LEVEL
        )),
        manufacturer=str(row.get("manufacturer", "") or "").strip(),
        category=str(row.get("category", "") or "").strip(),
        location=str(row.get("location", "") or "").strip(),
        vendor_id=vendor_id,
        invoice_ids=existing.invoice_ids if existing else "[]",
    )


def save_imported_part(repo: Repository, row: dict, results: dict,
                       update_existing: bool):
    """Create, update or skip one validated row, counting the outcome."""
    pn = str(row.get("part_number", "") or "").strip()
    existing = repo.get_part_by_number(pn) if pn else None
    part = part_from_row(row, existing)

    if existing and update_existing:
        repo.update_part(part)
        results["updated"] += 1
    elif existing:
        results["skipped"] += 1
    else:
        repo.create_part(part)
        results["imported"] += 1


def import_parts_csv(
    repo: Repository,
    filepath: str | Path,
    update_existing: bool = False,
) -> dict:
    """Import parts from CSV. Returns results dict with counts and errors.

    Rows are matched to existing parts by part number; rows without one
    always create a new part.
    """
    filepath = Path(filepath)
    results = {"imported": 0, "updated": 0, "skipped": 0, "errors": []}

    try:
        with open(filepath, "r", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            for row_num, row in enumerate(reader, start=2):
                errors = validate_part_row(row, row_num)
                if errors:
                    results["errors"].extend(errors)
                    results["skipped"] += 1
                    continue
                save_imported_part(repo, row, results, update_existing)

    except (OSError, UnicodeDecodeError, csv.Error, sqlite3.Error) as e:
        logger.error(f"Parts import from {filepath} failed: {e}")
        results["errors"].append(f"File error: {e}")

    return results
