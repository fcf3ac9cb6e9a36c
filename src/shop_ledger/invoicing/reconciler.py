"""Invoice line-item reconciliation.

Keeps invoice items, parts inventory and task linkage consistent while
invoices are created, edited and removed. Every public operation runs in
one ``BEGIN IMMEDIATE`` transaction; each item's inventory/task side
effect runs under its own savepoint so a single bad item does not undo
the rest of the invoice.
"""

import json
import logging
import math
import sqlite3
from dataclasses import fields, replace
from datetime import datetime
from typing import Optional

from shop_ledger.config import Config
from shop_ledger.database.models import (
    Invoice,
    InvoiceItem,
    Payment,
    SideEffectOutcome,
    Task,
)
from shop_ledger.database.repository import Repository
from shop_ledger.errors import (
    InvoiceNotFoundError,
    PartialSideEffectFailure,
    StoreWriteError,
    ValidationError,
)
from shop_ledger.invoicing.payments import diff_payments
from shop_ledger.utils.constants import (
    DISCOUNT_TYPES,
    EDITABLE_INVOICE_STATUSES,
    INVOICE_HEADER_FIELDS,
    INVOICE_STATUSES,
)

logger = logging.getLogger(__name__)

_ITEM_FIELDS = {f.name for f in fields(InvoiceItem)}


class InvoiceReconciler:
    """Creates, updates and removes invoices against a Repository."""

    def __init__(self, repo: Repository):
        self.repo = repo
        self.db = repo.db

    # ── Invoices ────────────────────────────────────────────────

    def create_invoice(self, customer_id: int, vehicle_id: int, date: str,
                       tax_rate: float = None,
                       discount_type: str = "none",
                       discount_value: float = 0.0,
                       notes: str = "",
                       items: list = None,
                       due_date: str = None) -> Invoice:
        """Create an invoice with its items and apply their side effects.

        Header, items and side effects are written in one transaction;
        a store failure leaves nothing behind.
        """
        header = self._clean_header({
            "customer_id": customer_id,
            "vehicle_id": vehicle_id,
            "date": date,
            "due_date": due_date,
            "status": "open",
            "tax_rate": Config.DEFAULT_TAX_RATE if tax_rate is None else tax_rate,
            "discount_type": discount_type,
            "discount_value": discount_value,
            "notes": notes,
        })
        if not header["date"]:
            raise ValidationError("Invoice date is required")
        new_items = [self._coerce_item(i) for i in (items or [])]

        try:
            with self.db.transaction() as conn:
                columns = ", ".join(header)
                marks = ", ".join("?" for _ in header)
                cursor = conn.execute(
                    f"INSERT INTO invoices ({columns}) VALUES ({marks})",
                    tuple(header.values()),
                )
                invoice_id = cursor.lastrowid
                linked, missing = self._detach_missing(conn, new_items)
                stored = self._insert_items(conn, invoice_id, linked)
                outcomes = self._apply_all(
                    conn, stored, invoice_id, header["vehicle_id"], missing
                )
        except sqlite3.Error as e:
            logger.error(f"Failed to create invoice: {e}")
            raise StoreWriteError(f"Could not create invoice: {e}") from e

        logger.info(
            f"Created invoice {invoice_id} with {len(stored)} item(s)"
        )
        invoice = self.repo.get_invoice_by_id(invoice_id)
        invoice.side_effects = outcomes
        return invoice

    def update_invoice(self, invoice_id: int, header: dict = None,
                       items: list = None,
                       payments: list = None) -> Invoice:
        """Apply header changes and replace items and payments.

        ``None`` leaves that part of the invoice untouched. When items are
        supplied, stock consumed by the old items is given back and their
        tasks unlinked before the new list is written, so an unchanged
        part/quantity pair nets to zero.

        Payments are reconciled in a second transaction; a bad payment
        raises ValidationError but header and item changes stay saved.
        """
        changes = self._clean_header(header or {})
        new_items = (None if items is None
                     else [self._coerce_item(i) for i in items])
        outcomes = []

        try:
            with self.db.transaction() as conn:
                if not self._invoice_exists(conn, invoice_id):
                    raise InvoiceNotFoundError(invoice_id)

                if new_items is not None:
                    existing = self._fetch_items(conn, invoice_id)
                    self._release_items(conn, existing, invoice_id)

                if changes:
                    assignments = ", ".join(f"{k} = ?" for k in changes)
                    conn.execute(
                        f"UPDATE invoices SET {assignments} WHERE id = ?",
                        (*changes.values(), invoice_id),
                    )

                if new_items is not None:
                    conn.execute(
                        "DELETE FROM invoice_items WHERE invoice_id = ?",
                        (invoice_id,),
                    )
                    vehicle_id = conn.execute(
                        "SELECT vehicle_id FROM invoices WHERE id = ?",
                        (invoice_id,),
                    ).fetchone()["vehicle_id"]
                    linked, missing = self._detach_missing(conn, new_items)
                    stored = self._insert_items(conn, invoice_id, linked)
                    outcomes = self._apply_all(
                        conn, stored, invoice_id, vehicle_id, missing
                    )
        except sqlite3.Error as e:
            logger.error(f"Failed to update invoice {invoice_id}: {e}")
            raise StoreWriteError(
                f"Could not update invoice {invoice_id}: {e}"
            ) from e

        logger.info(
            f"Updated invoice {invoice_id} "
            f"(header fields: {len(changes)}, "
            f"items: {'replaced' if new_items is not None else 'kept'})"
        )

        if payments is not None:
            self._reconcile_payments(invoice_id, payments)

        invoice = self.repo.get_invoice_by_id(invoice_id)
        invoice.side_effects = outcomes
        return invoice

    def remove_invoice(self, invoice_id: int,
                       restore_inventory: bool = False):
        """Delete an invoice with its payments and items.

        Stock and task links are left as they are unless
        ``restore_inventory`` is set, in which case the items are released
        exactly as an update would before the rows are deleted.
        """
        try:
            with self.db.transaction() as conn:
                if not self._invoice_exists(conn, invoice_id):
                    raise InvoiceNotFoundError(invoice_id)
                if restore_inventory:
                    self._release_items(
                        conn, self._fetch_items(conn, invoice_id), invoice_id
                    )
                conn.execute(
                    "DELETE FROM payments WHERE invoice_id = ?", (invoice_id,)
                )
                conn.execute(
                    "DELETE FROM invoice_items WHERE invoice_id = ?",
                    (invoice_id,),
                )
                conn.execute(
                    "DELETE FROM invoices WHERE id = ?", (invoice_id,)
                )
        except sqlite3.Error as e:
            logger.error(f"Failed to remove invoice {invoice_id}: {e}")
            raise StoreWriteError(
                f"Could not remove invoice {invoice_id}: {e}"
            ) from e
        logger.info(
            f"Removed invoice {invoice_id}"
            + (" (inventory restored)" if restore_inventory else "")
        )

    # ── Item side effects ───────────────────────────────────────

    def apply_item_side_effects(self, conn: sqlite3.Connection,
                                item: InvoiceItem, invoice_id: int,
                                vehicle_id: Optional[int] = None) -> str:
        """Apply one item's effect on parts or tasks and return the action.

        Raises on failure; callers wanting isolation run this under a
        savepoint.
        """
        action = self._action_for(item)
        if action == "create_part":
            part_id = self._create_custom_part(conn, item, invoice_id)
            self._write_back(conn, item, part_id=part_id)
        elif action == "create_task":
            task_id = self._create_custom_task(
                conn, item, invoice_id, vehicle_id
            )
            self._write_back(conn, item, task_id=task_id)
        elif action == "consume_part":
            self._consume_part(conn, item.part_id, item.quantity, invoice_id)
        elif action == "link_task":
            self._link_task(
                conn, item.task_id, invoice_id, self._task_price(item)
            )
        if action != "none":
            logger.debug(
                f"Invoice {invoice_id}: {action} for '{item.description}'"
            )
        return action

    def _apply_all(self, conn, items: list[InvoiceItem], invoice_id: int,
                   vehicle_id: Optional[int],
                   missing: dict = None) -> list[SideEffectOutcome]:
        missing = missing or {}
        outcomes = []
        for index, item in enumerate(items):
            if index in missing:
                failure = missing[index]
                logger.warning(f"Invoice {invoice_id}: {failure}")
                outcomes.append(SideEffectOutcome(
                    item=item, action=failure.action, error=failure
                ))
                continue
            action = self._action_for(item)
            if action == "none":
                outcomes.append(SideEffectOutcome(item=item))
                continue
            try:
                with self.db.savepoint(conn, f"item_{index}"):
                    self.apply_item_side_effects(
                        conn, item, invoice_id, vehicle_id
                    )
            except (ValidationError, sqlite3.Error) as e:
                failure = PartialSideEffectFailure(
                    item.description, action, str(e)
                )
                logger.warning(f"Invoice {invoice_id}: {failure}")
                outcomes.append(
                    SideEffectOutcome(item=item, action=action, error=failure)
                )
            else:
                outcomes.append(SideEffectOutcome(item=item, action=action))
        return outcomes

    @staticmethod
    def _action_for(item: InvoiceItem) -> str:
        if item.item_type == "part":
            if item.creates_inventory_part and item.custom_part_data:
                return "create_part"
            if item.part_id is not None:
                return "consume_part"
        elif item.item_type == "labor":
            if item.creates_task and item.custom_labor_data:
                return "create_task"
            if item.task_id is not None:
                return "link_task"
        return "none"

    def _create_custom_part(self, conn, item: InvoiceItem,
                            invoice_id: int) -> int:
        data = item.custom_part_data
        cursor = conn.execute(
            "INSERT INTO parts (name, description, price, quantity, "
            "part_number, manufacturer, category, location, unit, "
            "reorder_level, invoice_ids) "
            "VALUES (?, ?, ?, 0, ?, ?, ?, ?, ?, ?, ?)",
            (item.description, item.description, item.price,
             data.part_number, data.manufacturer, data.category,
             data.location,
             item.unit_of_measure or Config.DEFAULT_UNIT_OF_MEASURE,
             Config.DEFAULT_REORDER_LEVEL, json.dumps([invoice_id])),
        )
        return cursor.lastrowid

    def _create_custom_task(self, conn, item: InvoiceItem, invoice_id: int,
                            vehicle_id: Optional[int]) -> int:
        data = item.custom_labor_data
        cursor = conn.execute(
            "INSERT INTO tasks (title, description, status, location, "
            "hours_estimated, hours_spent, price, labor_rate, skill_level, "
            "vehicle_id, invoice_id, completed_at) "
            "VALUES (?, ?, 'completed', 'workshop', ?, ?, ?, ?, ?, ?, ?, ?)",
            (item.description, item.description,
             item.quantity, item.quantity, self._task_price(item),
             data.labor_rate, data.skill_level, vehicle_id, invoice_id,
             datetime.now().isoformat(timespec="seconds")),
        )
        return cursor.lastrowid

    @staticmethod
    def _task_price(item: InvoiceItem) -> float:
        """Price stored on the task a labor item bills.

        Tasks created from a custom labor line carry the line total, and
        keep it when the saved line links back to them.
        """
        if item.custom_labor_data is not None:
            return item.price * item.quantity
        return item.price

    def _consume_part(self, conn, part_id: int, quantity: float,
                      invoice_id: int):
        row = conn.execute(
            "SELECT quantity, invoice_ids FROM parts WHERE id = ?",
            (part_id,),
        ).fetchone()
        if row is None:
            raise ValidationError(f"Part {part_id} not found")
        ids = self._load_ids(row["invoice_ids"])
        if invoice_id not in ids:
            ids.append(invoice_id)
        conn.execute(
            "UPDATE parts SET quantity = ?, invoice_ids = ? WHERE id = ?",
            (max(0, row["quantity"] - quantity), json.dumps(ids), part_id),
        )

    def _link_task(self, conn, task_id: int, invoice_id: int, price: float):
        cursor = conn.execute(
            "UPDATE tasks SET invoice_id = ?, price = ? WHERE id = ?",
            (invoice_id, price, task_id),
        )
        if cursor.rowcount == 0:
            raise ValidationError(f"Task {task_id} not found")

    def _write_back(self, conn, item: InvoiceItem, part_id: int = None,
                    task_id: int = None):
        """Point a custom item at the record it created."""
        if part_id is not None:
            item.part_id = part_id
            item.creates_inventory_part = 0
        if task_id is not None:
            item.task_id = task_id
            item.creates_task = 0
        if item.id is None:
            return
        conn.execute(
            "UPDATE invoice_items SET part_id = ?, task_id = ?, "
            "creates_inventory_part = ?, creates_task = ? WHERE id = ?",
            (item.part_id, item.task_id, item.creates_inventory_part,
             item.creates_task, item.id),
        )

    def _release_items(self, conn, items: list[InvoiceItem],
                       invoice_id: int):
        """Give back stock and unlink tasks held by an invoice's items."""
        for item in items:
            if item.item_type == "part" and item.part_id is not None:
                row = conn.execute(
                    "SELECT invoice_ids FROM parts WHERE id = ?",
                    (item.part_id,),
                ).fetchone()
                if row is None:
                    continue
                ids = [i for i in self._load_ids(row["invoice_ids"])
                       if i != invoice_id]
                conn.execute(
                    "UPDATE parts SET quantity = quantity + ?, "
                    "invoice_ids = ? WHERE id = ?",
                    (item.quantity, json.dumps(ids), item.part_id),
                )
            elif item.item_type == "labor" and item.task_id is not None:
                conn.execute(
                    "UPDATE tasks SET invoice_id = NULL "
                    "WHERE id = ? AND invoice_id = ?",
                    (item.task_id, invoice_id),
                )

    # ── Payments ────────────────────────────────────────────────

    def _reconcile_payments(self, invoice_id: int, payments: list):
        try:
            with self.db.transaction() as conn:
                rows = conn.execute(
                    "SELECT * FROM payments WHERE invoice_id = ?",
                    (invoice_id,),
                ).fetchall()
                existing = [Payment(**dict(r)) for r in rows]
                diff = diff_payments(existing, payments, invoice_id)

                for payment_id in diff.to_delete:
                    conn.execute(
                        "DELETE FROM payments WHERE id = ?", (payment_id,)
                    )
                for p in diff.to_update:
                    conn.execute(
                        "UPDATE payments SET amount = ?, method = ?, "
                        "date = ?, notes = ? WHERE id = ?",
                        (p.amount, p.method, p.date, p.notes, p.id),
                    )
                for p in diff.to_insert:
                    conn.execute(
                        "INSERT INTO payments (id, invoice_id, amount, "
                        "method, date, notes) VALUES (?, ?, ?, ?, ?, ?)",
                        (p.id, invoice_id, p.amount, p.method, p.date,
                         p.notes),
                    )
        except sqlite3.Error as e:
            logger.error(
                f"Failed to save payments for invoice {invoice_id}: {e}"
            )
            raise StoreWriteError(
                f"Could not save payments for invoice {invoice_id}: {e}"
            ) from e
        logger.info(
            f"Invoice {invoice_id} payments: {len(diff.to_insert)} added, "
            f"{len(diff.to_update)} updated, {len(diff.to_delete)} removed"
        )

    # ── Tasks ───────────────────────────────────────────────────

    def labor_item_from_task(self, task: Task,
                             hourly_rate: float = None) -> InvoiceItem:
        """Build a labor line billing a task's recorded hours."""
        if not task.hours_spent:
            raise ValidationError(
                f"Task '{task.title}' has no hours spent to bill"
            )
        if task.price:
            unit_price = task.price / task.hours_spent
        elif hourly_rate is not None:
            unit_price = hourly_rate
        else:
            unit_price = Config.DEFAULT_LABOR_RATE
        return InvoiceItem(
            description=f"Labor: {task.title}",
            item_type="labor",
            quantity=task.hours_spent,
            price=unit_price,
            task_id=task.id,
            unit_of_measure="hour",
        )

    def collect_auto_items(self, vehicle_id: int) -> list[InvoiceItem]:
        """Labor lines for the vehicle's completed, unbilled tasks."""
        return [
            InvoiceItem(
                description=task.title,
                item_type="labor",
                quantity=task.hours_estimated or 1,
                price=task.price or 0,
                task_id=task.id,
                is_auto_added=1,
                unit_of_measure="hour",
            )
            for task in self.repo.get_unbilled_completed_tasks(vehicle_id)
        ]

    def sync_task_to_invoice_items(self, task_id: int) -> int:
        """Push a task's price and hours onto the labor lines billing it.

        Only lines on open or in-progress invoices follow the task.
        Returns the number of lines changed.
        """
        task = self.repo.get_task_by_id(task_id)
        if task is None:
            raise ValidationError(f"Task {task_id} not found")

        marks = ", ".join("?" for _ in EDITABLE_INVOICE_STATUSES)
        try:
            with self.db.transaction() as conn:
                rows = conn.execute(
                    "SELECT ii.id, ii.quantity FROM invoice_items ii "
                    "JOIN invoices i ON ii.invoice_id = i.id "
                    "WHERE ii.task_id = ? AND ii.item_type = 'labor' "
                    f"AND i.status IN ({marks})",
                    (task_id, *EDITABLE_INVOICE_STATUSES),
                ).fetchall()
                for row in rows:
                    quantity = (task.hours_estimated
                                if task.hours_estimated else row["quantity"])
                    conn.execute(
                        "UPDATE invoice_items SET price = ?, quantity = ? "
                        "WHERE id = ?",
                        (task.price or 0, quantity, row["id"]),
                    )
        except sqlite3.Error as e:
            raise StoreWriteError(
                f"Could not sync task {task_id} to invoice items: {e}"
            ) from e
        if rows:
            logger.info(f"Synced task {task_id} to {len(rows)} invoice item(s)")
        return len(rows)

    # ── Helpers ─────────────────────────────────────────────────

    @staticmethod
    def _invoice_exists(conn, invoice_id: int) -> bool:
        return conn.execute(
            "SELECT 1 FROM invoices WHERE id = ?", (invoice_id,)
        ).fetchone() is not None

    @staticmethod
    def _fetch_items(conn, invoice_id: int) -> list[InvoiceItem]:
        rows = conn.execute(
            "SELECT * FROM invoice_items WHERE invoice_id = ? "
            "ORDER BY position, id",
            (invoice_id,),
        ).fetchall()
        return [InvoiceItem(**dict(r)) for r in rows]

    def _detach_missing(self, conn, items: list[InvoiceItem]):
        """Drop part/task references whose record no longer exists.

        The item is still saved, without the link. Returns the items to
        insert and a map of item position to the failure recorded for it.
        """
        linked, missing = [], {}
        for position, item in enumerate(items):
            action = self._action_for(item)
            for key, table, label in (("part_id", "parts", "Part"),
                                      ("task_id", "tasks", "Task")):
                ref = getattr(item, key)
                if ref is None or conn.execute(
                    f"SELECT 1 FROM {table} WHERE id = ?", (ref,)
                ).fetchone() is not None:
                    continue
                item = replace(item, **{key: None})
                missing[position] = PartialSideEffectFailure(
                    item.description, action, f"{label} {ref} not found"
                )
            linked.append(item)
        return linked, missing

    @staticmethod
    def _insert_items(conn, invoice_id: int,
                      items: list[InvoiceItem]) -> list[InvoiceItem]:
        stored = []
        for position, item in enumerate(items):
            cursor = conn.execute(
                "INSERT INTO invoice_items (invoice_id, position, "
                "description, item_type, quantity, price, part_id, task_id, "
                "is_auto_added, unit_of_measure, creates_inventory_part, "
                "creates_task, custom_part_data, custom_labor_data) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (invoice_id, position, item.description, item.item_type,
                 item.quantity, item.price, item.part_id, item.task_id,
                 int(bool(item.is_auto_added)),
                 item.unit_of_measure or Config.DEFAULT_UNIT_OF_MEASURE,
                 int(bool(item.creates_inventory_part)),
                 int(bool(item.creates_task)),
                 item.custom_part_data.to_json()
                 if item.custom_part_data else None,
                 item.custom_labor_data.to_json()
                 if item.custom_labor_data else None),
            )
            stored.append(replace(
                item, id=cursor.lastrowid, invoice_id=invoice_id,
                position=position,
            ))
        return stored

    @staticmethod
    def _coerce_item(item) -> InvoiceItem:
        if isinstance(item, InvoiceItem):
            return item
        if isinstance(item, dict):
            unknown = set(item) - _ITEM_FIELDS
            if unknown:
                raise ValidationError(
                    f"Unknown invoice item fields: {', '.join(sorted(unknown))}"
                )
            return InvoiceItem(**item)
        raise ValidationError(f"Unsupported invoice item: {item!r}")

    @staticmethod
    def _clean_header(header: dict) -> dict:
        """Validate header fields before anything is written."""
        unknown = set(header) - set(INVOICE_HEADER_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unknown invoice fields: {', '.join(sorted(unknown))}"
            )
        clean = dict(header)
        if "status" in clean and clean["status"] not in INVOICE_STATUSES:
            raise ValidationError(f"Unknown invoice status '{clean['status']}'")
        if ("discount_type" in clean
                and clean["discount_type"] not in DISCOUNT_TYPES):
            raise ValidationError(
                f"Unknown discount type '{clean['discount_type']}'"
            )
        for key in ("tax_rate", "discount_value"):
            if key not in clean:
                continue
            try:
                value = float(clean[key] or 0)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"{key} must be a number") from e
            if not math.isfinite(value) or value < 0:
                raise ValidationError(f"{key} must be a non-negative number")
            clean[key] = value
        for key in ("customer_id", "vehicle_id"):
            if key in clean and not isinstance(clean[key], int):
                raise ValidationError(f"{key} must be an id")
        return clean

    @staticmethod
    def _load_ids(raw) -> list:
        try:
            return json.loads(raw) if raw else []
        except json.JSONDecodeError:
            return []
