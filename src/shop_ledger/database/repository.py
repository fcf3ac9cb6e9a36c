"""Repository layer: all CRUD operations and queries."""

import json
import logging
from datetime import date
from typing import Optional

from shop_ledger.errors import ValidationError
from shop_ledger.invoicing.payments import normalize_payment
from shop_ledger.utils.constants import (
    CLOSED_INVOICE_STATUSES,
    INVOICE_STATUSES,
    PARTS_EXPENSE_CATEGORY,
)

from .connection import DatabaseConnection
from .models import (
    Customer,
    Expense,
    Invoice,
    InvoiceItem,
    Mechanic,
    Part,
    Payment,
    Task,
    Vehicle,
    Vendor,
)

logger = logging.getLogger(__name__)


class Repository:
    """Provides all database operations for the application."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    # ── Customers ───────────────────────────────────────────────

    def create_customer(self, customer: Customer) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO customers (name, email, phone, address, notes) "
                "VALUES (?, ?, ?, ?, ?)",
                (customer.name, customer.email, customer.phone,
                 customer.address, customer.notes),
            )
            return cursor.lastrowid

    def get_customer_by_id(self, customer_id: int) -> Optional[Customer]:
        rows = self.db.execute(
            "SELECT * FROM customers WHERE id = ?", (customer_id,)
        )
        return Customer(**dict(rows[0])) if rows else None

    def get_all_customers(self) -> list[Customer]:
        rows = self.db.execute("SELECT * FROM customers ORDER BY name")
        return [Customer(**dict(r)) for r in rows]

    def search_customers(self, query: str) -> list[Customer]:
        pattern = f"%{query}%"
        rows = self.db.execute(
            "SELECT * FROM customers "
            "WHERE name LIKE ? OR email LIKE ? OR phone LIKE ? "
            "ORDER BY name",
            (pattern, pattern, pattern),
        )
        return [Customer(**dict(r)) for r in rows]

    def update_customer(self, customer: Customer):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE customers SET name = ?, email = ?, phone = ?, "
                "address = ?, notes = ? WHERE id = ?",
                (customer.name, customer.email, customer.phone,
                 customer.address, customer.notes, customer.id),
            )

    def delete_customer(self, customer_id: int):
        """Delete a customer and their vehicles.

        Fails with sqlite3.IntegrityError while invoices reference them.
        """
        with self.db.get_connection() as conn:
            conn.execute("DELETE FROM customers WHERE id = ?", (customer_id,))

    # ── Vehicles ────────────────────────────────────────────────

    def create_vehicle(self, vehicle: Vehicle) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO vehicles (customer_id, make, model, year, "
                "license_plate, vin, color, notes) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (vehicle.customer_id, vehicle.make, vehicle.model,
                 vehicle.year, vehicle.license_plate, vehicle.vin,
                 vehicle.color, vehicle.notes),
            )
            return cursor.lastrowid

    def get_vehicle_by_id(self, vehicle_id: int) -> Optional[Vehicle]:
        rows = self.db.execute(
            "SELECT * FROM vehicles WHERE id = ?", (vehicle_id,)
        )
        return Vehicle(**dict(rows[0])) if rows else None

    def get_vehicles_for_customer(self, customer_id: int) -> list[Vehicle]:
        rows = self.db.execute(
            "SELECT * FROM vehicles WHERE customer_id = ? "
            "ORDER BY make, model",
            (customer_id,),
        )
        return [Vehicle(**dict(r)) for r in rows]

    def update_vehicle(self, vehicle: Vehicle):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE vehicles SET customer_id = ?, make = ?, model = ?, "
                "year = ?, license_plate = ?, vin = ?, color = ?, notes = ? "
                "WHERE id = ?",
                (vehicle.customer_id, vehicle.make, vehicle.model,
                 vehicle.year, vehicle.license_plate, vehicle.vin,
                 vehicle.color, vehicle.notes, vehicle.id),
            )

    def delete_vehicle(self, vehicle_id: int):
        with self.db.get_connection() as conn:
            conn.execute("DELETE FROM vehicles WHERE id = ?", (vehicle_id,))

    # ── Vendors ─────────────────────────────────────────────────

    def create_vendor(self, vendor: Vendor) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO vendors (name, contact_person, email, phone, "
                "address, notes) VALUES (?, ?, ?, ?, ?, ?)",
                (vendor.name, vendor.contact_person, vendor.email,
                 vendor.phone, vendor.address, vendor.notes),
            )
            return cursor.lastrowid

    def get_vendor_by_id(self, vendor_id: int) -> Optional[Vendor]:
        rows = self.db.execute(
            "SELECT * FROM vendors WHERE id = ?", (vendor_id,)
        )
        return Vendor(**dict(rows[0])) if rows else None

    def get_all_vendors(self) -> list[Vendor]:
        rows = self.db.execute("SELECT * FROM vendors ORDER BY name")
        return [Vendor(**dict(r)) for r in rows]

    def update_vendor(self, vendor: Vendor):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE vendors SET name = ?, contact_person = ?, email = ?, "
                "phone = ?, address = ?, notes = ? WHERE id = ?",
                (vendor.name, vendor.contact_person, vendor.email,
                 vendor.phone, vendor.address, vendor.notes, vendor.id),
            )

    def delete_vendor(self, vendor_id: int):
        with self.db.get_connection() as conn:
            conn.execute("DELETE FROM vendors WHERE id = ?", (vendor_id,))

    # ── Mechanics ───────────────────────────────────────────────

    def create_mechanic(self, mechanic: Mechanic) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO mechanics (name, email, phone, specialization, "
                "hourly_rate, employment_type, is_active) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (mechanic.name, mechanic.email, mechanic.phone,
                 mechanic.specialization, mechanic.hourly_rate,
                 mechanic.employment_type, mechanic.is_active),
            )
            return cursor.lastrowid

    def get_mechanic_by_id(self, mechanic_id: int) -> Optional[Mechanic]:
        rows = self.db.execute(
            "SELECT * FROM mechanics WHERE id = ?", (mechanic_id,)
        )
        return Mechanic(**dict(rows[0])) if rows else None

    def get_all_mechanics(self, active_only: bool = True) -> list[Mechanic]:
        if active_only:
            rows = self.db.execute(
                "SELECT * FROM mechanics WHERE is_active = 1 ORDER BY name"
            )
        else:
            rows = self.db.execute("SELECT * FROM mechanics ORDER BY name")
        return [Mechanic(**dict(r)) for r in rows]

    def update_mechanic(self, mechanic: Mechanic):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE mechanics SET name = ?, email = ?, phone = ?, "
                "specialization = ?, hourly_rate = ?, employment_type = ?, "
                "is_active = ? WHERE id = ?",
                (mechanic.name, mechanic.email, mechanic.phone,
                 mechanic.specialization, mechanic.hourly_rate,
                 mechanic.employment_type, mechanic.is_active, mechanic.id),
            )

    # ── Parts ───────────────────────────────────────────────────

    _PARTS_SELECT = """
        SELECT p.*,
               COALESCE(v.name, '') AS vendor_name
        FROM parts p
        LEFT JOIN vendors v ON p.vendor_id = v.id
    """

    def get_all_parts(self) -> list[Part]:
        rows = self.db.execute(self._PARTS_SELECT + " ORDER BY p.name")
        return [Part(**dict(r)) for r in rows]

    def get_part_by_id(self, part_id: int) -> Optional[Part]:
        rows = self.db.execute(
            self._PARTS_SELECT + " WHERE p.id = ?", (part_id,)
        )
        return Part(**dict(rows[0])) if rows else None

    def get_part_by_number(self, part_number: str) -> Optional[Part]:
        rows = self.db.execute(
            self._PARTS_SELECT + " WHERE p.part_number = ?",
            (part_number,),
        )
        return Part(**dict(rows[0])) if rows else None

    def search_parts(self, query: str) -> list[Part]:
        pattern = f"%{query}%"
        rows = self.db.execute(
            self._PARTS_SELECT
            + " WHERE p.name LIKE ? OR p.part_number LIKE ?"
              " OR p.manufacturer LIKE ? OR p.description LIKE ?"
              " ORDER BY p.name",
            (pattern, pattern, pattern, pattern),
        )
        return [Part(**dict(r)) for r in rows]

    def get_low_stock_parts(self) -> list[Part]:
        rows = self.db.execute(
            self._PARTS_SELECT
            + " WHERE p.reorder_level > 0 AND p.quantity < p.reorder_level"
              " ORDER BY p.name"
        )
        return [Part(**dict(r)) for r in rows]

    def get_parts_for_invoice(self, invoice_id: int) -> list[Part]:
        """Parts whose invoice_ids list contains the invoice."""
        rows = self.db.execute(
            self._PARTS_SELECT
            + " WHERE EXISTS (SELECT 1 FROM json_each(p.invoice_ids)"
              " WHERE json_each.value = ?) ORDER BY p.name",
            (invoice_id,),
        )
        return [Part(**dict(r)) for r in rows]

    def create_part(self, part: Part) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO parts (name, description, price, quantity, "
                "part_number, manufacturer, category, location, unit, "
                "vendor_id, reorder_level, invoice_ids) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (part.name, part.description, part.price, part.quantity,
                 part.part_number, part.manufacturer, part.category,
                 part.location, part.unit, part.vendor_id,
                 part.reorder_level, part.invoice_ids or "[]"),
            )
            return cursor.lastrowid

    def update_part(self, part: Part):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE parts SET name = ?, description = ?, price = ?, "
                "quantity = ?, part_number = ?, manufacturer = ?, "
                "category = ?, location = ?, unit = ?, vendor_id = ?, "
                "reorder_level = ?, invoice_ids = ? WHERE id = ?",
                (part.name, part.description, part.price, part.quantity,
                 part.part_number, part.manufacturer, part.category,
                 part.location, part.unit, part.vendor_id,
                 part.reorder_level, part.invoice_ids or "[]", part.id),
            )

    def delete_part(self, part_id: int):
        with self.db.get_connection() as conn:
            conn.execute("DELETE FROM parts WHERE id = ?", (part_id,))

    def assign_part_to_invoice(self, part_id: int, invoice_id: int):
        """Record that an invoice uses a part, without touching stock.

        Paid or completed invoices are closed to new assignments, and a
        part can be assigned to the same invoice only once.
        """
        with self.db.get_connection() as conn:
            inv = conn.execute(
                "SELECT status FROM invoices WHERE id = ?", (invoice_id,)
            ).fetchone()
            if not inv:
                raise ValidationError(f"Invoice {invoice_id} not found")
            if inv["status"] in CLOSED_INVOICE_STATUSES:
                raise ValidationError(
                    f"Cannot assign parts to a {inv['status']} invoice"
                )
            row = conn.execute(
                "SELECT invoice_ids FROM parts WHERE id = ?", (part_id,)
            ).fetchone()
            if not row:
                raise ValidationError(f"Part {part_id} not found")
            ids = json.loads(row["invoice_ids"] or "[]")
            if invoice_id in ids:
                raise ValidationError(
                    f"Part {part_id} is already assigned to invoice "
                    f"{invoice_id}"
                )
            ids.append(invoice_id)
            conn.execute(
                "UPDATE parts SET invoice_ids = ? WHERE id = ?",
                (json.dumps(ids), part_id),
            )

    def unassign_part_from_invoice(self, part_id: int, invoice_id: int):
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT invoice_ids FROM parts WHERE id = ?", (part_id,)
            ).fetchone()
            if not row:
                raise ValidationError(f"Part {part_id} not found")
            ids = [i for i in json.loads(row["invoice_ids"] or "[]")
                   if i != invoice_id]
            conn.execute(
                "UPDATE parts SET invoice_ids = ? WHERE id = ?",
                (json.dumps(ids), part_id),
            )

    def record_part_purchase(self, part_id: int, quantity: float,
                             unit_cost: float = None,
                             vendor_id: int = None,
                             invoice_id: int = None,
                             purchase_date: str = None,
                             notes: str = "") -> int:
        """Add purchased stock to a part and book the cost as an expense.

        The vendor defaults to the part's vendor and the unit cost to the
        part's price. Returns the new expense id.
        """
        if quantity <= 0:
            raise ValidationError("Purchase quantity must be greater than zero")
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT name, price, vendor_id FROM parts WHERE id = ?",
                (part_id,),
            ).fetchone()
            if not row:
                raise ValidationError(f"Part {part_id} not found")
            cost = row["price"] if unit_cost is None else unit_cost
            if cost < 0:
                raise ValidationError("Unit cost cannot be negative")

            conn.execute(
                "UPDATE parts SET quantity = quantity + ? WHERE id = ?",
                (quantity, part_id),
            )
            cursor = conn.execute(
                "INSERT INTO expenses (category, description, amount, date, "
                "vendor_id, invoice_id, notes) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (PARTS_EXPENSE_CATEGORY,
                 f"Purchase: {quantity:g} x {row['name']}",
                 quantity * cost,
                 purchase_date or date.today().isoformat(),
                 vendor_id if vendor_id is not None else row["vendor_id"],
                 invoice_id, notes),
            )
            logger.info(
                f"Recorded purchase of {quantity:g} x part {part_id} "
                f"(expense {cursor.lastrowid})"
            )
            return cursor.lastrowid

    # ── Tasks ───────────────────────────────────────────────────

    _TASKS_SELECT = """
        SELECT t.*,
               COALESCE(m.name, '') AS mechanic_name
        FROM tasks t
        LEFT JOIN mechanics m ON t.mechanic_id = m.id
    """

    def create_task(self, task: Task) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO tasks (title, description, status, location, "
                "hours_estimated, hours_spent, price, labor_rate, "
                "skill_level, mechanic_id, vehicle_id, invoice_id, "
                "completed_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (task.title, task.description, task.status, task.location,
                 task.hours_estimated, task.hours_spent, task.price,
                 task.labor_rate, task.skill_level, task.mechanic_id,
                 task.vehicle_id, task.invoice_id, task.completed_at),
            )
            return cursor.lastrowid

    def get_task_by_id(self, task_id: int) -> Optional[Task]:
        rows = self.db.execute(
            self._TASKS_SELECT + " WHERE t.id = ?", (task_id,)
        )
        return Task(**dict(rows[0])) if rows else None

    def get_all_tasks(self, status: Optional[str] = None) -> list[Task]:
        if status:
            rows = self.db.execute(
                self._TASKS_SELECT + " WHERE t.status = ? ORDER BY t.id",
                (status,),
            )
        else:
            rows = self.db.execute(self._TASKS_SELECT + " ORDER BY t.id")
        return [Task(**dict(r)) for r in rows]

    def get_tasks_for_invoice(self, invoice_id: int) -> list[Task]:
        rows = self.db.execute(
            self._TASKS_SELECT + " WHERE t.invoice_id = ? ORDER BY t.id",
            (invoice_id,),
        )
        return [Task(**dict(r)) for r in rows]

    def get_unbilled_completed_tasks(self, vehicle_id: int) -> list[Task]:
        rows = self.db.execute(
            self._TASKS_SELECT
            + " WHERE t.vehicle_id = ? AND t.status = 'completed'"
              " AND t.invoice_id IS NULL ORDER BY t.id",
            (vehicle_id,),
        )
        return [Task(**dict(r)) for r in rows]

    def update_task(self, task: Task):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE tasks SET title = ?, description = ?, status = ?, "
                "location = ?, hours_estimated = ?, hours_spent = ?, "
                "price = ?, labor_rate = ?, skill_level = ?, "
                "mechanic_id = ?, vehicle_id = ?, invoice_id = ?, "
                "completed_at = ? WHERE id = ?",
                (task.title, task.description, task.status, task.location,
                 task.hours_estimated, task.hours_spent, task.price,
                 task.labor_rate, task.skill_level, task.mechanic_id,
                 task.vehicle_id, task.invoice_id, task.completed_at,
                 task.id),
            )

    def delete_task(self, task_id: int):
        with self.db.get_connection() as conn:
            conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))

    def assign_mechanic_to_task(self, task_id: int, mechanic_id: int):
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE tasks SET mechanic_id = ? WHERE id = ?",
                (mechanic_id, task_id),
            )
            if cursor.rowcount == 0:
                raise ValidationError(f"Task {task_id} not found")

    # ── Invoices ────────────────────────────────────────────────

    _INVOICES_SELECT = """
        SELECT i.*,
               COALESCE(c.name, '') AS customer_name,
               TRIM(COALESCE(v.year, '') || ' ' || COALESCE(v.make, '')
                    || ' ' || COALESCE(v.model, '')) AS vehicle_info
        FROM invoices i
        LEFT JOIN customers c ON i.customer_id = c.id
        LEFT JOIN vehicles v ON i.vehicle_id = v.id
    """

    def get_invoice_by_id(self, invoice_id: int) -> Optional[Invoice]:
        """Load an invoice with its items and payments."""
        rows = self.db.execute(
            self._INVOICES_SELECT + " WHERE i.id = ?", (invoice_id,)
        )
        if not rows:
            return None
        invoice = Invoice(**dict(rows[0]))
        invoice.items = self.get_invoice_items(invoice_id)
        invoice.payments = self.get_payments_for_invoice(invoice_id)
        return invoice

    def get_all_invoices(self, status: Optional[str] = None) -> list[Invoice]:
        """All invoices, newest first, each with items and payments."""
        if status is not None and status not in INVOICE_STATUSES:
            raise ValidationError(f"Unknown invoice status '{status}'")
        if status:
            rows = self.db.execute(
                self._INVOICES_SELECT
                + " WHERE i.status = ? ORDER BY i.date DESC, i.id DESC",
                (status,),
            )
        else:
            rows = self.db.execute(
                self._INVOICES_SELECT + " ORDER BY i.date DESC, i.id DESC"
            )
        invoices = []
        for r in rows:
            invoice = Invoice(**dict(r))
            invoice.items = self.get_invoice_items(invoice.id)
            invoice.payments = self.get_payments_for_invoice(invoice.id)
            invoices.append(invoice)
        return invoices

    def get_invoice_items(self, invoice_id: int) -> list[InvoiceItem]:
        rows = self.db.execute(
            "SELECT * FROM invoice_items WHERE invoice_id = ? "
            "ORDER BY position, id",
            (invoice_id,),
        )
        return [InvoiceItem(**dict(r)) for r in rows]

    def get_invoice_summary(self) -> dict:
        """Invoice counts per status plus outstanding receivables."""
        from shop_ledger.invoicing.calculations import (
            calculate_balance_due,
            calculate_total_receivables,
        )

        invoices = self.get_all_invoices()
        by_status = {status: 0 for status in INVOICE_STATUSES}
        for inv in invoices:
            by_status[inv.status] = by_status.get(inv.status, 0) + 1
        unpaid = [inv for inv in invoices if inv.status != "paid"]
        return {
            "total_invoices": len(invoices),
            "by_status": by_status,
            "receivables": calculate_total_receivables(invoices),
            "balance_due": sum(calculate_balance_due(inv) for inv in unpaid),
        }

    # ── Payments ────────────────────────────────────────────────

    def get_payments_for_invoice(self, invoice_id: int) -> list[Payment]:
        rows = self.db.execute(
            "SELECT * FROM payments WHERE invoice_id = ? "
            "ORDER BY date DESC, id DESC",
            (invoice_id,),
        )
        return [Payment(**dict(r)) for r in rows]

    def get_payment_by_id(self, payment_id: int) -> Optional[Payment]:
        rows = self.db.execute(
            "SELECT * FROM payments WHERE id = ?", (payment_id,)
        )
        return Payment(**dict(rows[0])) if rows else None

    def create_payment(self, payment: Payment) -> int:
        clean = normalize_payment(payment, payment.invoice_id)
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO payments (invoice_id, amount, method, date, notes) "
                "VALUES (?, ?, ?, ?, ?)",
                (clean.invoice_id, clean.amount, clean.method,
                 clean.date, clean.notes),
            )
            return cursor.lastrowid

    def update_payment(self, payment: Payment):
        clean = normalize_payment(payment, payment.invoice_id)
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE payments SET amount = ?, method = ?, date = ?, "
                "notes = ? WHERE id = ?",
                (clean.amount, clean.method, clean.date, clean.notes,
                 payment.id),
            )

    def delete_payment(self, payment_id: int):
        with self.db.get_connection() as conn:
            conn.execute("DELETE FROM payments WHERE id = ?", (payment_id,))

    # ── Expenses ────────────────────────────────────────────────

    _EXPENSES_SELECT = """
        SELECT e.*,
               COALESCE(v.name, '') AS vendor_name
        FROM expenses e
        LEFT JOIN vendors v ON e.vendor_id = v.id
    """

    def create_expense(self, expense: Expense) -> int:
        if expense.amount < 0:
            raise ValidationError("Expense amount cannot be negative")
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO expenses (category, description, amount, date, "
                "vendor_id, invoice_id, notes) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (expense.category, expense.description, expense.amount,
                 expense.date or date.today().isoformat(),
                 expense.vendor_id, expense.invoice_id, expense.notes),
            )
            return cursor.lastrowid

    def get_expense_by_id(self, expense_id: int) -> Optional[Expense]:
        rows = self.db.execute(
            self._EXPENSES_SELECT + " WHERE e.id = ?", (expense_id,)
        )
        return Expense(**dict(rows[0])) if rows else None

    def get_expenses(self, vendor_id: int = None,
                     invoice_id: int = None) -> list[Expense]:
        clauses, params = [], []
        if vendor_id is not None:
            clauses.append("e.vendor_id = ?")
            params.append(vendor_id)
        if invoice_id is not None:
            clauses.append("e.invoice_id = ?")
            params.append(invoice_id)
        sql = self._EXPENSES_SELECT
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY e.date DESC, e.id DESC"
        rows = self.db.execute(sql, tuple(params))
        return [Expense(**dict(r)) for r in rows]

    def update_expense(self, expense: Expense):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE expenses SET category = ?, description = ?, "
                "amount = ?, date = ?, vendor_id = ?, invoice_id = ?, "
                "notes = ? WHERE id = ?",
                (expense.category, expense.description, expense.amount,
                 expense.date, expense.vendor_id, expense.invoice_id,
                 expense.notes, expense.id),
            )

    def delete_expense(self, expense_id: int):
        with self.db.get_connection() as conn:
            conn.execute("DELETE FROM expenses WHERE id = ?", (expense_id,))
