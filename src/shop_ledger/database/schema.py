"""Database schema definition and initialization."""

import sqlite3

SCHEMA_VERSION = 1

# Each statement is a separate string to avoid executescript issues
_SCHEMA_STATEMENTS = [
    # Schema version tracking
    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Customers
    """CREATE TABLE IF NOT EXISTS customers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT,
        phone TEXT,
        address TEXT,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Vehicles belong to a customer
    """CREATE TABLE IF NOT EXISTS vehicles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        customer_id INTEGER NOT NULL,
        make TEXT NOT NULL,
        model TEXT NOT NULL,
        year TEXT,
        license_plate TEXT,
        vin TEXT,
        color TEXT,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (customer_id) REFERENCES customers(id) ON DELETE CASCADE
    )""",

    # Vendors (parts suppliers)
    """CREATE TABLE IF NOT EXISTS vendors (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        contact_person TEXT,
        email TEXT,
        phone TEXT,
        address TEXT,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Mechanics
    """CREATE TABLE IF NOT EXISTS mechanics (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT,
        phone TEXT,
        specialization TEXT,
        hourly_rate REAL DEFAULT 0.00 CHECK (hourly_rate >= 0),
        employment_type TEXT NOT NULL DEFAULT 'fulltime'
            CHECK (employment_type IN ('fulltime', 'contractor')),
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Parts inventory; invoice_ids is a JSON array of consuming invoices
    """CREATE TABLE IF NOT EXISTS parts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT,
        price REAL NOT NULL DEFAULT 0.00 CHECK (price >= 0),
        quantity REAL NOT NULL DEFAULT 0 CHECK (quantity >= 0),
        part_number TEXT,
        manufacturer TEXT,
        category TEXT,
        location TEXT,
        unit TEXT DEFAULT 'piece',
        vendor_id INTEGER,
        reorder_level INTEGER DEFAULT 0 CHECK (reorder_level >= 0),
        invoice_ids TEXT NOT NULL DEFAULT '[]',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (vendor_id) REFERENCES vendors(id) ON DELETE SET NULL
    )""",

    # Invoices
    """CREATE TABLE IF NOT EXISTS invoices (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        customer_id INTEGER NOT NULL,
        vehicle_id INTEGER NOT NULL,
        date TEXT NOT NULL,
        due_date TEXT,
        status TEXT NOT NULL DEFAULT 'open'
            CHECK (status IN ('open', 'in-progress', 'completed', 'paid',
                              'partial', 'overdue', 'draft')),
        tax_rate REAL NOT NULL DEFAULT 0 CHECK (tax_rate >= 0),
        discount_type TEXT NOT NULL DEFAULT 'none'
            CHECK (discount_type IN ('none', 'percentage', 'fixed')),
        discount_value REAL NOT NULL DEFAULT 0 CHECK (discount_value >= 0),
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (customer_id) REFERENCES customers(id) ON DELETE RESTRICT,
        FOREIGN KEY (vehicle_id) REFERENCES vehicles(id) ON DELETE RESTRICT
    )""",

    # Tasks (labor); a task is billed on at most one invoice
    """CREATE TABLE IF NOT EXISTS tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'open'
            CHECK (status IN ('open', 'in-progress', 'completed',
                              'blocked', 'canceled')),
        location TEXT NOT NULL DEFAULT 'workshop'
            CHECK (location IN ('workshop', 'roadside', 'other')),
        hours_estimated REAL DEFAULT 0 CHECK (hours_estimated >= 0),
        hours_spent REAL DEFAULT 0 CHECK (hours_spent >= 0),
        price REAL DEFAULT 0 CHECK (price >= 0),
        labor_rate REAL,
        skill_level TEXT,
        mechanic_id INTEGER,
        vehicle_id INTEGER,
        invoice_id INTEGER,
        completed_at TIMESTAMP,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (mechanic_id) REFERENCES mechanics(id) ON DELETE SET NULL,
        FOREIGN KEY (vehicle_id) REFERENCES vehicles(id) ON DELETE SET NULL,
        FOREIGN KEY (invoice_id) REFERENCES invoices(id) ON DELETE SET NULL
    )""",

    # Invoice line items; position keeps the caller's ordering
    """CREATE TABLE IF NOT EXISTS invoice_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        invoice_id INTEGER NOT NULL,
        position INTEGER NOT NULL DEFAULT 0,
        description TEXT NOT NULL,
        item_type TEXT NOT NULL
            CHECK (item_type IN ('part', 'labor', 'other')),
        quantity REAL NOT NULL CHECK (quantity > 0),
        price REAL NOT NULL DEFAULT 0 CHECK (price >= 0),
        part_id INTEGER,
        task_id INTEGER,
        is_auto_added INTEGER NOT NULL DEFAULT 0,
        unit_of_measure TEXT DEFAULT 'piece',
        creates_inventory_part INTEGER NOT NULL DEFAULT 0,
        creates_task INTEGER NOT NULL DEFAULT 0,
        custom_part_data TEXT,
        custom_labor_data TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (invoice_id) REFERENCES invoices(id) ON DELETE CASCADE,
        FOREIGN KEY (part_id) REFERENCES parts(id) ON DELETE SET NULL,
        FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE SET NULL
    )""",

    # Payments against an invoice
    """CREATE TABLE IF NOT EXISTS payments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        invoice_id INTEGER NOT NULL,
        amount REAL NOT NULL,
        method TEXT NOT NULL DEFAULT 'cash',
        date TEXT NOT NULL,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (invoice_id) REFERENCES invoices(id) ON DELETE CASCADE
    )""",

    # Expenses (parts purchases, rent, utilities, ...)
    """CREATE TABLE IF NOT EXISTS expenses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        category TEXT NOT NULL,
        description TEXT NOT NULL,
        amount REAL NOT NULL CHECK (amount >= 0),
        date TEXT NOT NULL,
        vendor_id INTEGER,
        invoice_id INTEGER,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (vendor_id) REFERENCES vendors(id) ON DELETE SET NULL,
        FOREIGN KEY (invoice_id) REFERENCES invoices(id) ON DELETE SET NULL
    )""",

    # Indexes
    "CREATE INDEX IF NOT EXISTS idx_vehicles_customer ON vehicles(customer_id)",
    "CREATE INDEX IF NOT EXISTS idx_parts_name ON parts(name)",
    "CREATE INDEX IF NOT EXISTS idx_parts_number ON parts(part_number)",
    "CREATE INDEX IF NOT EXISTS idx_invoices_status ON invoices(status)",
    "CREATE INDEX IF NOT EXISTS idx_invoices_customer ON invoices(customer_id)",
    "CREATE INDEX IF NOT EXISTS idx_invoice_items_invoice ON invoice_items(invoice_id)",
    "CREATE INDEX IF NOT EXISTS idx_invoice_items_task ON invoice_items(task_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_invoice ON tasks(invoice_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_vehicle ON tasks(vehicle_id)",
    "CREATE INDEX IF NOT EXISTS idx_payments_invoice ON payments(invoice_id)",
    "CREATE INDEX IF NOT EXISTS idx_expenses_invoice ON expenses(invoice_id)",

    # Auto-update timestamps
    """CREATE TRIGGER IF NOT EXISTS update_customers_timestamp
    AFTER UPDATE ON customers
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE customers SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_vehicles_timestamp
    AFTER UPDATE ON vehicles
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE vehicles SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_parts_timestamp
    AFTER UPDATE ON parts
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE parts SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_tasks_timestamp
    AFTER UPDATE ON tasks
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE tasks SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_invoices_timestamp
    AFTER UPDATE ON invoices
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE invoices SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_payments_timestamp
    AFTER UPDATE ON payments
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE payments SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_expenses_timestamp
    AFTER UPDATE ON expenses
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE expenses SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
    END""",

    # Record schema version
    f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})",
]

_SEED_VENDORS = [
    ("Walk-in Purchase", "Parts bought over the counter"),
]


def _get_schema_version(conn) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) as v FROM schema_version"
        ).fetchone()
        return row["v"] if row and row["v"] else 0
    except sqlite3.OperationalError:
        return 0


def initialize_database(db_connection):
    """Create all tables, indexes, triggers, and seed data.

    Safe to call on every start: an existing database at the current
    version is left untouched.
    """
    with db_connection.get_connection() as conn:
        conn.execute("PRAGMA foreign_keys = ON")

        version = _get_schema_version(conn)
        if version >= SCHEMA_VERSION:
            return

        for stmt in _SCHEMA_STATEMENTS:
            conn.execute(stmt)
        for name, notes in _SEED_VENDORS:
            conn.execute(
                "INSERT OR IGNORE INTO vendors (name, notes) VALUES (?, ?)",
                (name, notes),
            )
