"""Application-wide constants."""

APP_NAME = "Shop-Ledger"
APP_VERSION = "1.0.0"

# Invoice statuses. The first four form the working lifecycle
# open -> in-progress -> completed -> paid; the rest are filter values.
INVOICE_STATUSES = [
    "open", "in-progress", "completed", "paid",
    "partial", "overdue", "draft",
]
INVOICE_LIFECYCLE = ["open", "in-progress", "completed", "paid"]

# Invoices still being worked on; task edits flow back into these
EDITABLE_INVOICE_STATUSES = ["open", "in-progress"]

# Invoices that can no longer take new part assignments
CLOSED_INVOICE_STATUSES = ["completed", "paid"]

# Invoice line item kinds
ITEM_TYPES = ["part", "labor", "other"]

DISCOUNT_TYPES = ["none", "percentage", "fixed"]

# Task statuses and locations
TASK_STATUSES = ["open", "in-progress", "completed", "blocked", "canceled"]
TASK_LOCATIONS = ["workshop", "roadside", "other"]

PAYMENT_METHODS = ["cash", "card", "bank_transfer", "check", "other"]

EXPENSE_CATEGORIES = [
    "Parts",
    "Tools",
    "Rent",
    "Utilities",
    "Salaries",
    "Insurance",
    "Other",
]

# Category used for expenses recorded by part purchases
PARTS_EXPENSE_CATEGORY = "Parts"

# Header fields an invoice update may change
INVOICE_HEADER_FIELDS = [
    "customer_id", "vehicle_id", "date", "due_date", "status",
    "tax_rate", "discount_type", "discount_value", "notes",
]
