"""Invoice money math: subtotal, discount, tax, balance and receivables."""

from datetime import date
from typing import Optional

from shop_ledger.database.models import Invoice


def calculate_subtotal(invoice: Invoice) -> float:
    return sum(item.quantity * item.price for item in invoice.items)


def calculate_discount(invoice: Invoice, subtotal: float) -> float:
    """Discount amount for a subtotal: a percentage of it, or a fixed sum."""
    if not invoice.discount_value:
        return 0.0
    if invoice.discount_type == "percentage":
        return subtotal * (invoice.discount_value / 100)
    if invoice.discount_type == "fixed":
        return invoice.discount_value
    return 0.0


def calculate_invoice_total(invoice: Invoice) -> float:
    """Subtotal less discount, plus tax on the discounted amount.

    An invoice without items totals zero.
    """
    if not invoice.items:
        return 0.0
    subtotal = calculate_subtotal(invoice)
    after_discount = subtotal - calculate_discount(invoice, subtotal)
    tax = after_discount * (invoice.tax_rate / 100) if invoice.tax_rate else 0.0
    return after_discount + tax


def calculate_amount_paid(invoice: Invoice) -> float:
    return sum(p.amount for p in invoice.payments)


def calculate_balance_due(invoice: Invoice) -> float:
    return calculate_invoice_total(invoice) - calculate_amount_paid(invoice)


def calculate_total_receivables(invoices: list[Invoice]) -> float:
    """Sum of totals for every invoice not yet paid."""
    return sum(
        calculate_invoice_total(inv) for inv in invoices
        if inv.status != "paid"
    )


def calculate_overdue_amount(invoices: list[Invoice],
                             today: Optional[date] = None) -> float:
    """Sum of totals for unpaid invoices whose due date has passed."""
    today = today or date.today()
    total = 0.0
    for inv in invoices:
        if inv.status == "paid" or not inv.due_date:
            continue
        if date.fromisoformat(inv.due_date[:10]) < today:
            total += calculate_invoice_total(inv)
    return total
