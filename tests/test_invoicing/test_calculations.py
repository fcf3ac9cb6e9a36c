"""Tests for invoice money math."""

from datetime import date

import pytest

from shop_ledger.database.models import Invoice, InvoiceItem, Payment
from shop_ledger.invoicing.calculations import (
    calculate_amount_paid,
    calculate_balance_due,
    calculate_discount,
    calculate_invoice_total,
    calculate_overdue_amount,
    calculate_subtotal,
    calculate_total_receivables,
)


def make_invoice(prices=(100.0,), **kwargs):
    items = [InvoiceItem(description=f"Line {i}", price=p)
             for i, p in enumerate(prices)]
    return Invoice(items=items, **kwargs)


class TestTotals:
    def test_subtotal_uses_quantity(self):
        invoice = Invoice(items=[
            InvoiceItem(description="Oil", quantity=4, price=7.5),
            InvoiceItem(description="Filter", price=12),
        ])
        assert calculate_subtotal(invoice) == 42.0

    def test_tax_only(self):
        assert calculate_invoice_total(make_invoice(tax_rate=10)) == pytest.approx(110.0)

    def test_percentage_discount_before_tax(self):
        invoice = make_invoice(tax_rate=10, discount_type="percentage",
                               discount_value=20)
        assert calculate_discount(invoice, 100.0) == 20.0
        assert calculate_invoice_total(invoice) == pytest.approx(88.0)

    def test_fixed_discount(self):
        invoice = make_invoice(discount_type="fixed", discount_value=15)
        assert calculate_invoice_total(invoice) == 85.0

    def test_discount_type_none_ignores_value(self):
        invoice = make_invoice(discount_type="none", discount_value=50)
        assert calculate_invoice_total(invoice) == 100.0

    def test_empty_invoice_totals_zero(self):
        assert calculate_invoice_total(Invoice(tax_rate=10)) == 0.0


class TestBalances:
    def test_paid_and_balance(self):
        invoice = make_invoice(payments=[
            Payment(amount=30), Payment(amount=20.5),
        ])
        assert calculate_amount_paid(invoice) == 50.5
        assert calculate_balance_due(invoice) == 49.5

    def test_receivables_skip_paid(self):
        invoices = [
            make_invoice((100.0,), status="open"),
            make_invoice((40.0,), status="completed"),
            make_invoice((999.0,), status="paid"),
        ]
        assert calculate_total_receivables(invoices) == 140.0

    def test_overdue(self):
        invoices = [
            make_invoice((100.0,), status="open", due_date="2024-01-31"),
            make_invoice((50.0,), status="open", due_date="2024-03-01"),
            make_invoice((70.0,), status="paid", due_date="2024-01-01"),
            make_invoice((20.0,), status="open"),
        ]
        assert calculate_overdue_amount(invoices, today=date(2024, 2, 15)) == 100.0
