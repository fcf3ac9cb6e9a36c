"""Tests for payment normalization and the payment diff."""

from datetime import date, datetime, timedelta, timezone

import pytest

from shop_ledger.config import Config
from shop_ledger.database.models import Payment
from shop_ledger.errors import ValidationError
from shop_ledger.invoicing.payments import (
    diff_payments,
    is_placeholder_id,
    normalize_amount,
    normalize_date,
    normalize_payment,
    resolve_payment_id,
)


class TestNormalizeAmount:
    @pytest.mark.parametrize("value, expected", [
        (10, 10.0), ("12.5", 12.5), (0, 0.0), (-3, -3.0),
    ])
    def test_numbers(self, value, expected):
        assert normalize_amount(value) == expected

    @pytest.mark.parametrize("value", [
        float("nan"), float("inf"), "-inf", "ten", None,
    ])
    def test_rejects_non_finite_and_garbage(self, value):
        with pytest.raises(ValidationError):
            normalize_amount(value)


class TestNormalizeDate:
    def test_trailing_z(self):
        assert normalize_date("2024-03-05T10:00:00Z") == "2024-03-05T10:00:00+00:00"

    def test_offset_converted_to_utc(self):
        assert (normalize_date("2024-03-05T12:00:00+02:00")
                == "2024-03-05T10:00:00+00:00")

    def test_plain_date_string(self):
        assert normalize_date("2024-03-05") == "2024-03-05T00:00:00+00:00"

    def test_date_and_datetime_objects(self):
        assert normalize_date(date(2024, 1, 2)) == "2024-01-02T00:00:00+00:00"
        aware = datetime(2024, 1, 2, 8, 30, tzinfo=timezone(timedelta(hours=-5)))
        assert normalize_date(aware) == "2024-01-02T13:30:00+00:00"

    def test_empty_means_now(self):
        stamp = datetime.fromisoformat(normalize_date(""))
        assert abs(datetime.now(timezone.utc) - stamp) < timedelta(minutes=1)

    @pytest.mark.parametrize("value", ["yesterday", "2024-13-45", 12345])
    def test_rejects_garbage(self, value):
        with pytest.raises(ValidationError):
            normalize_date(value)


class TestPaymentIds:
    @pytest.mark.parametrize("value", [None, "", "temp-1", "temp-abc"])
    def test_placeholders(self, value):
        assert is_placeholder_id(value)
        assert resolve_payment_id(value) is None

    def test_real_ids(self):
        assert resolve_payment_id(7) == 7
        assert resolve_payment_id(" 42 ") == 42
        assert not is_placeholder_id(7)

    @pytest.mark.parametrize("value", ["abc", 1.5, True])
    def test_rejects_unknown_id_shapes(self, value):
        with pytest.raises(ValidationError):
            resolve_payment_id(value)


class TestNormalizePayment:
    def test_from_dict(self):
        p = normalize_payment({"id": "temp-9", "amount": "15",
                               "date": "2024-02-01"}, invoice_id=4)
        assert p.id is None
        assert p.invoice_id == 4
        assert p.amount == 15.0
        assert p.method == "cash"
        assert p.date == "2024-02-01T00:00:00+00:00"

    def test_invoice_id_forced(self):
        p = normalize_payment(Payment(invoice_id=99, amount=1,
                                      date="2024-02-01"), invoice_id=4)
        assert p.invoice_id == 4

    @pytest.mark.parametrize("payment", [
        {"amount": 5, "date": "2024-02-01"},
        {"amount": 5, "date": "2024-02-01", "method": "  "},
        Payment(amount=5, date="2024-02-01"),
    ])
    def test_missing_method_uses_configured_default(self, monkeypatch,
                                                    payment):
        monkeypatch.setattr(Config, "DEFAULT_PAYMENT_METHOD", "check")
        assert normalize_payment(payment, invoice_id=1).method == "check"

    def test_explicit_method_kept(self, monkeypatch):
        monkeypatch.setattr(Config, "DEFAULT_PAYMENT_METHOD", "check")
        p = normalize_payment({"amount": 5, "method": "card"}, invoice_id=1)
        assert p.method == "card"

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError, match="tip"):
            normalize_payment({"amount": 1, "tip": 2}, invoice_id=1)

    def test_unsupported_type(self):
        with pytest.raises(ValidationError):
            normalize_payment(["amount", 1], invoice_id=1)


class TestDiffPayments:
    def existing(self):
        return [
            Payment(id=1, invoice_id=1, amount=10),
            Payment(id=2, invoice_id=1, amount=20),
        ]

    def test_update_insert_delete(self):
        diff = diff_payments(self.existing(), [
            {"id": 2, "amount": 25, "date": "2024-01-01"},
            {"id": 3, "amount": 5, "date": "2024-01-01"},
        ], invoice_id=1)
        assert [(p.id, p.amount) for p in diff.to_update] == [(2, 25.0)]
        assert [(p.id, p.amount) for p in diff.to_insert] == [(3, 5.0)]
        assert diff.to_delete == [1]

    def test_placeholders_are_inserts(self):
        diff = diff_payments([], [{"id": "temp-1", "amount": 3}], invoice_id=1)
        assert len(diff.to_insert) == 1
        assert diff.to_insert[0].id is None

    def test_empty_target_deletes_all(self):
        diff = diff_payments(self.existing(), [], invoice_id=1)
        assert diff.to_delete == [1, 2]
        assert not diff.is_empty

    def test_nothing_to_do(self):
        assert diff_payments([], [], invoice_id=1).is_empty

    def test_one_bad_amount_rejects_the_list(self):
        with pytest.raises(ValidationError):
            diff_payments(self.existing(), [
                {"id": 1, "amount": 10}, {"id": 2, "amount": "nan"},
            ], invoice_id=1)
