"""Payment normalization and the per-invoice payment diff."""

import math
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timezone
from typing import Optional

from shop_ledger.config import Config
from shop_ledger.database.models import Payment
from shop_ledger.errors import ValidationError

_PAYMENT_FIELDS = {f.name for f in fields(Payment)}


def normalize_amount(value) -> float:
    """Coerce an amount to a finite float."""
    try:
        amount = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Payment amount {value!r} is not a number") from e
    if not math.isfinite(amount):
        raise ValidationError(f"Payment amount {value!r} is not finite")
    return amount


def normalize_date(value) -> str:
    """Return a canonical UTC ISO-8601 timestamp for a payment date.

    Accepts ``datetime``, ``date`` or ISO strings (a trailing ``Z`` is
    allowed). Naive values are taken as UTC; an empty value means now.
    """
    if value is None or value == "":
        moment = datetime.now(timezone.utc)
    elif isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValidationError(f"Payment date {value!r} is not a date") from e
    else:
        raise ValidationError(f"Payment date {value!r} is not a date")

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="seconds")


def is_placeholder_id(payment_id) -> bool:
    """True for ids the client made up before the payment was saved."""
    if payment_id is None or payment_id == "":
        return True
    return (isinstance(payment_id, str)
            and payment_id.startswith(Config.TEMP_ID_PREFIX))


def resolve_payment_id(payment_id) -> Optional[int]:
    """Map a client-side id to a stored id, or None for a placeholder."""
    if is_placeholder_id(payment_id):
        return None
    if isinstance(payment_id, bool):
        raise ValidationError(f"Invalid payment id {payment_id!r}")
    if isinstance(payment_id, int):
        return payment_id
    if isinstance(payment_id, str) and payment_id.strip().isdigit():
        return int(payment_id.strip())
    raise ValidationError(f"Invalid payment id {payment_id!r}")


def normalize_payment(payment, invoice_id: int) -> Payment:
    """Build a clean Payment for ``invoice_id`` from a Payment or dict."""
    if isinstance(payment, dict):
        unknown = set(payment) - _PAYMENT_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown payment fields: {', '.join(sorted(unknown))}"
            )
        payment = Payment(**payment)
    elif not isinstance(payment, Payment):
        raise ValidationError(f"Unsupported payment value: {payment!r}")

    return Payment(
        id=resolve_payment_id(payment.id),
        invoice_id=invoice_id,
        amount=normalize_amount(payment.amount),
        method=(payment.method or "").strip() or Config.DEFAULT_PAYMENT_METHOD,
        date=normalize_date(payment.date),
        notes=payment.notes or "",
    )


@dataclass
class PaymentDiff:
    """Writes needed to turn the stored payments into the target list."""

    to_insert: list[Payment] = field(default_factory=list)
    to_update: list[Payment] = field(default_factory=list)
    to_delete: list[int] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_insert or self.to_update or self.to_delete)


def diff_payments(existing: list[Payment], target: list,
                  invoice_id: int) -> PaymentDiff:
    """Diff stored payments against the target list by id.

    Every target payment is normalized first, so one bad amount rejects
    the whole list before any write happens.
    """
    normalized = [normalize_payment(p, invoice_id) for p in target]

    seen = set()
    for payment in normalized:
        if payment.id is None:
            continue
        if payment.id in seen:
            raise ValidationError(f"Duplicate payment id {payment.id}")
        seen.add(payment.id)

    existing_ids = {p.id for p in existing}
    diff = PaymentDiff()
    for payment in normalized:
        if payment.id is not None and payment.id in existing_ids:
            diff.to_update.append(payment)
        else:
            diff.to_insert.append(payment)
    diff.to_delete = sorted(existing_ids - seen)
    return diff
