"""Data models for the database layer."""

import json
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

from shop_ledger.errors import PartialSideEffectFailure, ValidationError
from shop_ledger.utils.constants import ITEM_TYPES


@dataclass
class Customer:
    id: Optional[int] = None
    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Vehicle:
    id: Optional[int] = None
    customer_id: int = 0
    make: str = ""
    model: str = ""
    year: str = ""
    license_plate: str = ""
    vin: str = ""
    color: str = ""
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        """e.g. '2015 Honda Civic (ABC-123)'."""
        name = " ".join(p for p in (self.year, self.make, self.model) if p)
        if self.license_plate:
            return f"{name} ({self.license_plate})"
        return name


@dataclass
class Vendor:
    id: Optional[int] = None
    name: str = ""
    contact_person: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Mechanic:
    id: Optional[int] = None
    name: str = ""
    email: str = ""
    phone: str = ""
    specialization: str = ""
    hourly_rate: float = 0.0
    employment_type: str = "fulltime"  # 'fulltime' or 'contractor'
    is_active: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Part:
    id: Optional[int] = None
    name: str = ""
    description: str = ""
    price: float = 0.0
    quantity: float = 0
    part_number: str = ""
    manufacturer: str = ""
    category: str = ""
    location: str = ""
    unit: str = "piece"
    vendor_id: Optional[int] = None
    reorder_level: int = 0
    invoice_ids: str = "[]"  # JSON array of invoice ids consuming this part
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Joined fields (not stored directly)
    vendor_name: str = field(default="", repr=False)

    @property
    def display_name(self) -> str:
        return self.name or self.description or self.part_number or "(Unnamed)"

    @property
    def invoice_id_list(self) -> list[int]:
        try:
            return json.loads(self.invoice_ids) if self.invoice_ids else []
        except (json.JSONDecodeError, TypeError):
            return []

    @property
    def is_low_stock(self) -> bool:
        return self.reorder_level > 0 and self.quantity < self.reorder_level

    @property
    def total_value(self) -> float:
        return self.quantity * self.price


@dataclass
class Task:
    id: Optional[int] = None
    title: str = ""
    description: str = ""
    status: str = "open"
    location: str = "workshop"
    hours_estimated: float = 0.0
    hours_spent: float = 0.0
    price: float = 0.0
    labor_rate: Optional[float] = None
    skill_level: str = ""
    mechanic_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    invoice_id: Optional[int] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Joined fields
    mechanic_name: str = field(default="", repr=False)

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def is_billed(self) -> bool:
        return self.invoice_id is not None


@dataclass
class CustomPartData:
    """Catalog details for a part created from an invoice line."""

    part_number: str = ""
    manufacturer: str = ""
    category: str = ""
    location: str = ""

    def to_json(self) -> str:
        return json.dumps(asdict(self))


@dataclass
class CustomLaborData:
    """Rate details for a task created from an invoice line."""

    labor_rate: Optional[float] = None
    skill_level: str = ""

    def to_json(self) -> str:
        return json.dumps(asdict(self))


def _coerce_payload(value, cls):
    """Accept a payload as dataclass, dict or stored JSON text."""
    if value is None or isinstance(value, cls):
        return value
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Malformed {cls.__name__}: {e}") from e
    if isinstance(value, dict):
        try:
            return cls(**value)
        except TypeError as e:
            raise ValidationError(f"Malformed {cls.__name__}: {e}") from e
    raise ValidationError(f"Unsupported {cls.__name__} payload: {value!r}")


@dataclass
class InvoiceItem:
    """One invoice line, checked as a variant of its ``item_type``.

    * ``part``  -- links an existing part (``part_id``) or creates one
      (``creates_inventory_part`` + ``custom_part_data``).
    * ``labor`` -- links an existing task (``task_id``) or creates one
      (``creates_task`` + ``custom_labor_data``).
    * ``other`` -- carries no linkage at all.

    Any field that does not belong to the variant raises ValidationError.
    """

    id: Optional[int] = None
    invoice_id: Optional[int] = None
    position: int = 0
    description: str = ""
    item_type: str = "other"
    quantity: float = 1
    price: float = 0.0
    part_id: Optional[int] = None
    task_id: Optional[int] = None
    is_auto_added: int = 0
    unit_of_measure: str = "piece"
    creates_inventory_part: int = 0
    creates_task: int = 0
    custom_part_data: Optional[CustomPartData] = None
    custom_labor_data: Optional[CustomLaborData] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.custom_part_data = _coerce_payload(
            self.custom_part_data, CustomPartData
        )
        self.custom_labor_data = _coerce_payload(
            self.custom_labor_data, CustomLaborData
        )
        self.validate()

    def validate(self):
        """Raise ValidationError unless the item is a well-formed variant."""
        label = self.description or "(no description)"
        if self.item_type not in ITEM_TYPES:
            raise ValidationError(
                f"Item '{label}': unknown type '{self.item_type}'"
            )
        if (not isinstance(self.quantity, (int, float))
                or not math.isfinite(self.quantity) or self.quantity <= 0):
            raise ValidationError(
                f"Item '{label}': quantity must be greater than zero"
            )
        if (not isinstance(self.price, (int, float))
                or not math.isfinite(self.price) or self.price < 0):
            raise ValidationError(
                f"Item '{label}': price cannot be negative"
            )

        has_part_fields = bool(
            self.part_id is not None or self.creates_inventory_part
            or self.custom_part_data is not None
        )
        has_labor_fields = bool(
            self.task_id is not None or self.creates_task
            or self.custom_labor_data is not None
        )

        if self.item_type == "part":
            if has_labor_fields:
                raise ValidationError(
                    f"Part item '{label}' cannot carry task fields"
                )
            if self.creates_inventory_part and self.custom_part_data is None:
                raise ValidationError(
                    f"Part item '{label}' creates a part but has no part data"
                )
            if self.creates_inventory_part and self.part_id is not None:
                raise ValidationError(
                    f"Part item '{label}' both links and creates a part"
                )
        elif self.item_type == "labor":
            if has_part_fields:
                raise ValidationError(
                    f"Labor item '{label}' cannot carry part fields"
                )
            if self.creates_task and self.custom_labor_data is None:
                raise ValidationError(
                    f"Labor item '{label}' creates a task but has no labor data"
                )
            if self.creates_task and self.task_id is not None:
                raise ValidationError(
                    f"Labor item '{label}' both links and creates a task"
                )
        elif has_part_fields or has_labor_fields:
            raise ValidationError(
                f"Item '{label}' of type 'other' cannot link parts or tasks"
            )

    @property
    def line_total(self) -> float:
        return self.quantity * self.price

    @property
    def is_custom(self) -> bool:
        return bool(self.creates_inventory_part or self.creates_task)


@dataclass
class Payment:
    id: Optional[int] = None
    invoice_id: Optional[int] = None
    amount: float = 0.0
    method: str = ""
    date: str = ""
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Expense:
    id: Optional[int] = None
    category: str = ""
    description: str = ""
    amount: float = 0.0
    date: str = ""
    vendor_id: Optional[int] = None
    invoice_id: Optional[int] = None
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Joined fields
    vendor_name: str = field(default="", repr=False)


@dataclass
class SideEffectOutcome:
    """Result of applying one invoice item's inventory/task side effect."""

    item: InvoiceItem
    action: str = "none"  # create_part, create_task, consume_part, link_task
    error: Optional[PartialSideEffectFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Invoice:
    id: Optional[int] = None
    customer_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    date: str = ""
    due_date: Optional[str] = None
    status: str = "open"
    tax_rate: float = 0.0
    discount_type: str = "none"  # 'none', 'percentage' or 'fixed'
    discount_value: float = 0.0
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Joined fields (not stored directly)
    customer_name: str = field(default="", repr=False)
    vehicle_info: str = field(default="", repr=False)
    items: list[InvoiceItem] = field(default_factory=list, repr=False)
    payments: list[Payment] = field(default_factory=list, repr=False)
    side_effects: list[SideEffectOutcome] = field(
        default_factory=list, repr=False
    )

    @property
    def failed_side_effects(self) -> list[SideEffectOutcome]:
        return [o for o in self.side_effects if not o.ok]

    def raise_for_side_effects(self):
        """Raise the first recorded side-effect failure, if any."""
        failed = self.failed_side_effects
        if failed:
            raise failed[0].error
