"""Tests for data models."""

import pytest

from shop_ledger.database.models import (
    CustomLaborData,
    CustomPartData,
    Invoice,
    InvoiceItem,
    Part,
    SideEffectOutcome,
    Vehicle,
)
from shop_ledger.errors import PartialSideEffectFailure, ValidationError


class TestPartModel:
    def test_invoice_id_list_parses_json(self):
        part = Part(name="Filter", invoice_ids="[3, 7]")
        assert part.invoice_id_list == [3, 7]

    def test_invoice_id_list_tolerates_garbage(self):
        assert Part(invoice_ids="not json").invoice_id_list == []

    def test_low_stock(self):
        assert Part(quantity=2, reorder_level=5).is_low_stock
        assert not Part(quantity=5, reorder_level=5).is_low_stock
        assert not Part(quantity=0, reorder_level=0).is_low_stock

    def test_total_value(self):
        assert Part(quantity=4, price=2.5).total_value == 10.0

    def test_display_name_falls_back(self):
        assert Part(part_number="PN-1").display_name == "PN-1"
        assert Part().display_name == "(Unnamed)"


class TestVehicleModel:
    def test_display_name_with_plate(self):
        v = Vehicle(year="2015", make="Honda", model="Civic",
                    license_plate="ABC-123")
        assert v.display_name == "2015 Honda Civic (ABC-123)"

    def test_display_name_without_plate(self):
        assert Vehicle(make="Ford", model="Transit").display_name == "Ford Transit"


class TestInvoiceItemVariants:
    def test_plain_other_item(self):
        item = InvoiceItem(description="Shop supplies", price=4.0)
        assert item.item_type == "other"
        assert item.line_total == 4.0

    def test_part_item_with_link(self):
        item = InvoiceItem(description="Filter", item_type="part", part_id=1)
        assert not item.is_custom

    def test_custom_part_item_from_dict(self):
        item = InvoiceItem(
            description="Wiper blade", item_type="part",
            creates_inventory_part=1,
            custom_part_data={"part_number": "WB-22", "manufacturer": "Bosch"},
        )
        assert isinstance(item.custom_part_data, CustomPartData)
        assert item.custom_part_data.part_number == "WB-22"
        assert item.is_custom

    def test_custom_labor_item_from_json_text(self):
        item = InvoiceItem(
            description="Diagnostics", item_type="labor", creates_task=1,
            custom_labor_data='{"labor_rate": 90, "skill_level": "senior"}',
        )
        assert item.custom_labor_data == CustomLaborData(90, "senior")

    @pytest.mark.parametrize("kwargs", [
        {"item_type": "part", "task_id": 1},
        {"item_type": "part", "creates_task": 1,
         "custom_labor_data": CustomLaborData()},
        {"item_type": "part", "creates_inventory_part": 1},
        {"item_type": "part", "part_id": 1, "creates_inventory_part": 1,
         "custom_part_data": CustomPartData()},
        {"item_type": "labor", "part_id": 1},
        {"item_type": "labor", "creates_task": 1},
        {"item_type": "labor", "task_id": 1, "creates_task": 1,
         "custom_labor_data": CustomLaborData()},
        {"item_type": "other", "part_id": 1},
        {"item_type": "other", "custom_labor_data": CustomLaborData()},
        {"item_type": "service"},
    ])
    def test_rejects_invalid_variants(self, kwargs):
        with pytest.raises(ValidationError):
            InvoiceItem(description="bad", **kwargs)

    @pytest.mark.parametrize("quantity", [0, -1, float("nan"), float("inf")])
    def test_rejects_bad_quantity(self, quantity):
        with pytest.raises(ValidationError, match="quantity"):
            InvoiceItem(description="x", quantity=quantity)

    def test_rejects_negative_price(self):
        with pytest.raises(ValidationError, match="price"):
            InvoiceItem(description="x", price=-1)

    def test_rejects_malformed_payload(self):
        with pytest.raises(ValidationError, match="Malformed"):
            InvoiceItem(description="x", item_type="part",
                        creates_inventory_part=1, custom_part_data="{oops")

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            InvoiceItem(description="x", quantity=0)


class TestInvoiceSideEffects:
    def test_failed_side_effects_and_raise(self):
        item = InvoiceItem(description="Filter", item_type="part", part_id=9)
        failure = PartialSideEffectFailure("Filter", "consume_part", "gone")
        invoice = Invoice(side_effects=[
            SideEffectOutcome(item=item, action="consume_part"),
            SideEffectOutcome(item=item, action="consume_part", error=failure),
        ])
        assert len(invoice.failed_side_effects) == 1
        with pytest.raises(PartialSideEffectFailure, match="consume_part"):
            invoice.raise_for_side_effects()

    def test_raise_for_side_effects_is_silent_when_clean(self):
        Invoice().raise_for_side_effects()
