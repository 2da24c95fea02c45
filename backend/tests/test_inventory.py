"""Tests for inventory stock rules."""

from datetime import datetime

import pytest

from careops.core.inventory import is_low_stock, present_item, stock_percentage
from careops.schemas.inventory import InventoryItemRecord


@pytest.mark.parametrize("quantity,threshold,low", [
    (4, 5, True),
    (5, 5, True),
    (6, 5, False),
    (0, 0, True),
    (1, 0, False),
])
def test_low_stock_flag(quantity, threshold, low):
    assert is_low_stock(quantity, threshold) is low


def test_three_times_threshold_is_full():
    assert stock_percentage(15, 5) == 100.0


def test_percentage_is_capped():
    assert stock_percentage(100, 5) == 100.0


def test_zero_threshold_does_not_divide_by_zero():
    assert stock_percentage(0, 0) == 0.0
    assert stock_percentage(1, 0) == 100.0


def test_partial_fill():
    assert stock_percentage(5, 5) == pytest.approx(33.333, rel=1e-3)


def test_present_item_defaults_unit():
    item = InventoryItemRecord(
        id=1, workspace_id=1, name="Gloves", quantity=5, low_stock_threshold=5,
        unit=None, created_at=datetime(2024, 1, 1)
    )

    presented = present_item(item)

    assert presented["unit"] == "units"
    assert presented["is_low_stock"] is True
    assert presented["stock_percentage"] == 33.3
    assert presented["created_at"] == "2024-01-01T00:00:00"
