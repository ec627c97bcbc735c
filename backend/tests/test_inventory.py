# Overview: Pytest coverage for stock adjustments and the stock movement log.

import pytest

from possync.errors import EntityNotFoundError, InvalidOperationError, InvalidStateError
from possync.extensions import db
from possync.models import Product, StockMovement
from possync.services.inventory_service import adjust_stock, list_stock_movements
from possync.services.lifecycle_service import create_entity
from possync.services.local_store import local_store
from possync.validation import ValidationError


class TestAdjustStock:
    def test_receiving_stock_logs_a_movement(self, app, scope_a, make_product):
        pid = make_product(scope_a)

        movement = adjust_stock(scope_a, pid, 5, "delivery")

        assert db.session.get(Product, pid).stock == 15
        assert movement.movement_id.startswith("mov_")
        assert movement.quantity_change == 5
        assert movement.reason == "delivery"
        assert movement.sync_status == "pending"
        assert movement.company_id == scope_a.company_id

    def test_negative_result_rejected_and_nothing_written(self, app, scope_a, make_product):
        pid = make_product(scope_a)

        with pytest.raises(InvalidStateError):
            adjust_stock(scope_a, pid, -15, "inventory loss")

        assert db.session.get(Product, pid).stock == 10
        assert db.session.query(StockMovement).count() == 0

    def test_down_to_zero_is_allowed(self, app, scope_a, make_product):
        pid = make_product(scope_a)
        adjust_stock(scope_a, pid, -10, "inventory loss")
        assert db.session.get(Product, pid).stock == 0

    def test_zero_change_is_a_noop(self, app, scope_a, make_product):
        pid = make_product(scope_a)
        seen = []
        local_store.subscribe(None, seen.append)

        assert adjust_stock(scope_a, pid, 0) is None
        assert db.session.query(StockMovement).count() == 0
        assert seen == []

    def test_services_have_no_stock(self, app, scope_a):
        sid = create_entity(scope_a, "products", {"name": "Repair", "price": 100, "type": "service"})
        with pytest.raises(InvalidOperationError):
            adjust_stock(scope_a, sid, 3)

    def test_missing_product(self, app, scope_a):
        with pytest.raises(EntityNotFoundError):
            adjust_stock(scope_a, "prod_missing", 3)

    @pytest.mark.parametrize("change", [1.5, "3", True])
    def test_quantity_must_be_integer(self, app, scope_a, make_product, change):
        pid = make_product(scope_a)
        with pytest.raises(ValidationError):
            adjust_stock(scope_a, pid, change)


class TestStockNeverNegative:
    def test_any_sequence_keeps_stock_non_negative(self, app, scope_a, make_product):
        pid = make_product(scope_a, stock=3)
        changes = [-2, -2, 4, -6, -5, 1, -1, -1]
        expected = 3
        for change in changes:
            if expected + change < 0:
                with pytest.raises(InvalidStateError):
                    adjust_stock(scope_a, pid, change)
            else:
                adjust_stock(scope_a, pid, change)
                expected += change
            assert db.session.get(Product, pid).stock == expected
            assert expected >= 0


class TestMovementHistory:
    def test_newest_first_and_filtered_by_product(self, app, scope_a, make_product):
        p1 = make_product(scope_a, name="Coffee")
        p2 = make_product(scope_a, name="Tea")
        adjust_stock(scope_a, p1, 1, "first")
        adjust_stock(scope_a, p2, 2, "other")
        adjust_stock(scope_a, p1, 3, "second")

        history = list_stock_movements(scope_a, p1)
        assert [m.reason for m in history] == ["second", "first"]
        assert len(list_stock_movements(scope_a)) == 3
