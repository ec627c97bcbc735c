# Overview: Pytest coverage for checkout: carts, payment details and the sale/stock transaction.

"""
Sales Tests

record_sale writes the sale and every product-line stock decrement in one
transaction. A missing product or a line that would take stock negative
leaves nothing behind.
"""

import pytest

from possync.errors import EntityNotFoundError, InvalidStateError
from possync.extensions import db
from possync.models import Product, Sale, StockMovement
from possync.services.lifecycle_service import create_entity
from possync.services.query_service import live_entities
from possync.services.sales_service import Cart, LineItem, SaleDraft, record_sale
from possync.validation import ValidationError


def _cash_draft(lines, amount_given=None):
    subtotal = sum(line.price * line.quantity for line in lines)
    details = {} if amount_given is None else {"amount_given": amount_given}
    return SaleDraft(items=lines, payment_method="cash", subtotal=subtotal, total=subtotal, payment_details=details)


class TestRecordSale:
    def test_coffee_sale_decrements_stock(self, app, scope_a, make_product):
        pid = make_product(scope_a)
        cart = Cart()
        cart.add(db.session.get(Product, pid), 3)

        sale = record_sale(scope_a, cart.to_draft("cash", {"amount_given": 2000}), cart=cart)

        assert db.session.get(Product, pid).stock == 7
        assert sale.total == 1500
        assert sale.status == "paid"
        assert sale.payment_details == {"amount_given": 2000, "change": 500}
        assert sale.items == [{"id": pid, "name": "Coffee", "price": 500, "quantity": 3, "type": "product"}]
        assert len(cart) == 0
        # Sale-side decrements do not write movement rows
        assert db.session.query(StockMovement).count() == 0

    def test_failing_live_query_still_clears_the_cart(self, app, scope_a, make_product):
        pid = make_product(scope_a)

        def on_products(rows):
            if rows and rows[0]["stock"] < 10:
                raise RuntimeError("presentation bug")

        live_entities(scope_a, "products", on_products)
        cart = Cart()
        cart.add(db.session.get(Product, pid), 3)

        record_sale(scope_a, cart.to_draft("cash", {"amount_given": 1500}), cart=cart)

        assert db.session.query(Sale).count() == 1
        assert db.session.get(Product, pid).stock == 7
        assert len(cart) == 0

    def test_missing_product_writes_nothing(self, app, scope_a, make_product):
        pid = make_product(scope_a)
        cart = Cart()
        cart.add(db.session.get(Product, pid), 2)
        cart.add({"id": "prod_ghost", "name": "Ghost", "price": 100, "type": "product"}, 1)

        with pytest.raises(EntityNotFoundError):
            record_sale(scope_a, cart.to_draft("cash"), cart=cart)

        assert db.session.query(Sale).count() == 0
        assert db.session.get(Product, pid).stock == 10
        assert len(cart) == 2

    def test_insufficient_stock_aborts_sale(self, app, scope_a, make_product):
        p1 = make_product(scope_a, name="Coffee", stock=10)
        p2 = make_product(scope_a, name="Tea", stock=1)
        lines = [LineItem(p1, "Coffee", 500, 2), LineItem(p2, "Tea", 300, 2)]

        with pytest.raises(InvalidStateError):
            record_sale(scope_a, _cash_draft(lines))

        assert db.session.query(Sale).count() == 0
        assert db.session.get(Product, p1).stock == 10
        assert db.session.get(Product, p2).stock == 1

    def test_service_lines_do_not_touch_stock(self, app, scope_a, make_product):
        pid = make_product(scope_a)
        svc = create_entity(scope_a, "products", {"name": "Gift wrap", "price": 200, "type": "service"})
        lines = [LineItem(pid, "Coffee", 500, 1), LineItem(svc, "Gift wrap", 200, 4, "service")]

        record_sale(scope_a, _cash_draft(lines))

        assert db.session.get(Product, pid).stock == 9
        assert db.session.get(Product, svc).stock == 0

    def test_empty_sale_rejected(self, app, scope_a):
        with pytest.raises(ValidationError):
            record_sale(scope_a, _cash_draft([]))

    def test_cash_short_rejected(self, app, scope_a, make_product):
        pid = make_product(scope_a)
        with pytest.raises(ValidationError):
            record_sale(scope_a, _cash_draft([LineItem(pid, "Coffee", 500, 2)], amount_given=900))
        assert db.session.get(Product, pid).stock == 10

    def test_credit_requires_customer(self, app, scope_a, make_product):
        pid = make_product(scope_a)
        draft = SaleDraft(items=[LineItem(pid, "Coffee", 500, 1)], payment_method="credit", subtotal=500, total=500)
        with pytest.raises(ValidationError):
            record_sale(scope_a, draft)

    def test_credit_sale_is_unpaid(self, app, scope_a, make_product, make_customer):
        pid = make_product(scope_a)
        cid = make_customer(scope_a)
        draft = SaleDraft(
            items=[LineItem(pid, "Coffee", 500, 2)],
            payment_method="credit",
            subtotal=1000,
            total=1000,
            customer_id=cid,
        )

        sale = record_sale(scope_a, draft)

        assert sale.status == "unpaid"
        assert sale.customer_id == cid
        assert db.session.get(Product, pid).stock == 8

    def test_credit_sale_for_unknown_customer(self, app, scope_a, make_product):
        pid = make_product(scope_a)
        draft = SaleDraft(
            items=[LineItem(pid, "Coffee", 500, 1)],
            payment_method="credit",
            subtotal=500,
            total=500,
            customer_id="cust_missing",
        )
        with pytest.raises(EntityNotFoundError):
            record_sale(scope_a, draft)
        assert db.session.get(Product, pid).stock == 10

    def test_mobile_money_needs_provider_and_reference(self, app, scope_a, make_product):
        pid = make_product(scope_a)
        line = [LineItem(pid, "Coffee", 500, 1)]

        with pytest.raises(ValidationError):
            record_sale(scope_a, SaleDraft(line, "mobile_money", 500, 500, payment_details={"provider": "paypal", "reference": "x"}))
        with pytest.raises(ValidationError):
            record_sale(scope_a, SaleDraft(line, "mobile_money", 500, 500, payment_details={"provider": "mvola"}))

        sale = record_sale(scope_a, SaleDraft(
            line, "mobile_money", 500, 500,
            payment_details={"provider": "mvola", "reference": " MV123 "},
        ))
        assert sale.payment_details == {"provider": "mvola", "reference": "MV123"}

    def test_draft_from_dict(self, app, scope_a, make_product):
        pid = make_product(scope_a)
        draft = SaleDraft.from_dict({
            "items": [{"id": pid, "name": "Coffee", "price": 500, "quantity": 1}],
            "payment_method": "card",
            "subtotal": 500,
            "total": 500,
        })

        sale = record_sale(scope_a, draft)
        assert sale.payment_method == "card"
        assert sale.payment_details == {}


class TestCart:
    def test_adding_same_product_merges_lines(self, app, scope_a, make_product):
        product = db.session.get(Product, make_product(scope_a))
        cart = Cart()
        cart.add(product)
        cart.add(product, 2)

        assert len(cart) == 1
        assert cart.items[0].quantity == 3
        assert cart.subtotal() == 1500

    def test_update_quantity_and_remove(self):
        cart = Cart()
        cart.add({"id": "prod_1", "name": "Coffee", "price": 500}, 1)
        cart.add({"id": "prod_2", "name": "Tea", "price": 300}, 1)

        cart.update_quantity("prod_1", 4)
        assert cart.subtotal() == 2300

        cart.update_quantity("prod_2", 0)
        assert [line.id for line in cart.items] == ["prod_1"]

        cart.remove("prod_1")
        assert len(cart) == 0

    def test_totals_with_discount_and_vat(self):
        cart = Cart()
        cart.add({"id": "prod_1", "name": "Coffee", "price": 1005}, 1)

        totals = cart.totals(discount=5, apply_vat=True, vat_rate=0.2)
        assert totals == {"subtotal": 1005, "discount": 5, "vat": 200, "total": 1200}

    def test_vat_rate_comes_from_config(self, app):
        app.config["VAT_RATE"] = 0.18
        cart = Cart()
        cart.add({"id": "prod_1", "name": "Coffee", "price": 1000}, 1)

        assert cart.totals(apply_vat=True)["vat"] == 180
        assert cart.to_draft("cash", apply_vat=True).total == 1180
        assert cart.totals(apply_vat=True, vat_rate=0.1)["vat"] == 100

    def test_vat_rounds_half_up(self):
        cart = Cart()
        cart.add({"id": "prod_1", "name": "Candy", "price": 5}, 1)
        assert cart.totals(apply_vat=True, vat_rate=0.1)["vat"] == 1

    def test_discount_cannot_exceed_subtotal(self):
        cart = Cart()
        cart.add({"id": "prod_1", "name": "Coffee", "price": 500}, 1)
        with pytest.raises(ValidationError):
            cart.totals(discount=600)
