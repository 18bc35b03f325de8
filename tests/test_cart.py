"""カートの集約ルール"""

from decimal import Decimal

import pytest

from pos_order.cart import Cart, price_or_zero
from pos_order.models import Product


class TestPriceOrZero:
    @pytest.mark.parametrize("price", [None, float("nan"), "", "abc", float("inf"), True])
    def test_unusable_prices_become_zero(self, price):
        assert price_or_zero(price) == Decimal("0")

    @pytest.mark.parametrize(
        "price, expected",
        [(150, Decimal("150")), (99.9, Decimal("99.9")), ("12.50", Decimal("12.50")), (0, Decimal("0"))],
    )
    def test_numeric_prices_are_kept(self, price, expected):
        assert price_or_zero(price) == expected


class TestAdd:
    def test_adding_same_product_twice_increments_quantity(self, coffee):
        cart = Cart()
        cart.add(coffee)
        cart.add(coffee)
        assert len(cart) == 1
        assert cart.items[0].quantity == 2

    def test_items_keep_insertion_order(self, coffee, tea):
        cart = Cart()
        cart.add(tea)
        cart.add(coffee)
        cart.add(tea)
        assert [i.product.id for i in cart] == [8, 7]


class TestSetQuantity:
    def test_zero_removes_the_item(self, coffee):
        cart = Cart()
        cart.add(coffee)
        cart.set_quantity(coffee.id, 0)
        assert cart.get(coffee.id) is None
        assert cart.is_empty

    def test_negative_removes_the_item(self, coffee):
        cart = Cart()
        cart.add(coffee)
        cart.set_quantity(coffee.id, -3)
        assert cart.is_empty

    def test_replaces_quantity_in_place(self, coffee, tea):
        cart = Cart()
        cart.add(coffee)
        cart.add(tea)
        cart.set_quantity(coffee.id, 4)
        assert [(i.product.id, i.quantity) for i in cart] == [(7, 4), (8, 1)]

    def test_stock_is_not_a_ceiling(self, coffee):
        cart = Cart()
        cart.add(coffee)
        cart.set_quantity(coffee.id, 100)
        assert cart.quantity_of(coffee.id) == 100

    def test_unknown_product_is_ignored(self, coffee):
        cart = Cart()
        assert cart.set_quantity(coffee.id, 3) is None
        assert cart.is_empty


class TestChangeQuantity:
    def test_delta_below_one_removes(self, coffee):
        cart = Cart()
        cart.add(coffee)
        cart.change_quantity(coffee.id, -1)
        assert cart.is_empty

    def test_delta_increments(self, coffee):
        cart = Cart()
        cart.add(coffee)
        cart.change_quantity(coffee.id, 2)
        assert cart.quantity_of(coffee.id) == 3


class TestRemove:
    def test_remove_absent_is_noop(self, coffee, tea):
        cart = Cart()
        cart.add(coffee)
        cart.remove(tea.id)
        assert len(cart) == 1


class TestTotal:
    def test_missing_price_counts_as_zero(self):
        cart = Cart()
        priced = Product(id=1, name="A", price=100)
        unpriced = Product(id=2, name="B", price=None)
        cart.add(priced)
        cart.add(priced)
        for _ in range(3):
            cart.add(unpriced)
        assert cart.total() == 200

    def test_empty_cart_total_is_zero(self):
        assert Cart().total() == 0

    def test_string_price_is_parsed(self):
        cart = Cart()
        cart.add(Product(id=1, name="A", price="10.25"))
        cart.set_quantity(1, 2)
        assert cart.total() == Decimal("20.50")


class TestCanIncrement:
    def test_blocked_at_stock_level(self, coffee):
        cart = Cart()
        for _ in range(5):
            cart.add(coffee)
        assert cart.can_increment(coffee) is False

    def test_out_of_stock(self, tea):
        assert Cart().can_increment(tea) is False

    def test_unknown_stock_is_unlimited(self):
        assert Cart().can_increment(Product(id=1, name="A", price=1)) is True
