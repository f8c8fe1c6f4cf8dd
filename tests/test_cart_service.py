"""Tests for cart mutations and the live-priced cart view."""
import pytest

from errors import InvalidInputError, InvalidStateError, NotFoundError
from models import Cart, Product


def _cart_lines(db, user_id):
    db.expire_all()
    cart = db.query(Cart).filter(Cart.owner_id == user_id).first()
    if cart is None:
        return None
    return [(item.product_id, item.quantity) for item in cart.items]


class TestAddItem:

    def test_first_add_creates_cart_with_single_line(self, db, cart_service, buyer, product_a):
        cart = cart_service.add_item(db, buyer.id, product_a.id, 2)

        assert cart["owner_id"] == buyer.id
        assert [(line["product_id"], line["quantity"]) for line in cart["items"]] == [(product_a.id, 2)]
        assert _cart_lines(db, buyer.id) == [(product_a.id, 2)]

    def test_quantity_defaults_to_one(self, db, cart_service, buyer, product_a):
        cart = cart_service.add_item(db, buyer.id, product_a.id)
        assert cart["items"][0]["quantity"] == 1

    def test_re_adding_replaces_quantity(self, db, cart_service, buyer, product_a):
        cart_service.add_item(db, buyer.id, product_a.id, 2)
        cart_service.add_item(db, buyer.id, product_a.id, 4)
        cart = cart_service.add_item(db, buyer.id, product_a.id, 1)

        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == 1
        assert _cart_lines(db, buyer.id) == [(product_a.id, 1)]

    def test_one_line_per_product_in_insertion_order(self, db, cart_service, buyer, product_a, product_b):
        cart_service.add_item(db, buyer.id, product_a.id, 1)
        cart_service.add_item(db, buyer.id, product_b.id, 2)
        cart = cart_service.add_item(db, buyer.id, product_a.id, 3)

        assert [(line["product_id"], line["quantity"]) for line in cart["items"]] == [
            (product_a.id, 3),
            (product_b.id, 2),
        ]

    def test_unknown_product(self, db, cart_service, buyer):
        with pytest.raises(NotFoundError):
            cart_service.add_item(db, buyer.id, 999, 1)
        assert _cart_lines(db, buyer.id) is None

    def test_quantity_above_stock_leaves_cart_unchanged(self, db, cart_service, buyer, product_a, product_b):
        cart_service.add_item(db, buyer.id, product_a.id, 2)

        with pytest.raises(InvalidStateError) as exc_info:
            cart_service.add_item(db, buyer.id, product_b.id, 4)

        assert exc_info.value.errors[0]["available"] == 3
        assert _cart_lines(db, buyer.id) == [(product_a.id, 2)]

    def test_replacing_with_quantity_above_stock_keeps_old_quantity(self, db, cart_service, buyer, product_a):
        cart_service.add_item(db, buyer.id, product_a.id, 2)

        with pytest.raises(InvalidStateError):
            cart_service.add_item(db, buyer.id, product_a.id, 6)

        assert _cart_lines(db, buyer.id) == [(product_a.id, 2)]

    def test_quantity_above_stock_without_cart_creates_nothing(self, db, cart_service, buyer, product_b):
        with pytest.raises(InvalidStateError):
            cart_service.add_item(db, buyer.id, product_b.id, 10)
        assert _cart_lines(db, buyer.id) is None

    def test_zero_quantity_rejected(self, db, cart_service, buyer, product_a):
        with pytest.raises(InvalidInputError):
            cart_service.add_item(db, buyer.id, product_a.id, 0)


class TestGetCart:

    def test_creates_empty_cart_on_first_access(self, db, cart_service, buyer):
        cart = cart_service.get_cart(db, buyer.id)

        assert cart["items"] == []
        assert cart["cart_total"] == 0
        assert _cart_lines(db, buyer.id) == []

    def test_total_uses_live_prices(self, db, cart_service, buyer, product_a, product_b):
        cart_service.add_item(db, buyer.id, product_a.id, 2)
        cart_service.add_item(db, buyer.id, product_b.id, 1)

        product_a.price = 12.0
        db.commit()

        cart = cart_service.get_cart(db, buyer.id)
        assert cart["items"][0]["price"] == 12.0
        assert cart["items"][0]["subtotal"] == 24.0
        assert cart["cart_total"] == 49.0

    def test_drops_lines_for_deleted_products(self, db, cart_service, buyer, product_a, product_b):
        cart_service.add_item(db, buyer.id, product_a.id, 2)
        cart_service.add_item(db, buyer.id, product_b.id, 1)

        db.delete(db.get(Product, product_b.id))
        db.commit()

        cart = cart_service.get_cart(db, buyer.id)
        assert [line["product_id"] for line in cart["items"]] == [product_a.id]
        assert cart["cart_total"] == 20.0


class TestRemoveItem:

    def test_without_cart_is_not_found(self, db, cart_service, buyer, product_a):
        with pytest.raises(NotFoundError):
            cart_service.remove_item(db, buyer.id, product_a.id)

    def test_removes_matching_line(self, db, cart_service, buyer, product_a, product_b):
        cart_service.add_item(db, buyer.id, product_a.id, 2)
        cart_service.add_item(db, buyer.id, product_b.id, 1)

        cart = cart_service.remove_item(db, buyer.id, product_a.id)

        assert [line["product_id"] for line in cart["items"]] == [product_b.id]
        assert _cart_lines(db, buyer.id) == [(product_b.id, 1)]

    def test_absent_line_is_a_no_op(self, db, cart_service, buyer, product_a, product_b):
        cart_service.add_item(db, buyer.id, product_a.id, 2)

        cart = cart_service.remove_item(db, buyer.id, product_b.id)

        assert [line["product_id"] for line in cart["items"]] == [product_a.id]


class TestClearCart:

    def test_without_cart_is_not_found(self, db, cart_service, buyer):
        with pytest.raises(NotFoundError):
            cart_service.clear_cart(db, buyer.id)

    def test_empties_lines(self, db, cart_service, buyer, product_a, product_b):
        cart_service.add_item(db, buyer.id, product_a.id, 2)
        cart_service.add_item(db, buyer.id, product_b.id, 1)

        cart = cart_service.clear_cart(db, buyer.id)

        assert cart["items"] == []
        assert cart["cart_total"] == 0
        assert _cart_lines(db, buyer.id) == []


def _cart_missing_once(cart_service, monkeypatch):
    """Make the next cart lookup miss, as if another request had not committed yet."""
    lookup = cart_service.find_cart
    calls = []

    def find_cart(db, user_id):
        calls.append(user_id)
        if len(calls) == 1:
            return None
        return lookup(db, user_id)

    monkeypatch.setattr(cart_service, "find_cart", find_cart)


class TestConcurrentCartCreation:

    def test_get_cart_reuses_cart_created_concurrently(self, db, cart_service, buyer, monkeypatch):
        cart_service.get_cart(db, buyer.id)
        existing = db.query(Cart).filter(Cart.owner_id == buyer.id).one()
        _cart_missing_once(cart_service, monkeypatch)

        cart = cart_service.get_cart(db, buyer.id)

        assert cart["id"] == existing.id
        assert db.query(Cart).count() == 1

    def test_add_item_retries_on_cart_created_concurrently(
        self, db, cart_service, buyer, product_a, product_b, monkeypatch
    ):
        cart_service.add_item(db, buyer.id, product_a.id, 1)
        _cart_missing_once(cart_service, monkeypatch)

        cart = cart_service.add_item(db, buyer.id, product_b.id, 2)

        assert [line["product_id"] for line in cart["items"]] == [product_a.id, product_b.id]
        assert _cart_lines(db, buyer.id) == [(product_a.id, 1), (product_b.id, 2)]
        assert db.query(Cart).count() == 1
