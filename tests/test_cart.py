import pytest

from storefront.cart import CartStore
from storefront.storage import CART

from conftest import package


def test_totals_example(storage):
    """Two of a 10.00 package plus one 5.00 package"""
    cart = CartStore(storage)
    cart.add_item(package(1, 10.0), 2)
    cart.add_item(package(2, 5.0))
    assert cart.total_price == 25.0
    assert cart.total_items == 3


def test_adding_twice_increments(storage):
    cart = CartStore(storage)
    cart.add_item(package(1))
    cart.add_item(package(1), 3)
    assert len(cart) == 1
    assert cart.items[0].quantity == 4


def test_remove_absent_is_noop(storage):
    cart = CartStore(storage)
    cart.add_item(package(1))
    cart.remove_item(42)
    assert [i.package.id for i in cart.items] == [1]
    cart.remove_item(1)
    assert cart.items == []


def test_update_quantity(storage):
    cart = CartStore(storage)
    cart.add_item(package(1))
    cart.update_quantity(1, 5)
    assert cart.total_items == 5
    cart.update_quantity(1, 0)
    assert not cart.contains(1)


def test_cart_survives_reload(storage):
    cart = CartStore(storage)
    cart.add_item(package(7, 3.5), 2)
    reloaded = CartStore(storage)
    assert reloaded.items[0].package.id == 7
    assert reloaded.total_price == 7.0
    reloaded.clear()
    assert storage.get_json(CART) == []


def test_unreadable_entries_dropped(storage):
    storage.set_json(CART, [{"package": {"id": 1, "name": "Ok", "total_price": 2}, "quantity": 1}, {"bogus": True}])
    cart = CartStore(storage)
    assert [i.package.id for i in cart.items] == [1]


def test_non_positive_add_rejected(storage):
    cart = CartStore(storage)
    cart.add_item(package(1, 4.0), 2)
    for quantity in (0, -3):
        with pytest.raises(ValueError):
            cart.add_item(package(1, 4.0), quantity)
    assert cart.items[0].quantity == 2
    assert CartStore(storage).total_price == 8.0
