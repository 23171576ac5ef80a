import json

import mongomock
import pytest

from cart import (
    CART_KEY, LocalStorage, add_item, cart_summary, cart_total, clear_cart,
    format_amount, load_cart, remove_item, save_cart, update_quantity,
)

EXTINGUISHER = {"id": "p1", "name": "CO2 Extinguisher", "price": 500, "image_url": None}
ALARM = {"id": "p2", "name": "Smoke Alarm", "price": 349.5, "image_url": "http://img/alarm.png"}


@pytest.fixture
def storage():
    return LocalStorage(mongomock.MongoClient()["carts"], "browser-1")


def test_adding_same_product_twice_increments_quantity():
    cart = add_item([], EXTINGUISHER)
    cart = add_item(cart, EXTINGUISHER, 2)
    assert len(cart) == 1
    assert cart[0]["quantity"] == 3


def test_add_new_product_appends_snapshot():
    cart = add_item(add_item([], EXTINGUISHER), ALARM)
    assert [it["id"] for it in cart] == ["p1", "p2"]
    assert cart[1] == {"id": "p2", "name": "Smoke Alarm", "price": 349.5, "image_url": "http://img/alarm.png", "quantity": 1}


def test_quantity_below_one_is_ignored():
    cart = add_item([], EXTINGUISHER, 2)
    assert update_quantity(cart, "p1", 0) is False
    assert cart[0]["quantity"] == 2


def test_update_quantity_overwrites():
    cart = add_item([], EXTINGUISHER, 2)
    assert update_quantity(cart, "p1", 5) is True
    assert cart[0]["quantity"] == 5
    assert update_quantity(cart, "missing", 5) is False


def test_remove_item():
    cart = add_item(add_item([], EXTINGUISHER), ALARM)
    assert [it["id"] for it in remove_item(cart, "p1")] == ["p2"]


def test_total_is_sum_of_lines_to_two_decimals():
    cart = add_item(add_item([], EXTINGUISHER, 2), ALARM, 3)
    assert cart_total(cart) == 2048.5
    assert format_amount(cart_total(cart)) == "2048.50"
    assert cart_total([]) == 0


def test_summary():
    summary = cart_summary(add_item([], ALARM, 2))
    assert summary["count"] == 1
    assert summary["total_display"] == "699.00"


def test_storage_round_trip_and_clear(storage):
    save_cart(storage, add_item([], EXTINGUISHER))
    assert load_cart(storage)[0]["id"] == "p1"
    clear_cart(storage)
    assert storage.get_item(CART_KEY) is None
    assert load_cart(storage) == []


def test_storage_is_scoped_per_client(storage):
    save_cart(storage, add_item([], EXTINGUISHER))
    other = LocalStorage(storage.db, "browser-2")
    assert load_cart(other) == []


def test_unreadable_cart_loads_empty(storage):
    storage.set_item(CART_KEY, "{not json")
    assert load_cart(storage) == []
    storage.set_item(CART_KEY, json.dumps({"id": "p1"}))
    assert load_cart(storage) == []
