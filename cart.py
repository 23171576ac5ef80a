"""
Shopping cart kept in per-client local storage.

The cart is a single JSON array stored under the "cart" key of the caller's
local storage. Every change reads the whole array, edits it and writes it back.
"""
import json
import logging
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)

CART_KEY = "cart"


class LocalStorage:
    """Key/value string storage scoped to one client, backed by a collection."""

    def __init__(self, db, client_id: str, collection: str = "localstorage"):
        self.db = db
        self.client_id = client_id
        self.collection = collection

    def get_item(self, key: str) -> Optional[str]:
        doc = self.db[self.collection].find_one({"client_id": self.client_id, "key": key})
        return doc.get("value") if doc else None

    def set_item(self, key: str, value: str) -> None:
        self.db[self.collection].update_one(
            {"client_id": self.client_id, "key": key},
            {"$set": {"value": value}},
            upsert=True,
        )

    def remove_item(self, key: str) -> None:
        self.db[self.collection].delete_one({"client_id": self.client_id, "key": key})


def load_cart(storage: LocalStorage) -> List[Dict[str, Any]]:
    raw = storage.get_item(CART_KEY)
    if not raw:
        return []
    try:
        cart = json.loads(raw)
    except ValueError:
        log.warning("Unreadable cart for client %s, starting empty", storage.client_id)
        return []
    return cart if isinstance(cart, list) else []


def save_cart(storage: LocalStorage, cart: List[Dict[str, Any]]) -> None:
    storage.set_item(CART_KEY, json.dumps(cart))


def clear_cart(storage: LocalStorage) -> None:
    storage.remove_item(CART_KEY)


def add_item(cart: List[Dict[str, Any]], product: Dict[str, Any], quantity: int = 1) -> List[Dict[str, Any]]:
    """Merge `quantity` of `product` into the cart.

    A line with the same product id gets its quantity bumped, otherwise a new
    line snapshots the product's name, price and image. Stock is not checked.
    """
    for item in cart:
        if item["id"] == product["id"]:
            item["quantity"] = int(item.get("quantity", 1)) + int(quantity)
            return cart
    cart.append({
        "id": product["id"],
        "name": product.get("name", ""),
        "price": float(product.get("price", 0)),
        "image_url": product.get("image_url"),
        "quantity": int(quantity),
    })
    return cart


def update_quantity(cart: List[Dict[str, Any]], item_id: str, quantity: int) -> bool:
    # quantities below one are ignored, the line stays as it was
    if quantity < 1:
        return False
    for item in cart:
        if item["id"] == item_id:
            item["quantity"] = int(quantity)
            return True
    return False


def remove_item(cart: List[Dict[str, Any]], item_id: str) -> List[Dict[str, Any]]:
    return [item for item in cart if item["id"] != item_id]


def cart_total(cart: List[Dict[str, Any]]) -> float:
    return round(sum(float(item["price"]) * int(item["quantity"]) for item in cart), 2)


def cart_count(cart: List[Dict[str, Any]]) -> int:
    return len(cart)


def format_amount(amount: float) -> str:
    return f"{amount:.2f}"


def cart_summary(cart: List[Dict[str, Any]]) -> Dict[str, Any]:
    total = cart_total(cart)
    return {
        "items": cart,
        "count": cart_count(cart),
        "total": total,
        "total_display": format_amount(total),
    }
