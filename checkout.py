"""
Order placement.

One checkout is two independent writes: the customer profile upsert and the
order insert. Neither rolls the other back and a retried request can place a
second order.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import HTTPException
from pydantic import EmailStr, TypeAdapter, ValidationError

from cart import LocalStorage, cart_total, clear_cart, load_cart
from schemas import COD, CheckoutRequest, Order, OrderItem, PaymentDetails, ShippingForm

log = logging.getLogger(__name__)

REQUIRED_FIELDS = {
    "customer_name": "Full Name",
    "email": "Email Address",
    "phone": "Phone Number",
    "pincode": "Pincode",
    "city": "City",
    "address": "Complete Address",
}

email_address = TypeAdapter(EmailStr)

FAILURE_MESSAGE = "Failed to place order. Please try again."


def missing_fields(form: ShippingForm) -> List[str]:
    return [label for field, label in REQUIRED_FIELDS.items() if not getattr(form, field).strip()]


def flatten_address(form: ShippingForm) -> str:
    return f"{form.address}, {form.city} - {form.pincode}"


def payment_record(method: str, details: PaymentDetails) -> Dict[str, Any]:
    """Simulated gateways: keep what the method needs for display, nothing more."""
    if method == "Card":
        digits = "".join(ch for ch in (details.card_number or "") if ch.isdigit())
        return {"card_last4": digits[-4:]}
    if method == "UPI":
        return {"upi_id": details.upi_id or ""}
    if method == "Net Banking":
        return {"bank": details.bank or ""}
    return {}


def buy_now_items(db, product_id: str, quantity: int) -> List[Dict[str, Any]]:
    if not ObjectId.is_valid(product_id):
        raise HTTPException(status_code=400, detail="Invalid product id")
    product = db["products"].find_one({"_id": ObjectId(product_id)})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return [{
        "id": product_id,
        "name": product.get("name", ""),
        "price": float(product.get("price", 0)),
        "image_url": product.get("image_url"),
        "quantity": quantity,
    }]


def upsert_profile(db, form: ShippingForm, user: Optional[dict]) -> None:
    now = datetime.now(timezone.utc)
    if user:
        update = {
            "name": form.customer_name,
            "phone": form.phone,
            "address": form.address,
            "city": form.city,
            "pincode": form.pincode,
            "updated_at": now,
        }
        # an email owned by another account stays on the order only
        owner = db["users"].find_one({"email": form.email})
        if owner is None or str(owner["_id"]) == user["id"]:
            update["email"] = form.email
        db["users"].update_one(
            {"_id": ObjectId(user["id"])},
            {"$set": update},
            upsert=True,
        )
        return
    # guests get a profile the first time their email is seen
    if db["users"].find_one({"email": form.email}) is None:
        db["users"].insert_one({
            "name": form.customer_name,
            "email": form.email,
            "phone": form.phone,
            "address": flatten_address(form),
            "role": "customer",
            "created_at": now,
        })


def place_order(db, storage: Optional[LocalStorage], body: CheckoutRequest, user: Optional[dict], cod_enabled: bool = True) -> Dict[str, Any]:
    from_cart = body.buy_now is None
    if from_cart:
        items = load_cart(storage) if storage is not None else []
    else:
        items = buy_now_items(db, body.buy_now.product_id, body.buy_now.quantity)

    if not items:
        raise HTTPException(status_code=400, detail="Your cart is empty")

    missing = missing_fields(body.shipping)
    if missing:
        raise HTTPException(status_code=400, detail=f"Please fill in all required fields: {', '.join(missing)}")

    try:
        email_address.validate_python(body.shipping.email.strip())
    except ValidationError:
        raise HTTPException(status_code=400, detail="Please enter a valid email address")

    if body.payment_method == COD and not cod_enabled:
        raise HTTPException(status_code=400, detail="Cash on Delivery is currently unavailable")

    form = body.shipping
    now = datetime.now(timezone.utc)
    order = Order(
        user_id=user["id"] if user else None,
        customer_name=form.customer_name,
        email=form.email.strip(),
        phone=form.phone,
        address=flatten_address(form),
        instructions=form.instructions,
        items=[OrderItem(**it) for it in items],
        total=cart_total(items),
        status="Pending",
        payment_method=body.payment_method,
        payment_status="Pending" if body.payment_method == COD else "Paid",
        payment_details=payment_record(body.payment_method, body.payment_details),
        created_at=now,
    )

    try:
        upsert_profile(db, form, user)
        data = order.model_dump()
        data["updated_at"] = now
        res = db["orders"].insert_one(data)
    except Exception:
        log.exception("Error placing order for %s", form.email)
        raise HTTPException(status_code=500, detail=FAILURE_MESSAGE)

    order_id = str(res.inserted_id)
    if from_cart and storage is not None:
        try:
            clear_cart(storage)
        except Exception:
            # the order exists, the confirmation still goes out
            log.exception("Order %s placed but the cart was not cleared", order_id)
    log.info("Order %s placed: %d item(s), total %.2f, %s", order_id, len(items), order.total, order.payment_method)

    return {
        "order_id": order_id,
        "total": order.total,
        "status": order.status,
        "payment_method": order.payment_method,
        "message": "Thank you for your purchase. Your fire safety equipment will be delivered soon.",
    }
