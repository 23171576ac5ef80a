import os
import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from fastapi import FastAPI, HTTPException, Depends, Query, Header, UploadFile, File
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from pydantic import BaseModel, EmailStr

import database
from database import create_document, get_documents
from schemas import (
    Category, Product, Order, UserProfile, StoreSettings, CartItem,
    CheckoutRequest, OrderStatus,
)
from cart import LocalStorage, load_cart, save_cart, clear_cart, add_item, update_quantity, remove_item, cart_summary
from checkout import place_order
from listing import search, newest_first, sort_products, paginate
from reports import dashboard_stats, analytics_summary
from storage import ImageStorage

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
log = logging.getLogger(__name__)

TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "8"))
STOREFRONT_PAGE_SIZE = 12
ADMIN_PAGE_SIZE = 10
PRIVATE_USER_FIELDS = ("password_hash", "current_token")

image_storage = ImageStorage(os.getenv("UPLOAD_DIR", "uploads"), os.getenv("PUBLIC_BASE_URL", ""))

app = FastAPI(title="Fire Safety TN API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------- Helpers ----------------------

def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), 100_000).hex()
    return f"{salt}${digest}"


def verify_password(password: str, stored: str) -> bool:
    salt, _, _ = (stored or "").partition("$")
    return bool(salt) and secrets.compare_digest(hash_password(password, salt), stored)


def serialize(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def public_user(doc: dict) -> dict:
    user = serialize(doc)
    for field in PRIVATE_USER_FIELDS:
        user.pop(field, None)
    return user


def parse_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid ID")


def get_db():
    if database.db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return database.db


def store_settings(db) -> dict:
    doc = db["settings"].find_one({"_id": "store"}) or {}
    doc.pop("_id", None)
    return {**StoreSettings().model_dump(), **doc}

# ---------------------- Schema endpoint ----------------------
@app.get("/schema")
def get_schema():
    return {
        "category": Category.model_json_schema(),
        "product": Product.model_json_schema(),
        "order": Order.model_json_schema(),
        "user": UserProfile.model_json_schema(),
        "settings": StoreSettings.model_json_schema(),
        "cart_item": CartItem.model_json_schema(),
    }

# ---------------------- Health ----------------------
@app.get("/")
def root():
    return {"brand": "Fire Safety TN", "status": "ok"}

@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": os.getenv("DATABASE_NAME") or "❌ Not Set",
        "collections": []
    }
    try:
        if database.db is None:
            response["database"] = "❌ Not Connected"
        else:
            response["database"] = "✅ Connected"
            response["collections"] = database.db.list_collection_names()
    except Exception as e:
        log.exception("Database check failed")
        response["database"] = f"⚠️ Error: {str(e)[:120]}"
    return response

# ---------------------- Auth utils ----------------------

def get_user_by_token(db, token: str) -> Optional[dict]:
    if not token:
        return None
    user = db["users"].find_one({"current_token.token": token})
    expires_at = (user or {}).get("current_token", {}).get("expires_at")
    if expires_at:
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if datetime.now(timezone.utc) > expires_at:
            return None
    return user


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.split(" ", 1)[1]


async def optional_user(authorization: Optional[str] = Header(default=None), db=Depends(get_db)) -> Optional[dict]:
    user = get_user_by_token(db, bearer_token(authorization))
    return public_user(user) if user else None


async def require_user(user: Optional[dict] = Depends(optional_user)) -> dict:
    # any signed-in account passes, there is no role check
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def client_storage(x_client_id: Optional[str] = Header(default=None), db=Depends(get_db)) -> LocalStorage:
    if not x_client_id:
        raise HTTPException(status_code=400, detail="Missing X-Client-Id header")
    return LocalStorage(db, x_client_id)


def issue_token(db, user_id) -> dict:
    token = secrets.token_hex(24)
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(hours=TOKEN_TTL_HOURS)
    db["users"].update_one(
        {"_id": user_id},
        {"$set": {"current_token": {"token": token, "expires_at": expires_at}, "last_login": now}},
    )
    return {"token": token, "expires_at": expires_at}

# ---------------------- Auth ----------------------
class SignupBody(BaseModel):
    name: str
    email: EmailStr
    password: str

class LoginBody(BaseModel):
    email: str
    password: str

class TokenInfo(BaseModel):
    token: str
    expires_at: datetime
    user: dict

@app.post("/api/auth/signup", response_model=TokenInfo)
def signup(body: SignupBody, db=Depends(get_db)):
    existing = db["users"].find_one({"email": body.email})
    if existing and existing.get("password_hash"):
        raise HTTPException(status_code=400, detail="Email already registered")
    if existing:
        # profile left by a guest checkout, claim it
        db["users"].update_one(
            {"_id": existing["_id"]},
            {"$set": {"name": body.name, "password_hash": hash_password(body.password), "updated_at": datetime.now(timezone.utc)}},
        )
        token = issue_token(db, existing["_id"])
        log.info("Guest profile %s converted to an account", body.email)
        return TokenInfo(user=public_user(db["users"].find_one({"_id": existing["_id"]})), **token)
    profile = UserProfile(name=body.name, email=body.email, role="customer").model_dump()
    profile["password_hash"] = hash_password(body.password)
    user_id = create_document("users", profile)
    token = issue_token(db, ObjectId(user_id))
    log.info("New account %s", body.email)
    return TokenInfo(user=public_user(db["users"].find_one({"_id": ObjectId(user_id)})), **token)

@app.post("/api/auth/login", response_model=TokenInfo)
def login(body: LoginBody, db=Depends(get_db)):
    user = db["users"].find_one({"email": body.email})
    if not user or not verify_password(body.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    token = issue_token(db, user["_id"])
    log.info("Signed in %s", body.email)
    return TokenInfo(user=public_user(user), **token)

@app.post("/api/auth/logout")
def logout(user=Depends(require_user), db=Depends(get_db)):
    db["users"].update_one({"_id": ObjectId(user["id"])}, {"$unset": {"current_token": ""}})
    return {"signed_out": True}

@app.get("/api/auth/state")
def auth_state(user=Depends(optional_user)):
    return {"status": "authenticated" if user else "anonymous", "user": user}

# ---------------------- Storefront ----------------------
@app.get("/api/categories")
def list_category_names(db=Depends(get_db)):
    return ["all"] + [c.get("name") for c in get_documents("categories")]

@app.get("/api/products")
def list_products(
    search_term: Optional[str] = Query(default=None, alias="q"),
    category: Optional[str] = Query(default="all"),
    page: int = 1,
    db=Depends(get_db),
):
    items = [serialize(p) for p in get_documents("products")]
    items = search(items, search_term, ("name", "description"))
    if category and category != "all":
        items = [p for p in items if p.get("category") == category]
    return paginate(items, page, STOREFRONT_PAGE_SIZE)

@app.get("/api/products/{pid}")
def get_product(pid: str, db=Depends(get_db)):
    p = db["products"].find_one({"_id": parse_id(pid)})
    if not p:
        raise HTTPException(status_code=404, detail="Product not found")
    return serialize(p)

@app.get("/api/settings")
def get_store_settings(db=Depends(get_db)):
    return store_settings(db)

# ---------------------- Cart ----------------------
class AddToCartBody(BaseModel):
    product_id: str
    quantity: int = 1

class QuantityBody(BaseModel):
    quantity: int

@app.get("/api/cart")
def get_cart(storage: LocalStorage = Depends(client_storage)):
    return cart_summary(load_cart(storage))

@app.post("/api/cart/items")
def add_to_cart(body: AddToCartBody, storage: LocalStorage = Depends(client_storage), db=Depends(get_db)):
    if body.quantity < 1:
        raise HTTPException(status_code=400, detail="Quantity must be at least 1")
    p = db["products"].find_one({"_id": parse_id(body.product_id)})
    if not p:
        raise HTTPException(status_code=404, detail="Product not found")
    cart = add_item(load_cart(storage), serialize(p), body.quantity)
    save_cart(storage, cart)
    return cart_summary(cart)

@app.patch("/api/cart/items/{item_id}")
def set_cart_quantity(item_id: str, body: QuantityBody, storage: LocalStorage = Depends(client_storage)):
    cart = load_cart(storage)
    if update_quantity(cart, item_id, body.quantity):
        save_cart(storage, cart)
    return cart_summary(cart)

@app.delete("/api/cart/items/{item_id}")
def remove_from_cart(item_id: str, storage: LocalStorage = Depends(client_storage)):
    cart = remove_item(load_cart(storage), item_id)
    save_cart(storage, cart)
    return cart_summary(cart)

@app.delete("/api/cart")
def empty_cart(confirm: bool = False, storage: LocalStorage = Depends(client_storage)):
    if not confirm:
        raise HTTPException(status_code=400, detail="Confirm to clear your cart")
    clear_cart(storage)
    return cart_summary([])

# ---------------------- Orders ----------------------
@app.post("/api/checkout")
def checkout(
    body: CheckoutRequest,
    x_client_id: Optional[str] = Header(default=None),
    user=Depends(optional_user),
    db=Depends(get_db),
):
    storage = LocalStorage(db, x_client_id) if x_client_id else None
    settings = store_settings(db)
    return place_order(db, storage, body, user, cod_enabled=settings.get("cod_enabled", True))

@app.get("/api/my-orders")
def my_orders(user=Depends(require_user), db=Depends(get_db)):
    orders = list(db["orders"].find({"user_id": user["id"]}))
    if not orders and user.get("email"):
        orders = list(db["orders"].find({"email": user["email"]}))
    return [serialize(o) for o in newest_first(orders)]

@app.get("/api/orders/{oid}")
def get_order(oid: str, db=Depends(get_db)):
    o = db["orders"].find_one({"_id": parse_id(oid)})
    if not o:
        raise HTTPException(status_code=404, detail="Order not found")
    return serialize(o)

# ---------------------- Admin: dashboard & analytics ----------------------
@app.get("/api/admin/dashboard")
def admin_dashboard(user=Depends(require_user), db=Depends(get_db)):
    return dashboard_stats(
        get_documents("products"),
        db["categories"].count_documents({}),
        get_documents("orders"),
        db["users"].count_documents({}),
    )

@app.get("/api/admin/analytics")
def admin_analytics(user=Depends(require_user), db=Depends(get_db)):
    summary = analytics_summary(
        get_documents("orders"),
        get_documents("products"),
        db["users"].count_documents({}),
    )
    summary["recent_orders"] = [serialize(o) for o in summary["recent_orders"]]
    return summary

# ---------------------- Admin: products ----------------------
@app.get("/api/admin/products")
def admin_list_products(
    search_term: Optional[str] = Query(default=None, alias="q"),
    category: str = "all",
    sort: str = "newest",
    page: int = 1,
    user=Depends(require_user),
    db=Depends(get_db),
):
    items = get_documents("products")
    items = search(items, search_term, ("name", "description"))
    if category != "all":
        items = [p for p in items if p.get("category") == category]
    result = paginate(sort_products(items, sort), page, ADMIN_PAGE_SIZE)
    result["items"] = [serialize(p) for p in result["items"]]
    return result

@app.post("/api/admin/products")
def create_product(body: Product, user=Depends(require_user), db=Depends(get_db)):
    pid = create_document("products", body)
    log.info("Product %s created by %s", pid, user.get("email"))
    return {"id": pid}

@app.put("/api/admin/products/{pid}")
def update_product(pid: str, body: Product, user=Depends(require_user), db=Depends(get_db)):
    update = body.model_dump()
    update["updated_at"] = datetime.now(timezone.utc)
    res = db["products"].update_one({"_id": parse_id(pid)}, {"$set": update})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"updated": True}

@app.delete("/api/admin/products/{pid}")
def delete_product(pid: str, user=Depends(require_user), db=Depends(get_db)):
    res = db["products"].delete_one({"_id": parse_id(pid)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"deleted": True}

@app.post("/api/admin/uploads")
def upload_image(file: UploadFile = File(...), user=Depends(require_user)):
    data = file.file.read()
    try:
        url = image_storage.upload(file.filename, data)
    except OSError:
        log.exception("Image upload failed for %s", file.filename)
        raise HTTPException(status_code=500, detail="Image upload failed")
    return {"url": url}

@app.get("/files/{path:path}")
def get_file(path: str):
    try:
        return FileResponse(image_storage.resolve(path))
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="File not found")

# ---------------------- Admin: categories ----------------------
@app.get("/api/admin/categories")
def admin_list_categories(search_term: Optional[str] = Query(default=None, alias="q"), user=Depends(require_user), db=Depends(get_db)):
    cats = search(newest_first(get_documents("categories")), search_term, ("name",))
    return [serialize(c) for c in cats]

@app.post("/api/admin/categories")
def create_category(body: Category, user=Depends(require_user), db=Depends(get_db)):
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Category name is required")
    return {"id": create_document("categories", {"name": name})}

@app.delete("/api/admin/categories/{cat_id}")
def delete_category(cat_id: str, user=Depends(require_user), db=Depends(get_db)):
    # products keep their category string
    res = db["categories"].delete_one({"_id": parse_id(cat_id)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Category not found")
    return {"deleted": True}

# ---------------------- Admin: orders ----------------------
@app.get("/api/admin/orders")
def admin_list_orders(
    search_term: Optional[str] = Query(default=None, alias="q"),
    status: str = "All",
    page: int = 1,
    user=Depends(require_user),
    db=Depends(get_db),
):
    items = [serialize(o) for o in newest_first(get_documents("orders"))]
    items = search(items, search_term, ("id", "customer_name", "email"))
    if status != "All":
        items = [o for o in items if o.get("status") == status]
    return paginate(items, page, ADMIN_PAGE_SIZE)

@app.get("/api/admin/orders/{oid}")
def admin_get_order(oid: str, user=Depends(require_user), db=Depends(get_db)):
    return get_order(oid, db)

class UpdateStatusBody(BaseModel):
    status: OrderStatus

@app.patch("/api/admin/orders/{oid}/status")
def update_order_status(oid: str, body: UpdateStatusBody, user=Depends(require_user), db=Depends(get_db)):
    # any status may follow any other
    res = db["orders"].update_one(
        {"_id": parse_id(oid)},
        {"$set": {"status": body.status, "updated_at": datetime.now(timezone.utc)}},
    )
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Order not found")
    log.info("Order %s set to %s", oid, body.status)
    return {"updated": True}

# ---------------------- Admin: customers ----------------------
@app.get("/api/admin/customers")
def admin_list_customers(
    search_term: Optional[str] = Query(default=None, alias="q"),
    page: int = 1,
    user=Depends(require_user),
    db=Depends(get_db),
):
    items = [public_user(u) for u in newest_first(get_documents("users"))]
    items = search(items, search_term, ("name", "email", "id"))
    return paginate(items, page, ADMIN_PAGE_SIZE)

# ---------------------- Admin: settings ----------------------
class StoreSettingsUpdate(BaseModel):
    store_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    gst_number: Optional[str] = None
    cod_enabled: Optional[bool] = None

@app.put("/api/admin/settings")
def save_store_settings(body: StoreSettingsUpdate, user=Depends(require_user), db=Depends(get_db)):
    update = body.model_dump(exclude_none=True)
    if update:
        db["settings"].update_one({"_id": "store"}, {"$set": update}, upsert=True)
    return store_settings(db)

class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    email: Optional[EmailStr] = None
    new_password: Optional[str] = None
    confirm_password: Optional[str] = None

@app.put("/api/admin/profile")
def save_profile(body: ProfileUpdate, user=Depends(require_user), db=Depends(get_db)):
    if body.new_password and body.new_password != body.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")
    update = {}
    if body.display_name is not None and body.display_name != user.get("name"):
        update["name"] = body.display_name
    if body.email and body.email != user.get("email"):
        if db["users"].find_one({"email": body.email}):
            raise HTTPException(status_code=400, detail="Email already registered")
        update["email"] = body.email
    if body.new_password:
        update["password_hash"] = hash_password(body.new_password)
    if update:
        update["updated_at"] = datetime.now(timezone.utc)
        db["users"].update_one({"_id": ObjectId(user["id"])}, {"$set": update})
    return public_user(db["users"].find_one({"_id": ObjectId(user["id"])}))


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
