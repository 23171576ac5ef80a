"""
Database Schemas for Fire Safety TN

Each Pydantic model represents one MongoDB collection:
- Product -> "products"
- Category -> "categories"
- Order -> "orders"
- UserProfile -> "users"
- StoreSettings -> "settings" (single document with id "store")

Cart lines never reach the database on their own; they live in the caller's
local storage until checkout snapshots them into an Order.
"""
from pydantic import BaseModel, Field, EmailStr
from typing import List, Optional, Literal, Dict, Any
from datetime import datetime

OrderStatus = Literal['Pending', 'Packed', 'Delivered', 'Cancelled']
PaymentMethod = Literal['UPI', 'Card', 'Net Banking', 'Cash on Delivery']

ORDER_STATUSES = ['Pending', 'Packed', 'Delivered', 'Cancelled']
COD = 'Cash on Delivery'


class Category(BaseModel):
    name: str = Field(..., description="Category name")


class Product(BaseModel):
    name: str = Field(..., description="Product name")
    description: str = Field("", description="Product description")
    price: float = Field(..., ge=0, description="Price in INR")
    stock: int = Field(..., ge=0, description="Available quantity")
    category: str = Field("", description="Category name, stored as plain text")
    image_url: Optional[str] = Field(None, description="Uploaded or external image URL")


class CartItem(BaseModel):
    id: str = Field(..., description="Product id")
    name: str
    price: float
    image_url: Optional[str] = None
    quantity: int = Field(1, ge=1)


class OrderItem(BaseModel):
    id: str
    name: str
    price: float
    quantity: int
    image_url: Optional[str] = None


class Order(BaseModel):
    user_id: Optional[str] = None
    customer_name: str
    email: EmailStr
    phone: str
    address: str = Field(..., description="Flattened 'address, city - pincode'")
    instructions: str = ""
    items: List[OrderItem]
    total: float
    status: OrderStatus = 'Pending'
    payment_method: PaymentMethod = COD
    payment_status: Literal['Pending', 'Paid'] = 'Pending'
    payment_details: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class UserProfile(BaseModel):
    name: str = ""
    email: EmailStr
    phone: str = ""
    address: str = ""
    city: str = ""
    pincode: str = ""
    role: str = Field("customer", description="customer | admin")


class StoreSettings(BaseModel):
    store_name: str = "Fire Safety Tamil Nadu"
    phone: str = ""
    address: str = ""
    gst_number: str = ""
    cod_enabled: bool = True


# ---------------------- Request bodies ----------------------

class ShippingForm(BaseModel):
    customer_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    pincode: str = ""
    instructions: str = ""


class PaymentDetails(BaseModel):
    upi_id: Optional[str] = None
    card_number: Optional[str] = None
    bank: Optional[str] = None


class BuyNow(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class CheckoutRequest(BaseModel):
    shipping: ShippingForm
    payment_method: PaymentMethod = COD
    payment_details: PaymentDetails = Field(default_factory=PaymentDetails)
    buy_now: Optional[BuyNow] = None
