"""
Database Schemas for the Bakery Storefront

Each Pydantic model describes the documents of one MongoDB collection (or a
request body that becomes one). Stored field names are camelCase; models use
snake_case attributes with camelCase aliases, and accept either on input.

- Product -> "products"
- Category -> "categories"
- Review -> "reviews"
- CartItem -> embedded in "users".cart
- ShippingAddress / ContactInfo -> "addresses"
- PaymentInfo -> "payments" (last four digits only)
- OrderCreate -> "orders", "orderItems", "shopOrders", "deliveryTracking"
- ShopSettings -> "settings"
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -----------------
# Catalog
# -----------------

class Category(Document):
    name: str = Field(..., description="Category display name, e.g., 'Cakes'")
    description: Optional[str] = Field(None, description="Short description of the category")
    image: Optional[str] = Field(None, description="Category image path or URL")
    active: bool = Field(True, description="Shown in the storefront")


class Product(Document):
    name: str = Field(..., description="Product name")
    description: str = Field("", description="Marketing description")
    price: float = Field(..., ge=0, description="Unit price in USD")
    category: str = Field(..., description="Category name, e.g., 'Cakes'")
    subcategory: str = ""
    image: str = Field("", description="Primary product image URL")
    ingredients: str = ""
    allergens: str = ""
    preparation_time: str = ""
    serving_size: str = ""
    calories: int = Field(0, ge=0)
    inventory: int = Field(0, ge=0, description="Units on hand")
    in_stock: bool = True
    is_featured: bool = False
    is_seasonal: bool = False
    tags: List[str] = Field(default_factory=list)
    shop_id: str = Field("shop-1", description="Owning shop")


class ProductUpdate(Document):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    subcategory: Optional[str] = None
    image: Optional[str] = None
    ingredients: Optional[str] = None
    allergens: Optional[str] = None
    preparation_time: Optional[str] = None
    serving_size: Optional[str] = None
    calories: Optional[int] = Field(None, ge=0)
    inventory: Optional[int] = Field(None, ge=0)
    in_stock: Optional[bool] = None
    is_featured: Optional[bool] = None
    is_seasonal: Optional[bool] = None
    tags: Optional[List[str]] = None


class InventoryUpdate(Document):
    quantity: int = Field(..., ge=0)
    operation: str = Field("decrease", description="decrease | increase")


class Review(Document):
    product_id: str = Field(..., description="Reviewed product _id (string)")
    user_id: Optional[str] = None
    customer_name: str = Field("Anonymous", description="Name shown with the review")
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


# -----------------
# Cart
# -----------------

class CartItem(Document):
    id: str = Field(..., description="Product _id (string)")
    name: str = ""
    price: float = Field(0, ge=0)
    quantity: int = Field(1, ge=1)
    image: Optional[str] = None
    category: Optional[str] = None
    shop_id: Optional[str] = None


class Cart(Document):
    items: List[CartItem] = Field(default_factory=list)


class QuantityUpdate(Document):
    quantity: int


# ------------
# Order Models
# ------------

class OrderItem(Document):
    id: str = Field(..., description="Product _id (string)")
    name: str = Field("", description="Product name snapshot")
    price: float = Field(..., ge=0, description="Unit price at time of order")
    quantity: int = Field(..., ge=1, description="Quantity ordered")
    image: Optional[str] = None
    category: Optional[str] = None


class ShippingAddress(Document):
    first_name: str = ""
    last_name: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "US"


class ContactInfo(Document):
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


class PaymentInfo(Document):
    card_number: str = Field("", description="Card number; only the last four digits are kept")
    cardholder_name: str = ""
    method: str = "card"


class OrderCreate(Document):
    user_id: str = Field(..., description="Customer user id")
    user_email: Optional[EmailStr] = None
    shop_id: str = "shop-1"
    items: List[OrderItem]
    shipping_address: ShippingAddress = Field(default_factory=ShippingAddress)
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    payment_info: PaymentInfo = Field(default_factory=PaymentInfo)
    coupon_code: Optional[str] = None
    estimated_delivery: Optional[str] = None


class StatusUpdate(Document):
    status: str = Field(..., description="pending, confirmed, preparing, ready, out_for_delivery, delivered, cancelled")
    shop_notes: str = ""


class Confirmation(Document):
    notes: str = ""
    estimated_delivery: Optional[str] = None


class DeliveryUpdate(Document):
    status: str
    location: str = ""
    notes: str = ""


# -----------------
# Pricing / Settings
# -----------------

class QuoteRequest(Document):
    items: List[OrderItem]
    coupon_code: Optional[str] = None


class ShopSettings(Document):
    shop_name: Optional[str] = None
    shop_description: Optional[str] = None
    shop_address: Optional[str] = None
    shop_phone: Optional[str] = None
    shop_email: Optional[EmailStr] = None
    business_hours: Optional[Dict[str, str]] = None
    delivery_radius: Optional[float] = Field(None, ge=0)
    minimum_order_amount: Optional[float] = Field(None, ge=0)
    delivery_fee: Optional[float] = Field(None, ge=0)
    free_delivery_threshold: Optional[float] = Field(None, ge=0)
    tax_rate: Optional[float] = Field(None, ge=0, le=1)
    currency: Optional[str] = None
    is_open: Optional[bool] = None
    featured_products: Optional[List[str]] = None
    social_media: Optional[Dict[str, str]] = None
