"""
Database Schemas

MongoDB collection schemas for the shop backend, defined as Pydantic models.
Each top-level model represents a collection in the database.
Model name lowercased is the collection name:
- Product -> "product" collection
- User -> "user" collection (cart and orders are embedded)

Attributes are snake_case in Python; documents and JSON bodies use the
camelCase aliases (productId, inStock, zipCode, ...). Dump with
`model_dump(by_alias=True)` before writing to the store.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Product(Document):
    name: str = Field(..., description="Product name")
    price: float = Field(..., description="Unit price")
    description: Optional[str] = None
    image: Optional[str] = Field(None, description="Image URL")
    category: Optional[str] = None
    in_stock: bool = Field(True, description="Whether product is listed")
    created_at: datetime = Field(default_factory=utcnow)


class Address(Document):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class CartItem(Document):
    product_id: str = Field(..., description="Copied product id, not a live reference")
    name: Optional[str] = None
    price: float
    quantity: int = 1
    added_at: datetime = Field(default_factory=utcnow)


class OrderItem(Document):
    product_id: str
    name: Optional[str] = None
    price: float
    quantity: int


class Order(Document):
    order_id: str = Field(..., description="ORDER_<epoch millis>")
    products: List[OrderItem] = Field(default_factory=list)
    total: float = 0
    status: str = Field("pending", description="Order status")
    created_at: datetime = Field(default_factory=utcnow)


class User(Document):
    name: str = Field(..., description="Full name")
    # Must be a deliverable address; email-validator rejects special-use
    # domains such as .local
    email: EmailStr = Field(..., description="Email address, unique")
    phone: Optional[str] = None
    address: Optional[Address] = None
    cart: List[CartItem] = Field(default_factory=list)
    orders: List[Order] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


# Request bodies

class RegisterInput(Document):
    name: str
    email: EmailStr
    phone: Optional[str] = None
    address: Optional[Address] = None


class CartItemInput(Document):
    product_id: str
    name: Optional[str] = None
    price: float
    quantity: int = 1
