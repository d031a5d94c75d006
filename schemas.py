"""
Database Schemas

MongoDB collection schemas and request/response bodies as Pydantic models.

Each stored model represents a collection in the database. Model name is
converted to lowercase for the collection name:
- User -> "user" collection
- Product -> "product" collection
- Order -> "order" collection

Documents are stored with snake_case keys; the JSON API speaks camelCase.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

ROLES = ("customer", "seller", "admin")
DEFAULT_ROLE = "customer"
DEFAULT_CURRENCY = "AED"
DEFAULT_ORDER_STATUS = "PENDING_PAYMENT"


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --------------------- Stored documents ---------------------

class User(ApiModel):
    """
    Users collection schema
    Collection name: "user"
    """
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address, unique")
    phone: str = Field(..., description="Contact phone number")
    password_hash: str = Field(..., description="bcrypt hash, never returned")
    role: str = Field(DEFAULT_ROLE, description="Role: customer | seller | admin")


class Product(ApiModel):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str = Field(..., description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    price: float = Field(..., ge=0, description="Unit price")
    currency: str = Field(DEFAULT_CURRENCY, description="ISO-4217 currency code")


class OrderItem(ApiModel):
    product_id: Optional[str] = Field(None, description="Product id as string, snapshot only")
    name: str = Field(..., description="Product name at order time")
    price: float = Field(..., ge=0, description="Unit price at order time")
    quantity: int = Field(1, ge=1)


class CustomerSnapshot(ApiModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class Order(ApiModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    owner_user_id: Optional[str] = Field(None, description="User id as string, null for guests")
    items: List[OrderItem]
    customer: CustomerSnapshot = Field(default_factory=CustomerSnapshot)
    status: str = Field(DEFAULT_ORDER_STATUS, description="Written once at creation")
    total: float = Field(0, ge=0)
    created_at: Optional[datetime] = None

    @field_validator("created_at")
    @classmethod
    def as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # stored dates are UTC even when the driver hands them back naive
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# --------------------- Requests ---------------------

class RegisterRequest(ApiModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class LoginRequest(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class LegacyOrderRequest(ApiModel):
    customer_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    items: List[OrderItem] = Field(default_factory=list)


class CheckoutRequest(ApiModel):
    items: List[OrderItem] = Field(default_factory=list)
    customer: CustomerSnapshot = Field(default_factory=CustomerSnapshot)


# --------------------- Responses ---------------------

class UserOut(ApiModel):
    id: str
    name: str
    email: EmailStr
    phone: Optional[str] = None
    role: str = DEFAULT_ROLE


class ProductOut(Product):
    id: str


class OwnerOut(ApiModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class OrderOut(Order):
    id: str
    owner: Optional[OwnerOut] = None


class SeedResponse(ApiModel):
    success: bool = True
    data: List[ProductOut]


class LoginResponse(ApiModel):
    success: bool = True
    token: str
    user: UserOut


class CheckoutResponse(ApiModel):
    success: bool = True
    order_id: str
    message: str
