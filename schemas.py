"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Uniform response envelope."""
    success: bool = True
    status_code: int = 200
    data: Optional[T] = None
    message: str = "Success"
    errors: List[Dict[str, Any]] = []


def api_response(data: Any, message: str, status_code: int = 200) -> Dict[str, Any]:
    """Build a success envelope."""
    return {
        "success": True,
        "status_code": status_code,
        "data": data,
        "message": message,
        "errors": []
    }


# Users

class RegisterRequest(BaseModel):
    """Schema for user registration."""
    username: str = Field(..., min_length=1)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
    full_name: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=10, max_length=15)
    password: str = Field(..., min_length=6)
    role: str = Field("BUYER", pattern=r"^(BUYER|SELLER)$")
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class LoginRequest(BaseModel):
    """Schema for login request; either username or email is required."""
    username: Optional[str] = None
    email: Optional[str] = None
    password: str


class UserResponse(BaseModel):
    """Public view of a user, without secrets."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    full_name: str
    phone_number: str
    role: str
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    created_at: datetime


class LoginResponse(BaseModel):
    """Schema for login response."""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# Catalog

class CategoryRequest(BaseModel):
    """Schema for creating or renaming a category."""
    name: str


class CategoryResponse(BaseModel):
    """Schema for category response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_at: datetime
    updated_at: datetime


class ProductCreate(BaseModel):
    """Schema for creating a product."""
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    product_image: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    stock: int = Field(..., ge=0)
    category_id: int


class ProductPatch(BaseModel):
    """Partial product update; only fields that are sent are applied."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    product_image: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    category_id: Optional[int] = None


class CategoryRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class ProductResponse(BaseModel):
    """Schema for product response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    product_image: str
    price: float
    stock: int
    category_id: int
    owner_id: int
    category: Optional[CategoryRef] = None
    created_at: datetime
    updated_at: datetime


# Cart

class AddCartItemRequest(BaseModel):
    """Schema for add to cart request."""
    product_id: int
    quantity: int = Field(1, ge=1)


class CartLineResponse(BaseModel):
    """Cart line resolved against the live catalog."""
    product_id: int
    name: str
    product_image: str
    price: float
    quantity: int
    subtotal: float


class CartResponse(BaseModel):
    """Schema for cart response."""
    id: int
    owner_id: int
    items: List[CartLineResponse]
    cart_total: float
    updated_at: Optional[datetime] = None


# Orders

class PlaceOrderRequest(BaseModel):
    """Schema for order placement."""
    address: Optional[str] = None
    payment_id: Optional[str] = None


class OrderItemResponse(BaseModel):
    """Order line with the price captured at order time."""
    product_id: int
    quantity: int
    price: float
    name: Optional[str] = None
    product_image: Optional[str] = None


class OrderResponse(BaseModel):
    """Schema for order response."""
    id: int
    customer_id: int
    items: List[OrderItemResponse]
    order_price: float
    address: str
    status: str
    payment_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
