"""API models using Pydantic.

Request/response schemas for the storefront, admin and POS sync endpoints.
Payloads use camelCase keys on the wire; attributes are snake_case.
"""
import json
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

ORDER_STATUSES = ("Pending", "Processing", "Shipped", "Delivered", "Cancelled")
OrderStatus = Literal["Pending", "Processing", "Shipped", "Delivered", "Cancelled"]


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        extra="ignore",
    )


def _parse_json_list(value: Any) -> Any:
    """Multipart forms send arrays as JSON strings (or comma lists for categories)."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return []
        if value.startswith("["):
            return json.loads(value)
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


# --- Catalog ---

class ImageRef(ApiModel):
    url: str
    public_id: Optional[str] = None


class Variant(ApiModel):
    size: str = Field(..., min_length=1)
    flavour: Optional[str] = ""
    price: float = Field(..., gt=0)
    quantity: int = Field(0, ge=0)
    sku: Optional[str] = None
    external_id: Optional[str] = None
    show_on_pos: bool = Field(True, alias="showOnPOS")
    image: Optional[str] = None


class VariantOut(ApiModel):
    size: str = ""
    flavour: Optional[str] = ""
    price: float = 0.0
    quantity: int = 0
    sku: Optional[str] = None
    external_id: Optional[str] = None
    show_on_pos: bool = Field(True, alias="showOnPOS")
    image: Optional[str] = None


class ProductIn(ApiModel):
    product_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = ""
    price: float = Field(..., gt=0)
    categories: List[str] = []
    flavour: Optional[str] = ""
    variants: List[Variant] = []
    in_stock: Optional[bool] = None
    stock_count: int = Field(..., ge=0)
    show_on_pos: Optional[bool] = Field(None, alias="showOnPOS")
    other_flavours: List[str] = []
    bestseller: bool = False
    sweetness_level: int = Field(5, ge=0, le=10)
    mint_level: int = Field(0, ge=0, le=10)
    images: List[ImageRef] = []

    @field_validator("categories", "variants", "other_flavours", mode="before")
    @classmethod
    def parse_lists(cls, value):
        return _parse_json_list(value)

    @field_validator("description")
    @classmethod
    def description_length(cls, value):
        if value and len(value) < 10:
            raise ValueError("description must be at least 10 characters")
        return value or ""


class ProductOut(ApiModel):
    id: str
    product_id: str
    external_id: Optional[str] = None
    external_group_id: Optional[str] = None
    name: str
    description: Optional[str] = ""
    categories: List[str] = []
    flavour: Optional[str] = ""
    variants: List[VariantOut] = []
    in_stock: bool = True
    stock_count: int = 0
    images: List[ImageRef] = []
    price: float
    show_on_pos: bool = Field(True, alias="showOnPOS")
    other_flavours: List[str] = []
    bestseller: bool = False
    sweetness_level: Optional[int] = 5
    mint_level: Optional[int] = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BulkDeleteIn(ApiModel):
    ids: List[str] = Field(..., min_length=1)


class CategoryIn(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)


class CategoryOut(ApiModel):
    id: str
    name: str
    category_id: Optional[str] = None


# --- Cart & wishlist ---

class CartAddIn(ApiModel):
    item_id: str = Field(..., min_length=1)
    variant_size: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


class CartUpdateIn(ApiModel):
    item_id: str = Field(..., min_length=1)
    variant_size: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=0)


class CartItemOut(ApiModel):
    product_id: str
    name: str = ""
    variant_size: str = "default"
    quantity: int = 1
    price: float = 0.0
    image: Optional[str] = ""


class WishlistIn(ApiModel):
    product_id: str = Field(..., min_length=1)


class MoveToCartIn(ApiModel):
    product_id: str = Field(..., min_length=1)
    variant_size: str = "default"


# --- Orders ---

class Address(ApiModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class OrderItemIn(ApiModel):
    product_id: str = Field(..., min_length=1)
    name: str
    variant_size: str = "default"
    quantity: int = Field(..., ge=1)
    price: float = Field(0, ge=0)


class PlaceOrderIn(ApiModel):
    phone: str = Field(..., min_length=1)
    items: List[OrderItemIn] = Field(..., min_length=1)
    address: Address
    amount: Optional[float] = None
    discount_code: Optional[str] = None


class OrderStatusIn(ApiModel):
    order_id: str
    status: OrderStatus
    item_id: Optional[str] = None


class CancelOrderIn(ApiModel):
    order_id: str


class OrderItemOut(ApiModel):
    id: Optional[str] = None
    product_id: Optional[str] = None
    name: str
    variant_size: str = "default"
    image: Optional[str] = ""
    status: str = "Pending"
    quantity: int
    price: float


class OrderOut(ApiModel):
    id: str
    external_id: Optional[str] = None
    user_id: Optional[str] = None
    phone: str
    items: List[OrderItemOut] = []
    amount: float
    address: Dict[str, Any] = {}
    status: str
    payment_method: str
    payment: bool = False
    discount_code: Optional[str] = None
    discount_amount: float = 0.0
    created_at: Optional[datetime] = None


# --- Discounts ---

class DiscountIn(ApiModel):
    code: str = Field(..., min_length=1)
    discount_type: Literal["percentage", "flat"] = "percentage"
    discount_value: float = Field(..., ge=0)
    applicable_products: List[str] = []
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: Literal["active", "inactive"] = "active"
    max_usage: Optional[int] = Field(None, ge=1)


class DiscountUpdateIn(ApiModel):
    code: Optional[str] = None
    discount_type: Optional[Literal["percentage", "flat"]] = None
    discount_value: Optional[float] = Field(None, ge=0)
    applicable_products: Optional[List[str]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: Optional[Literal["active", "inactive"]] = None
    max_usage: Optional[int] = Field(None, ge=1)


class DiscountOut(ApiModel):
    id: str
    code: str
    discount_type: str
    discount_value: float
    applicable_products: List[str] = []
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: str
    usage_count: int = 0
    max_usage: Optional[int] = None


class DiscountCartItem(ApiModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    variant_size: Optional[str] = None


class DiscountValidateIn(ApiModel):
    code: str = Field(..., min_length=1)
    cart_items: List[DiscountCartItem] = []


# --- Users & admins ---

class RegisterIn(ApiModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginIn(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileIn(ApiModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = ""
    address: Dict[str, Any] = {}


# --- Settings ---

class NavItem(ApiModel):
    label: str
    href: str


class Slide(ApiModel):
    src: str = ""
    title: str = ""
    subtitle: str = ""
    slot: Literal["banner", "grid"] = "banner"

    @field_validator("slot", mode="before")
    @classmethod
    def normalise_slot(cls, value):
        return "grid" if value == "grid" else "banner"


class HeroIn(ApiModel):
    slides: Optional[List[Slide]] = None
    images: Optional[List[str]] = None  # legacy shape
    title: Optional[str] = ""
    subtitle: Optional[str] = ""


class SettingsIn(ApiModel):
    navbar: Optional[List[NavItem]] = None
    hero: Optional[HeroIn] = None


# --- POS sync ---

SyncMode = Literal["pull", "push", "both"]


class SyncRequest(ApiModel):
    mode: SyncMode = "both"


def dump(model_cls, obj: Union[Any, List[Any]]):
    """Serialize ORM rows (or lists of rows) to camelCase JSON-ready dicts."""
    if isinstance(obj, list):
        return [model_cls.model_validate(o).model_dump(by_alias=True, mode="json") for o in obj]
    return model_cls.model_validate(obj).model_dump(by_alias=True, mode="json")
