from sqlalchemy import Column, String, Boolean, Float, Integer, DateTime, Text, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm.attributes import flag_modified
from datetime import datetime, timezone
import uuid

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def touch(record, *fields):
    """Mark JSON columns as changed after in-place edits of embedded documents."""
    for field in fields:
        flag_modified(record, field)


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(255), unique=True, nullable=False, index=True)
    external_id = Column(String(64), index=True)  # POS item id (standalone products)
    external_group_id = Column(String(64), index=True)  # POS item group id
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, default="")
    categories = Column(JSON, default=list)
    flavour = Column(String(255), default="")
    # [{size, flavour, price, quantity, external_id, sku, show_on_pos, image}]
    variants = Column(JSON, default=list)
    in_stock = Column(Boolean, default=True)
    stock_count = Column(Integer, nullable=False, default=0)
    images = Column(JSON, default=list)  # [{url, public_id}]
    price = Column(Float, nullable=False)
    show_on_pos = Column(Boolean, default=True)
    other_flavours = Column(JSON, default=list)
    bestseller = Column(Boolean, default=False)
    sweetness_level = Column(Integer, default=5)
    mint_level = Column(Integer, default=0)
    modifier_groups = Column(JSON, default=list)
    tax_rates = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False, unique=True)
    category_id = Column(String(64), index=True)  # POS category id when synced
    created_at = Column(DateTime(timezone=True), default=utcnow)


class ItemGroup(Base):
    __tablename__ = "item_groups"

    id = Column(String(36), primary_key=True, default=new_id)
    external_id = Column(String(64), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    attributes = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ModifierGroup(Base):
    __tablename__ = "modifier_groups"

    id = Column(String(36), primary_key=True, default=new_id)
    external_id = Column(String(64), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    modifiers = Column(JSON, default=list)  # [{id, name, price}]
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=False)
    phone = Column(String(50), default="")
    address = Column(JSON, default=dict)
    notifications_waitlist = Column(JSON, default=dict)  # {product_id: True}
    notifications = Column(JSON, default=list)  # [{id, product_id, message, read, created_at}]
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Admin(Base):
    __tablename__ = "admins"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False)
    password = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Cart(Base):
    __tablename__ = "carts"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), unique=True, nullable=False, index=True)
    items = Column(JSON, default=list)  # [{product_id, name, variant_size, quantity, price, image}]
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Wishlist(Base):
    __tablename__ = "wishlists"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), unique=True, nullable=False, index=True)
    products = Column(JSON, default=list)  # [{product_id, added_at}]
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    external_id = Column(String(64), index=True)  # POS order id when pulled
    user_id = Column(String(36), index=True)
    phone = Column(String(50), nullable=False)
    # [{id, product_id, name, variant_size, image, status, quantity, price}]
    items = Column(JSON, default=list)
    amount = Column(Float, nullable=False)
    address = Column(JSON, default=dict)
    status = Column(String(20), default="Pending", index=True)
    payment_method = Column(String(30), nullable=False)
    payment = Column(Boolean, default=False)
    discount_code = Column(String(50))
    discount_amount = Column(Float, default=0.0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class DiscountCode(Base):
    __tablename__ = "discount_codes"

    id = Column(String(36), primary_key=True, default=new_id)
    code = Column(String(50), unique=True, nullable=False, index=True)
    discount_type = Column(String(20), nullable=False, default="percentage")  # 'percentage' | 'flat'
    discount_value = Column(Float, nullable=False)
    applicable_products = Column(JSON, default=list)
    start_date = Column(DateTime(timezone=True))
    end_date = Column(DateTime(timezone=True))
    status = Column(String(20), default="active", index=True)
    usage_count = Column(Integer, default=0)
    max_usage = Column(Integer)  # None means unlimited
    created_at = Column(DateTime(timezone=True), default=utcnow)


class StoreSettings(Base):
    __tablename__ = "store_settings"

    id = Column(String(36), primary_key=True, default=new_id)
    navbar = Column(JSON, default=list)  # [{label, href}]
    hero = Column(JSON, default=dict)  # {slides: [{src, title, subtitle, slot}]}
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
