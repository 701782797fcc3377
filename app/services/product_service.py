"""
Product Service: catalog CRUD, stock bookkeeping and restock notifications.

Every write is mirrored to the POS best-effort and broadcast to connected
clients; neither side effect can fail the save itself.
"""
import logging
import math
from typing import Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import String, cast, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import ProductIn, ProductOut, dump
from app.models.db_models import Cart, Product, User, new_id, touch, utcnow
from app.services import pos_push_service
from app.services.realtime_service import emit_global, emit_to_user

logger = logging.getLogger(__name__)


def product_payload(product: Product) -> Dict:
    return dump(ProductOut, product)


def find_variant(product: Product, variant_size: Optional[str]) -> Optional[dict]:
    for variant in product.variants or []:
        if variant.get("size") == variant_size:
            return variant
    return None


def available_stock(product: Product, variant_size: Optional[str] = None) -> int:
    """Stock for a variant when the product has variants, else the aggregate count."""
    if product.variants:
        variant = find_variant(product, variant_size)
        return int(variant.get("quantity") or 0) if variant else 0
    return int(product.stock_count or 0)


def recompute_stock(product: Product, in_stock: Optional[bool] = None):
    """Products with variants always carry the variant sum as their stock count."""
    if product.variants:
        product.stock_count = sum(int(v.get("quantity") or 0) for v in product.variants)
    product.in_stock = in_stock if in_stock is not None else (product.stock_count or 0) > 0


def adjust_stock(product: Product, variant_size: Optional[str], delta: int):
    """Apply a stock delta to the matching variant (or the aggregate), floored at zero."""
    variants = [dict(v) for v in (product.variants or [])]
    if variants:
        for variant in variants:
            if variant.get("size") == variant_size:
                variant["quantity"] = max(0, int(variant.get("quantity") or 0) + delta)
                break
        product.variants = variants
        touch(product, "variants")
    else:
        product.stock_count = max(0, int(product.stock_count or 0) + delta)
    recompute_stock(product)


def _apply_input(product: Product, data: ProductIn):
    product.product_id = data.product_id
    product.name = data.name
    product.description = data.description or ""
    product.price = float(data.price)
    product.categories = list(data.categories)
    product.flavour = data.flavour or ""
    product.variants = [v.model_dump() for v in data.variants]
    product.stock_count = data.stock_count
    product.other_flavours = list(data.other_flavours)
    product.bestseller = data.bestseller
    product.sweetness_level = data.sweetness_level
    product.mint_level = data.mint_level
    if data.show_on_pos is not None:
        product.show_on_pos = data.show_on_pos
    if data.images:
        product.images = [image.model_dump() for image in data.images]
    recompute_stock(product, data.in_stock)
    touch(product, "categories", "variants", "other_flavours", "images")


async def _ensure_unique_product_id(session: AsyncSession, product_id: str, exclude_id: Optional[str] = None):
    query = select(Product.id).where(Product.product_id == product_id)
    if exclude_id:
        query = query.where(Product.id != exclude_id)
    if (await session.execute(query)).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product ID already exists")


async def get_product(session: AsyncSession, product_id: str) -> Product:
    product = await session.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


async def add_product(session: AsyncSession, data: ProductIn) -> Product:
    await _ensure_unique_product_id(session, data.product_id)
    product = Product(id=new_id(), images=[], show_on_pos=True)
    _apply_input(product, data)
    session.add(product)
    await session.commit()
    logger.info(f"Product created: {product.name} ({product.product_id})", extra={"product_id": product.id})

    await pos_push_service.push_product(session, product)
    emit_global("productCreated", {"product": product_payload(product)})
    return product


async def list_products(session: AsyncSession, page: int = 1, limit: int = 10, search: Optional[str] = None) -> Dict:
    page = max(1, page)
    limit = max(1, limit)
    query = select(Product)
    count_query = select(func.count()).select_from(Product)

    if search:
        pattern = f"%{search.strip()}%"
        condition = or_(
            Product.name.ilike(pattern),
            Product.description.ilike(pattern),
            cast(Product.categories, String).ilike(pattern),
            Product.product_id.ilike(pattern),
        )
        query = query.where(condition)
        count_query = count_query.where(condition)

    total = (await session.execute(count_query)).scalar_one()
    result = await session.execute(
        query.order_by(Product.created_at.desc(), Product.id.desc()).offset((page - 1) * limit).limit(limit)
    )
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "products": [product_payload(p) for p in result.scalars().all()],
        "currentPage": page,
        "totalPages": total_pages,
        "totalProducts": total,
        "hasMore": page < total_pages,
    }


async def update_product(session: AsyncSession, product_id: str, data: ProductIn) -> Product:
    product = await get_product(session, product_id)
    await _ensure_unique_product_id(session, data.product_id, exclude_id=product.id)

    previous_stock = int(product.stock_count or 0)
    _apply_input(product, data)
    restocked = previous_stock == 0 and (product.stock_count or 0) > 0
    await session.commit()
    logger.info(f"Product updated: {product.name}", extra={"product_id": product.id})

    if restocked:
        await notify_waitlist(session, product)

    await pos_push_service.push_product(session, product)
    emit_global("productUpdated", {"product": product_payload(product)})
    return product


async def notify_waitlist(session: AsyncSession, product: Product) -> int:
    """Tell waitlisted users a product is back; returns how many were notified."""
    result = await session.execute(
        select(User).where(cast(User.notifications_waitlist, String).contains(product.id))
    )
    thumbnail = product.images[0]["url"] if product.images else None
    notified = 0

    for user in result.scalars().all():
        waitlist = dict(user.notifications_waitlist or {})
        if not waitlist.pop(product.id, False):
            continue
        user.notifications_waitlist = waitlist

        notifications = list(user.notifications or [])
        already_unread = any(n.get("product_id") == product.id and not n.get("read") for n in notifications)
        if not already_unread:
            notification = {
                "id": new_id(),
                "product_id": product.id,
                "message": f"{product.name} is back in stock",
                "read": False,
                "created_at": utcnow().isoformat(),
            }
            notifications.append(notification)
            user.notifications = notifications
            emit_to_user(user.id, "notification", {
                "id": notification["id"],
                "productId": product.id,
                "message": notification["message"],
                "read": False,
                "createdAt": notification["created_at"],
                "product": {"name": product.name, "thumbnail": thumbnail},
            })
            notified += 1
        touch(user, "notifications_waitlist", "notifications")

    await session.commit()
    if notified:
        logger.info(f"Notified {notified} waitlisted users about {product.name}")
    return notified


async def strip_from_carts(session: AsyncSession, product_ids: List[str]):
    """Remove deleted products from every cart."""
    ids = set(product_ids)
    result = await session.execute(select(Cart))
    for cart in result.scalars().all():
        items = [item for item in (cart.items or []) if item.get("product_id") not in ids]
        if len(items) != len(cart.items or []):
            cart.items = items
            touch(cart, "items")


async def remove_product(session: AsyncSession, product_id: str):
    product = await get_product(session, product_id)
    await session.delete(product)
    await strip_from_carts(session, [product.id])
    await session.commit()
    logger.info(f"Product removed: {product.name}", extra={"product_id": product.id})

    emit_global("productRemoved", {"productId": product.id})
    await pos_push_service.delete_remote_product(product)


async def delete_products(session: AsyncSession, ids: List[str]) -> int:
    result = await session.execute(select(Product).where(Product.id.in_(ids)))
    products = result.scalars().all()
    if not products:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No matching products found")

    removed_ids = [p.id for p in products]
    await session.execute(delete(Product).where(Product.id.in_(removed_ids)))
    await strip_from_carts(session, removed_ids)
    await session.commit()

    for product in products:
        emit_global("productRemoved", {"productId": product.id})
        await pos_push_service.delete_remote_product(product)
    logger.info(f"Bulk deleted {len(removed_ids)} products")
    return len(removed_ids)
