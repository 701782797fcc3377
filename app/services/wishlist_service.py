"""
Wishlist Service: per-user saved products.
"""
import logging
from typing import Dict

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db_models import Product, Wishlist, touch, utcnow
from app.services import cart_service
from app.services.product_service import product_payload

logger = logging.getLogger(__name__)


async def _get_wishlist(session: AsyncSession, user_id: str, create: bool = False):
    result = await session.execute(select(Wishlist).where(Wishlist.user_id == user_id))
    wishlist = result.scalar_one_or_none()
    if wishlist is None and create:
        wishlist = Wishlist(user_id=user_id, products=[])
        session.add(wishlist)
    return wishlist


async def add_to_wishlist(session: AsyncSession, user_id: str, product_id: str):
    if not await session.get(Product, product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    wishlist = await _get_wishlist(session, user_id, create=True)
    entries = list(wishlist.products or [])
    if any(entry.get("product_id") == product_id for entry in entries):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product already in wishlist")

    entries.append({"product_id": product_id, "added_at": utcnow().isoformat()})
    wishlist.products = entries
    touch(wishlist, "products")
    await session.commit()


async def remove_from_wishlist(session: AsyncSession, user_id: str, product_id: str):
    wishlist = await _get_wishlist(session, user_id)
    if not wishlist:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Wishlist not found")
    wishlist.products = [e for e in (wishlist.products or []) if e.get("product_id") != product_id]
    touch(wishlist, "products")
    await session.commit()


async def get_wishlist(session: AsyncSession, user_id: str) -> Dict:
    """Wishlist entries joined with their products; deleted products are dropped."""
    wishlist = await _get_wishlist(session, user_id)
    entries = list(wishlist.products or []) if wishlist else []
    if not entries:
        return {"userId": user_id, "products": []}

    ids = [entry["product_id"] for entry in entries]
    result = await session.execute(select(Product).where(Product.id.in_(ids)))
    products = {p.id: p for p in result.scalars().all()}

    return {
        "userId": user_id,
        "products": [
            {"product": product_payload(products[entry["product_id"]]), "addedAt": entry.get("added_at")}
            for entry in entries
            if entry["product_id"] in products
        ],
    }


async def move_to_cart(session: AsyncSession, user_id: str, product_id: str, variant_size: str = "default"):
    await cart_service.add_to_cart(session, user_id, product_id, variant_size, 1)

    wishlist = await _get_wishlist(session, user_id)
    if wishlist:
        wishlist.products = [e for e in (wishlist.products or []) if e.get("product_id") != product_id]
        touch(wishlist, "products")
        await session.commit()
    logger.info(f"Moved product {product_id} from wishlist to cart for user {user_id}")
