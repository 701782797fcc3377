"""
Cart Service: one cart per user, quantities capped by current product stock.
"""
import logging
from typing import Dict

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import CartItemOut, dump
from app.models.db_models import Cart, Product, touch
from app.services.product_service import available_stock, find_variant
from app.services.realtime_service import emit_to_user

logger = logging.getLogger(__name__)


async def get_cart(session: AsyncSession, user_id: str, create: bool = False):
    result = await session.execute(select(Cart).where(Cart.user_id == user_id))
    cart = result.scalar_one_or_none()
    if cart is None and create:
        cart = Cart(user_id=user_id, items=[])
        session.add(cart)
    return cart


def cart_payload(cart) -> Dict:
    items = cart.items if cart else []
    return {"items": dump(CartItemOut, list(items or []))}


def _find_line(items, product_id: str, variant_size: str) -> int:
    for index, item in enumerate(items):
        if item.get("product_id") == product_id and item.get("variant_size") == variant_size:
            return index
    return -1


def _broadcast(user_id: str, cart):
    emit_to_user(user_id, "cartUpdated", cart_payload(cart))


async def add_to_cart(session: AsyncSession, user_id: str, product_id: str, variant_size: str, quantity: int = 1) -> Cart:
    product = await session.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    price = product.price
    variant = find_variant(product, variant_size)
    if variant:
        price = variant.get("price", price)
    elif product.variants:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Size {variant_size} is not available")

    cart = await get_cart(session, user_id, create=True)
    items = [dict(item) for item in (cart.items or [])]
    index = _find_line(items, product_id, variant_size)

    existing_qty = items[index]["quantity"] if index > -1 else 0
    stock = available_stock(product, variant_size)
    if existing_qty + quantity > stock:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Only {max(0, stock - existing_qty)} more units available for this product",
        )

    if index > -1:
        items[index]["quantity"] = existing_qty + quantity
    else:
        items.append({
            "product_id": product_id,
            "name": product.name,
            "variant_size": variant_size,
            "quantity": quantity,
            "price": price,
            "image": product.images[0]["url"] if product.images else "",
        })

    cart.items = items
    touch(cart, "items")
    await session.commit()
    _broadcast(user_id, cart)
    return cart


async def update_cart(session: AsyncSession, user_id: str, product_id: str, variant_size: str, quantity: int) -> Cart:
    cart = await get_cart(session, user_id)
    if not cart:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cart not found")

    items = [dict(item) for item in (cart.items or [])]
    index = _find_line(items, product_id, variant_size)

    if quantity == 0:
        if index > -1:
            items.pop(index)
    else:
        if index == -1:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found in cart")
        product = await session.get(Product, product_id)
        if not product:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
        stock = available_stock(product, variant_size)
        if quantity > stock:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Only {stock} units available for this product",
            )
        items[index]["quantity"] = quantity

    cart.items = items
    touch(cart, "items")
    await session.commit()
    _broadcast(user_id, cart)
    return cart


async def clear_cart(session: AsyncSession, user_id: str):
    cart = await get_cart(session, user_id)
    if cart and cart.items:
        cart.items = []
        touch(cart, "items")
        _broadcast(user_id, cart)
