"""
Cart Router: the signed-in customer's cart.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import CartAddIn, CartUpdateIn
from app.models.db_models import User
from app.services import cart_service
from app.services.auth_service import get_current_user
from app.services.db_service import get_db

router = APIRouter()


@router.post("/add")
async def add_to_cart(data: CartAddIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    cart = await cart_service.add_to_cart(db, user.id, data.item_id, data.variant_size, data.quantity)
    return {"success": True, "message": "Added to cart", "cart": cart_service.cart_payload(cart)}


@router.post("/update")
async def update_cart(data: CartUpdateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    cart = await cart_service.update_cart(db, user.id, data.item_id, data.variant_size, data.quantity)
    return {"success": True, "message": "Cart updated", "cart": cart_service.cart_payload(cart)}


@router.get("/get")
async def get_cart(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    cart = await cart_service.get_cart(db, user.id)
    return {"success": True, "cart": cart_service.cart_payload(cart)}
