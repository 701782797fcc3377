"""
Wishlist Router.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import MoveToCartIn, WishlistIn
from app.models.db_models import User
from app.services import wishlist_service
from app.services.auth_service import get_current_user
from app.services.db_service import get_db

router = APIRouter()


@router.post("/add")
async def add(data: WishlistIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await wishlist_service.add_to_wishlist(db, user.id, data.product_id)
    return {"success": True, "message": "Added to wishlist"}


@router.post("/remove")
async def remove(data: WishlistIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await wishlist_service.remove_from_wishlist(db, user.id, data.product_id)
    return {"success": True, "message": "Removed from wishlist"}


@router.get("/get")
async def get(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    wishlist = await wishlist_service.get_wishlist(db, user.id)
    return {"success": True, "wishlist": wishlist}


@router.post("/move-to-cart")
async def move_to_cart(data: MoveToCartIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await wishlist_service.move_to_cart(db, user.id, data.product_id, data.variant_size)
    return {"success": True, "message": "Moved to cart"}
