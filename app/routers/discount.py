"""
Discount Router: admin CRUD plus public code validation.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import DiscountIn, DiscountOut, DiscountUpdateIn, DiscountValidateIn, dump
from app.services import discount_service
from app.services.auth_service import get_current_admin
from app.services.db_service import get_db

router = APIRouter()


@router.post("/create", dependencies=[Depends(get_current_admin)])
async def create_discount(data: DiscountIn, db: AsyncSession = Depends(get_db)):
    discount = await discount_service.create_discount(db, data)
    return {"success": True, "message": "Discount code created", "discount": dump(DiscountOut, discount)}


@router.get("/list", dependencies=[Depends(get_current_admin)])
async def list_discounts(db: AsyncSession = Depends(get_db)):
    discounts = await discount_service.list_discounts(db)
    return {"success": True, "discounts": dump(DiscountOut, discounts)}


@router.put("/update/{discount_id}", dependencies=[Depends(get_current_admin)])
async def update_discount(discount_id: str, data: DiscountUpdateIn, db: AsyncSession = Depends(get_db)):
    discount = await discount_service.update_discount(db, discount_id, data)
    return {"success": True, "message": "Discount code updated", "discount": dump(DiscountOut, discount)}


@router.delete("/delete/{discount_id}", dependencies=[Depends(get_current_admin)])
async def delete_discount(discount_id: str, db: AsyncSession = Depends(get_db)):
    await discount_service.delete_discount(db, discount_id)
    return {"success": True, "message": "Discount code deleted"}


@router.post("/validate")
async def validate_discount(data: DiscountValidateIn, db: AsyncSession = Depends(get_db)):
    result = await discount_service.validate_discount(db, data.code, data.cart_items)
    return {"success": True, **result}
