"""
Product Router: public catalog reads and admin catalog management.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import BulkDeleteIn, ProductIn
from app.services import product_service
from app.services.auth_service import get_current_admin
from app.services.db_service import get_db

router = APIRouter()


@router.get("/list")
async def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    result = await product_service.list_products(db, page, limit, search)
    return {"success": True, **result}


@router.get("/single/{product_id}")
async def single_product(product_id: str, db: AsyncSession = Depends(get_db)):
    product = await product_service.get_product(db, product_id)
    return {"success": True, "product": product_service.product_payload(product)}


@router.post("/add", dependencies=[Depends(get_current_admin)])
async def add_product(data: ProductIn, db: AsyncSession = Depends(get_db)):
    product = await product_service.add_product(db, data)
    return {"success": True, "message": "Product added", "product": product_service.product_payload(product)}


@router.put("/update/{product_id}", dependencies=[Depends(get_current_admin)])
async def update_product(product_id: str, data: ProductIn, db: AsyncSession = Depends(get_db)):
    product = await product_service.update_product(db, product_id, data)
    return {"success": True, "message": "Product updated", "product": product_service.product_payload(product)}


@router.delete("/remove/{product_id}", dependencies=[Depends(get_current_admin)])
async def remove_product(product_id: str, db: AsyncSession = Depends(get_db)):
    await product_service.remove_product(db, product_id)
    return {"success": True, "message": "Product removed"}


@router.post("/delete-many", dependencies=[Depends(get_current_admin)])
async def delete_many(data: BulkDeleteIn, db: AsyncSession = Depends(get_db)):
    removed = await product_service.delete_products(db, data.ids)
    return {"success": True, "message": f"{removed} products deleted", "deletedCount": removed}
