"""
Category Router.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import CategoryIn, CategoryOut, dump
from app.services import category_service
from app.services.auth_service import get_current_admin
from app.services.db_service import get_db

router = APIRouter()


@router.get("/list")
async def list_categories(db: AsyncSession = Depends(get_db)):
    categories = await category_service.list_categories(db)
    return {"success": True, "categories": dump(CategoryOut, categories)}


@router.post("/add", dependencies=[Depends(get_current_admin)])
async def add_category(data: CategoryIn, db: AsyncSession = Depends(get_db)):
    category = await category_service.add_category(db, data.name)
    return {"success": True, "message": "Category added", "category": dump(CategoryOut, category)}


@router.delete("/remove/{category_id}", dependencies=[Depends(get_current_admin)])
async def remove_category(category_id: str, db: AsyncSession = Depends(get_db)):
    await category_service.remove_category(db, category_id)
    return {"success": True, "message": "Category removed"}
