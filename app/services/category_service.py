"""
Category Service: storefront category names (POS-synced or added by admins).
"""
import logging
from typing import List

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db_models import Category

logger = logging.getLogger(__name__)


async def list_categories(session: AsyncSession) -> List[Category]:
    result = await session.execute(select(Category).order_by(Category.name))
    return list(result.scalars().all())


async def add_category(session: AsyncSession, name: str) -> Category:
    name = name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category name is required")
    result = await session.execute(select(Category).where(func.lower(Category.name) == name.lower()))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category already exists")

    category = Category(name=name)
    session.add(category)
    await session.commit()
    logger.info(f"Category added: {name}")
    return category


async def remove_category(session: AsyncSession, category_id: str):
    category = await session.get(Category, category_id)
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    await session.delete(category)
    await session.commit()
    logger.info(f"Category removed: {category.name}")
