"""
Settings Router: storefront navbar and hero configuration.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import SettingsIn
from app.services import settings_service
from app.services.auth_service import get_current_admin
from app.services.db_service import get_db

router = APIRouter()


@router.get("/")
async def get_settings(db: AsyncSession = Depends(get_db)):
    record = await settings_service.get_settings(db)
    return {"success": True, "settings": settings_service.settings_payload(record)}


@router.put("/", dependencies=[Depends(get_current_admin)])
async def update_settings(data: SettingsIn, db: AsyncSession = Depends(get_db)):
    record = await settings_service.update_settings(db, data)
    return {"success": True, "message": "Settings updated", "settings": settings_service.settings_payload(record)}
