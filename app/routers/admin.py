"""Admin router: session handling, POS sync trigger and POS lookup tables.

All endpoints other than login/logout require an admin token.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import LoginIn, SyncRequest
from app.models.db_models import Admin, ItemGroup, ModifierGroup, Order, Product
from app.services.auth_service import (
    ADMIN_COOKIE,
    authenticate_admin,
    clear_auth_cookie,
    create_token,
    get_current_admin,
    set_auth_cookie,
)
from app.services.db_service import get_db
from app.services.pos_client import pos_client
from app.services.pos_sync_service import sync_from_pos
from app.utils.config import settings
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)


@router.post("/login")
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def admin_login(request: Request, data: LoginIn, response: Response, db: AsyncSession = Depends(get_db)):
    admin = await authenticate_admin(db, data.email, data.password)
    token = create_token(admin.id, role="admin")
    set_auth_cookie(response, ADMIN_COOKIE, token)
    logger.info(f"Admin logged in: {admin.email}")
    return {"success": True, "token": token}


@router.post("/logout")
async def admin_logout(response: Response):
    clear_auth_cookie(response, ADMIN_COOKIE)
    return {"success": True, "message": "Logged out"}


@router.get("/dashboard")
async def dashboard(admin: Admin = Depends(get_current_admin), db: AsyncSession = Depends(get_db)):
    """Headline counts for the admin landing page."""
    products = (await db.execute(select(func.count()).select_from(Product))).scalar_one()
    orders = (await db.execute(select(func.count()).select_from(Order))).scalar_one()
    pending = (
        await db.execute(select(func.count()).select_from(Order).where(Order.status == "Pending"))
    ).scalar_one()
    return {
        "success": True,
        "admin": {"id": admin.id, "email": admin.email},
        "stats": {"products": products, "orders": orders, "pendingOrders": pending},
    }


@router.post("/sync/clover", dependencies=[Depends(get_current_admin)])
async def sync_clover(data: SyncRequest = SyncRequest(), db: AsyncSession = Depends(get_db)):
    """Run a full POS reconciliation ('pull', 'push' or 'both')."""
    if not pos_client.is_configured():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="POS integration is not configured")

    report = await sync_from_pos(db, mode=data.mode)
    return {"success": True, "message": f"Sync completed ({data.mode})", "report": report}


@router.get("/modifier-groups", dependencies=[Depends(get_current_admin)])
async def modifier_groups(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(ModifierGroup).order_by(ModifierGroup.name))
    return {
        "success": True,
        "modifierGroups": [
            {"id": g.id, "externalId": g.external_id, "name": g.name, "modifiers": g.modifiers or []}
            for g in result.scalars().all()
        ],
    }


@router.get("/item-groups", dependencies=[Depends(get_current_admin)])
async def item_groups(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(ItemGroup).order_by(ItemGroup.name))
    return {
        "success": True,
        "itemGroups": [
            {"id": g.id, "externalId": g.external_id, "name": g.name, "attributes": g.attributes or []}
            for g in result.scalars().all()
        ],
    }
