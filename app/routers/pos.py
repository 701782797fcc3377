"""POS routers for FastAPI.

Endpoints under /api/clover for on-demand catalog pulls, the provider webhook
and the checkout settings (tax rate, delivery fee) used by the storefront.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.auth_service import get_current_admin
from app.services.db_service import get_db
from app.services.order_service import get_checkout_settings
from app.services.pos_client import PosApiError, pos_client
from app.services.pos_sync_service import sync_from_pos
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


def _require_configured():
    if not pos_client.is_configured():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="POS integration is not configured")


@router.post("/sync/products", dependencies=[Depends(get_current_admin)])
async def sync_products(db: AsyncSession = Depends(get_db)):
    _require_configured()
    report = await sync_from_pos(db, mode="pull", resources=("items",))
    return {"success": True, "message": "Products synced", "report": report}


@router.post("/sync/categories", dependencies=[Depends(get_current_admin)])
async def sync_categories(db: AsyncSession = Depends(get_db)):
    _require_configured()
    report = await sync_from_pos(db, mode="pull", resources=("categories",))
    return {"success": True, "message": "Categories synced", "report": report}


@router.post("/webhook")
async def pos_webhook(request: Request):
    """Acknowledge provider callbacks; verification requests carry a code to echo in logs."""
    try:
        payload = await request.json()
    except ValueError:
        payload = {}

    if isinstance(payload, dict) and payload.get("verificationCode"):
        logger.info(f"POS webhook verification code: {payload['verificationCode']}")
    else:
        logger.info(f"POS webhook received: {str(payload)[:500]}")
    return {"success": True}


@router.get("/checkout-settings")
async def checkout_settings():
    try:
        result = await get_checkout_settings()
    except PosApiError as e:
        logger.error(f"Failed to load checkout settings: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not load checkout settings")
    return {"success": True, **result}
