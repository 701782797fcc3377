"""
User Router: customer accounts, restock waitlist and notifications.
"""
from fastapi import APIRouter, Depends, Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import LoginIn, ProfileIn, RegisterIn
from app.models.db_models import User
from app.services import user_service
from app.services.auth_service import (
    USER_COOKIE,
    clear_auth_cookie,
    create_token,
    get_current_user,
    set_auth_cookie,
)
from app.services.db_service import get_db
from app.utils.config import settings
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)


@router.post("/register")
async def register(data: RegisterIn, response: Response, db: AsyncSession = Depends(get_db)):
    user = await user_service.register(db, data)
    token = create_token(user.id)
    set_auth_cookie(response, USER_COOKIE, token)
    return {"success": True, "token": token, "user": user_service.user_payload(user)}


@router.post("/login")
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(request: Request, data: LoginIn, response: Response, db: AsyncSession = Depends(get_db)):
    user = await user_service.authenticate(db, data.email, data.password)
    token = create_token(user.id)
    set_auth_cookie(response, USER_COOKIE, token)
    logger.info(f"User logged in: {user.id}")
    return {"success": True, "token": token, "user": user_service.user_payload(user)}


@router.post("/logout")
async def logout(response: Response):
    clear_auth_cookie(response, USER_COOKIE)
    return {"success": True, "message": "Logged out"}


@router.get("/dashboard")
async def dashboard(user: User = Depends(get_current_user)):
    return {"success": True, "user": user_service.user_payload(user)}


@router.put("/profile")
async def update_profile(data: ProfileIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    user = await user_service.update_profile(db, user, data)
    return {"success": True, "user": user_service.user_payload(user)}


# ---------- Waitlist ----------

@router.post("/waitlist/{product_id}")
async def join_waitlist(product_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await user_service.add_to_waitlist(db, user, product_id)
    return {"success": True, "message": "You will be notified when this product is back in stock"}


@router.get("/waitlist/{product_id}")
async def waitlist_status(product_id: str, user: User = Depends(get_current_user)):
    return {"success": True, "isWaiting": user_service.is_waiting(user, product_id)}


# ---------- Notifications ----------

@router.get("/notifications")
async def notifications(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    result = await user_service.list_notifications(db, user)
    return {"success": True, **result}


@router.post("/notifications/{notification_id}/read")
async def mark_read(notification_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await user_service.mark_notification_read(db, user, notification_id)
    return {"success": True}


# Declared before /notifications/{notification_id} so "read" is not taken as an id
@router.delete("/notifications/read")
async def delete_read(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await user_service.delete_read_notifications(db, user)
    return {"success": True}


@router.delete("/notifications/{notification_id}")
async def delete_one(notification_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await user_service.delete_notification(db, user, notification_id)
    return {"success": True}


@router.delete("/notifications")
async def clear_all(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await user_service.clear_notifications(db, user)
    return {"success": True}
