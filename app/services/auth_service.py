"""
Auth Service: password hashing, JWT issuing and request authentication.

Tokens travel in HTTP-only cookies (`user_token` / `admin_token`); API clients
may send `Authorization: Bearer <token>` instead.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db_models import Admin, User
from app.services.db_service import get_db
from app.utils.config import settings

logger = logging.getLogger(__name__)

USER_COOKIE = "user_token"
ADMIN_COOKIE = "admin_token"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_token(subject: str, role: str = "user") -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "id": subject,
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRE_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected invalid token: {e}")
    return None


def set_auth_cookie(response: Response, name: str, token: str):
    response.set_cookie(
        key=name,
        value=token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="none" if settings.COOKIE_SECURE else "lax",
        max_age=settings.JWT_EXPIRE_HOURS * 3600,
    )


def clear_auth_cookie(response: Response, name: str):
    response.delete_cookie(
        key=name,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="none" if settings.COOKIE_SECURE else "lax",
    )


def _extract_token(request: Request, cookie_name: str) -> Optional[str]:
    token = request.cookies.get(cookie_name)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    """Resolve the signed-in customer or reject with 401."""
    token = _extract_token(request, USER_COOKIE)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, please login")

    payload = decode_token(token)
    if not payload or not payload.get("id"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, token failed")

    user = await db.get(User, payload["id"])
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


async def get_current_admin(request: Request, db: AsyncSession = Depends(get_db)) -> Admin:
    """Resolve the signed-in admin; tokens must carry role=admin."""
    token = _extract_token(request, ADMIN_COOKIE)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, please login")

    payload = decode_token(token)
    if not payload or payload.get("role") != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")

    admin = await db.get(Admin, payload.get("id"))
    if not admin:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin not found")
    return admin


async def authenticate_admin(db: AsyncSession, email: str, password: str) -> Admin:
    result = await db.execute(select(Admin).where(Admin.email == email.lower()))
    admin = result.scalar_one_or_none()
    if not admin or not verify_password(password, admin.password):
        logger.warning(f"Failed admin login for {email}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return admin
