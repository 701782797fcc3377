"""
User Service: customer accounts, restock waitlist and in-app notifications.
"""
import logging
from typing import Dict, List

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import ProfileIn, RegisterIn
from app.models.db_models import Product, User, touch
from app.services.auth_service import hash_password, verify_password
from app.services.realtime_service import emit_to_user

logger = logging.getLogger(__name__)


def user_payload(user: User) -> Dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone or "",
        "address": user.address or {},
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }


async def _find_by_email(session: AsyncSession, email: str):
    result = await session.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def register(session: AsyncSession, data: RegisterIn) -> User:
    if await _find_by_email(session, data.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")

    user = User(
        name=data.name.strip(),
        email=data.email.lower(),
        password=hash_password(data.password),
        address={},
        notifications_waitlist={},
        notifications=[],
    )
    session.add(user)
    await session.commit()
    logger.info(f"User registered: {user.id}")
    return user


async def authenticate(session: AsyncSession, email: str, password: str) -> User:
    user = await _find_by_email(session, email)
    if not user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User doesn't exist")
    if not verify_password(password, user.password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid credentials")
    return user


async def update_profile(session: AsyncSession, user: User, data: ProfileIn) -> User:
    existing = await _find_by_email(session, data.email)
    if existing and existing.id != user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already in use")

    user.name = data.name.strip()
    user.email = data.email.lower()
    user.phone = data.phone or ""
    user.address = dict(data.address or {})
    touch(user, "address")
    await session.commit()
    return user


# ---------- Waitlist ----------

async def add_to_waitlist(session: AsyncSession, user: User, product_id: str):
    if not await session.get(Product, product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    waitlist = dict(user.notifications_waitlist or {})
    waitlist[product_id] = True
    user.notifications_waitlist = waitlist
    touch(user, "notifications_waitlist")
    await session.commit()


def is_waiting(user: User, product_id: str) -> bool:
    return bool((user.notifications_waitlist or {}).get(product_id))


# ---------- Notifications ----------

def _unread_count(notifications: List[dict]) -> int:
    return sum(1 for n in notifications if not n.get("read"))


def _broadcast_unread(user: User, **extra):
    emit_to_user(user.id, "notificationsUpdated", {"unreadCount": _unread_count(user.notifications or []), **extra})


async def list_notifications(session: AsyncSession, user: User) -> Dict:
    """Newest first, each enriched with the product name and thumbnail."""
    notifications = list(reversed(user.notifications or []))
    product_ids = {n["product_id"] for n in notifications if n.get("product_id")}

    products = {}
    if product_ids:
        result = await session.execute(select(Product).where(Product.id.in_(product_ids)))
        products = {
            p.id: {"name": p.name, "thumbnail": p.images[0]["url"] if p.images else None}
            for p in result.scalars().all()
        }

    return {
        "notifications": [
            {
                "id": n.get("id"),
                "productId": n.get("product_id"),
                "message": n.get("message"),
                "read": bool(n.get("read")),
                "createdAt": n.get("created_at"),
                "product": products.get(n.get("product_id")),
            }
            for n in notifications
        ],
        "unreadCount": _unread_count(notifications),
    }


async def mark_notification_read(session: AsyncSession, user: User, notification_id: str):
    notifications = [dict(n) for n in (user.notifications or [])]
    target = next((n for n in notifications if n.get("id") == notification_id), None)
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    target["read"] = True
    user.notifications = notifications
    touch(user, "notifications")
    await session.commit()
    _broadcast_unread(user)


async def delete_notification(session: AsyncSession, user: User, notification_id: str):
    notifications = list(user.notifications or [])
    remaining = [n for n in notifications if n.get("id") != notification_id]
    if len(remaining) == len(notifications):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    user.notifications = remaining
    touch(user, "notifications")
    await session.commit()
    _broadcast_unread(user)


async def delete_read_notifications(session: AsyncSession, user: User):
    user.notifications = [n for n in (user.notifications or []) if not n.get("read")]
    touch(user, "notifications")
    await session.commit()
    _broadcast_unread(user)


async def clear_notifications(session: AsyncSession, user: User):
    user.notifications = []
    touch(user, "notifications")
    await session.commit()
    _broadcast_unread(user, notifications=[])
