"""
Order Router: checkout for customers, status management for admins.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import CancelOrderIn, OrderStatusIn, PlaceOrderIn
from app.models.db_models import User
from app.services import order_service
from app.services.auth_service import get_current_admin, get_current_user
from app.services.db_service import get_db

router = APIRouter()


@router.post("/place-cod")
async def place_cod(data: PlaceOrderIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    order = await order_service.place_order(db, user, data)
    return {"success": True, "message": "Order placed", "order": order_service.order_payload(order)}


@router.post("/clover")
async def place_clover(data: PlaceOrderIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    order, redirect_url = await order_service.place_order_with_checkout(db, user, data)
    return {"success": True, "order": order_service.order_payload(order), "redirectUrl": redirect_url}


@router.get("/userOrders")
async def user_orders(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    orders = await order_service.list_orders(db, user.id)
    return {"success": True, "orders": [order_service.order_payload(o) for o in orders]}


@router.put("/user/cancel")
async def cancel_order(data: CancelOrderIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    order = await order_service.cancel_by_user(db, user.id, data.order_id)
    return {"success": True, "message": "Order cancelled", "order": order_service.order_payload(order)}


@router.get("/list", dependencies=[Depends(get_current_admin)])
async def all_orders(db: AsyncSession = Depends(get_db)):
    orders = await order_service.list_orders(db)
    return {"success": True, "orders": [order_service.order_payload(o) for o in orders]}


@router.put("/status", dependencies=[Depends(get_current_admin)])
async def update_status(data: OrderStatusIn, db: AsyncSession = Depends(get_db)):
    order = await order_service.update_status(db, data.order_id, data.status, data.item_id)
    return {"success": True, "message": "Status updated", "order": order_service.order_payload(order)}
