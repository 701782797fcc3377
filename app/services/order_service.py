"""
Order Service: order placement, status changes and their stock side effects.

Placing an order decrements stock per line; cancelling restores exactly what
was taken. Status moves forward only (Pending -> Processing -> Shipped ->
Delivered), Cancelled is reachable from any non-terminal state, and
Delivered/Cancelled are final.
"""
import logging
from typing import Dict, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import DiscountCartItem, OrderOut, PlaceOrderIn, dump
from app.models.db_models import Order, Product, User, new_id, touch
from app.services import cart_service, discount_service
from app.services.cache_service import cache_service
from app.services.pos_client import PosApiError, PosClient, pos_client
from app.services.product_service import adjust_stock, available_stock, find_variant, product_payload
from app.services.realtime_service import emit_global
from app.utils.config import settings
from app.utils.order_totals import calculate_order_total

logger = logging.getLogger(__name__)

STATUS_FLOW = ("Pending", "Processing", "Shipped", "Delivered")
TERMINAL_STATUSES = ("Delivered", "Cancelled")
CHECKOUT_SETTINGS_KEY = "pos:checkout-settings"
CHECKOUT_SETTINGS_TTL = 300


def order_payload(order: Order) -> Dict:
    return dump(OrderOut, order)


def can_transition(current: str, target: str) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    if target == "Cancelled":
        return True
    if current not in STATUS_FLOW or target not in STATUS_FLOW:
        return False
    return STATUS_FLOW.index(target) > STATUS_FLOW.index(current)


async def get_checkout_settings(client: Optional[PosClient] = None) -> Dict[str, float]:
    """Tax rate and delivery fee as configured on the POS (zeros when unconfigured)."""
    client = client or pos_client
    if not client.is_configured():
        return {"taxRate": 0, "deliveryFee": 0}

    cached = await cache_service.get_json(CHECKOUT_SETTINGS_KEY)
    if cached:
        return cached

    tax_rates = await client.get_tax_rates()
    # POS rates are stored in units of 1/100000 percent
    tax_rate = sum(float(rate.get("rate") or 0) for rate in tax_rates) / 10_000_000

    delivery_fee = 0.0
    charge = await client.get_default_service_charge()
    if charge and charge.get("enabled") and charge.get("amount"):
        delivery_fee = float(charge["amount"]) / 100

    result = {"taxRate": tax_rate, "deliveryFee": delivery_fee}
    await cache_service.set_json(CHECKOUT_SETTINGS_KEY, result, ttl=CHECKOUT_SETTINGS_TTL)
    return result


async def _pricing_settings() -> Tuple[float, Optional[float]]:
    try:
        checkout = await get_checkout_settings()
    except PosApiError as e:
        logger.warning(f"Falling back to default checkout settings: {e}")
        return 0.0, None
    return checkout["taxRate"], checkout["deliveryFee"] or None


async def _prepare_lines(session: AsyncSession, data: PlaceOrderIn) -> Tuple[List[dict], Dict[str, Product]]:
    """Validate requested lines against the catalog and snapshot them."""
    products: Dict[str, Product] = {}
    requested: Dict[Tuple[str, str], int] = {}
    lines = []

    for item in data.items:
        product = products.get(item.product_id) or await session.get(Product, item.product_id)
        if not product:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Product not found: {item.name}")
        products[product.id] = product

        variant = None
        if product.variants:
            variant = find_variant(product, item.variant_size)
            if not variant:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Size {item.variant_size} not available for product {item.name}",
                )

        key = (product.id, item.variant_size)
        requested[key] = requested.get(key, 0) + item.quantity
        available = available_stock(product, item.variant_size)
        if requested[key] > available:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Not enough stock for product {item.name}. Available: {available}",
            )

        lines.append({
            "id": new_id(),
            "product_id": product.id,
            "name": product.name,
            "variant_size": item.variant_size,
            "image": product.images[0]["url"] if product.images else "",
            "status": "Pending",
            "quantity": item.quantity,
            "price": float(variant.get("price", product.price)) if variant else float(product.price),
        })
    return lines, products


async def _prepare_order(session: AsyncSession, data: PlaceOrderIn):
    lines, products = await _prepare_lines(session, data)

    discount_amount = 0.0
    if data.discount_code:
        result = await discount_service.validate_discount(
            session,
            data.discount_code,
            [DiscountCartItem(product_id=l["product_id"], quantity=l["quantity"], variant_size=l["variant_size"])
             for l in lines],
        )
        discount_amount = result["totalDiscount"]

    tax_rate, delivery_fee = await _pricing_settings()
    totals = calculate_order_total(lines, discount_amount, delivery_fee, tax_rate)
    if data.amount is not None and abs(data.amount - totals["total"]) > 0.01:
        logger.info(f"Client total {data.amount} differs from computed total {totals['total']}")
    return lines, products, totals


async def _persist_order(
    session: AsyncSession,
    user: User,
    data: PlaceOrderIn,
    lines: List[dict],
    products: Dict[str, Product],
    totals: Dict[str, float],
    payment_method: str,
) -> Order:
    order = Order(
        id=new_id(),
        user_id=user.id,
        phone=data.phone,
        items=lines,
        amount=totals["total"],
        address=data.address.model_dump(),
        status="Pending",
        payment_method=payment_method,
        payment=False,
        discount_code=data.discount_code.strip().upper() if data.discount_code else None,
        discount_amount=totals["couponDiscount"],
    )
    session.add(order)

    if order.discount_code:
        await discount_service.increment_usage(session, order.discount_code)
    await cart_service.clear_cart(session, user.id)

    for line in lines:
        adjust_stock(products[line["product_id"]], line["variant_size"], -line["quantity"])

    await session.commit()
    logger.info(f"Order placed: {order.id} ({payment_method}) total={order.amount}", extra={"user_id": user.id})

    for product in products.values():
        emit_global("productUpdated", {"product": product_payload(product)})
    emit_global("orderUpdated", {"order": order_payload(order)})
    return order


async def place_order(session: AsyncSession, user: User, data: PlaceOrderIn) -> Order:
    """Cash-on-delivery order."""
    lines, products, totals = await _prepare_order(session, data)
    return await _persist_order(session, user, data, lines, products, totals, "CashOnDelivery")


async def place_order_with_checkout(
    session: AsyncSession,
    user: User,
    data: PlaceOrderIn,
    client: Optional[PosClient] = None,
) -> Tuple[Order, str]:
    """Order paid through the POS hosted checkout; returns (order, redirect URL)."""
    client = client or pos_client
    if not client.is_configured():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Online payment is not available")

    lines, products, totals = await _prepare_order(session, data)
    summary = ", ".join(f"{l['quantity']} x {l['name']} ({l['variant_size']})" for l in lines)
    line_items = [{
        "name": f"{settings.APP_NAME} order",
        "price": int(round(totals["total"] * 100)),
        "unitQty": 1,
        "note": summary[:255],
    }]
    customer = {"email": user.email, "firstName": user.name, "phoneNumber": data.phone}

    try:
        checkout = await client.create_checkout_session(
            line_items,
            customer,
            return_url=f"{settings.FRONTEND_URL}/orders?checkout=success",
            cancel_url=f"{settings.FRONTEND_URL}/cart?checkout=cancelled",
        )
    except PosApiError as e:
        logger.error(f"Checkout session failed for user {user.id}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not start online payment")

    redirect_url = (checkout or {}).get("href") or (checkout or {}).get("checkoutUrl")
    if not redirect_url:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not start online payment")

    order = await _persist_order(session, user, data, lines, products, totals, "Clover")
    return order, redirect_url


async def list_orders(session: AsyncSession, user_id: Optional[str] = None) -> List[Order]:
    query = select(Order).order_by(Order.created_at.desc())
    if user_id:
        query = query.where(Order.user_id == user_id)
    result = await session.execute(query)
    return list(result.scalars().all())


async def _get_order(session: AsyncSession, order_id: str) -> Order:
    order = await session.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


async def _restore_stock(session: AsyncSession, order: Order) -> List[Product]:
    restored = []
    for line in order.items or []:
        if not line.get("product_id"):
            continue
        product = await session.get(Product, line["product_id"])
        if not product:
            continue
        adjust_stock(product, line.get("variant_size"), int(line.get("quantity") or 0))
        restored.append(product)
    return restored


async def _cancel(session: AsyncSession, order: Order) -> Order:
    order.status = "Cancelled"
    # Orders mirrored from the POS never took local stock
    restored = [] if order.external_id else await _restore_stock(session, order)
    await session.commit()
    logger.info(f"Order cancelled: {order.id}, restored stock for {len(restored)} products")
    for product in restored:
        emit_global("productUpdated", {"product": product_payload(product)})
    return order


async def update_status(session: AsyncSession, order_id: str, new_status: str, item_id: Optional[str] = None) -> Order:
    order = await _get_order(session, order_id)

    if item_id:
        items = [dict(line) for line in (order.items or [])]
        line = next((l for l in items if l.get("id") == item_id), None)
        if line is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order or item not found")
        line["status"] = new_status
        order.items = items
        touch(order, "items")
        await session.commit()
    elif order.status == new_status:
        return order
    elif not can_transition(order.status, new_status):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot change order status from {order.status} to {new_status}",
        )
    elif new_status == "Cancelled":
        await _cancel(session, order)
    else:
        order.status = new_status
        await session.commit()
        logger.info(f"Order {order.id} moved to {new_status}")

    emit_global("orderUpdated", {"order": order_payload(order)})
    return order


async def cancel_by_user(session: AsyncSession, user_id: str, order_id: str) -> Order:
    order = await _get_order(session, order_id)
    if order.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to cancel this order")
    if order.status == "Delivered":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot cancel a delivered order")
    if order.status == "Cancelled":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Order is already cancelled")

    await _cancel(session, order)
    emit_global("orderUpdated", {"order": order_payload(order)})
    return order
