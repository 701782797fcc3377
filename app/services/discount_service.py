"""
Discount Service: admin CRUD for discount codes and storefront validation.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api_models import DiscountCartItem, DiscountIn, DiscountUpdateIn
from app.models.db_models import DiscountCode, Product, as_utc, utcnow
from app.services.product_service import find_variant

logger = logging.getLogger(__name__)


def _bad_request(message: str):
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


async def _find_by_code(session: AsyncSession, code: str) -> Optional[DiscountCode]:
    result = await session.execute(select(DiscountCode).where(DiscountCode.code == code.strip().upper()))
    return result.scalar_one_or_none()


async def _check_products(session: AsyncSession, product_ids: List[str]):
    if not product_ids:
        return
    result = await session.execute(select(Product.id).where(Product.id.in_(product_ids)))
    if len(set(result.scalars().all())) != len(set(product_ids)):
        raise _bad_request("Some products are invalid")


def _check_value(discount_type: str, value: Optional[float]):
    if discount_type == "percentage" and value is not None and not 0 <= value <= 100:
        raise _bad_request("Percentage discount must be between 0 and 100")


async def create_discount(session: AsyncSession, data: DiscountIn) -> DiscountCode:
    code = data.code.strip().upper()
    if await _find_by_code(session, code):
        raise _bad_request("Discount code already exists")
    _check_value(data.discount_type, data.discount_value)
    await _check_products(session, data.applicable_products)

    discount = DiscountCode(
        code=code,
        discount_type=data.discount_type,
        discount_value=data.discount_value,
        applicable_products=list(data.applicable_products),
        start_date=data.start_date,
        end_date=data.end_date,
        status=data.status,
        max_usage=data.max_usage,
        usage_count=0,
    )
    session.add(discount)
    await session.commit()
    logger.info(f"Discount code created: {code}")
    return discount


async def list_discounts(session: AsyncSession) -> List[DiscountCode]:
    result = await session.execute(select(DiscountCode).order_by(DiscountCode.created_at.desc()))
    return list(result.scalars().all())


async def update_discount(session: AsyncSession, discount_id: str, data: DiscountUpdateIn) -> DiscountCode:
    discount = await session.get(DiscountCode, discount_id)
    if not discount:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Discount code not found")

    changes = data.model_dump(exclude_unset=True)
    if changes.get("code"):
        code = changes["code"].strip().upper()
        existing = await _find_by_code(session, code)
        if existing and existing.id != discount.id:
            raise _bad_request("Discount code already exists")
        changes["code"] = code
    _check_value(changes.get("discount_type", discount.discount_type), changes.get("discount_value"))
    if changes.get("applicable_products"):
        await _check_products(session, changes["applicable_products"])

    for field, value in changes.items():
        setattr(discount, field, value)
    await session.commit()
    return discount


async def delete_discount(session: AsyncSession, discount_id: str):
    discount = await session.get(DiscountCode, discount_id)
    if not discount:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Discount code not found")
    await session.delete(discount)
    await session.commit()


def ensure_redeemable(discount: Optional[DiscountCode], now: Optional[datetime] = None):
    """Reject unknown, inactive, exhausted, not-yet-active or expired codes."""
    if discount is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid discount code")
    if discount.status != "active":
        raise _bad_request("Discount code is inactive")
    if discount.max_usage and (discount.usage_count or 0) >= discount.max_usage:
        raise _bad_request("Discount code usage limit reached")

    now = now or utcnow()
    if discount.start_date and now < as_utc(discount.start_date):
        raise _bad_request("Discount code not yet active")
    if discount.end_date and now > as_utc(discount.end_date):
        raise _bad_request("Discount code has expired")


async def validate_discount(session: AsyncSession, code: str, cart_items: List[DiscountCartItem]) -> Dict:
    discount = await _find_by_code(session, code)
    ensure_redeemable(discount)

    applicable = set(discount.applicable_products or [])
    eligible, ineligible = [], []
    total_discount = 0.0

    for item in cart_items:
        if applicable and item.product_id not in applicable:
            ineligible.append({
                "productId": item.product_id,
                "variantSize": item.variant_size,
                "message": "Not eligible for this discount",
            })
            continue

        product = await session.get(Product, item.product_id)
        if not product:
            continue
        variant = find_variant(product, item.variant_size)
        price = float(variant.get("price", product.price)) if variant else float(product.price)
        item_total = price * item.quantity

        if discount.discount_type == "percentage":
            item_discount = item_total * discount.discount_value / 100
        else:
            item_discount = min(item_total, discount.discount_value * item.quantity)

        total_discount += item_discount
        eligible.append({
            "productId": item.product_id,
            "variantSize": item.variant_size,
            "discount": round(item_discount, 2),
            "originalPrice": round(item_total, 2),
            "finalPrice": round(item_total - item_discount, 2),
        })

    return {
        "discountCode": {
            "code": discount.code,
            "discountType": discount.discount_type,
            "discountValue": discount.discount_value,
        },
        "totalDiscount": round(total_discount, 2),
        "eligibleProducts": eligible,
        "ineligibleProducts": ineligible,
    }


async def increment_usage(session: AsyncSession, code: str):
    await session.execute(
        update(DiscountCode)
        .where(DiscountCode.code == code.strip().upper())
        .values(usage_count=DiscountCode.usage_count + 1)
    )
