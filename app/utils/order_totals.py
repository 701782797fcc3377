"""
Order Totals: checkout pricing rules shared by order placement and the storefront.

Rules:
- Buy 5, get the cheapest unit free (total quantity across lines).
- Coupon discount applied after the bulk deal.
- Free shipping when the goods value after the bulk deal exceeds the threshold.
- Tax charged on the fully discounted subtotal.
"""
from typing import Dict, Iterable, Optional
from app.utils.config import settings


def _number(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def calculate_order_total(
    items: Iterable[Dict],
    discount_amount: float = 0.0,
    delivery_fee: Optional[float] = None,
    tax_rate: float = 0.0,
) -> Dict[str, float]:
    """
    Price a list of `{price, quantity}` lines.

    Returns:
        {subtotal, bulkDiscount, couponDiscount, subtotalAfterDiscounts,
         shippingFee, tax, total}
    """
    subtotal = 0.0
    total_quantity = 0
    cheapest = None

    for item in items:
        quantity = int(_number(item.get("quantity")))
        price = _number(item.get("price"))
        if quantity <= 0:
            continue
        subtotal += price * quantity
        total_quantity += quantity
        if cheapest is None or price < cheapest:
            cheapest = price

    bulk_discount = cheapest if cheapest is not None and total_quantity >= settings.BULK_DEAL_QUANTITY else 0.0
    subtotal_after_bulk = max(0.0, subtotal - bulk_discount)

    coupon_discount = _number(discount_amount)
    subtotal_after_discounts = max(0.0, subtotal_after_bulk - coupon_discount)

    shipping_fee = settings.DEFAULT_DELIVERY_FEE if delivery_fee is None else _number(delivery_fee)
    if subtotal_after_bulk > settings.FREE_SHIPPING_THRESHOLD:
        shipping_fee = 0.0

    tax = subtotal_after_discounts * _number(tax_rate)
    total = subtotal_after_discounts + shipping_fee + tax

    return {
        "subtotal": round(subtotal, 2),
        "bulkDiscount": round(bulk_discount, 2),
        "couponDiscount": round(coupon_discount, 2),
        "subtotalAfterDiscounts": round(subtotal_after_discounts, 2),
        "shippingFee": round(shipping_fee, 2),
        "tax": round(tax, 2),
        "total": round(total, 2),
    }
