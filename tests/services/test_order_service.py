import pytest
from fastapi import HTTPException

from app.models.api_models import Address, OrderItemIn, PlaceOrderIn
from app.models.db_models import Cart, DiscountCode, User
from app.services import order_service
from app.services.order_service import can_transition

ADDRESS = Address(street="1 Main St", city="Springfield", state="IL", zip="62701", country="US")


def order_for(*lines, discount_code=None):
    return PlaceOrderIn(
        phone="555-0100",
        items=[
            OrderItemIn(product_id=p.id, name=p.name, variant_size=size, quantity=qty)
            for p, size, qty in lines
        ],
        address=ADDRESS,
        discount_code=discount_code,
    )


@pytest.mark.parametrize("current,target,allowed", [
    ("Pending", "Processing", True),
    ("Pending", "Shipped", True),
    ("Processing", "Delivered", True),
    ("Shipped", "Processing", False),
    ("Processing", "Pending", False),
    ("Pending", "Cancelled", True),
    ("Shipped", "Cancelled", True),
    ("Delivered", "Cancelled", False),
    ("Cancelled", "Pending", False),
])
def test_status_transitions_only_move_forward(current, target, allowed):
    assert can_transition(current, target) is allowed


@pytest.mark.asyncio
async def test_placing_and_cancelling_restores_stock_exactly(session, make_product, user):
    plain = await make_product(name="Plain", price=10.0, stock_count=10)
    sized = await make_product(
        name="Sized",
        price=5.0,
        stock_count=5,
        variants=[
            {"size": "S", "flavour": "", "price": 5.0, "quantity": 2},
            {"size": "L", "flavour": "", "price": 8.0, "quantity": 3},
        ],
    )

    order = await order_service.place_order(session, user, order_for((plain, "default", 2), (sized, "L", 2)))

    assert plain.stock_count == 8
    assert [v["quantity"] for v in sized.variants] == [2, 1]
    assert sized.stock_count == 3
    assert order.status == "Pending"
    assert order.payment_method == "CashOnDelivery"
    assert order.items[1]["price"] == 8.0
    # 20 + 16 goods plus the flat delivery fee below the free-shipping threshold
    assert order.amount == 46.0

    await order_service.cancel_by_user(session, user.id, order.id)

    assert order.status == "Cancelled"
    assert plain.stock_count == 10
    assert [v["quantity"] for v in sized.variants] == [2, 3]
    assert sized.stock_count == 5


@pytest.mark.asyncio
async def test_order_rejects_more_than_available_stock(session, make_product, user):
    product = await make_product(stock_count=2)

    with pytest.raises(HTTPException) as exc:
        await order_service.place_order(session, user, order_for((product, "default", 1), (product, "default", 2)))

    assert exc.value.status_code == 400
    assert "Not enough stock" in exc.value.detail
    assert product.stock_count == 2


@pytest.mark.asyncio
async def test_order_rejects_unknown_variant(session, make_product, user):
    product = await make_product(variants=[{"size": "S", "price": 5.0, "quantity": 2}], stock_count=2)

    with pytest.raises(HTTPException) as exc:
        await order_service.place_order(session, user, order_for((product, "XL", 1)))
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_order_clears_cart_and_counts_discount_usage(session, make_product, user):
    product = await make_product(price=20.0, stock_count=5)
    session.add(Cart(user_id=user.id, items=[{"product_id": product.id, "variant_size": "default", "quantity": 1}]))
    discount = DiscountCode(code="SAVE10", discount_type="percentage", discount_value=10, status="active")
    session.add(discount)
    await session.commit()

    order = await order_service.place_order(session, user, order_for((product, "default", 1), discount_code="save10"))

    assert order.discount_code == "SAVE10"
    assert order.discount_amount == 2.0
    await session.refresh(discount)
    assert discount.usage_count == 1
    cart = await order_service.cart_service.get_cart(session, user.id)
    assert cart.items == []


@pytest.mark.asyncio
async def test_admin_status_updates(session, make_product, user):
    product = await make_product(stock_count=4)
    order = await order_service.place_order(session, user, order_for((product, "default", 4)))

    await order_service.update_status(session, order.id, "Shipped")
    assert order.status == "Shipped"

    # Same status is a no-op
    await order_service.update_status(session, order.id, "Shipped")

    with pytest.raises(HTTPException) as exc:
        await order_service.update_status(session, order.id, "Processing")
    assert exc.value.status_code == 400

    await order_service.update_status(session, order.id, "Cancelled")
    assert product.stock_count == 4

    with pytest.raises(HTTPException):
        await order_service.update_status(session, order.id, "Delivered")


@pytest.mark.asyncio
async def test_line_item_status_update(session, make_product, user):
    product = await make_product()
    order = await order_service.place_order(session, user, order_for((product, "default", 1)))
    line_id = order.items[0]["id"]

    await order_service.update_status(session, order.id, "Shipped", item_id=line_id)

    assert order.items[0]["status"] == "Shipped"
    assert order.status == "Pending"


@pytest.mark.asyncio
async def test_users_cannot_cancel_other_users_orders(session, make_product, user):
    product = await make_product()
    order = await order_service.place_order(session, user, order_for((product, "default", 1)))
    stranger = User(name="Other", email="other@example.com", password="x")
    session.add(stranger)
    await session.commit()

    with pytest.raises(HTTPException) as exc:
        await order_service.cancel_by_user(session, stranger.id, order.id)
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_delivered_orders_cannot_be_cancelled(session, make_product, user):
    product = await make_product()
    order = await order_service.place_order(session, user, order_for((product, "default", 1)))
    await order_service.update_status(session, order.id, "Delivered")

    with pytest.raises(HTTPException) as exc:
        await order_service.cancel_by_user(session, user.id, order.id)
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_checkout_settings_read_pos_rates(mocker, pos):
    mocker.patch.object(order_service.cache_service, "get_json", new_callable=mocker.AsyncMock, return_value=None)
    cache_set = mocker.patch.object(order_service.cache_service, "set_json", new_callable=mocker.AsyncMock)
    mocker.patch.object(pos, "get_tax_rates", new_callable=mocker.AsyncMock, return_value=[
        {"rate": 800000}, {"rate": 225000},
    ])
    mocker.patch.object(pos, "get_default_service_charge", new_callable=mocker.AsyncMock,
                        return_value={"enabled": True, "amount": 599})

    result = await order_service.get_checkout_settings(pos)

    assert result == {"taxRate": 0.1025, "deliveryFee": 5.99}
    cache_set.assert_called_once()


@pytest.mark.asyncio
async def test_checkout_settings_are_zero_when_unconfigured():
    from app.services.pos_client import PosClient
    assert await order_service.get_checkout_settings(PosClient("", "")) == {"taxRate": 0, "deliveryFee": 0}
