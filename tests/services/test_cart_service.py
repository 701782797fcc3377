import pytest
from fastapi import HTTPException

from app.services import cart_service, wishlist_service


@pytest.mark.asyncio
async def test_add_uses_variant_price_and_merges_lines(session, make_product, user):
    product = await make_product(
        price=10.0,
        stock_count=5,
        variants=[{"size": "L", "price": 12.5, "quantity": 5}],
    )

    await cart_service.add_to_cart(session, user.id, product.id, "L", 2)
    cart = await cart_service.add_to_cart(session, user.id, product.id, "L", 1)

    assert len(cart.items) == 1
    assert cart.items[0]["quantity"] == 3
    assert cart.items[0]["price"] == 12.5
    payload = cart_service.cart_payload(cart)
    assert payload["items"][0]["productId"] == product.id
    assert payload["items"][0]["variantSize"] == "L"


@pytest.mark.asyncio
async def test_cart_quantity_cannot_exceed_stock(session, make_product, user):
    product = await make_product(stock_count=3)
    await cart_service.add_to_cart(session, user.id, product.id, "default", 2)

    with pytest.raises(HTTPException) as exc:
        await cart_service.add_to_cart(session, user.id, product.id, "default", 2)

    assert exc.value.status_code == 400
    assert exc.value.detail.startswith("Only 1 more units available")

    with pytest.raises(HTTPException):
        await cart_service.update_cart(session, user.id, product.id, "default", 4)


@pytest.mark.asyncio
async def test_variant_quantity_caps_the_cart(session, make_product, user):
    product = await make_product(
        stock_count=10,
        variants=[{"size": "S", "price": 5.0, "quantity": 1}, {"size": "L", "price": 7.0, "quantity": 9}],
    )

    with pytest.raises(HTTPException) as exc:
        await cart_service.add_to_cart(session, user.id, product.id, "S", 5)
    assert exc.value.status_code == 400

    await cart_service.add_to_cart(session, user.id, product.id, "S", 1)
    with pytest.raises(HTTPException):
        await cart_service.update_cart(session, user.id, product.id, "S", 2)


@pytest.mark.asyncio
async def test_unknown_size_is_rejected_for_products_with_variants(session, make_product, user):
    product = await make_product(variants=[{"size": "S", "price": 5.0, "quantity": 3}], stock_count=3)

    with pytest.raises(HTTPException) as exc:
        await cart_service.add_to_cart(session, user.id, product.id, "XXL", 1)

    assert exc.value.status_code == 400
    assert exc.value.detail == "Size XXL is not available"


@pytest.mark.asyncio
async def test_update_to_zero_removes_line(session, make_product, user):
    product = await make_product(stock_count=3)
    await cart_service.add_to_cart(session, user.id, product.id, "default", 1)

    cart = await cart_service.update_cart(session, user.id, product.id, "default", 0)

    assert cart.items == []


@pytest.mark.asyncio
async def test_unknown_product_is_rejected(session, user):
    with pytest.raises(HTTPException) as exc:
        await cart_service.add_to_cart(session, user.id, "missing", "default", 1)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_wishlist_add_get_and_move_to_cart(session, make_product, user):
    product = await make_product(stock_count=2)
    gone = await make_product(name="Gone")

    await wishlist_service.add_to_wishlist(session, user.id, product.id)
    await wishlist_service.add_to_wishlist(session, user.id, gone.id)
    with pytest.raises(HTTPException):
        await wishlist_service.add_to_wishlist(session, user.id, product.id)

    await session.delete(gone)
    await session.commit()
    wishlist = await wishlist_service.get_wishlist(session, user.id)
    assert [entry["product"]["id"] for entry in wishlist["products"]] == [product.id]

    await wishlist_service.move_to_cart(session, user.id, product.id)

    cart = await cart_service.get_cart(session, user.id)
    assert cart.items[0]["quantity"] == 1
    wishlist = await wishlist_service.get_wishlist(session, user.id)
    assert wishlist["products"] == []
