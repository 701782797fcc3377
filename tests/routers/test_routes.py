import json
from types import SimpleNamespace

import pytest

PRODUCT = {
    "productId": "RT-1",
    "name": "Route Widget",
    "description": "Widget created through the API",
    "price": 12.5,
    "stockCount": 4,
    "categories": ["Tools"],
}

ADDRESS = {"street": "1 Main St", "city": "Springfield", "state": "IL", "zip": "62701", "country": "US"}


@pytest.mark.asyncio
async def test_health_reports_initializing_before_startup(client):
    response = await client.get("/health")
    assert response.status_code == 503
    assert response.json()["status"] == "initializing"


@pytest.mark.asyncio
async def test_register_then_dashboard(client):
    response = await client.post(
        "/api/user/register",
        json={"name": "New User", "email": "new@example.com", "password": "secret1"},
    )
    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert "user_token" in response.headers.get("set-cookie", "")

    dashboard = await client.get("/api/user/dashboard", headers={"Authorization": f"Bearer {body['token']}"})
    assert dashboard.json()["user"]["email"] == "new@example.com"


@pytest.mark.asyncio
async def test_errors_use_the_failure_envelope(client, user):
    bad_login = await client.post("/api/user/login", json={"email": "jane@example.com", "password": "wrong"})
    assert bad_login.status_code == 400
    assert bad_login.json() == {"success": False, "message": "Invalid credentials"}

    invalid = await client.post("/api/user/register", json={"name": "X", "email": "x@example.com", "password": "123"})
    assert invalid.status_code == 400
    assert invalid.json()["success"] is False
    assert "password" in invalid.json()["message"]


@pytest.mark.asyncio
async def test_admin_routes_require_admin_token(client, user_headers):
    anonymous = await client.post("/api/product/add", json=PRODUCT)
    assert anonymous.status_code == 401

    as_user = await client.post("/api/product/add", json=PRODUCT, headers=user_headers)
    assert as_user.status_code == 403
    assert as_user.json()["success"] is False


@pytest.mark.asyncio
async def test_admin_login_sets_cookie(client, admin):
    response = await client.post("/api/admin/login", json={"email": "admin@example.com", "password": "admin-pass"})
    assert response.status_code == 200
    assert "admin_token" in response.headers.get("set-cookie", "")


@pytest.mark.asyncio
async def test_catalog_cart_and_checkout_flow(client, admin_headers, user_headers):
    created = await client.post("/api/product/add", json=PRODUCT, headers=admin_headers)
    assert created.status_code == 200
    product = created.json()["product"]
    assert product["productId"] == "RT-1"
    assert product["showOnPOS"] is True

    listing = await client.get("/api/product/list", params={"search": "route"})
    assert listing.json()["totalProducts"] == 1

    added = await client.post(
        "/api/cart/add",
        json={"itemId": product["id"], "variantSize": "default", "quantity": 5},
        headers=user_headers,
    )
    assert added.status_code == 400

    added = await client.post(
        "/api/cart/add",
        json={"itemId": product["id"], "variantSize": "default", "quantity": 2},
        headers=user_headers,
    )
    assert added.json()["cart"]["items"][0]["quantity"] == 2

    placed = await client.post(
        "/api/order/place-cod",
        json={
            "phone": "555-0100",
            "address": ADDRESS,
            "items": [{"productId": product["id"], "name": "Route Widget", "variantSize": "default", "quantity": 2}],
        },
        headers=user_headers,
    )
    assert placed.status_code == 200
    order = placed.json()["order"]
    assert order["paymentMethod"] == "CashOnDelivery"

    single = await client.get(f"/api/product/single/{product['id']}")
    assert single.json()["product"]["stockCount"] == 2

    cart = await client.get("/api/cart/get", headers=user_headers)
    assert cart.json()["cart"]["items"] == []

    shipped = await client.put(
        "/api/order/status", json={"orderId": order["id"], "status": "Shipped"}, headers=admin_headers
    )
    assert shipped.json()["order"]["status"] == "Shipped"

    mine = await client.get("/api/order/userOrders", headers=user_headers)
    assert [o["id"] for o in mine.json()["orders"]] == [order["id"]]


@pytest.mark.asyncio
async def test_pos_routes_without_credentials(client, admin_headers):
    sync = await client.post("/api/clover/sync/products", headers=admin_headers)
    assert sync.status_code == 400
    assert sync.json()["message"] == "POS integration is not configured"

    settings = await client.get("/api/clover/checkout-settings")
    assert settings.json() == {"success": True, "taxRate": 0, "deliveryFee": 0}

    webhook = await client.post("/api/clover/webhook", json={"verificationCode": "abc"})
    assert webhook.json() == {"success": True}


@pytest.mark.asyncio
async def test_settings_and_categories(client, admin_headers):
    settings = await client.get("/api/settings/")
    assert len(settings.json()["settings"]["navbar"]) == 4

    added = await client.post("/api/category/add", json={"name": "Disposables"}, headers=admin_headers)
    assert added.json()["category"]["name"] == "Disposables"
    duplicate = await client.post("/api/category/add", json={"name": "disposables"}, headers=admin_headers)
    assert duplicate.status_code == 400

    categories = await client.get("/api/category/list")
    assert [c["name"] for c in categories.json()["categories"]] == ["Disposables"]


@pytest.mark.asyncio
async def test_rate_limit_uses_the_failure_envelope(mocker):
    from app.main import limiter, rate_limit_exceeded_handler
    from slowapi.errors import RateLimitExceeded

    request = mocker.Mock()
    request.app.state.limiter = limiter
    request.state = SimpleNamespace()
    exc = mocker.Mock(spec=RateLimitExceeded)
    exc.detail = "5 per 1 minute"

    response = await rate_limit_exceeded_handler(request, exc)

    assert response.status_code == 429
    assert json.loads(response.body) == {"success": False, "message": "Too many requests: 5 per 1 minute"}
