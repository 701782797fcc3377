import json

import httpx
import pytest
import respx

from app.services.pos_client import PosApiError, PosClient

BASE = "https://apisandbox.dev.clover.com/v3/merchants/M1"


def test_base_url_switches_on_environment():
    assert PosClient("M1", "t", env="production").base_url == "https://api.clover.com/v3/merchants"
    assert PosClient("M1", "t", env="sandbox").base_url == "https://apisandbox.dev.clover.com/v3/merchants"


@pytest.mark.asyncio
async def test_unconfigured_client_returns_empty_results():
    client = PosClient(merchant_id="", api_token="")
    assert not client.is_configured()
    assert await client.get_products() == []
    assert await client.get_categories() == []
    assert await client.create_item({"name": "x"}) is None


@pytest.mark.asyncio
@respx.mock
async def test_get_products_follows_pages_until_short_page():
    client = PosClient("M1", "token", env="sandbox", page_size=2)
    pages = {
        "0": [{"id": "A"}, {"id": "B"}],
        "2": [{"id": "C"}, {"id": "D"}],
        "4": [{"id": "E"}],
    }

    def respond(request):
        offset = request.url.params["offset"]
        return httpx.Response(200, json={"elements": pages[offset]})

    route = respx.get(f"{BASE}/items").mock(side_effect=respond)

    items = await client.get_products()

    assert [i["id"] for i in items] == ["A", "B", "C", "D", "E"]
    assert route.call_count == 3
    first = route.calls[0].request
    assert first.headers["Authorization"] == "Bearer token"
    assert first.url.params["limit"] == "2"
    assert "itemStock" in first.url.params["expand"]


@pytest.mark.asyncio
@respx.mock
async def test_error_status_raises_pos_api_error():
    client = PosClient("M1", "token", env="sandbox")
    respx.post(f"{BASE}/items/X1").mock(return_value=httpx.Response(404, json={"message": "Not found"}))

    with pytest.raises(PosApiError) as exc:
        await client.update_item("X1", {"price": 100})

    assert exc.value.status_code == 404
    assert exc.value.not_found


@pytest.mark.asyncio
@respx.mock
async def test_transport_error_is_wrapped():
    client = PosClient("M1", "token", env="sandbox")
    respx.get(f"{BASE}/categories").mock(side_effect=httpx.ConnectError("boom"))

    with pytest.raises(PosApiError) as exc:
        await client.get_categories()
    assert exc.value.status_code is None


@pytest.mark.asyncio
@respx.mock
async def test_update_inventory_posts_quantity():
    client = PosClient("M1", "token", env="sandbox")
    route = respx.post(f"{BASE}/item_stocks/I1").mock(return_value=httpx.Response(200))

    assert await client.update_inventory("I1", 7) == {}
    assert json.loads(route.calls[0].request.content) == {"quantity": 7}


@pytest.mark.asyncio
@respx.mock
async def test_checkout_session_uses_checkout_service():
    client = PosClient("M1", "token", env="sandbox")
    route = respx.post("https://apisandbox.dev.clover.com/invoicingcheckoutservice/v1/checkouts").mock(
        return_value=httpx.Response(200, json={"href": "https://pay.example/abc"})
    )

    result = await client.create_checkout_session(
        [{"name": "Order", "price": 1500, "unitQty": 1}],
        {"email": "a@b.co"},
        return_url="https://shop/ok",
        cancel_url="https://shop/cancel",
    )

    assert result["href"] == "https://pay.example/abc"
    assert route.calls[0].request.headers["X-Clover-Merchant-Id"] == "M1"
