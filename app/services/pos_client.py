"""
POS Client: async HTTP wrapper around the POS provider's merchant REST API.

All money values on the wire are integer minor units (cents). Methods return
empty results when the client is not configured so callers can run without
POS credentials in development.
"""
import httpx
import logging
from typing import Any, Dict, List, Optional
from app.utils.config import settings

logger = logging.getLogger(__name__)

ITEM_EXPAND = "categories,tags,itemStock,itemGroup,attributes,modifierGroups,taxRates"


class PosApiError(Exception):
    """Raised when the POS API answers with a non-2xx status or is unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class PosClient:
    def __init__(
        self,
        merchant_id: Optional[str] = None,
        api_token: Optional[str] = None,
        env: Optional[str] = None,
        timeout: Optional[float] = None,
        page_size: Optional[int] = None,
    ):
        self.env = env or settings.POS_ENV
        self.merchant_id = merchant_id if merchant_id is not None else settings.POS_MERCHANT_ID
        self.api_token = api_token if api_token is not None else settings.POS_API_TOKEN
        self.timeout = timeout or settings.POS_TIMEOUT
        self.page_size = page_size or settings.POS_PAGE_SIZE

        self.api_root = (
            "https://api.clover.com"
            if self.env == "production"
            else "https://apisandbox.dev.clover.com"
        )
        self.base_url = f"{self.api_root}/v3/merchants"

    def is_configured(self) -> bool:
        return bool(self.merchant_id and self.api_token)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
            "accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str = "",
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        url: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        url = url or f"{self.base_url}/{self.merchant_id}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method, url, params=params, json=json, headers=headers or self._headers()
                )
        except httpx.HTTPError as e:
            raise PosApiError(f"POS request failed: {method} {path}: {e}") from e

        if response.status_code >= 400:
            logger.error(f"POS API error {response.status_code} on {method} {path}: {response.text[:300]}")
            raise PosApiError(
                f"POS API error {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        return response.json()

    async def _get_elements(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Fetch every page of a collection endpoint (`elements` envelope)."""
        elements: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page_params = {**(params or {}), "limit": self.page_size, "offset": offset}
            data = await self._request("GET", path, params=page_params)
            page = data.get("elements", []) if isinstance(data, dict) else []
            elements.extend(page)
            if len(page) < self.page_size:
                break
            offset += self.page_size
        return elements

    # ---------- Pull ----------

    async def get_products(self) -> List[Dict[str, Any]]:
        if not self.is_configured():
            return []
        items = await self._get_elements("/items", {"expand": ITEM_EXPAND})
        logger.info(f"Fetched {len(items)} items from POS")
        return items

    async def get_categories(self) -> List[Dict[str, Any]]:
        if not self.is_configured():
            return []
        return await self._get_elements("/categories")

    async def get_orders(self) -> List[Dict[str, Any]]:
        if not self.is_configured():
            return []
        return await self._get_elements("/orders", {"expand": "lineItems,customers,payments"})

    async def get_item_groups(self) -> List[Dict[str, Any]]:
        if not self.is_configured():
            return []
        return await self._get_elements("/item_groups", {"expand": "attributes"})

    async def get_modifier_groups(self) -> List[Dict[str, Any]]:
        if not self.is_configured():
            return []
        return await self._get_elements("/modifier_groups", {"expand": "modifiers"})

    async def get_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        if not self.is_configured():
            return None
        return await self._request("GET", f"/items/{item_id}", params={"expand": "categories,itemStock"})

    async def get_tax_rates(self) -> List[Dict[str, Any]]:
        if not self.is_configured():
            return []
        return await self._get_elements("/tax_rates")

    async def get_default_service_charge(self) -> Optional[Dict[str, Any]]:
        if not self.is_configured():
            return None
        return await self._request("GET", "/default_service_charge")

    # ---------- Push ----------

    async def create_item(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.is_configured():
            return None
        return await self._request("POST", "/items", json=payload)

    async def update_item(self, item_id: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.is_configured():
            return None
        # The merchant API uses POST for partial updates
        return await self._request("POST", f"/items/{item_id}", json=payload)

    async def delete_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        if not self.is_configured():
            return None
        return await self._request("DELETE", f"/items/{item_id}")

    async def create_item_group(self, name: str) -> Optional[Dict[str, Any]]:
        if not self.is_configured():
            return None
        return await self._request("POST", "/item_groups", json={"name": name})

    async def update_item_group(self, group_id: str, name: str) -> Optional[Dict[str, Any]]:
        if not self.is_configured():
            return None
        return await self._request("POST", f"/item_groups/{group_id}", json={"name": name})

    async def add_item_to_category(self, item_id: str, category_id: str) -> Optional[Dict[str, Any]]:
        if not self.is_configured():
            return None
        return await self._request(
            "POST", "/category_items", json={"category": {"id": category_id}, "item": {"id": item_id}}
        )

    async def remove_item_from_category(self, item_id: str, category_id: str) -> Optional[Dict[str, Any]]:
        if not self.is_configured():
            return None
        return await self._request("DELETE", f"/categories/{category_id}/items/{item_id}")

    async def update_inventory(self, item_id: str, quantity: int) -> Optional[Dict[str, Any]]:
        if not self.is_configured():
            return None
        return await self._request("POST", f"/item_stocks/{item_id}", json={"quantity": quantity})

    async def create_checkout_session(
        self,
        line_items: List[Dict[str, Any]],
        customer: Dict[str, Any],
        return_url: str,
        cancel_url: str,
    ) -> Optional[Dict[str, Any]]:
        """Create a hosted checkout session; line item prices are in minor units."""
        if not self.is_configured():
            return None
        payload = {
            "customer": customer,
            "shoppingCart": {"lineItems": line_items},
            "redirectUrls": {"success": return_url, "failure": cancel_url, "cancel": cancel_url},
        }
        headers = {**self._headers(), "X-Clover-Merchant-Id": self.merchant_id}
        return await self._request(
            "POST",
            "/checkouts",
            url=f"{self.api_root}/invoicingcheckoutservice/v1/checkouts",
            json=payload,
            headers=headers,
        )


pos_client = PosClient()
