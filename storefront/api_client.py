import logging
from typing import List, Optional

import httpx

from storefront import config
from storefront.schemas import (
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
    ProductInput,
)

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or response.reason_phrase
    return response.reason_phrase


class BackendClient:
    """Thin async wrapper around the shop's REST backend."""

    def __init__(self, base_url: str = None, token: str = None, transport=None, timeout: float = None):
        headers = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url or config.API_URL,
            headers=headers,
            timeout=timeout or config.BACKEND_TIMEOUT,
            transport=transport,
        )

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs):
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise ApiError(502, "Backend nicht erreichbar") from exc

        if response.is_error:
            message = _error_message(response)
            logger.warning("%s %s -> %s: %s", method, path, response.status_code, message)
            raise ApiError(response.status_code, message)

        if not response.content:
            return {}
        return response.json()

    # --- products ---

    async def list_products(self) -> List[Product]:
        data = await self._request("GET", "/api/products")
        return [Product.model_validate(p) for p in data.get("products") or []]

    async def get_product(self, product_id: str) -> Product:
        data = await self._request("GET", f"/api/products/{product_id}")
        return Product.model_validate(data.get("product", data))

    async def create_product(self, product: ProductInput) -> Product:
        data = await self._request(
            "POST", "/api/products", json=product.model_dump(mode="json", by_alias=True)
        )
        return Product.model_validate(data.get("product", data))

    async def update_product(self, product_id: str, product: ProductInput) -> Product:
        data = await self._request(
            "PUT", f"/api/products/{product_id}", json=product.model_dump(mode="json", by_alias=True)
        )
        return Product.model_validate(data.get("product", data))

    async def delete_product(self, product_id: str):
        await self._request("DELETE", f"/api/products/{product_id}")

    # --- orders ---

    async def list_orders(self, status: Optional[OrderStatus] = None, user_id: str = None) -> List[Order]:
        params = {}
        if status:
            params["status"] = status.value
        if user_id:
            params["userId"] = user_id
        data = await self._request("GET", "/api/orders", params=params)
        return [Order.model_validate(o) for o in data.get("orders") or []]

    async def get_order(self, order_id: str) -> Order:
        data = await self._request("GET", f"/api/orders/{order_id}")
        return Order.model_validate(data["order"])

    async def create_order(self, payload: dict) -> Order:
        data = await self._request("POST", "/api/orders", json=payload)
        return Order.model_validate(data["order"])

    async def update_order_status(self, order_id: str, status: OrderStatus, tracking_number: str = None) -> Order:
        body = {"status": status.value}
        if tracking_number:
            body["trackingNumber"] = tracking_number
        data = await self._request("PATCH", f"/api/orders/{order_id}/status", json=body)
        return Order.model_validate(data["order"]) if "order" in data else await self.get_order(order_id)

    async def update_payment(
        self,
        order_id: str,
        payment_status: PaymentStatus,
        stripe_payment_id: str = None,
        payment_method: PaymentMethod = None,
    ):
        body = {"paymentStatus": payment_status.value}
        if stripe_payment_id:
            body["stripePaymentId"] = stripe_payment_id
        if payment_method:
            body["paymentMethod"] = payment_method.value
        return await self._request("PATCH", f"/api/orders/{order_id}/payment", json=body)

    # --- payments ---

    async def create_payment_intent(self, order_id: str) -> str:
        data = await self._request("POST", "/api/payments/create-intent", json={"orderId": order_id})
        return data["clientSecret"]

    # --- finance ---

    async def finance_stats(self) -> dict:
        return await self._request("GET", "/api/finance/stats")

    async def finance_products(self) -> List[dict]:
        data = await self._request("GET", "/api/finance/products")
        return data.get("products") or []

    async def send_test_email(self, kind: str) -> dict:
        return await self._request("POST", "/api/finance/test-email", json={"type": kind})

    # --- storage ---

    async def upload_image(self, filename: str, content: bytes, content_type: str) -> str:
        data = await self._request(
            "POST", "/api/storage/upload", files={"image": (filename, content, content_type)}
        )
        return data["url"]

    # --- auth ---

    async def auth(self, action: str, payload: dict = None) -> dict:
        if action in ("me", "check-verification"):
            return await self._request("GET", f"/api/auth/{action}")
        if action == "profile":
            return await self._request("PUT", "/api/auth/profile", json=payload or {})
        return await self._request("POST", f"/api/auth/{action}", json=payload or {})
