"""
HTTP clients for the order and inventory services.

Every call is bounded by the client's timeout. Transport failures and 5xx
answers become UpstreamUnavailable; 404 becomes NotFoundError; 400/422
become ValidationError carrying the peer's detail.
"""

import logging
from typing import Any

import httpx

from shared.errors import NotFoundError, UpstreamUnavailable, ValidationError
from shared.request_id import REQUEST_ID_HEADER

logger = logging.getLogger(__name__)


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)


class ServiceClient:
    service_name = "upstream"

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def create(cls, base_url: str, timeout: float, transport: httpx.AsyncBaseTransport | None = None):
        return cls(httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        request_id: str | None = None,
        json: Any = None,
    ) -> Any:
        headers = {REQUEST_ID_HEADER: request_id} if request_id else None
        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            logger.error(
                "%s timed out",
                self.service_name,
                extra={"method": method, "path": path, "request_id": request_id},
            )
            raise UpstreamUnavailable(f"{self.service_name} timed out") from exc
        except httpx.HTTPError as exc:
            logger.error(
                "%s unreachable",
                self.service_name,
                extra={"method": method, "path": path, "request_id": request_id, "error": str(exc)},
            )
            raise UpstreamUnavailable(f"{self.service_name} unreachable: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError(_detail(response))
        if response.status_code in (400, 422):
            raise ValidationError(_detail(response))
        if response.status_code >= 400:
            logger.error(
                "%s answered %d",
                self.service_name,
                response.status_code,
                extra={"method": method, "path": path, "request_id": request_id},
            )
            raise UpstreamUnavailable(f"{self.service_name} answered {response.status_code}")
        return response.json()


class OrderServiceClient(ServiceClient):
    service_name = "order-service"

    async def create_order(self, payload: dict, request_id: str | None = None) -> dict:
        return await self._request("POST", "/orders", request_id, json=payload)

    async def get_order(self, order_id: str, request_id: str | None = None) -> dict:
        return await self._request("GET", f"/orders/{order_id}", request_id)

    async def get_product(self, product_id: str, request_id: str | None = None) -> dict:
        return await self._request("GET", f"/products/{product_id}", request_id)


class InventoryServiceClient(ServiceClient):
    service_name = "inventory-service"

    async def get_stock(self, item_id: str, request_id: str | None = None) -> int:
        body = await self._request("GET", f"/stock/{item_id}", request_id)
        return int(body["availableStock"])

    async def set_stock(self, item_id: str, stock: int, request_id: str | None = None) -> int:
        body = await self._request("PUT", f"/stock/{item_id}", request_id, json={"stock": stock})
        return int(body["availableStock"])
