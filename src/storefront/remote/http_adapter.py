"""Authenticated cart service backed by the Carts HTTP API.

Transport errors, timeouts, 5xx responses and unreadable bodies become
RemoteUnavailable. Requests the API rejects as invalid (400/404/422 on a
mutation) become InvalidOperand.
"""

from collections.abc import Callable

import httpx
import structlog

from storefront.cart.errors import InvalidOperand, RemoteUnavailable
from storefront.cart.snapshot import CartSnapshot
from storefront.remote.port import AuthenticatedCartService, MergeResult
from storefront.remote.schemas import CartBody, MergeBody

logger = structlog.get_logger(__name__)

_REJECTED = (400, 404, 422)


class HttpCartService(AuthenticatedCartService):
    def __init__(
        self,
        base_url: str,
        principal: Callable[[], str | None],
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self._principal = principal
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _cart_path(self, suffix: str = "") -> str:
        customer_id = self._principal()
        if not customer_id:
            raise RemoteUnavailable("No signed-in customer to address the cart for")
        return f"/customers/{customer_id}/cart{suffix}"

    async def _send(self, method: str, path: str, json: dict | None = None) -> httpx.Response:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.warning("cart_api_unreachable", method=method, path=path, error=str(exc))
            raise RemoteUnavailable(f"{method} {path} failed: {exc}", method=method, path=path) from exc

        if response.status_code >= 500:
            logger.warning("cart_api_error", method=method, path=path, status_code=response.status_code)
            raise RemoteUnavailable(
                f"{method} {path} returned {response.status_code}",
                method=method,
                path=path,
                status_code=response.status_code,
            )
        return response

    def _reject_invalid(self, response: httpx.Response) -> None:
        if response.status_code in _REJECTED:
            raise InvalidOperand(
                f"Cart API rejected the request: {response.text}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise RemoteUnavailable(
                f"Unexpected cart API response {response.status_code}",
                status_code=response.status_code,
            )

    def _parse_cart(self, response: httpx.Response) -> CartSnapshot:
        try:
            return CartBody.model_validate(response.json()).to_snapshot()
        except ValueError as exc:
            raise RemoteUnavailable(f"Unreadable cart response: {exc}") from exc

    async def _mutate(self, method: str, suffix: str, json: dict | None = None) -> CartSnapshot:
        response = await self._send(method, self._cart_path(suffix), json=json)
        self._reject_invalid(response)
        return self._remember(self._parse_cart(response))

    async def snapshot(self) -> CartSnapshot | None:
        response = await self._send("GET", self._cart_path())
        if response.status_code == 404:
            return self._remember(None)
        if response.status_code >= 400:
            raise RemoteUnavailable(
                f"Unexpected cart API response {response.status_code}",
                status_code=response.status_code,
            )
        return self._remember(self._parse_cart(response))

    async def add(self, product_id: str, quantity: int) -> CartSnapshot:
        return await self._mutate("POST", "/items", json={"product_id": str(product_id), "quantity": quantity})

    async def update(self, product_id: str, quantity: int) -> CartSnapshot:
        return await self._mutate("PUT", f"/items/{product_id}", json={"quantity": quantity})

    async def remove(self, product_id: str) -> CartSnapshot:
        return await self._mutate("DELETE", f"/items/{product_id}")

    async def clear(self) -> CartSnapshot:
        return await self._mutate("DELETE", "")

    async def merge_in(self, lines: list[dict], merge_key: str) -> MergeResult:
        response = await self._send(
            "POST",
            self._cart_path("/merge"),
            json={"merge_token": merge_key, "items": lines},
        )
        if response.status_code in _REJECTED:
            return MergeResult(success=False, failure_reason=response.text)
        if response.status_code >= 400:
            raise RemoteUnavailable(f"Unexpected merge response {response.status_code}")
        try:
            body = MergeBody.model_validate(response.json())
        except ValueError as exc:
            raise RemoteUnavailable(f"Unreadable merge response: {exc}") from exc
        return MergeResult(success=True, items_merged=body.items_merged)
