"""ShopEase storefront API client."""

import json
import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional

import httpx
from pydantic import ValidationError

from .models import (
    AuthCredentials,
    CartLine,
    Order,
    OrderStatus,
    Product,
    RegistrationRequest,
    User,
)

logger = logging.getLogger(__name__)


class ShopAPIError(Exception):
    """A request to the storefront API did not complete successfully."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        # JSON number; repr keeps the shortest digits, so 9.99 goes out as 9.99
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class ShopClient:
    """Async client for the storefront REST API."""

    DEFAULT_BASE_URL = "http://localhost:3000/api"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: API base URL, e.g. http://localhost:3000/api
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    async def _request(self, method: str, endpoint: str, payload: Any = None) -> Any:
        """Send a request and return the decoded JSON body (None when empty)."""
        content = None
        if payload is not None:
            content = json.dumps(payload, default=_json_default)

        logger.info(f"{method} {endpoint}")
        try:
            response = await self.client.request(method, endpoint, content=content)
        except httpx.HTTPError as e:
            logger.error(f"{method} {endpoint} failed: {e}")
            raise ShopAPIError(f"API error: {e}") from e

        if not response.is_success:
            logger.error(f"{method} {endpoint} returned {response.status_code}")
            raise ShopAPIError(
                f"API error: {response.reason_phrase or response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ShopAPIError(f"API error: invalid JSON from {endpoint}") from e

    def _parse(self, model: type, data: Any) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ShopAPIError(f"API error: unexpected {model.__name__} payload: {e}") from e

    def _parse_list(self, model: type, data: Any) -> list[Any]:
        if not isinstance(data, list):
            raise ShopAPIError(f"API error: expected a list of {model.__name__}")
        return [self._parse(model, item) for item in data]

    # Products

    async def get_products(self) -> list[Product]:
        data = await self._request("GET", "/products")
        return self._parse_list(Product, data)

    fetch_products = get_products

    async def get_product(self, product_id: str) -> Product:
        data = await self._request("GET", f"/products/{product_id}")
        return self._parse(Product, data)

    async def create_product(self, data: dict[str, Any]) -> Product:
        result = await self._request("POST", "/products", data)
        return self._parse(Product, result)

    async def update_product(self, product_id: str, data: dict[str, Any]) -> Product:
        result = await self._request("PUT", f"/products/{product_id}", data)
        return self._parse(Product, result)

    async def delete_product(self, product_id: str) -> None:
        await self._request("DELETE", f"/products/{product_id}")

    # Orders

    async def get_orders(self) -> list[Order]:
        data = await self._request("GET", "/orders")
        return self._parse_list(Order, data)

    async def get_order(self, order_id: str) -> Order:
        data = await self._request("GET", f"/orders/{order_id}")
        return self._parse(Order, data)

    async def create_order(self, user_id: str, lines: Iterable[CartLine]) -> Order:
        """
        Create an order from cart lines.

        The unit price sent for each item is the price captured when the
        product was added to the cart.
        """
        payload = {
            "userId": user_id,
            "items": [
                {
                    "productId": line.product.id,
                    "quantity": line.quantity,
                    "price": line.product.price,
                }
                for line in lines
            ],
        }
        data = await self._request("POST", "/orders", payload)
        return self._parse(Order, data)

    submit_order = create_order

    async def update_order_status(self, order_id: str, status: OrderStatus) -> Order:
        data = await self._request(
            "PUT", f"/orders/{order_id}/status", {"status": OrderStatus(status)}
        )
        return self._parse(Order, data)

    async def delete_order(self, order_id: str) -> None:
        await self._request("DELETE", f"/orders/{order_id}")

    # Users

    async def get_users(self) -> list[User]:
        data = await self._request("GET", "/users")
        return self._parse_list(User, data)

    async def get_user(self, user_id: str) -> User:
        data = await self._request("GET", f"/users/{user_id}")
        return self._parse(User, data)

    async def register(self, registration: RegistrationRequest) -> User:
        data = await self._request(
            "POST", "/users/register", registration.model_dump(exclude_none=True)
        )
        return self._parse(User, data)

    async def login(self, credentials: AuthCredentials) -> User:
        """
        Authenticate with email and password.

        Returns:
            The authenticated user

        Raises:
            ShopAPIError: If the credentials are rejected or the API is unreachable
        """
        logger.info(f"=== LOGIN: email={credentials.email} ===")
        data = await self._request("POST", "/users/login", credentials.model_dump())
        if not isinstance(data, dict) or "user" not in data:
            raise ShopAPIError("API error: login response has no user")
        return self._parse(User, data["user"])

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
