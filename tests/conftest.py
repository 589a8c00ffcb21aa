"""Shared fixtures: an in-memory storefront API served through httpx.MockTransport."""

import json
from decimal import Decimal

import httpx
import pytest

from shopease_server.models import Product, User, Role
from shopease_server.shop_client import ShopClient


def make_product(product_id="p1", price="9.99", stock=20, **kwargs) -> Product:
    return Product(
        id=product_id,
        name=kwargs.pop("name", f"Product {product_id}"),
        price=Decimal(price),
        stock=stock,
        **kwargs,
    )


class FakeShopAPI:
    """Minimal stand-in for the storefront REST API."""

    def __init__(self) -> None:
        self.products = {
            "p1": {"id": "p1", "name": "Desk Lamp", "description": None, "price": 9.99,
                   "stock": 20, "image": None, "category": "Lighting",
                   "createdAt": "2025-01-01T10:00:00Z", "updatedAt": "2025-01-01T10:00:00Z"},
            "p2": {"id": "p2", "name": "Notebook", "description": "A5 dotted", "price": "4.50",
                   "stock": 3, "image": None, "category": "Stationery",
                   "createdAt": "2025-01-02T10:00:00Z", "updatedAt": "2025-01-02T10:00:00Z"},
        }
        self.users = {
            "u1": {"id": "u1", "email": "alice@example.com", "name": "Alice", "role": "CUSTOMER",
                   "createdAt": "2025-01-01T09:00:00Z", "updatedAt": "2025-01-01T09:00:00Z"},
            "u2": {"id": "u2", "email": "admin@example.com", "name": None, "role": "ADMIN",
                   "createdAt": "2025-01-03T09:00:00Z", "updatedAt": "2025-01-03T09:00:00Z"},
        }
        self.passwords = {"alice@example.com": "secret", "admin@example.com": "admin"}
        self.orders = {
            "o1": {"id": "o1", "userId": "u1", "status": "PENDING", "totalAmount": 19.98,
                   "createdAt": "2025-02-01T12:00:00Z", "updatedAt": "2025-02-01T12:00:00Z"},
        }
        self.requests: list[httpx.Request] = []
        self.fail_paths: dict[tuple[str, str], int] = {}

    def fail(self, method: str, path: str, status: int = 500) -> None:
        self.fail_paths[(method, path)] = status

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method = request.method
        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else None

        if (method, path) in self.fail_paths:
            return httpx.Response(self.fail_paths[(method, path)])

        parts = path.strip("/").split("/")

        if parts[0] == "products":
            if len(parts) == 1 and method == "GET":
                return httpx.Response(200, json=list(self.products.values()))
            if len(parts) == 1 and method == "POST":
                product_id = f"p{len(self.products) + 1}"
                self.products[product_id] = {"id": product_id, **body}
                return httpx.Response(201, json=self.products[product_id])
            product = self.products.get(parts[1])
            if product is None:
                return httpx.Response(404, json={"error": "Not found"})
            if method == "GET":
                return httpx.Response(200, json=product)
            if method == "PUT":
                product.update(body)
                return httpx.Response(200, json=product)
            if method == "DELETE":
                del self.products[parts[1]]
                return httpx.Response(204)

        if parts[0] == "orders":
            if len(parts) == 1 and method == "GET":
                return httpx.Response(200, json=list(self.orders.values()))
            if len(parts) == 1 and method == "POST":
                order_id = f"o{len(self.orders) + 1}"
                if any(not isinstance(i["price"], (int, float)) for i in body["items"]):
                    return httpx.Response(400, json={"error": "price must be a number"})
                total = sum(Decimal(str(i["price"])) * i["quantity"] for i in body["items"])
                self.orders[order_id] = {
                    "id": order_id, "userId": body["userId"], "status": "PENDING",
                    "totalAmount": str(total), "createdAt": "2025-03-01T12:00:00Z",
                    "items": [dict(item) for item in body["items"]],
                }
                return httpx.Response(201, json=self.orders[order_id])
            order = self.orders.get(parts[1])
            if order is None:
                return httpx.Response(404)
            if len(parts) == 3 and parts[2] == "status" and method == "PUT":
                order["status"] = body["status"]
                return httpx.Response(200, json=order)
            if method == "GET":
                return httpx.Response(200, json=order)

        if parts[0] == "users":
            if len(parts) == 1 and method == "GET":
                return httpx.Response(200, json=list(self.users.values()))
            if parts[1] == "login":
                if self.passwords.get(body["email"]) != body["password"]:
                    return httpx.Response(401, json={"error": "Invalid credentials"})
                user = next(u for u in self.users.values() if u["email"] == body["email"])
                return httpx.Response(200, json={"user": user})
            if parts[1] == "register":
                user_id = f"u{len(self.users) + 1}"
                self.users[user_id] = {"id": user_id, "email": body["email"],
                                       "name": body.get("name"), "role": "CUSTOMER"}
                self.passwords[body["email"]] = body["password"]
                return httpx.Response(201, json=self.users[user_id])

        return httpx.Response(404)


@pytest.fixture
def fake_api() -> FakeShopAPI:
    return FakeShopAPI()


@pytest.fixture
def make_client(fake_api):
    def factory() -> ShopClient:
        return ShopClient(
            "http://shop.test/api", transport=httpx.MockTransport(fake_api.handler)
        )
    return factory


@pytest.fixture
def customer() -> User:
    return User(id="u1", email="alice@example.com", name="Alice", role=Role.CUSTOMER)


@pytest.fixture
def admin_user() -> User:
    return User(id="u2", email="admin@example.com", role=Role.ADMIN)
