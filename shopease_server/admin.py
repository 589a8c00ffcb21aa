"""Admin console queries over products, orders and users."""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import BaseModel, Field

from .models import Order, OrderStatus, Product, Role, User

LOW_STOCK_THRESHOLD = 10
DASHBOARD_LIMIT = 5

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _created(entity: Order | User) -> datetime:
    created = entity.created_at
    if created is None:
        return _EPOCH
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


def _contains(value: Optional[str], needle: str) -> bool:
    return bool(value) and needle in value.lower()


def newest_first(entities: list) -> list:
    return sorted(entities, key=_created, reverse=True)


def filter_products(products: list[Product], search: str = "") -> list[Product]:
    """Products whose name or category contains the search text."""
    needle = search.lower()
    return [
        p for p in products
        if needle in p.name.lower() or _contains(p.category, needle)
    ]


def filter_orders(
    orders: list[Order],
    users: list[User],
    search: str = "",
    status: Optional[OrderStatus] = None,
) -> list[Order]:
    """
    Orders matching the search text and status, newest first.

    The search matches the order ID and the email or name of the ordering user.
    """
    needle = search.lower()
    by_id = {u.id: u for u in users}

    def matches(order: Order) -> bool:
        if status is not None and order.status != status:
            return False
        if needle in order.id.lower():
            return True
        user = by_id.get(order.user_id)
        return user is not None and (_contains(user.email, needle) or _contains(user.name, needle))

    return newest_first([o for o in orders if matches(o)])


def filter_users(users: list[User], search: str = "", role: Optional[Role] = None) -> list[User]:
    """Users matching the search text (name, email or ID) and role, newest first."""
    needle = search.lower()
    result = [
        u for u in users
        if (role is None or u.role == role)
        and (_contains(u.name, needle) or needle in u.email.lower() or needle in u.id.lower())
    ]
    return newest_first(result)


def count_roles(users: list[User]) -> dict[Role, int]:
    counts = {role: 0 for role in Role}
    for user in users:
        counts[user.role] += 1
    return counts


class DashboardStats(BaseModel):
    """Summary shown on the admin dashboard."""

    products: int
    orders: int
    users: int
    revenue: Decimal
    recent_orders: list[Order] = Field(default_factory=list)
    low_stock_products: list[Product] = Field(default_factory=list)


def dashboard_stats(products: list[Product], orders: list[Order], users: list[User]) -> DashboardStats:
    by_id = {u.id: u for u in users}
    recent = []
    for order in newest_first(orders)[:DASHBOARD_LIMIT]:
        recent.append(order.model_copy(update={"user": by_id.get(order.user_id, order.user)}))

    return DashboardStats(
        products=len(products),
        orders=len(orders),
        users=len(users),
        revenue=sum((o.total_amount for o in orders), Decimal("0")),
        recent_orders=recent,
        low_stock_products=[p for p in products if p.stock < LOW_STOCK_THRESHOLD][:DASHBOARD_LIMIT],
    )


class ProductForm(BaseModel):
    """Product editor fields, all as entered text."""

    name: str = ""
    description: str = ""
    price: str = ""
    stock: str = ""
    category: str = ""
    image: str = ""

    @classmethod
    def from_product(cls, product: Product) -> "ProductForm":
        return cls(
            name=product.name,
            description=product.description or "",
            price=str(product.price),
            stock=str(product.stock),
            category=product.category or "",
            image=product.image or "",
        )


def parse_product_form(form: ProductForm) -> dict:
    """
    Build the create/update payload from the editor fields.

    Raises:
        ValueError: Name is missing, or price or stock is not a valid number
    """
    name = form.name.strip()
    if not name:
        raise ValueError("Product name is required")

    try:
        price = Decimal(form.price.strip())
    except InvalidOperation:
        raise ValueError(f"Invalid price: {form.price!r}")
    if not price.is_finite() or price < 0:
        raise ValueError(f"Invalid price: {form.price!r}")

    try:
        stock = int(form.stock.strip())
    except ValueError:
        raise ValueError(f"Invalid stock: {form.stock!r}")

    return {
        "name": name,
        "description": form.description or None,
        "price": price,
        "stock": stock,
        "category": form.category or None,
        "image": form.image or None,
    }
