"""HTTP server for the ShopEase storefront client."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from . import admin
from .cart import CartManager
from .checkout import (
    CheckoutError,
    CheckoutService,
    PaymentValidationError,
    generate_test_card,
)
from .config import Settings
from .models import (
    AuthCredentials,
    OrderStatus,
    PaymentForm,
    RegistrationRequest,
    Role,
    User,
)
from .shop_client import ShopAPIError, ShopClient
from .storage import FileCartStore, MemoryCartStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("shopease-http-server")

# Global state
cart: CartManager
shop_client: ShopClient
checkout_service: CheckoutService
credentials: Optional[AuthCredentials] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    global cart, shop_client, checkout_service, credentials

    # Startup
    logger.info("Starting ShopEase HTTP Server...")
    settings: Settings = getattr(app.state, "settings", None) or Settings.from_env()
    logging.getLogger().setLevel(settings.log_level)
    store = FileCartStore(settings.cart_file) if settings.persist_cart else MemoryCartStore()
    cart = CartManager(store)
    shop_client = getattr(app.state, "shop_client", None) or ShopClient(settings.api_url)
    checkout_service = CheckoutService(cart, shop_client, payment_delay=settings.payment_delay)
    credentials = settings.credentials

    yield

    # Shutdown
    logger.info("Shutting down ShopEase HTTP Server...")
    await shop_client.close()


app = FastAPI(
    title="ShopEase MCP Server",
    description="HTTP API for the ShopEase storefront: catalog, cart, checkout and admin",
    version="0.1.0",
    lifespan=lifespan,
)


# Request/Response Models
class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: Optional[str] = None


class LoginResponse(BaseModel):
    success: bool
    message: str
    user: Optional[User] = None


class SearchRequest(BaseModel):
    query: str


class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = 1


class UpdateCartRequest(BaseModel):
    product_id: str
    quantity: int


class RemoveFromCartRequest(BaseModel):
    product_id: str


class OrderStatusRequest(BaseModel):
    status: OrderStatus


def cart_payload() -> dict:
    return {
        "items": [line.model_dump(mode="json") for line in cart.items],
        "count": cart.count(),
        "total": str(cart.total()),
    }


async def ensure_authenticated() -> bool:
    """Ensure a user is logged in, auto-login if credentials are configured."""
    if cart.is_authenticated():
        return True

    if credentials:
        try:
            logger.info("Auto-logging in with configured credentials...")
            user = await shop_client.login(credentials)
            cart.login(user)
            logger.info("Auto-login successful")
            return True
        except ShopAPIError as e:
            logger.warning(f"Auto-login failed: {e}")

    return False


async def require_user() -> User:
    if not await ensure_authenticated():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return cart.user


async def require_admin() -> User:
    user = await require_user()
    if not user.is_admin():
        raise HTTPException(status_code=403, detail="Administrator account required")
    return user


def gateway_error(e: ShopAPIError) -> HTTPException:
    logger.error(f"Storefront API error: {e}")
    return HTTPException(status_code=502, detail=str(e))


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "ShopEase MCP Server",
        "version": "0.1.0",
        "description": "HTTP API for the ShopEase storefront",
        "mcp_compatible": True,
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "auth": {
                "login": "POST /auth/login",
                "register": "POST /auth/register",
                "logout": "POST /auth/logout",
                "status": "GET /auth/status",
            },
            "products": {"list": "GET /products", "search": "POST /products/search"},
            "cart": {
                "get": "GET /cart",
                "add": "POST /cart/add",
                "update": "POST /cart/update",
                "remove": "POST /cart/remove",
                "clear": "POST /cart/clear",
            },
            "checkout": {"pay": "POST /checkout", "test_card": "GET /checkout/test-card"},
            "admin": {
                "dashboard": "GET /admin/dashboard",
                "orders": "GET /admin/orders",
                "order_status": "PUT /admin/orders/{order_id}/status",
                "users": "GET /admin/users",
                "products": "POST/PUT/DELETE /admin/products",
            },
        },
        "authenticated": cart.is_authenticated(),
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "authenticated": cart.is_authenticated(),
    }


# Authentication endpoints
@app.post("/auth/login", response_model=LoginResponse)
async def login(request: LoginRequest):
    """Login to the storefront."""
    try:
        user = await shop_client.login(AuthCredentials(email=request.email, password=request.password))
    except ShopAPIError as e:
        if e.status_code is not None and 400 <= e.status_code < 500:
            return LoginResponse(success=False, message="Login failed. Check your credentials.")
        raise gateway_error(e)

    cart.login(user)
    return LoginResponse(success=True, message=f"Successfully logged in as {user.email}", user=user)


@app.post("/auth/register", response_model=LoginResponse)
async def register(request: RegisterRequest):
    """Create an account and log in."""
    try:
        user = await shop_client.register(
            RegistrationRequest(email=request.email, password=request.password, name=request.name)
        )
    except ShopAPIError as e:
        raise gateway_error(e)

    cart.login(user)
    return LoginResponse(success=True, message=f"Account created for {user.email}", user=user)


@app.post("/auth/logout")
async def logout():
    """Logout. The cart is kept."""
    cart.logout()
    return {"success": True, "message": "Successfully logged out"}


@app.get("/auth/status")
async def auth_status():
    """Get authentication status."""
    user = cart.user
    return {
        "authenticated": user is not None,
        "email": user.email if user else None,
        "role": user.role.value if user else None,
    }


# Product endpoints
@app.get("/products")
async def list_products():
    """List the catalog."""
    try:
        products = await shop_client.get_products()
    except ShopAPIError as e:
        raise gateway_error(e)
    return {"count": len(products), "products": [p.model_dump(mode="json") for p in products]}


@app.post("/products/search")
async def search_products(request: SearchRequest):
    """Search products by name or category."""
    if not request.query:
        raise HTTPException(status_code=400, detail="query must be provided")
    try:
        products = admin.filter_products(await shop_client.get_products(), request.query)
    except ShopAPIError as e:
        raise gateway_error(e)
    return {"count": len(products), "products": [p.model_dump(mode="json") for p in products]}


# Cart endpoints
@app.get("/cart")
async def get_cart():
    """Get current shopping cart."""
    return cart_payload()


@app.post("/cart/add")
async def add_to_cart(request: AddToCartRequest):
    """Add a product to the cart."""
    if request.quantity < 1:
        raise HTTPException(status_code=400, detail="quantity must be at least 1")
    try:
        product = await shop_client.get_product(request.product_id)
    except ShopAPIError as e:
        if e.status_code == 404:
            raise HTTPException(status_code=404, detail=f"Product {request.product_id} not found")
        raise gateway_error(e)

    cart.add_to_cart(product, request.quantity)
    return {
        "success": True,
        "message": f"Added product {request.product_id} (quantity: {request.quantity}) to cart",
        "cart": cart_payload(),
    }


@app.post("/cart/update")
async def update_cart(request: UpdateCartRequest):
    """Set the quantity of a cart item. Zero removes it."""
    if cart.get_line(request.product_id) is None:
        raise HTTPException(status_code=404, detail=f"Product {request.product_id} is not in the cart")
    cart.update_quantity(request.product_id, request.quantity)
    return {"success": True, "cart": cart_payload()}


@app.post("/cart/remove")
async def remove_from_cart(request: RemoveFromCartRequest):
    """Remove a product from the cart."""
    if cart.get_line(request.product_id) is None:
        raise HTTPException(status_code=404, detail=f"Product {request.product_id} is not in the cart")
    cart.remove_from_cart(request.product_id)
    return {"success": True, "message": f"Removed product {request.product_id} from cart"}


@app.post("/cart/clear")
async def clear_cart():
    """Empty the cart."""
    cart.clear_cart()
    return {"success": True, "cart": cart_payload()}


# Checkout endpoints
@app.get("/checkout/test-card")
async def test_card():
    """Generate test card details."""
    return generate_test_card().model_dump()


@app.post("/checkout")
async def checkout(form: PaymentForm):
    """Pay for the cart and place the order."""
    await require_user()
    try:
        result = await checkout_service.checkout(form)
    except PaymentValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors)
    except CheckoutError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ShopAPIError as e:
        raise gateway_error(e)

    return result.model_dump(mode="json")


# Admin endpoints
@app.get("/admin/dashboard")
async def dashboard():
    """Store statistics."""
    await require_admin()
    try:
        products, orders, users = await asyncio.gather(
            shop_client.get_products(), shop_client.get_orders(), shop_client.get_users()
        )
    except ShopAPIError as e:
        raise gateway_error(e)
    return admin.dashboard_stats(products, orders, users).model_dump(mode="json")


@app.get("/admin/orders")
async def list_orders(search: str = "", status: Optional[OrderStatus] = None):
    """List orders, newest first."""
    await require_admin()
    try:
        orders, users = await asyncio.gather(shop_client.get_orders(), shop_client.get_users())
    except ShopAPIError as e:
        raise gateway_error(e)
    filtered = admin.filter_orders(orders, users, search, status)
    return {"count": len(filtered), "orders": [o.model_dump(mode="json") for o in filtered]}


@app.put("/admin/orders/{order_id}/status")
async def update_order_status(order_id: str, request: OrderStatusRequest):
    """Change an order's status."""
    await require_admin()
    try:
        order = await shop_client.update_order_status(order_id, request.status)
    except ShopAPIError as e:
        raise gateway_error(e)
    return order.model_dump(mode="json")


@app.get("/admin/users")
async def list_users(search: str = "", role: Optional[Role] = None):
    """List users, newest first."""
    await require_admin()
    try:
        users = await shop_client.get_users()
    except ShopAPIError as e:
        raise gateway_error(e)
    filtered = admin.filter_users(users, search, role)
    counts = admin.count_roles(users)
    return {
        "count": len(filtered),
        "customers": counts[Role.CUSTOMER],
        "admins": counts[Role.ADMIN],
        "users": [u.model_dump(mode="json") for u in filtered],
    }


@app.post("/admin/products")
async def create_product(form: admin.ProductForm):
    """Create a product."""
    await require_admin()
    try:
        payload = admin.parse_product_form(form)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    try:
        product = await shop_client.create_product(payload)
    except ShopAPIError as e:
        raise gateway_error(e)
    return product.model_dump(mode="json")


@app.put("/admin/products/{product_id}")
async def update_product(product_id: str, form: admin.ProductForm):
    """Replace a product's editable fields."""
    await require_admin()
    try:
        payload = admin.parse_product_form(form)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    try:
        product = await shop_client.update_product(product_id, payload)
    except ShopAPIError as e:
        raise gateway_error(e)
    return product.model_dump(mode="json")


@app.delete("/admin/products/{product_id}")
async def delete_product(product_id: str):
    """Delete a product."""
    await require_admin()
    try:
        await shop_client.delete_product(product_id)
    except ShopAPIError as e:
        raise gateway_error(e)
    return {"success": True, "message": f"Deleted product {product_id}"}


def run_http_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """
    Run the HTTP server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to bind to (default: 8000)
        reload: Enable hot reloading (default: False)
    """
    import uvicorn

    logger.info(f"Starting server on {host}:{port} (reload={'enabled' if reload else 'disabled'})")

    if reload:
        uvicorn.run(
            "shopease_server.http_server:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["shopease_server"],
            log_level="info",
        )
    else:
        uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_http_server()
