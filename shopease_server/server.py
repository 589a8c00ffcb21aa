"""MCP Server for the ShopEase storefront."""

import asyncio
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Resource, Tool, TextContent
from pydantic import AnyUrl

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
)
from .shop_client import ShopAPIError, ShopClient
from .storage import FileCartStore, MemoryCartStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("shopease-mcp-server")

# Initialize server
app = Server("shopease-mcp-server")

# Global state
cart: CartManager
shop_client: ShopClient
checkout_service: CheckoutService
credentials: Optional[AuthCredentials] = None

NOT_AUTHENTICATED = (
    "Error: Not logged in. Use shopease_login first, "
    "or configure SHOPEASE_EMAIL and SHOPEASE_PASSWORD."
)
NOT_ADMIN = "Error: This action requires an administrator account."


def text(message: str) -> list[TextContent]:
    return [TextContent(type="text", text=message)]


def init_services(settings: Settings, client: Optional[ShopClient] = None) -> None:
    """Create the cart, API client and checkout service from settings."""
    global cart, shop_client, checkout_service, credentials

    store = FileCartStore(settings.cart_file) if settings.persist_cart else MemoryCartStore()
    cart = CartManager(store)
    shop_client = client or ShopClient(settings.api_url)
    checkout_service = CheckoutService(cart, shop_client, payment_delay=settings.payment_delay)
    credentials = settings.credentials


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


async def ensure_admin() -> Optional[str]:
    """Return an error message unless an administrator is logged in."""
    if not await ensure_authenticated():
        return NOT_AUTHENTICATED
    if not cart.user.is_admin():
        return NOT_ADMIN
    return None


def format_cart() -> str:
    if cart.is_empty():
        return "Your cart is empty"

    result_lines = [f"Shopping Cart ({cart.count()} items):\n"]
    for i, line in enumerate(cart.items, 1):
        result_lines.append(f"\n{i}. {line.product.name}")
        result_lines.append(f"   Product ID: {line.product.id}")
        result_lines.append(f"   Price: ${line.product.price:.2f}")
        result_lines.append(f"   Quantity: {line.quantity}")
        result_lines.append(f"   Subtotal: ${line.subtotal:.2f}")

    result_lines.append(f"\n{'='*50}")
    result_lines.append(f"Total: ${cart.total():.2f}")
    return "\n".join(result_lines)


def format_products(products: list) -> str:
    result_lines = [f"Found {len(products)} product(s):\n"]
    for i, product in enumerate(products, 1):
        result_lines.append(f"\n{i}. {product.name}")
        result_lines.append(f"   ID: {product.id}")
        result_lines.append(f"   Price: ${product.price:.2f}")
        result_lines.append(f"   Stock: {product.stock}")
        if product.category:
            result_lines.append(f"   Category: {product.category}")
    return "\n".join(result_lines)


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    resources = [
        Resource(
            uri=AnyUrl("shopease://cart"),
            name="Shopping Cart",
            mimeType="application/json",
            description="Current shopping cart contents",
        )
    ]

    if cart.is_authenticated() and cart.user.is_admin():
        resources.append(
            Resource(
                uri=AnyUrl("shopease://orders"),
                name="Orders",
                mimeType="application/json",
                description="All orders, newest first",
            )
        )

    return resources


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    uri_str = str(uri)

    if uri_str == "shopease://cart":
        return cart.snapshot().model_dump_json(indent=2)

    if uri_str == "shopease://orders":
        error = await ensure_admin()
        if error:
            return error
        orders = admin.newest_first(await shop_client.get_orders())
        return "[" + ",".join(o.model_dump_json() for o in orders) + "]"

    raise ValueError(f"Unknown resource: {uri}")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    product_id_schema = {"type": "string", "description": "Product ID"}
    product_fields = {
        "name": {"type": "string", "description": "Product name"},
        "description": {"type": "string", "description": "Product description"},
        "price": {"type": "string", "description": "Unit price, e.g. '19.99'"},
        "stock": {"type": "string", "description": "Units in stock"},
        "category": {"type": "string", "description": "Category label"},
        "image": {"type": "string", "description": "Image URL"},
    }
    return [
        Tool(
            name="shopease_login",
            description="Log in with email and password",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {
                        "type": "string",
                        "description": "Email address (optional if SHOPEASE_EMAIL configured)",
                    },
                    "password": {
                        "type": "string",
                        "description": "Password (optional if SHOPEASE_PASSWORD configured)",
                    },
                },
            },
        ),
        Tool(
            name="shopease_register",
            description="Create a new customer account and log in",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {"type": "string", "description": "Email address"},
                    "password": {"type": "string", "description": "Password"},
                    "name": {"type": "string", "description": "Display name (optional)"},
                },
                "required": ["email", "password"],
            },
        ),
        Tool(
            name="shopease_logout",
            description="Log out. The cart is kept.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="shopease_list_products",
            description="List the product catalog",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="shopease_search_products",
            description="Search products by name or category",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search term"},
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="shopease_get_product",
            description="Get details of one product",
            inputSchema={
                "type": "object",
                "properties": {"product_id": product_id_schema},
                "required": ["product_id"],
            },
        ),
        Tool(
            name="shopease_add_to_cart",
            description="Add a product to the cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": product_id_schema,
                    "quantity": {
                        "type": "integer",
                        "description": "Quantity to add (default: 1)",
                        "default": 1,
                    },
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="shopease_update_cart_quantity",
            description="Set the quantity of a cart item (0 removes it)",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": product_id_schema,
                    "quantity": {"type": "integer", "description": "New quantity"},
                },
                "required": ["product_id", "quantity"],
            },
        ),
        Tool(
            name="shopease_remove_from_cart",
            description="Remove a product from the cart",
            inputSchema={
                "type": "object",
                "properties": {"product_id": product_id_schema},
                "required": ["product_id"],
            },
        ),
        Tool(
            name="shopease_clear_cart",
            description="Remove everything from the cart",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="shopease_get_cart",
            description="Get current shopping cart contents",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="shopease_generate_test_card",
            description="Generate test card details for checkout",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="shopease_checkout",
            description="Pay for the cart (simulated payment) and place the order",
            inputSchema={
                "type": "object",
                "properties": {
                    "card_number": {"type": "string", "description": "Card number"},
                    "expiry_date": {"type": "string", "description": "Expiry date MM/YY"},
                    "cvv": {"type": "string", "description": "Card security code"},
                    "cardholder_name": {"type": "string", "description": "Name on the card"},
                    "email": {"type": "string", "description": "Receipt email"},
                },
                "required": ["card_number", "expiry_date", "cvv", "cardholder_name", "email"],
            },
        ),
        Tool(
            name="shopease_admin_dashboard",
            description="Store statistics: counts, revenue, recent orders, low stock (admin)",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="shopease_list_orders",
            description="List orders, newest first (admin)",
            inputSchema={
                "type": "object",
                "properties": {
                    "search": {"type": "string", "description": "Order ID, user email or name"},
                    "status": {
                        "type": "string",
                        "enum": [s.value for s in OrderStatus],
                        "description": "Only orders with this status",
                    },
                },
            },
        ),
        Tool(
            name="shopease_update_order_status",
            description="Change the status of an order (admin)",
            inputSchema={
                "type": "object",
                "properties": {
                    "order_id": {"type": "string", "description": "Order ID"},
                    "status": {
                        "type": "string",
                        "enum": [s.value for s in OrderStatus],
                        "description": "New status",
                    },
                },
                "required": ["order_id", "status"],
            },
        ),
        Tool(
            name="shopease_list_users",
            description="List users, newest first (admin)",
            inputSchema={
                "type": "object",
                "properties": {
                    "search": {"type": "string", "description": "Name, email or ID"},
                    "role": {
                        "type": "string",
                        "enum": [r.value for r in Role],
                        "description": "Only users with this role",
                    },
                },
            },
        ),
        Tool(
            name="shopease_create_product",
            description="Create a product (admin)",
            inputSchema={
                "type": "object",
                "properties": product_fields,
                "required": ["name", "price", "stock"],
            },
        ),
        Tool(
            name="shopease_update_product",
            description="Update a product; omitted fields keep their value (admin)",
            inputSchema={
                "type": "object",
                "properties": {"product_id": product_id_schema, **product_fields},
                "required": ["product_id"],
            },
        ),
        Tool(
            name="shopease_delete_product",
            description="Delete a product (admin)",
            inputSchema={
                "type": "object",
                "properties": {"product_id": product_id_schema},
                "required": ["product_id"],
            },
        ),
    ]


async def handle_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Dispatch a tool call. Exceptions propagate to call_tool."""
    if name == "shopease_login":
        email = arguments.get("email")
        password = arguments.get("password")

        # Use provided credentials or fall back to environment
        if not email or not password:
            if credentials:
                email = email or credentials.email
                password = password or credentials.password
            else:
                return text(
                    "Error: No credentials provided and SHOPEASE_EMAIL/SHOPEASE_PASSWORD not configured."
                )

        user = await shop_client.login(AuthCredentials(email=email, password=password))
        cart.login(user)
        return text(f"Successfully logged in as {user.display_name}")

    elif name == "shopease_register":
        registration = RegistrationRequest(
            email=arguments["email"],
            password=arguments["password"],
            name=arguments.get("name") or None,
        )
        user = await shop_client.register(registration)
        cart.login(user)
        return text(f"Account created for {user.email}. You are now logged in.")

    elif name == "shopease_logout":
        cart.logout()
        return text("Successfully logged out. Your cart has been kept.")

    elif name == "shopease_list_products":
        products = await shop_client.get_products()
        if not products:
            return text("The catalog is empty")
        return text(format_products(products))

    elif name == "shopease_search_products":
        query = arguments.get("query")
        if not query:
            return text("Error: Query parameter required")

        products = admin.filter_products(await shop_client.get_products(), query)
        if not products:
            return text(f"No products found for: {query}")
        return text(format_products(products))

    elif name == "shopease_get_product":
        product = await shop_client.get_product(arguments["product_id"])
        return text(product.model_dump_json(indent=2))

    elif name == "shopease_add_to_cart":
        product_id = arguments["product_id"]
        quantity = int(arguments.get("quantity", 1))

        product = await shop_client.get_product(product_id)
        line = cart.add_to_cart(product, quantity)
        return text(
            f"Added {product.name} (quantity: {quantity}) to cart. "
            f"Now {line.quantity} in cart, {cart.count()} item(s) total."
        )

    elif name == "shopease_update_cart_quantity":
        product_id = arguments["product_id"]
        quantity = int(arguments["quantity"])

        if cart.get_line(product_id) is None:
            return text(f"Product {product_id} is not in the cart")
        cart.update_quantity(product_id, quantity)
        if quantity <= 0:
            return text(f"Removed product {product_id} from cart")
        return text(f"Updated product {product_id} to quantity {quantity}")

    elif name == "shopease_remove_from_cart":
        product_id = arguments["product_id"]
        if cart.get_line(product_id) is None:
            return text(f"Product {product_id} is not in the cart")
        cart.remove_from_cart(product_id)
        return text(f"Removed product {product_id} from cart")

    elif name == "shopease_clear_cart":
        cart.clear_cart()
        return text("Cart cleared")

    elif name == "shopease_get_cart":
        return text(format_cart())

    elif name == "shopease_generate_test_card":
        card = generate_test_card()
        return text(
            "Test card generated:\n"
            f"  Card number: {card.card_number}\n"
            f"  Expiry: {card.expiry_date}\n"
            f"  CVV: {card.cvv}\n"
            f"  Cardholder: {card.cardholder_name}\n"
            f"  Email: {card.email}"
        )

    elif name == "shopease_checkout":
        if not await ensure_authenticated():
            return text("Error: Please log in to complete your purchase")

        form = PaymentForm(
            card_number=arguments.get("card_number", ""),
            expiry_date=arguments.get("expiry_date", ""),
            cvv=arguments.get("cvv", ""),
            cardholder_name=arguments.get("cardholder_name", ""),
            email=arguments.get("email", ""),
        )
        try:
            result = await checkout_service.checkout(form)
        except PaymentValidationError as e:
            return text("Payment form is invalid:\n" + "\n".join(f"  - {err}" for err in e.errors))
        except CheckoutError as e:
            return text(f"Error: {e}")
        except ShopAPIError as e:
            logger.error(f"Checkout failed: {e}")
            return text("Payment failed. Please try again. Your cart has not been changed.")

        return text(
            f"Payment of ${result.receipt.amount:.2f} approved **** {result.receipt.last_four}\n"
            f"Order {result.order.id} placed successfully (status: {result.order.status.value}).\n"
            f"Order confirmation sent to {form.email}"
        )

    elif name == "shopease_admin_dashboard":
        error = await ensure_admin()
        if error:
            return text(error)

        products, orders, users = await asyncio.gather(
            shop_client.get_products(), shop_client.get_orders(), shop_client.get_users()
        )
        stats = admin.dashboard_stats(products, orders, users)

        result_lines = [
            "Store dashboard:",
            f"  Total products: {stats.products}",
            f"  Total orders: {stats.orders}",
            f"  Total users: {stats.users}",
            f"  Total revenue: ${stats.revenue:,.2f}",
            "\nRecent orders:",
        ]
        for order in stats.recent_orders:
            who = order.user.display_name if order.user else order.user_id
            result_lines.append(f"  - {order.id}: {who}, ${order.total_amount:.2f}, {order.status.value}")
        result_lines.append("\nLow stock:")
        for product in stats.low_stock_products:
            result_lines.append(f"  - {product.name}: {product.stock} left")
        return text("\n".join(result_lines))

    elif name == "shopease_list_orders":
        error = await ensure_admin()
        if error:
            return text(error)

        status = OrderStatus(arguments["status"]) if arguments.get("status") else None
        orders, users = await asyncio.gather(shop_client.get_orders(), shop_client.get_users())
        filtered = admin.filter_orders(orders, users, arguments.get("search", ""), status)
        if not filtered:
            return text("No orders found")

        by_id = {u.id: u for u in users}
        result_lines = [f"{len(filtered)} order(s):"]
        for order in filtered:
            user = by_id.get(order.user_id)
            who = user.display_name if user else order.user_id
            created = order.created_at.strftime("%Y-%m-%d %H:%M") if order.created_at else "-"
            result_lines.append(
                f"  - {order.id} | {who} | ${order.total_amount:.2f} | {order.status.value} | {created}"
            )
        return text("\n".join(result_lines))

    elif name == "shopease_update_order_status":
        error = await ensure_admin()
        if error:
            return text(error)

        status = OrderStatus(arguments["status"])
        order = await shop_client.update_order_status(arguments["order_id"], status)
        return text(f"Order {order.id} status updated to {order.status.value}")

    elif name == "shopease_list_users":
        error = await ensure_admin()
        if error:
            return text(error)

        role = Role(arguments["role"]) if arguments.get("role") else None
        users = await shop_client.get_users()
        filtered = admin.filter_users(users, arguments.get("search", ""), role)
        counts = admin.count_roles(users)

        result_lines = [
            f"{len(filtered)} user(s) "
            f"({counts[Role.CUSTOMER]} customers, {counts[Role.ADMIN]} admins in total):"
        ]
        for user in filtered:
            result_lines.append(f"  - {user.id} | {user.email} | {user.name or '-'} | {user.role.value}")
        return text("\n".join(result_lines))

    elif name == "shopease_create_product":
        error = await ensure_admin()
        if error:
            return text(error)

        form = admin.ProductForm(**{k: str(v) for k, v in arguments.items() if k in admin.ProductForm.model_fields})
        product = await shop_client.create_product(admin.parse_product_form(form))
        return text(f"Created product {product.name} ({product.id})")

    elif name == "shopease_update_product":
        error = await ensure_admin()
        if error:
            return text(error)

        product_id = arguments["product_id"]
        current = await shop_client.get_product(product_id)
        changes = {k: str(v) for k, v in arguments.items() if k in admin.ProductForm.model_fields}
        form = admin.ProductForm.from_product(current).model_copy(update=changes)
        product = await shop_client.update_product(product_id, admin.parse_product_form(form))
        return text(f"Updated product {product.name} ({product.id})")

    elif name == "shopease_delete_product":
        error = await ensure_admin()
        if error:
            return text(error)

        await shop_client.delete_product(arguments["product_id"])
        return text(f"Deleted product {arguments['product_id']}")

    return text(f"Unknown tool: {name}")


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    try:
        return await handle_tool(name, arguments or {})
    except ShopAPIError as e:
        logger.error(f"API error in tool {name}: {e}")
        return text(f"Error: {e}")
    except ValueError as e:
        return text(f"Error: {e}")
    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return text(f"Error: {str(e)}")


async def main() -> None:
    """Main entry point."""
    settings = Settings.from_env()
    logging.getLogger().setLevel(settings.log_level)

    init_services(settings)

    if credentials:
        logger.info(f"Credentials loaded from environment for: {credentials.email}")
    else:
        logger.info("No credentials configured (SHOPEASE_EMAIL, SHOPEASE_PASSWORD)")
        logger.info("You can login via the shopease_login tool")

    logger.info(f"Using storefront API at {settings.api_url}")
    logger.info("Starting ShopEase MCP Server...")

    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        await shop_client.close()


if __name__ == "__main__":
    asyncio.run(main())
