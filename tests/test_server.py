import asyncio

import pytest

from shopease_server import server
from shopease_server.config import Settings


@pytest.fixture
def services(make_client):
    server.init_services(Settings(persist_cart=False, payment_delay=0), client=make_client())
    return server


def call(name, /, **arguments) -> str:
    result = asyncio.run(server.call_tool(name, arguments))
    return result[0].text


def test_search_products(services):
    assert "Desk Lamp" in call("shopease_search_products", query="lighting")
    assert call("shopease_search_products", query="zzz") == "No products found for: zzz"


def test_cart_tools(services):
    assert "Now 2 in cart" in call("shopease_add_to_cart", product_id="p1", quantity=2)
    call("shopease_add_to_cart", product_id="p2")

    text = call("shopease_get_cart")
    assert "Shopping Cart (3 items)" in text
    assert "Total: $24.48" in text

    assert call("shopease_update_cart_quantity", product_id="p1", quantity=0) == "Removed product p1 from cart"
    assert call("shopease_remove_from_cart", product_id="p1") == "Product p1 is not in the cart"
    call("shopease_clear_cart")
    assert call("shopease_get_cart") == "Your cart is empty"


def test_login_and_logout_keep_cart(services):
    call("shopease_add_to_cart", product_id="p1")
    assert call("shopease_login", email="alice@example.com", password="secret") == "Successfully logged in as Alice"
    call("shopease_logout")

    assert not services.cart.is_authenticated()
    assert services.cart.count() == 1


def test_login_failure_is_reported(services):
    assert call("shopease_login", email="alice@example.com", password="bad").startswith("Error: API error")


def test_checkout_with_auto_login(make_client):
    server.init_services(
        Settings(persist_cart=False, payment_delay=0, email="alice@example.com", password="secret"),
        client=make_client(),
    )
    call("shopease_add_to_cart", product_id="p1", quantity=2)

    text = call(
        "shopease_checkout",
        card_number="4242 4242 4242 4242",
        expiry_date="12/39",
        cvv="123",
        cardholder_name="Alice",
        email="alice@example.com",
    )

    assert "Payment of $19.98 approved **** 4242" in text
    assert "placed successfully" in text
    assert server.cart.is_empty()


def test_checkout_failure_keeps_cart(services, fake_api):
    call("shopease_login", email="alice@example.com", password="secret")
    call("shopease_add_to_cart", product_id="p1", quantity=2)
    fake_api.fail("POST", "/orders", 500)

    text = call(
        "shopease_checkout",
        card_number="4242 4242 4242 4242",
        expiry_date="12/39",
        cvv="123",
        cardholder_name="Alice",
        email="alice@example.com",
    )

    assert "Your cart has not been changed" in text
    assert services.cart.count() == 2


def test_checkout_reports_invalid_form(services):
    call("shopease_login", email="alice@example.com", password="secret")
    call("shopease_add_to_cart", product_id="p1")

    text = call("shopease_checkout", card_number="1", expiry_date="", cvv="", cardholder_name="", email="")

    assert text.startswith("Payment form is invalid")
    assert "Please enter a valid card number" in text


def test_admin_tools_require_admin(services):
    assert call("shopease_list_orders") == server.NOT_AUTHENTICATED
    call("shopease_login", email="alice@example.com", password="secret")
    assert call("shopease_list_orders") == server.NOT_ADMIN


def test_admin_tools(services, fake_api):
    call("shopease_login", email="admin@example.com", password="admin")

    assert "Total revenue: $19.98" in call("shopease_admin_dashboard")
    assert "o1 | Alice" in call("shopease_list_orders", search="alice")
    assert call("shopease_update_order_status", order_id="o1", status="DELIVERED") == "Order o1 status updated to DELIVERED"
    assert "1 user(s)" in call("shopease_list_users", role="ADMIN")

    assert "Created product Mug" in call("shopease_create_product", name="Mug", price="7.25", stock="12")
    assert "Updated product Desk Lamp" in call("shopease_update_product", product_id="p1", price="10.49")
    assert fake_api.products["p1"]["price"] == 10.49
    assert call("shopease_delete_product", product_id="p2") == "Deleted product p2"


def test_cart_resource(services):
    call("shopease_add_to_cart", product_id="p1")
    body = asyncio.run(server.read_resource("shopease://cart"))
    assert '"quantity": 1' in body


def test_unknown_tool(services):
    assert call("shopease_nope") == "Unknown tool: shopease_nope"
