"""ShopEase storefront client: cart state, checkout and admin console over MCP and HTTP."""

__version__ = "0.1.0"
