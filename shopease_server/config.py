"""Configuration loaded from environment variables."""

import os
from pathlib import Path
from typing import Optional
import logging

from pydantic import BaseModel

from .models import AuthCredentials

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:3000/api"
DEFAULT_CART_FILE = str(Path.home() / ".shopease_cart.json")


class Settings(BaseModel):
    """Runtime settings for the ShopEase servers."""

    api_url: str = DEFAULT_API_URL
    cart_file: str = DEFAULT_CART_FILE
    persist_cart: bool = True
    payment_delay: float = 2.5
    log_level: str = "INFO"
    email: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Recognised variables:
        - SHOPEASE_API_URL: storefront API base URL
        - SHOPEASE_CART_FILE: path of the persisted cart
        - SHOPEASE_PERSIST: set to 0 to keep the cart in memory only
        - SHOPEASE_PAYMENT_DELAY: simulated payment delay in seconds
        - SHOPEASE_LOG_LEVEL: logging level name
        - SHOPEASE_EMAIL / SHOPEASE_PASSWORD: credentials for auto-login
        """
        env = os.environ if environ is None else environ

        delay = cls.model_fields["payment_delay"].default
        raw_delay = env.get("SHOPEASE_PAYMENT_DELAY")
        if raw_delay:
            try:
                delay = max(0.0, float(raw_delay))
            except ValueError:
                logger.warning(f"Ignoring invalid SHOPEASE_PAYMENT_DELAY: {raw_delay}")

        return cls(
            api_url=env.get("SHOPEASE_API_URL") or DEFAULT_API_URL,
            cart_file=env.get("SHOPEASE_CART_FILE") or DEFAULT_CART_FILE,
            persist_cart=env.get("SHOPEASE_PERSIST", "1").lower() not in ("0", "false", "no"),
            payment_delay=delay,
            log_level=(env.get("SHOPEASE_LOG_LEVEL") or "INFO").upper(),
            email=env.get("SHOPEASE_EMAIL"),
            password=env.get("SHOPEASE_PASSWORD"),
        )

    @property
    def credentials(self) -> Optional[AuthCredentials]:
        if self.email and self.password:
            return AuthCredentials(email=self.email, password=self.password)
        return None
