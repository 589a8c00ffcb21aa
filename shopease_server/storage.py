"""Cart persistence.

A store only has to ``load`` and ``save`` a :class:`CartState`. The file store
keeps one JSON blob on disk; the memory store is used for tests and when
persistence is disabled. Stores never raise: an unreadable blob loads as an
empty cart and a failed write leaves the cart in memory only.

Only one process should write a given cart file at a time. Concurrent writers
are not reconciled and the last write wins.
"""

from abc import ABC, abstractmethod
import json
import os
from pathlib import Path
from typing import Optional
import logging

from pydantic import ValidationError

from .models import CartState

logger = logging.getLogger(__name__)

STORE_VERSION = 1


class CartStore(ABC):
    """Load/save capability for the cart state."""

    @abstractmethod
    def load(self) -> CartState:
        ...

    @abstractmethod
    def save(self, state: CartState) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class MemoryCartStore(CartStore):
    """Keeps the last saved state in memory."""

    def __init__(self, initial: Optional[CartState] = None) -> None:
        self._state = initial.model_copy(deep=True) if initial else None
        self.saves = 0

    def load(self) -> CartState:
        if self._state is None:
            return CartState()
        return self._state.model_copy(deep=True)

    def save(self, state: CartState) -> None:
        self._state = state.model_copy(deep=True)
        self.saves += 1

    def clear(self) -> None:
        self._state = None


class FileCartStore(CartStore):
    """Persists the cart as a JSON file."""

    def __init__(self, path: Optional[str] = None) -> None:
        """
        Initialize the file store.

        Args:
            path: Path of the cart file. Defaults to ~/.shopease_cart.json
        """
        if path is None:
            path = str(Path.home() / ".shopease_cart.json")
        self.path = path
        self.degraded = False
        self._fallback: Optional[CartState] = None

    def load(self) -> CartState:
        """Load the cart from file, or an empty cart if there is nothing usable."""
        if self._fallback is not None:
            return self._fallback.model_copy(deep=True)

        if not os.path.exists(self.path):
            return CartState()

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read cart from {self.path}: {e}")
            return CartState()

        if not isinstance(data, dict) or data.get("version") != STORE_VERSION:
            logger.warning(f"Ignoring cart file with unknown format: {self.path}")
            return CartState()

        try:
            state = CartState.model_validate(
                {"lines": data.get("lines", []), "user": data.get("user")}
            )
        except ValidationError as e:
            logger.warning(f"Ignoring malformed cart file {self.path}: {e.error_count()} error(s)")
            return CartState()

        logger.info(f"Loaded cart with {len(state.lines)} line(s) from {self.path}")
        return state

    def save(self, state: CartState) -> None:
        """Write the cart to file. On failure keep it in memory only."""
        if self.degraded:
            self._fallback = state.model_copy(deep=True)
            return

        payload = {"version": STORE_VERSION, **state.model_dump(mode="json", by_alias=True)}
        try:
            with open(self.path, "w") as f:
                json.dump(payload, f, indent=2)
            os.chmod(self.path, 0o600)
        except OSError as e:
            logger.error(f"Could not save cart to {self.path}, keeping it in memory: {e}")
            self.degraded = True
            self._fallback = state.model_copy(deep=True)

    def clear(self) -> None:
        """Delete the cart file."""
        self._fallback = None
        if os.path.exists(self.path):
            try:
                os.remove(self.path)
                logger.info("Cart file removed")
            except OSError as e:
                logger.warning(f"Could not delete cart file: {e}")
