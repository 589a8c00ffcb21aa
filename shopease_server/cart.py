"""Cart and session state for one shopper."""

from decimal import Decimal
from typing import Callable, Iterable, Optional
import logging

from .models import CartLine, CartState, Product, User
from .storage import CartStore, MemoryCartStore

logger = logging.getLogger(__name__)

CartObserver = Callable[[CartState], None]


class CartManager:
    """
    Holds the cart lines and the logged-in user.

    Every committed mutation is saved to the store and then published to the
    subscribed observers, synchronously and in that order. Operations that
    change nothing (updating or removing a product that is not in the cart)
    neither save nor notify.

    Lines and the user are only handed out as copies; the cart changes
    through its own methods.
    """

    def __init__(self, store: Optional[CartStore] = None) -> None:
        """
        Initialize the cart from its store.

        Args:
            store: Persistence backend. Defaults to an in-memory store.
        """
        self.store = store if store is not None else MemoryCartStore()
        self._state = self.store.load()
        self._observers: list[CartObserver] = []

    @property
    def items(self) -> list[CartLine]:
        return [line.model_copy(deep=True) for line in self._state.lines]

    @property
    def user(self) -> Optional[User]:
        if self._state.user is None:
            return None
        return self._state.user.model_copy(deep=True)

    def is_authenticated(self) -> bool:
        return self._state.user is not None

    def is_empty(self) -> bool:
        return not self._state.lines

    def snapshot(self) -> CartState:
        """Return a deep copy of the current state."""
        return self._state.model_copy(deep=True)

    def get_line(self, product_id: str) -> Optional[CartLine]:
        line = self._find(product_id)
        return line.model_copy(deep=True) if line is not None else None

    def _find(self, product_id: str) -> Optional[CartLine]:
        for line in self._state.lines:
            if line.product.id == product_id:
                return line
        return None

    def subscribe(self, observer: CartObserver) -> Callable[[], None]:
        """
        Register an observer called with the new state after each mutation.

        Returns:
            A function that removes the observer again
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def add_to_cart(self, product: Product, quantity: int = 1) -> CartLine:
        """
        Add a product, or increase its quantity if it is already in the cart.

        Stock is not checked.
        """
        if quantity < 1:
            raise ValueError(f"Quantity must be at least 1, got {quantity}")

        line = self._find(product.id)
        if line is not None:
            line.quantity += quantity
        else:
            line = CartLine(product=product.model_copy(deep=True), quantity=quantity)
            self._state.lines.append(line)

        logger.info(f"Cart: {product.id} now at quantity {line.quantity}")
        self._commit()
        return line.model_copy(deep=True)

    def update_quantity(self, product_id: str, quantity: int) -> None:
        """Set a line's quantity. Zero or less removes the line."""
        line = self._find(product_id)
        if line is None:
            return

        if quantity <= 0:
            self._state.lines.remove(line)
            logger.info(f"Cart: removed {product_id}")
        else:
            line.quantity = quantity
            logger.info(f"Cart: {product_id} set to quantity {quantity}")
        self._commit()

    def remove_from_cart(self, product_id: str) -> None:
        line = self._find(product_id)
        if line is None:
            return
        self._state.lines.remove(line)
        logger.info(f"Cart: removed {product_id}")
        self._commit()

    def remove_quantities(self, lines: Iterable[CartLine]) -> None:
        """
        Take the given quantities out of the cart in one mutation.

        Lines that drop to zero are removed. Anything added after ``lines``
        was captured stays in the cart.
        """
        changed = False
        for taken in lines:
            line = self._find(taken.product.id)
            if line is None:
                continue
            remaining = line.quantity - taken.quantity
            if remaining <= 0:
                self._state.lines.remove(line)
            else:
                line.quantity = remaining
            changed = True

        if changed:
            logger.info(f"Cart: {self.count()} item(s) left after removing ordered quantities")
            self._commit()

    def clear_cart(self) -> None:
        """Remove every line. The logged-in user is kept."""
        self._state.lines = []
        logger.info("Cart cleared")
        self._commit()

    def total(self) -> Decimal:
        return sum((line.subtotal for line in self._state.lines), Decimal("0"))

    def count(self) -> int:
        return sum(line.quantity for line in self._state.lines)

    def login(self, user: User) -> None:
        self._state.user = user.model_copy(deep=True)
        logger.info(f"Session started for {user.email}")
        self._commit()

    def logout(self) -> None:
        """End the session. The cart contents are kept."""
        self._state.user = None
        logger.info("Session ended")
        self._commit()

    def _commit(self) -> None:
        self.store.save(self._state)
        snapshot = self.snapshot()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception as e:
                logger.error(f"Cart observer failed: {e}", exc_info=True)
