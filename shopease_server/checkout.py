"""Checkout: payment form handling, simulated payment and order submission.

There is no payment gateway. The payment step waits for a short delay and
always approves; the order is then created through the storefront API.
"""

import asyncio
import random
import re
from datetime import date
from decimal import Decimal
from typing import Optional
import logging

from .cart import CartManager
from .models import CardType, CheckoutResult, PaymentForm, PaymentReceipt
from .shop_client import ShopClient

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_DELAY = 2.5


class CheckoutError(Exception):
    """Checkout cannot start (no logged-in user, an empty cart, or one already running)."""


class PaymentValidationError(ValueError):
    """The payment form has invalid fields."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


def _digits(value: str) -> str:
    return re.sub(r"[^0-9]", "", value)


def detect_card_type(number: str) -> CardType:
    clean = re.sub(r"\s", "", number)
    if clean.startswith("4"):
        return CardType.VISA
    if clean.startswith("5"):
        return CardType.MASTERCARD
    if clean.startswith("3"):
        return CardType.AMEX
    return CardType.UNKNOWN


def format_card_number(value: str) -> str:
    """
    Group card digits in blocks of four.

    Only the first run of 4 to 16 digits is kept. If there is none, the input
    is returned as is.
    """
    match = re.search(r"\d{4,16}", _digits(value))
    if not match:
        return value
    run = match.group(0)
    return " ".join(run[i:i + 4] for i in range(0, len(run), 4))


def format_expiry_date(value: str) -> str:
    """Format digits as MM/YY once at least two are present."""
    digits = _digits(value)
    if len(digits) >= 2:
        return f"{digits[:2]}/{digits[2:4]}"
    return digits


def validate_payment(form: PaymentForm, today: Optional[date] = None) -> list[str]:
    """
    Check the payment form.

    Returns:
        Error messages, empty when the form is valid
    """
    today = today or date.today()
    errors = []

    card = re.sub(r"\s", "", form.card_number)
    if len(card) < 13 or len(card) > 19:
        errors.append("Please enter a valid card number")

    if not form.expiry_date or len(form.expiry_date) != 5:
        errors.append("Please enter a valid expiry date")
    else:
        month, _, year = form.expiry_date.partition("/")
        try:
            expiry_month, expiry_year = int(month), 2000 + int(year)
        except ValueError:
            errors.append("Please enter a valid expiry date")
        else:
            if not 1 <= expiry_month <= 12:
                errors.append("Please enter a valid expiry date")
            elif (expiry_year, expiry_month) < (today.year, today.month):
                errors.append("Card has expired")

    if not form.cvv or len(form.cvv) < 3:
        errors.append("Please enter a valid CVV")

    if not form.cardholder_name:
        errors.append("Please enter the cardholder name")

    if not form.email or "@" not in form.email:
        errors.append("Please enter a valid email")

    return errors


def generate_test_card(
    rng: Optional[random.Random] = None, today: Optional[date] = None
) -> PaymentForm:
    """Fill the form with random card details that pass validation.

    The expiry falls one to five years after ``today``.
    """
    rng = rng or random.Random()
    today = today or date.today()
    prefix = rng.choice(["4", "5", "37"])
    number = prefix + "".join(str(rng.randrange(10)) for _ in range(16 - len(prefix)))
    month = f"{rng.randint(1, 12):02d}"
    year = f"{(today.year + rng.randint(1, 5)) % 100:02d}"
    return PaymentForm(
        card_number=format_card_number(number),
        expiry_date=format_expiry_date(month + year),
        cvv=str(rng.randint(100, 999)),
        cardholder_name="Test User",
        email="test@example.com",
    )


async def process_test_payment(
    form: PaymentForm, amount: Decimal, delay: float = DEFAULT_PAYMENT_DELAY
) -> PaymentReceipt:
    """Simulate a card payment. Always approved."""
    await asyncio.sleep(delay)
    last_four = re.sub(r"\s", "", form.card_number)[-4:]
    logger.info(f"Payment of ${amount:.2f} approved **** {last_four}")
    return PaymentReceipt(
        amount=amount,
        last_four=last_four,
        card_type=detect_card_type(form.card_number),
    )


class CheckoutService:
    """
    Turns the cart into an order.

    One checkout runs at a time. The order covers the cart as it was when
    checkout started; only those quantities are taken out of the cart
    afterwards.
    """

    def __init__(
        self,
        cart: CartManager,
        client: ShopClient,
        payment_delay: float = DEFAULT_PAYMENT_DELAY,
    ) -> None:
        self.cart = cart
        self.client = client
        self.payment_delay = payment_delay
        self._lock = asyncio.Lock()

    async def checkout(self, form: PaymentForm, today: Optional[date] = None) -> CheckoutResult:
        """
        Pay for the cart and submit the order.

        The ordered quantities are removed from the cart only after the order
        was created. If the API call fails the cart is left untouched and the
        ShopAPIError propagates.

        Raises:
            CheckoutError: No user is logged in, the cart is empty, or another
                checkout is in progress
            PaymentValidationError: The payment form is invalid
            ShopAPIError: The order could not be created
        """
        if self._lock.locked():
            raise CheckoutError("A checkout is already in progress")

        async with self._lock:
            user = self.cart.user
            if user is None:
                raise CheckoutError("Please log in to complete your purchase")
            if self.cart.is_empty():
                raise CheckoutError("Your cart is empty")

            errors = validate_payment(form, today=today)
            if errors:
                raise PaymentValidationError(errors)

            lines = self.cart.items
            amount = sum((line.subtotal for line in lines), Decimal("0"))
            logger.info(f"=== CHECKOUT: user={user.email}, lines={len(lines)}, total={amount} ===")

            receipt = await process_test_payment(form, amount, delay=self.payment_delay)
            order = await self.client.create_order(user.id, lines)

            self.cart.remove_quantities(lines)
            logger.info(f"Order {order.id} placed")
            return CheckoutResult(order=order, receipt=receipt)
