"""Data models for ShopEase storefront entities."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """User role."""

    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


class OrderStatus(str, Enum):
    """Order status. Any status may be set from any other."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class ApiModel(BaseModel):
    """Base for models exchanged with the storefront API (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)


class Product(ApiModel):
    """Represents a catalog product."""

    id: str = Field(description="Product ID")
    name: str = Field(description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    price: Decimal = Field(description="Unit price")
    stock: int = Field(default=0, description="Units in stock (advisory)")
    image: Optional[str] = Field(None, description="Product image URL")
    category: Optional[str] = Field(None, description="Category label")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class User(ApiModel):
    """Represents a storefront user."""

    id: str
    email: str
    name: Optional[str] = None
    role: Role = Role.CUSTOMER
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class OrderItem(ApiModel):
    """Represents an item in an order."""

    id: Optional[str] = None
    order_id: Optional[str] = Field(None, alias="orderId")
    product_id: str = Field(alias="productId")
    quantity: int
    price: Decimal = Field(description="Unit price at the time of the order")
    product: Optional[Product] = None

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


class Order(ApiModel):
    """Represents an order."""

    id: str = Field(description="Order ID")
    user_id: str = Field(alias="userId")
    status: OrderStatus = OrderStatus.PENDING
    total_amount: Decimal = Field(alias="totalAmount", description="Order total value")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")
    user: Optional[User] = None
    items: list[OrderItem] = Field(default_factory=list)


class CartLine(BaseModel):
    """A product snapshot and its quantity in the cart."""

    model_config = ConfigDict(validate_assignment=True)

    product: Product
    quantity: int = Field(ge=1, description="Quantity of the product")

    @property
    def subtotal(self) -> Decimal:
        return self.product.price * self.quantity


class CartState(BaseModel):
    """Everything the cart container owns: lines and the session identity."""

    lines: list[CartLine] = Field(default_factory=list)
    user: Optional[User] = None


class AuthCredentials(BaseModel):
    """Authentication credentials."""

    email: str
    password: str


class RegistrationRequest(AuthCredentials):
    """Payload for creating an account."""

    name: Optional[str] = None


class CardType(str, Enum):
    VISA = "visa"
    MASTERCARD = "mastercard"
    AMEX = "amex"
    UNKNOWN = "unknown"


class PaymentForm(BaseModel):
    """Payment form fields as entered by the shopper."""

    card_number: str = ""
    expiry_date: str = ""
    cvv: str = ""
    cardholder_name: str = ""
    email: str = ""


class PaymentReceipt(BaseModel):
    """Result of the simulated payment."""

    approved: bool = True
    amount: Decimal
    last_four: str
    card_type: CardType = CardType.UNKNOWN


class CheckoutResult(BaseModel):
    """Order created by a successful checkout together with its payment receipt."""

    order: Order
    receipt: PaymentReceipt
