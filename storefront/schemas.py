from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, ClassVar, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

# amounts travel as JSON numbers, like the backend sends them
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class ApiModel(BaseModel):
    """Backend payloads are camelCase; attribute names stay snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    CARD = "CARD"
    TWINT = "TWINT"
    APPLEPAY = "APPLEPAY"
    PAYPAL = "PAYPAL"
    CASH = "CASH"


class ProductType(str, Enum):
    NEW = "NEW"
    OCCASION = "OCCASION"


ORDER_STATUS_LABELS = {
    OrderStatus.PENDING: "Ausstehend",
    OrderStatus.PROCESSING: "In Bearbeitung",
    OrderStatus.SHIPPED: "Versendet",
    OrderStatus.DELIVERED: "Geliefert",
    OrderStatus.CANCELLED: "Storniert",
}

PAYMENT_STATUS_LABELS = {
    PaymentStatus.PENDING: "Ausstehend",
    PaymentStatus.PAID: "Bezahlt",
    PaymentStatus.FAILED: "Fehlgeschlagen",
    PaymentStatus.REFUNDED: "Erstattet",
}

PAYMENT_METHOD_LABELS = {
    PaymentMethod.TWINT: "TWINT",
    PaymentMethod.APPLEPAY: "Apple Pay",
    PaymentMethod.CARD: "Kreditkarte",
    PaymentMethod.PAYPAL: "PayPal",
    PaymentMethod.CASH: "Bar",
}


def payment_method_label(method: Optional[PaymentMethod]) -> str:
    if method is None:
        return "Nicht angegeben"
    return PAYMENT_METHOD_LABELS.get(method, method.value)


class CartItem(ApiModel):
    id: str
    name: str
    price: Money
    image: str = ""
    quantity: int = 1

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class Product(ApiModel):
    id: str
    name: str
    description: Optional[str] = None
    category: str = ""
    image: Optional[str] = None
    sell_price: Money
    purchase_price: Money = Decimal("0")
    stock: int = 0
    min_stock: int = 0
    is_active: bool = True
    product_type: Optional[ProductType] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None


class ProductInput(ApiModel):
    """Admin product form; name, category and sell price are required."""

    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    sell_price: Money = Field(ge=0)
    description: Optional[str] = None
    image: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    purchase_price: Money = Decimal("0")
    stock: int = 0
    min_stock: int = 0
    is_active: bool = True
    product_type: Optional[ProductType] = None

    @field_validator("name", "category")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class ShippingAddress(ApiModel):
    first_name: str = ""
    last_name: str = ""
    address: str = ""
    city: str = ""
    zip_code: str = ""
    country: str = "Schweiz"
    tracking_number: Optional[str] = None


class OrderProduct(ApiModel):
    id: str
    name: str
    image: Optional[str] = None


class OrderItem(ApiModel):
    id: Optional[str] = None
    product_id: str
    quantity: int
    price: Money
    product: Optional[OrderProduct] = None


class Order(ApiModel):
    id: str
    order_number: Optional[str] = None
    user_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: Optional[PaymentMethod] = None
    subtotal: Money = Decimal("0")
    tax: Money = Decimal("0")
    shipping: Money = Decimal("0")
    total: Money = Decimal("0")
    shipping_address: Optional[ShippingAddress] = None
    items: List[OrderItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @property
    def status_label(self) -> str:
        return ORDER_STATUS_LABELS[self.status]


class CheckoutForm(ApiModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    zip_code: str = ""
    country: str = "Schweiz"

    REQUIRED: ClassVar[Tuple[str, ...]] = ("first_name", "last_name", "email", "address", "city", "zip_code", "country")

    def missing_fields(self) -> List[str]:
        return [name for name in self.REQUIRED if not getattr(self, name).strip()]

    def shipping_address(self) -> ShippingAddress:
        return ShippingAddress(
            first_name=self.first_name,
            last_name=self.last_name,
            address=self.address,
            city=self.city,
            zip_code=self.zip_code,
            country=self.country,
        )


class Totals(ApiModel):
    subtotal: Money
    shipping: Money
    tax: Money
    total: Money


class OrderStatusUpdate(ApiModel):
    status: OrderStatus
    tracking_number: Optional[str] = None


class SampleEmailRequest(ApiModel):
    type: str = Field(pattern="^(success|failed)$")
