from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional
from pydantic import AliasChoices, BaseModel, Field


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    ARRIVED = "arrived"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    STRIPE = "stripe"
    MPESA = "mpesa"


class AppRole(str, Enum):
    ADMIN = "admin"
    MODERATOR = "moderator"
    USER = "user"
    MARKETING = "marketing"
    SHIPPING = "shipping"
    SUPPORT = "support"
    CONTENT = "content"


class LineItem(BaseModel):
    """Value Object: one line of an order"""
    name: str
    quantity: int = Field(default=1, validation_alias=AliasChoices("quantity", "qty"))
    price: Decimal = Decimal("0")

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


class ShippingAddress(BaseModel):
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None


class Order(BaseModel):
    """Domain Entity: a customer purchase"""
    id: str
    user_email: str
    user_name: str | None = None
    total_amount: Decimal = Field(ge=0)
    currency: str = "GBP"
    status: OrderStatus
    items: List[LineItem] = []
    shipping_address: ShippingAddress | None = None
    customer_location: str | None = None
    payment_method: PaymentMethod = PaymentMethod.STRIPE
    payment_intent_id: str | None = None
    mpesa_transaction_id: str | None = None
    tracking_number: str | None = None
    tracking_carrier: str | None = None
    estimated_delivery: date | None = None
    admin_notes: str | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def items_total(self) -> Decimal:
        return sum((item.subtotal for item in self.items), Decimal("0"))

    @property
    def short_id(self) -> str:
        return self.id[:8].upper()


class Product(BaseModel):
    """Domain Entity: a catalogue item"""
    id: str
    name: str
    description: str | None = None
    price: Decimal = Field(ge=0)
    sale_price: Decimal | None = Field(default=None, ge=0)
    currency: str = "GBP"
    category: str
    images: List[str] = []
    image_url: str | None = None
    carbon_offset_kg: Decimal | None = None
    source_location: str | None = None
    stock_quantity: int = 0
    sku: str | None = None
    is_active: bool = True
    featured: bool = False
    created_at: datetime
    updated_at: datetime

    @property
    def unit_price(self) -> Decimal:
        return self.sale_price if self.sale_price is not None else self.price


class Subscriber(BaseModel):
    id: str
    email: str
    name: str | None = None
    source: str | None = None
    is_active: bool = True
    subscribed_at: datetime
    unsubscribed_at: datetime | None = None


class UserRole(BaseModel):
    id: str
    user_id: str
    role: AppRole
    responsibilities: str | None = None
    created_at: datetime


class StaffInvitation(BaseModel):
    email: str
    role: AppRole
    responsibilities: str | None = None
    invited_by: str = "system"
    created_at: datetime


class SiteContent(BaseModel):
    id: str
    page_name: str
    section_key: str
    content: dict[str, Any] = {}
    is_active: bool = True
    updated_at: datetime | None = None

    @property
    def registry_key(self) -> str:
        return f"{self.page_name}/{self.section_key}"


class ChatMessage(BaseModel):
    id: str
    sender_id: str
    recipient_id: str | None = None
    content: str
    created_at: datetime


class PaymentConfiguration(BaseModel):
    id: str
    name: str
    provider: str = "stripe"
    is_test_mode: bool = True
    is_default: bool = False
    is_active: bool = True
    stripe_publishable_key: str | None = None
    connection_type: str = "api_keys"
    metadata: dict[str, Any] = {}
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime
