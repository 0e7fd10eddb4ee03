from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from storefront.domain.models import AppRole, LineItem, OrderStatus, PaymentMethod, ShippingAddress
from storefront.domain.workflow import STATUS_LABELS, progress_index


class ErrorResponse(BaseModel):
    detail: str


class OrderResponse(BaseModel):
    id: str
    user_email: str
    user_name: Optional[str] = None
    total_amount: Decimal
    currency: str
    status: OrderStatus
    items: List[LineItem]
    shipping_address: Optional[ShippingAddress] = None
    customer_location: Optional[str] = None
    payment_method: PaymentMethod
    payment_intent_id: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_carrier: Optional[str] = None
    estimated_delivery: Optional[date] = None
    admin_notes: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, order):
        return cls(
            id=order.id,
            user_email=order.user_email,
            user_name=order.user_name,
            total_amount=order.total_amount,
            currency=order.currency,
            status=order.status,
            items=order.items,
            shipping_address=order.shipping_address,
            customer_location=order.customer_location,
            payment_method=order.payment_method,
            payment_intent_id=order.payment_intent_id,
            tracking_number=order.tracking_number,
            tracking_carrier=order.tracking_carrier,
            estimated_delivery=order.estimated_delivery,
            admin_notes=order.admin_notes,
            shipped_at=order.shipped_at,
            delivered_at=order.delivered_at,
            created_at=order.created_at,
            updated_at=order.updated_at
        )


class OrderTrackingResponse(BaseModel):
    """Customer-facing view, without staff notes"""
    id: str
    status: OrderStatus
    status_label: str
    progress_index: int
    total_amount: Decimal
    currency: str
    items: List[LineItem]
    tracking_number: Optional[str] = None
    tracking_carrier: Optional[str] = None
    estimated_delivery: Optional[date] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, order):
        return cls(
            id=order.id,
            status=order.status,
            status_label=STATUS_LABELS[order.status],
            progress_index=progress_index(order.status),
            total_amount=order.total_amount,
            currency=order.currency,
            items=order.items,
            tracking_number=order.tracking_number,
            tracking_carrier=order.tracking_carrier,
            estimated_delivery=order.estimated_delivery,
            shipped_at=order.shipped_at,
            delivered_at=order.delivered_at,
            created_at=order.created_at
        )


class UpdateStatusRequest(BaseModel):
    status: str
    expected_status: Optional[str] = None


class TrackingInfoRequest(BaseModel):
    tracking_number: Optional[str] = None
    tracking_carrier: Optional[str] = None
    estimated_delivery: Optional[date] = None
    admin_notes: Optional[str] = None


class OrderUpdateResponse(BaseModel):
    order: OrderResponse
    warnings: List[str] = []


class OrderSummaryResponse(BaseModel):
    revenue: Dict[str, Decimal]
    total_orders: int
    pending_count: int
    delivered_count: int


# Storefront payloads use camelCase
class CartItemRequest(BaseModel):
    id: str
    quantity: int = Field(gt=0)
    # display values from the cart; checkout prices from the catalogue
    name: Optional[str] = None
    price: Optional[Decimal] = None


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    price: Decimal
    sale_price: Optional[Decimal] = None
    currency: str
    category: str
    images: List[str] = []
    image_url: Optional[str] = None
    carbon_offset_kg: Optional[Decimal] = None
    source_location: Optional[str] = None
    stock_quantity: int
    sku: Optional[str] = None
    featured: bool
    created_at: datetime


class ProductRequest(BaseModel):
    name: str
    category: str
    price: Decimal = Field(ge=0)
    sale_price: Optional[Decimal] = Field(default=None, ge=0)
    currency: str = "GBP"
    description: Optional[str] = None
    images: List[str] = []
    image_url: Optional[str] = None
    carbon_offset_kg: Optional[Decimal] = None
    source_location: Optional[str] = None
    stock_quantity: int = Field(default=0, ge=0)
    sku: Optional[str] = None
    is_active: bool = True
    featured: bool = False


class AdminProductResponse(ProductResponse):
    is_active: bool
    updated_at: datetime


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: List[CartItemRequest] = []
    customer_email: Optional[EmailStr] = Field(None, alias="customerEmail")
    customer_name: str = Field("", alias="customerName")
    currency: str = "GBP"
    customer_location: Optional[str] = Field(None, alias="customerLocation")


class CheckoutResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_secret: str = Field(alias="clientSecret")
    payment_intent_id: str = Field(alias="paymentIntentId")
    amount: int


class ClientPaymentConfirmation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_intent_id: str = Field("", alias="paymentIntentId")
    shipping_address: Optional[Dict[str, Any]] = Field(None, alias="shippingAddress")


class PaymentIntakeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    received: bool = True
    success: bool
    order_id: Optional[str] = Field(None, alias="orderId")
    created: bool = False
    payment_status: Optional[str] = Field(None, alias="paymentStatus")
    warnings: List[str] = []


class ChatMessageRequest(BaseModel):
    content: str
    recipient_id: Optional[str] = None


class ChatMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender_id: str
    recipient_id: Optional[str] = None
    content: str
    created_at: datetime


class StaffMemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    roles: List[AppRole]


class SectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    page_name: str
    section_key: str
    content: Dict[str, Any]
    is_active: bool
    updated_at: Optional[datetime] = None


class SectionEditorResponse(BaseModel):
    section: SectionResponse
    editor: Dict[str, Any]

    @classmethod
    def from_domain(cls, view):
        return cls(
            section=SectionResponse.model_validate(view.section),
            editor=view.editor.model_dump(mode="json"),
        )


class CreateSectionRequest(BaseModel):
    page_name: str
    section_key: str
    content: Optional[Dict[str, Any]] = None


class UpdateFieldsRequest(BaseModel):
    values: Dict[str, Any]


class UpdateDocumentRequest(BaseModel):
    content: str


class SubscribeRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    source: Optional[str] = None


class UnsubscribeRequest(BaseModel):
    email: EmailStr


class SubscriberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: Optional[str] = None
    source: Optional[str] = None
    is_active: bool
    subscribed_at: datetime
    unsubscribed_at: Optional[datetime] = None


class ApiKeyRequest(BaseModel):
    api_key: str


class SendTestEmailRequest(BaseModel):
    to: EmailStr


class AssignRoleRequest(BaseModel):
    user_id: str
    role: str
    responsibilities: Optional[str] = None


class UserRoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    role: AppRole
    responsibilities: Optional[str] = None
    created_at: datetime


class InviteRequest(BaseModel):
    email: EmailStr
    role: str
    responsibilities: Optional[str] = None


class InvitationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email: str
    role: AppRole
    responsibilities: Optional[str] = None
    invited_by: str
    created_at: datetime


class InviteResponse(BaseModel):
    invitation: InvitationResponse
    warnings: List[str] = []


class CreatePaymentConfigurationRequest(BaseModel):
    name: str
    provider: str = "stripe"
    is_test_mode: bool = True
    stripe_publishable_key: Optional[str] = None
    connection_type: str = "api_keys"
    metadata: Dict[str, Any] = {}


class PaymentConfigurationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    provider: str
    is_test_mode: bool
    is_default: bool
    is_active: bool
    stripe_publishable_key: Optional[str] = None
    connection_type: str
    metadata: Dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime
