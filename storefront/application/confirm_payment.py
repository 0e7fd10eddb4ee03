import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional
from pydantic import BaseModel, ValidationError as PydanticValidationError

from storefront.application.events import EventBus, OrderPlaced
from storefront.application.interfaces import PaymentGateway
from storefront.domain.currency import from_minor_units
from storefront.domain.exceptions import DuplicateOrderError, ValidationError
from storefront.domain.models import LineItem, Order, OrderStatus, PaymentMethod, ShippingAddress

logger = logging.getLogger(__name__)


class PaymentConfirmationDTO(BaseModel):
    payment_intent_id: str
    amount_minor: int
    currency: str = "gbp"
    customer_email: str = ""
    customer_name: str = ""
    items: Any = None
    shipping_address: Optional[dict] = None
    customer_location: Optional[str] = None

    @classmethod
    def from_payment_intent(cls, intent: dict, shipping_address: Optional[dict] = None) -> "PaymentConfirmationDTO":
        metadata = intent.get("metadata") or {}
        return cls(
            payment_intent_id=intent["id"],
            amount_minor=intent.get("amount_received") or intent.get("amount") or 0,
            currency=intent.get("currency") or "gbp",
            customer_email=metadata.get("customer_email") or intent.get("receipt_email") or "",
            customer_name=metadata.get("customer_name") or "",
            items=metadata.get("items"),
            shipping_address=shipping_address,
            customer_location=metadata.get("customerLocation"),
        )

    @classmethod
    def from_checkout_session(cls, session: dict) -> "PaymentConfirmationDTO":
        metadata = session.get("metadata") or {}
        details = session.get("customer_details") or {}
        address = details.get("address")
        shipping = None
        if address:
            shipping = {
                "line1": address.get("line1"),
                "line2": address.get("line2"),
                "city": address.get("city"),
                "postal_code": address.get("postal_code"),
                "country": address.get("country"),
                "phone": details.get("phone"),
            }
        return cls(
            payment_intent_id=session.get("payment_intent") or session["id"],
            amount_minor=session.get("amount_total") or 0,
            currency=session.get("currency") or "gbp",
            customer_email=metadata.get("customer_email") or details.get("email") or session.get("customer_email") or "",
            customer_name=metadata.get("customer_name") or details.get("name") or "",
            items=metadata.get("items"),
            shipping_address=shipping,
            customer_location=metadata.get("customerLocation"),
        )


class IntakeResult(BaseModel):
    order: Order
    created: bool
    warnings: List[str] = []


def parse_line_items(raw: Any) -> List[LineItem]:
    """Metadata items arrive as a JSON string; anything unreadable means no items."""
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw or "[]")
        except ValueError:
            logger.warning("Payment metadata carries malformed items JSON")
            return []
    if not isinstance(raw, list):
        return []
    try:
        return [LineItem.model_validate(item) for item in raw]
    except PydanticValidationError as e:
        logger.warning(f"Payment metadata carries invalid items: {e}")
        return []


class ConfirmPaymentUseCase:
    """Idempotent order creation from a successful payment."""

    def __init__(self, unit_of_work, event_bus: EventBus, initial_status: OrderStatus = OrderStatus.PENDING):
        self._uow = unit_of_work
        self._events = event_bus
        self._initial_status = initial_status

    async def __call__(self, dto: PaymentConfirmationDTO) -> IntakeResult:
        logger.info(f"Payment confirmation for {dto.payment_intent_id}")

        # 1. Idempotency by payment reference
        async with self._uow() as uow:
            existing = await uow.orders.get_by_payment_intent_id(dto.payment_intent_id)
            if existing:
                logger.info(f"Order already exists for {dto.payment_intent_id}: {existing.id}")
                return IntakeResult(order=existing, created=False)

            order = self._build_order(dto)
            try:
                await uow.orders.create(order)
                await uow.commit()
            except DuplicateOrderError:
                # a concurrent delivery of the same notification won the insert
                await uow.rollback()
                existing = await uow.orders.get_by_payment_intent_id(dto.payment_intent_id)
                if existing is None:
                    raise
                logger.info(f"Concurrent intake for {dto.payment_intent_id}, using {existing.id}")
                return IntakeResult(order=existing, created=False)

        logger.info(f"Order created: {order.id} ({order.total_amount} {order.currency})")
        warnings = []
        if not order.user_email:
            logger.warning(f"Order {order.id} for {dto.payment_intent_id} has no customer email")
            warnings.append("Order created without a customer email; no confirmation was sent")
        warnings += await self._events.publish(OrderPlaced(order=order))
        return IntakeResult(order=order, created=True, warnings=warnings)

    def _build_order(self, dto: PaymentConfirmationDTO) -> Order:
        currency = dto.currency.upper()
        items = parse_line_items(dto.items)
        total = from_minor_units(dto.amount_minor, currency)
        shipping = ShippingAddress.model_validate(dto.shipping_address) if dto.shipping_address else None

        order_items_total = sum((item.subtotal for item in items), Decimal("0"))
        if items and order_items_total != total:
            # shipping and rounding land here; the captured amount is what was charged
            logger.warning(
                f"Items total {order_items_total} differs from captured amount {total} for {dto.payment_intent_id}"
            )

        now = datetime.now(timezone.utc)
        return Order(
            id=str(uuid.uuid4()),
            user_email=dto.customer_email,
            user_name=dto.customer_name or None,
            total_amount=total,
            currency=currency,
            status=self._initial_status,
            items=items,
            shipping_address=shipping,
            customer_location=dto.customer_location or None,
            payment_method=PaymentMethod.STRIPE,
            payment_intent_id=dto.payment_intent_id,
            created_at=now,
            updated_at=now,
        )


class ConfirmClientPaymentUseCase:
    """Post-checkout call from the storefront. The processor is asked, the client is not trusted."""

    def __init__(self, payment_gateway: PaymentGateway, intake: ConfirmPaymentUseCase):
        self._payments = payment_gateway
        self._intake = intake

    async def __call__(self, payment_intent_id: str, shipping_address: Optional[dict] = None):
        if not payment_intent_id or not payment_intent_id.startswith("pi_"):
            raise ValidationError("Invalid paymentIntentId")

        intent = await self._payments.retrieve_payment_intent(payment_intent_id)
        status = intent.get("status")
        if status != "succeeded":
            logger.info(f"Payment {payment_intent_id} not completed: {status}")
            return status, None

        result = await self._intake(PaymentConfirmationDTO.from_payment_intent(intent, shipping_address))
        return status, result


class HandlePaymentEventUseCase:
    """Dispatch of a verified processor event."""

    def __init__(self, intake: ConfirmPaymentUseCase):
        self._intake = intake

    async def __call__(self, event: dict) -> Optional[IntakeResult]:
        event_type = event.get("type")
        payload = (event.get("data") or {}).get("object") or {}

        if event_type == "payment_intent.succeeded":
            return await self._intake(PaymentConfirmationDTO.from_payment_intent(payload))

        if event_type == "checkout.session.completed":
            if payload.get("payment_status", "paid") != "paid":
                logger.info(f"Checkout session {payload.get('id')} completed without payment")
                return None
            return await self._intake(PaymentConfirmationDTO.from_checkout_session(payload))

        logger.info(f"Ignoring payment event {event_type}")
        return None
