import json
import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from storefront.application.checkout import CartItem, CheckoutDTO, CreatePaymentIntentUseCase
from storefront.application.confirm_payment import (
    ConfirmClientPaymentUseCase, ConfirmPaymentUseCase, HandlePaymentEventUseCase
)
from storefront.application.content import GetPublicSectionUseCase
from storefront.application.get_order import GetOrderUseCase
from storefront.application.newsletter import SubscribeUseCase, UnsubscribeUseCase
from storefront.application.products import GetProductUseCase, ListProductsUseCase
from storefront.config import settings
from storefront.domain.exceptions import DomainException, OrderNotFoundError, ValidationError
from storefront.domain.workflow import parse_status
from storefront.infrastructure.webhooks import verify_event
from storefront.presentation.dependencies import get_event_bus, get_payment_gateway, get_unit_of_work
from storefront.presentation.errors import to_http_exception
from storefront.presentation.schemas import (
    CheckoutRequest, CheckoutResponse, ClientPaymentConfirmation, ErrorResponse, OrderTrackingResponse,
    PaymentIntakeResponse, ProductResponse, SubscribeRequest, SubscriberResponse, UnsubscribeRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# Use case factories
def get_get_order_use_case(uow=Depends(get_unit_of_work)):
    return GetOrderUseCase(uow)


def get_create_payment_intent_use_case(uow=Depends(get_unit_of_work), gateway=Depends(get_payment_gateway)):
    return CreatePaymentIntentUseCase(uow, gateway, settings.SHIPPING_FLAT_RATE)


def get_confirm_payment_use_case(uow=Depends(get_unit_of_work), event_bus=Depends(get_event_bus)):
    return ConfirmPaymentUseCase(uow, event_bus, parse_status(settings.ORDER_INTAKE_STATUS))


def get_handle_payment_event_use_case(intake=Depends(get_confirm_payment_use_case)):
    return HandlePaymentEventUseCase(intake)


def get_confirm_client_payment_use_case(gateway=Depends(get_payment_gateway),
                                        intake=Depends(get_confirm_payment_use_case)):
    return ConfirmClientPaymentUseCase(gateway, intake)


def get_list_products_use_case(uow=Depends(get_unit_of_work)):
    return ListProductsUseCase(uow)


def get_get_product_use_case(uow=Depends(get_unit_of_work)):
    return GetProductUseCase(uow)


def get_public_section_use_case(uow=Depends(get_unit_of_work)):
    return GetPublicSectionUseCase(uow)


def get_subscribe_use_case(uow=Depends(get_unit_of_work)):
    return SubscribeUseCase(uow)


def get_unsubscribe_use_case(uow=Depends(get_unit_of_work)):
    return UnsubscribeUseCase(uow)


@router.get(
    "/orders/{order_id}",
    response_model=OrderTrackingResponse,
    responses={404: {"model": ErrorResponse}}
)
async def track_order(
    order_id: str,
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    """Order tracking page"""
    try:
        order = await use_case(order_id)
        return OrderTrackingResponse.from_domain(order)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")


@router.get("/products", response_model=List[ProductResponse])
async def list_products(
    category: Optional[str] = Query(None),
    use_case: ListProductsUseCase = Depends(get_list_products_use_case)
):
    """Shop catalogue, optionally narrowed to one category"""
    products = await use_case(category=category)
    return [ProductResponse.model_validate(p) for p in products]


@router.get(
    "/products/{product_id}",
    response_model=ProductResponse,
    responses={404: {"model": ErrorResponse}}
)
async def get_product(
    product_id: str,
    use_case: GetProductUseCase = Depends(get_get_product_use_case)
):
    try:
        product = await use_case(product_id)
    except DomainException as e:
        raise to_http_exception(e)
    if not product.is_active:
        raise HTTPException(status_code=404, detail="Product not found")
    return ProductResponse.model_validate(product)


@router.post(
    "/checkout/payment-intent",
    response_model=CheckoutResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}}
)
async def create_payment_intent(
    request: CheckoutRequest,
    use_case: CreatePaymentIntentUseCase = Depends(get_create_payment_intent_use_case)
):
    try:
        dto = CheckoutDTO(
            items=[CartItem(id=item.id, quantity=item.quantity) for item in request.items],
            customer_email=request.customer_email or "",
            customer_name=request.customer_name,
            currency=request.currency,
            customer_location=request.customer_location
        )
        result = await use_case(dto)
        return CheckoutResponse(
            client_secret=result.client_secret,
            payment_intent_id=result.payment_intent_id,
            amount=result.amount
        )
    except DomainException as e:
        raise to_http_exception(e)


@router.post(
    "/payments/webhook",
    response_model=PaymentIntakeResponse,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}}
)
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    handle_event: HandlePaymentEventUseCase = Depends(get_handle_payment_event_use_case),
    confirm_client: ConfirmClientPaymentUseCase = Depends(get_confirm_client_payment_use_case)
):
    """Processor webhook (signed) or the storefront's post-checkout confirmation (unsigned)"""
    payload = await request.body()
    try:
        if stripe_signature:
            event = verify_event(payload, stripe_signature, settings.STRIPE_WEBHOOK_SECRET,
                                 settings.WEBHOOK_TOLERANCE_SECONDS)
            logger.info(f"Webhook event {event.get('id')} of type {event.get('type')}")
            result = await handle_event(event)
            if result is None:
                return PaymentIntakeResponse(success=True)
            return PaymentIntakeResponse(
                success=True, order_id=result.order.id, created=result.created, warnings=result.warnings
            )

        body = _json_body(payload)
        confirmation = ClientPaymentConfirmation.model_validate(body)
        payment_status, result = await confirm_client(
            confirmation.payment_intent_id, confirmation.shipping_address
        )
        if result is None:
            return PaymentIntakeResponse(success=False, payment_status=payment_status)
        return PaymentIntakeResponse(
            success=True,
            order_id=result.order.id,
            created=result.created,
            payment_status=payment_status,
            warnings=result.warnings
        )
    except DomainException as e:
        raise to_http_exception(e)


def _json_body(payload: bytes) -> Dict[str, Any]:
    try:
        body = json.loads(payload or b"{}")
    except ValueError:
        raise ValidationError("Request body is not valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


@router.get("/content/{page_name}/{section_key}", responses={404: {"model": ErrorResponse}})
async def get_public_section(
    page_name: str,
    section_key: str,
    use_case: GetPublicSectionUseCase = Depends(get_public_section_use_case)
):
    try:
        return await use_case(page_name, section_key)
    except DomainException as e:
        raise to_http_exception(e)


@router.post(
    "/newsletter/subscribe",
    response_model=SubscriberResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def subscribe(
    request: SubscribeRequest,
    use_case: SubscribeUseCase = Depends(get_subscribe_use_case)
):
    try:
        subscriber = await use_case(request.email, request.name, request.source)
        return SubscriberResponse.model_validate(subscriber)
    except DomainException as e:
        raise to_http_exception(e)


@router.post(
    "/newsletter/unsubscribe",
    response_model=SubscriberResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def unsubscribe(
    request: UnsubscribeRequest,
    use_case: UnsubscribeUseCase = Depends(get_unsubscribe_use_case)
):
    try:
        subscriber = await use_case(request.email)
        return SubscriberResponse.model_validate(subscriber)
    except DomainException as e:
        raise to_http_exception(e)
