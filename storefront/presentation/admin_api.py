import asyncio
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, WebSocket, WebSocketDisconnect, status

from storefront.application.chat import (
    ListStaffUseCase, LoadConversationUseCase, SendMessageDTO, SendMessageUseCase
)
from storefront.application.content import (
    CreateSectionUseCase, DeleteSectionUseCase, GetSectionEditorUseCase, ListSectionsUseCase,
    UpdateSectionDocumentUseCase, UpdateSectionFieldsUseCase,
)
from storefront.application.get_order import GetOrderUseCase
from storefront.application.integrations import (
    CheckEmailConnectionUseCase, CheckMailingListUseCase, MailingListStatus, SaveIntegrationKeyUseCase,
    SendTestEmailUseCase, SyncMailingListUseCase, SyncReport,
)
from storefront.application.list_orders import ExportOrdersUseCase, ListOrdersUseCase, OrderSummaryUseCase
from storefront.application.newsletter import ExportSubscribersUseCase, ListSubscribersUseCase
from storefront.application.products import (
    CreateProductDTO, CreateProductUseCase, ListProductsUseCase, UpdateProductUseCase
)
from storefront.application.payment_configs import (
    CheckPaymentConfigurationUseCase, ConnectionCheck, CreatePaymentConfigurationDTO,
    CreatePaymentConfigurationUseCase, DeletePaymentConfigurationUseCase, ListPaymentConfigurationsUseCase,
    SetDefaultPaymentConfigurationUseCase, TogglePaymentConfigurationUseCase,
)
from storefront.application.roles import (
    AssignRoleUseCase, CancelInvitationUseCase, InviteStaffUseCase, ListInvitationsUseCase, ListRolesUseCase,
    RevokeRoleUseCase,
)
from storefront.application.set_tracking import SetTrackingInfoUseCase, TrackingInfoDTO
from storefront.application.update_status import (
    ResendStatusNotificationUseCase, UpdateOrderStatusUseCase, UpdateStatusDTO
)
from storefront.config import settings
from storefront.domain.chat import ChatFeed
from storefront.domain.exceptions import DomainException
from storefront.domain.workflow import CARRIER_SUGGESTIONS, STATUS_LABELS
from storefront.presentation.dependencies import (
    get_current_user_id, get_email_sender, get_event_bus, get_mailing_list, get_publisher,
    get_settings_store, get_unit_of_work, is_valid_admin_key, require_admin, verify_admin_key,
)
from storefront.presentation.errors import to_http_exception
from storefront.presentation.schemas import (
    AdminProductResponse, ApiKeyRequest, AssignRoleRequest, ChatMessageRequest, ChatMessageResponse,
    CreatePaymentConfigurationRequest, CreateSectionRequest, ErrorResponse, InvitationResponse, InviteRequest,
    InviteResponse, OrderResponse, OrderSummaryResponse, OrderUpdateResponse, PaymentConfigurationResponse,
    ProductRequest, SectionEditorResponse, SectionResponse, SendTestEmailRequest, StaffMemberResponse,
    SubscriberResponse, TrackingInfoRequest, UpdateDocumentRequest, UpdateFieldsRequest, UpdateStatusRequest,
    UserRoleResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(verify_admin_key)])

# Browsers cannot set headers on a websocket handshake, the key comes as a query parameter
ws_router = APIRouter(prefix="/admin", tags=["admin"])

INTEGRATION_PROVIDERS = ("mailerlite", "resend")


def _csv_response(body: str, filename: str) -> Response:
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


# Orders
def get_update_status_use_case(uow=Depends(get_unit_of_work), event_bus=Depends(get_event_bus)):
    return UpdateOrderStatusUseCase(uow, event_bus, strict=settings.STRICT_STATUS_TRANSITIONS)


def get_resend_notification_use_case(uow=Depends(get_unit_of_work), event_bus=Depends(get_event_bus)):
    return ResendStatusNotificationUseCase(uow, event_bus)


@router.get("/orders", response_model=List[OrderResponse])
async def list_orders(
    search: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    uow=Depends(get_unit_of_work)
):
    try:
        orders = await ListOrdersUseCase(uow)(search=search, status=status_filter)
        return [OrderResponse.from_domain(order) for order in orders]
    except DomainException as e:
        raise to_http_exception(e)


@router.get("/orders/summary", response_model=OrderSummaryResponse)
async def orders_summary(uow=Depends(get_unit_of_work)):
    summary = await OrderSummaryUseCase(uow)()
    return OrderSummaryResponse(**summary.model_dump())


@router.get("/orders/export")
async def export_orders(uow=Depends(get_unit_of_work)):
    return _csv_response(await ExportOrdersUseCase(uow)(), "orders.csv")


@router.get("/orders/options")
async def order_options():
    """Status choices and carrier suggestions for the order editor"""
    return {
        "statuses": [{"value": s.value, "label": label} for s, label in STATUS_LABELS.items()],
        "carriers": list(CARRIER_SUGGESTIONS),
    }


@router.get("/orders/{order_id}", response_model=OrderResponse, responses={404: {"model": ErrorResponse}})
async def get_order(order_id: str, uow=Depends(get_unit_of_work)):
    try:
        return OrderResponse.from_domain(await GetOrderUseCase(uow)(order_id))
    except DomainException as e:
        raise to_http_exception(e)


@router.patch(
    "/orders/{order_id}/status",
    response_model=OrderUpdateResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def update_order_status(
    order_id: str,
    request: UpdateStatusRequest,
    use_case: UpdateOrderStatusUseCase = Depends(get_update_status_use_case)
):
    """Change the status; the customer email follows and never blocks the change"""
    try:
        result = await use_case(UpdateStatusDTO(
            order_id=order_id,
            status=request.status,
            expected_status=request.expected_status
        ))
        return OrderUpdateResponse(order=OrderResponse.from_domain(result.order), warnings=result.warnings)
    except DomainException as e:
        raise to_http_exception(e)


@router.patch(
    "/orders/{order_id}/tracking",
    response_model=OrderUpdateResponse,
    responses={404: {"model": ErrorResponse}}
)
async def update_order_tracking(order_id: str, request: TrackingInfoRequest, uow=Depends(get_unit_of_work)):
    try:
        order = await SetTrackingInfoUseCase(uow)(TrackingInfoDTO(order_id=order_id, **request.model_dump()))
        return OrderUpdateResponse(order=OrderResponse.from_domain(order))
    except DomainException as e:
        raise to_http_exception(e)


@router.post(
    "/orders/{order_id}/notify",
    response_model=OrderUpdateResponse,
    responses={404: {"model": ErrorResponse}}
)
async def resend_order_notification(
    order_id: str,
    use_case: ResendStatusNotificationUseCase = Depends(get_resend_notification_use_case)
):
    try:
        result = await use_case(order_id)
        return OrderUpdateResponse(order=OrderResponse.from_domain(result.order), warnings=result.warnings)
    except DomainException as e:
        raise to_http_exception(e)


# Catalogue
@router.get("/products", response_model=List[AdminProductResponse])
async def list_catalogue(category: Optional[str] = None, uow=Depends(get_unit_of_work)):
    products = await ListProductsUseCase(uow)(category=category, include_inactive=True)
    return [AdminProductResponse.model_validate(p) for p in products]


@router.post(
    "/products",
    response_model=AdminProductResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_product(request: ProductRequest, uow=Depends(get_unit_of_work)):
    try:
        product = await CreateProductUseCase(uow)(CreateProductDTO(**request.model_dump()))
        return AdminProductResponse.model_validate(product)
    except DomainException as e:
        raise to_http_exception(e)


@router.patch(
    "/products/{product_id}",
    response_model=AdminProductResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def update_product(product_id: str, request: UpdateFieldsRequest, uow=Depends(get_unit_of_work)):
    try:
        product = await UpdateProductUseCase(uow)(product_id, request.values)
        return AdminProductResponse.model_validate(product)
    except DomainException as e:
        raise to_http_exception(e)


# Chat
@router.post("/chat/messages", response_model=ChatMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_chat_message(
    request: ChatMessageRequest,
    user_id: str = Depends(get_current_user_id),
    uow=Depends(get_unit_of_work),
    publisher=Depends(get_publisher)
):
    try:
        message = await SendMessageUseCase(uow, publisher)(SendMessageDTO(
            sender_id=user_id, content=request.content, recipient_id=request.recipient_id
        ))
        return ChatMessageResponse.model_validate(message)
    except DomainException as e:
        raise to_http_exception(e)


@router.get("/chat/messages", response_model=List[ChatMessageResponse])
async def load_conversation(
    recipient_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    uow=Depends(get_unit_of_work)
):
    messages = await LoadConversationUseCase(uow)(user_id, recipient_id)
    return [ChatMessageResponse.model_validate(m) for m in messages]


@router.get("/chat/staff", response_model=List[StaffMemberResponse])
async def list_chat_staff(user_id: str = Depends(get_current_user_id), uow=Depends(get_unit_of_work)):
    members = await ListStaffUseCase(uow)(user_id)
    return [StaffMemberResponse.model_validate(m) for m in members]


@ws_router.websocket("/chat/ws")
async def chat_feed(
    websocket: WebSocket,
    user_id: str,
    recipient_id: Optional[str] = None,
    api_key: Optional[str] = None,
    publisher=Depends(get_publisher)
):
    """Live messages for one viewer, filtered by relevance"""
    if not is_valid_admin_key(api_key or websocket.headers.get("x-api-key")):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    queue = publisher.subscribe()
    try:
        await serve_chat_feed(websocket, ChatFeed(user_id, recipient_id), queue)
    finally:
        publisher.unsubscribe(queue)


async def serve_chat_feed(websocket, feed: ChatFeed, queue: asyncio.Queue) -> None:
    """Forwards relevant messages until the viewer leaves or a send fails"""

    async def forward():
        while True:
            message = await queue.get()
            if feed.receive(message):
                await websocket.send_json(ChatMessageResponse.model_validate(message).model_dump(mode="json"))

    async def keep_alive():
        # client frames only keep the connection alive
        while True:
            await websocket.receive_text()

    forwarder = asyncio.create_task(forward())
    receiver = asyncio.create_task(keep_alive())
    try:
        await asyncio.wait({forwarder, receiver}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        forwarder.cancel()
        receiver.cancel()
        outcomes = await asyncio.gather(forwarder, receiver, return_exceptions=True)

    for outcome in outcomes:
        if isinstance(outcome, WebSocketDisconnect):
            logger.info(f"Chat viewer {feed.viewer_id} disconnected")
        elif isinstance(outcome, Exception):
            logger.error(f"Chat feed for {feed.viewer_id} failed: {outcome}")


# CMS
@router.get("/content", response_model=List[SectionResponse])
async def list_sections(page: Optional[str] = None, search: Optional[str] = None, uow=Depends(get_unit_of_work)):
    sections = await ListSectionsUseCase(uow)(page_name=page, search=search)
    return [SectionResponse.model_validate(s) for s in sections]


@router.post(
    "/content",
    response_model=SectionResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_section(request: CreateSectionRequest, uow=Depends(get_unit_of_work)):
    try:
        section = await CreateSectionUseCase(uow)(request.page_name, request.section_key, request.content)
        return SectionResponse.model_validate(section)
    except DomainException as e:
        raise to_http_exception(e)


@router.get("/content/{content_id}", response_model=SectionEditorResponse, responses={404: {"model": ErrorResponse}})
async def get_section_editor(content_id: str, uow=Depends(get_unit_of_work)):
    try:
        return SectionEditorResponse.from_domain(await GetSectionEditorUseCase(uow)(content_id))
    except DomainException as e:
        raise to_http_exception(e)


@router.patch("/content/{content_id}", response_model=SectionResponse, responses={404: {"model": ErrorResponse}})
async def update_section_fields(content_id: str, request: UpdateFieldsRequest, uow=Depends(get_unit_of_work)):
    try:
        section = await UpdateSectionFieldsUseCase(uow)(content_id, request.values)
        return SectionResponse.model_validate(section)
    except DomainException as e:
        raise to_http_exception(e)


@router.put(
    "/content/{content_id}",
    response_model=SectionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def replace_section_document(content_id: str, request: UpdateDocumentRequest, uow=Depends(get_unit_of_work)):
    try:
        section = await UpdateSectionDocumentUseCase(uow)(content_id, request.content)
        return SectionResponse.model_validate(section)
    except DomainException as e:
        raise to_http_exception(e)


@router.delete("/content/{content_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_section(content_id: str, uow=Depends(get_unit_of_work)):
    try:
        await DeleteSectionUseCase(uow)(content_id)
    except DomainException as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Newsletter
@router.get("/subscribers", response_model=List[SubscriberResponse])
async def list_subscribers(active_only: bool = False, uow=Depends(get_unit_of_work)):
    subscribers = await ListSubscribersUseCase(uow)(active_only=active_only)
    return [SubscriberResponse.model_validate(s) for s in subscribers]


@router.get("/subscribers/export")
async def export_subscribers(uow=Depends(get_unit_of_work)):
    return _csv_response(await ExportSubscribersUseCase(uow)(), "subscribers.csv")


# Integrations
def _check_provider(provider: str) -> None:
    if provider not in INTEGRATION_PROVIDERS:
        raise HTTPException(status_code=404, detail=f"Unknown integration {provider}")


@router.get("/integrations/{provider}")
async def get_integration(provider: str, store=Depends(get_settings_store)):
    _check_provider(provider)
    values = await store.get(provider)
    fallback = settings.MAILERLITE_API_KEY if provider == "mailerlite" else settings.RESEND_API_KEY
    view = {key: value for key, value in values.items() if key != "api_key"}
    view["has_api_key"] = bool(values.get("api_key") or fallback)
    return view


@router.put("/integrations/{provider}/key", responses={400: {"model": ErrorResponse}})
async def save_integration_key(provider: str, request: ApiKeyRequest, store=Depends(get_settings_store)):
    _check_provider(provider)
    try:
        return await SaveIntegrationKeyUseCase(store)(provider, request.api_key)
    except DomainException as e:
        raise to_http_exception(e)


@router.post("/integrations/mailerlite/test", response_model=MailingListStatus,
             responses={503: {"model": ErrorResponse}})
async def test_mailing_list(store=Depends(get_settings_store), mailing_list=Depends(get_mailing_list)):
    try:
        return await CheckMailingListUseCase(store, mailing_list, settings.MAILERLITE_API_KEY, settings.BRAND_NAME)()
    except DomainException as e:
        raise to_http_exception(e)


@router.post("/integrations/mailerlite/sync", response_model=SyncReport, responses={503: {"model": ErrorResponse}})
async def sync_mailing_list(
    uow=Depends(get_unit_of_work),
    store=Depends(get_settings_store),
    mailing_list=Depends(get_mailing_list)
):
    try:
        return await SyncMailingListUseCase(
            uow, store, mailing_list, settings.MAILERLITE_API_KEY, settings.BRAND_NAME
        )()
    except DomainException as e:
        raise to_http_exception(e)


@router.post("/integrations/resend/test", responses={503: {"model": ErrorResponse}})
async def test_email(store=Depends(get_settings_store), email_sender=Depends(get_email_sender)):
    try:
        return await CheckEmailConnectionUseCase(store, email_sender, settings.RESEND_API_KEY)()
    except DomainException as e:
        raise to_http_exception(e)


@router.post("/integrations/resend/send", responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}})
async def send_test_email(
    request: SendTestEmailRequest,
    store=Depends(get_settings_store),
    email_sender=Depends(get_email_sender)
):
    try:
        message_id = await SendTestEmailUseCase(store, email_sender, settings.RESEND_API_KEY)(request.to)
        return {"success": True, "id": message_id}
    except DomainException as e:
        raise to_http_exception(e)


# Roles and invitations
@router.get("/roles", response_model=List[UserRoleResponse], dependencies=[Depends(require_admin)])
async def list_roles(user_id: Optional[str] = None, uow=Depends(get_unit_of_work)):
    roles = await ListRolesUseCase(uow)(user_id=user_id)
    return [UserRoleResponse.model_validate(r) for r in roles]


@router.post(
    "/roles",
    response_model=UserRoleResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)]
)
async def assign_role(request: AssignRoleRequest, uow=Depends(get_unit_of_work)):
    try:
        user_role = await AssignRoleUseCase(uow)(request.user_id, request.role, request.responsibilities)
        return UserRoleResponse.model_validate(user_role)
    except DomainException as e:
        raise to_http_exception(e)


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_admin)])
async def revoke_role(role_id: str, uow=Depends(get_unit_of_work)):
    try:
        await RevokeRoleUseCase(uow)(role_id)
    except DomainException as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/invitations", response_model=List[InvitationResponse], dependencies=[Depends(require_admin)])
async def list_invitations(uow=Depends(get_unit_of_work)):
    invitations = await ListInvitationsUseCase(uow)()
    return [InvitationResponse.model_validate(i) for i in invitations]


@router.post(
    "/invitations",
    response_model=InviteResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def invite_staff(
    request: InviteRequest,
    admin_id: str = Depends(require_admin),
    uow=Depends(get_unit_of_work),
    email_sender=Depends(get_email_sender)
):
    try:
        result = await InviteStaffUseCase(uow, email_sender, settings.SITE_URL)(
            request.email, request.role, request.responsibilities, invited_by=admin_id
        )
        return InviteResponse(
            invitation=InvitationResponse.model_validate(result.invitation), warnings=result.warnings
        )
    except DomainException as e:
        raise to_http_exception(e)


@router.delete("/invitations", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_admin)])
async def cancel_invitation(email: str, role: str, uow=Depends(get_unit_of_work)):
    try:
        await CancelInvitationUseCase(uow)(email, role)
    except DomainException as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Payment configurations
@router.get("/payment-configurations", response_model=List[PaymentConfigurationResponse])
async def list_payment_configurations(uow=Depends(get_unit_of_work)):
    configs = await ListPaymentConfigurationsUseCase(uow)()
    return [PaymentConfigurationResponse.model_validate(c) for c in configs]


@router.post(
    "/payment-configurations",
    response_model=PaymentConfigurationResponse,
    responses={400: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_payment_configuration(
    request: CreatePaymentConfigurationRequest,
    x_user_id: Optional[str] = Header(None),
    uow=Depends(get_unit_of_work)
):
    try:
        config = await CreatePaymentConfigurationUseCase(uow)(
            CreatePaymentConfigurationDTO(**request.model_dump(), created_by=x_user_id)
        )
        return PaymentConfigurationResponse.model_validate(config)
    except DomainException as e:
        raise to_http_exception(e)


@router.post("/payment-configurations/{config_id}/default", response_model=PaymentConfigurationResponse,
             responses={404: {"model": ErrorResponse}})
async def set_default_payment_configuration(config_id: str, uow=Depends(get_unit_of_work)):
    try:
        config = await SetDefaultPaymentConfigurationUseCase(uow)(config_id)
        return PaymentConfigurationResponse.model_validate(config)
    except DomainException as e:
        raise to_http_exception(e)


@router.post("/payment-configurations/{config_id}/toggle-active", response_model=PaymentConfigurationResponse,
             responses={404: {"model": ErrorResponse}})
async def toggle_payment_configuration_active(config_id: str, uow=Depends(get_unit_of_work)):
    try:
        config = await TogglePaymentConfigurationUseCase(uow, "is_active")(config_id)
        return PaymentConfigurationResponse.model_validate(config)
    except DomainException as e:
        raise to_http_exception(e)


@router.post("/payment-configurations/{config_id}/toggle-test-mode", response_model=PaymentConfigurationResponse,
             responses={404: {"model": ErrorResponse}})
async def toggle_payment_configuration_test_mode(config_id: str, uow=Depends(get_unit_of_work)):
    try:
        config = await TogglePaymentConfigurationUseCase(uow, "is_test_mode")(config_id)
        return PaymentConfigurationResponse.model_validate(config)
    except DomainException as e:
        raise to_http_exception(e)


@router.delete("/payment-configurations/{config_id}", status_code=status.HTTP_204_NO_CONTENT,
               responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}})
async def delete_payment_configuration(config_id: str, uow=Depends(get_unit_of_work)):
    try:
        await DeletePaymentConfigurationUseCase(uow)(config_id)
    except DomainException as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/payment-configurations/{config_id}/test", response_model=ConnectionCheck,
             responses={404: {"model": ErrorResponse}})
async def test_payment_configuration(config_id: str, uow=Depends(get_unit_of_work)):
    try:
        return await CheckPaymentConfigurationUseCase(uow)(config_id)
    except DomainException as e:
        raise to_http_exception(e)
