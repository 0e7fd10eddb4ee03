import logging
import secrets
from typing import Optional
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.application.integrations import IntegrationSettingsStore
from storefront.application.notifications import EmailStatusNotifier, build_event_bus
from storefront.application.roles import AuthorizeRoleUseCase
from storefront.config import settings
from storefront.database import get_db
from storefront.domain.exceptions import PermissionDeniedError
from storefront.infrastructure.http_clients import MailerLiteClient, ResendEmailClient, StripePaymentsClient
from storefront.infrastructure.realtime import MessageBroadcaster
from storefront.infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# One per process; every websocket connection subscribes to it
broadcaster = MessageBroadcaster()


def get_unit_of_work(db: AsyncSession = Depends(get_db)):
    return UnitOfWork(lambda: db)


def get_email_sender():
    return ResendEmailClient(settings.RESEND_API_BASE_URL, settings.RESEND_API_KEY, settings.EMAIL_FROM)


def get_payment_gateway():
    return StripePaymentsClient(settings.STRIPE_API_BASE_URL, settings.STRIPE_SECRET_KEY)


def get_mailing_list():
    return MailerLiteClient(settings.MAILERLITE_API_BASE_URL)


def get_publisher():
    return broadcaster


def get_event_bus(email_sender=Depends(get_email_sender)):
    return build_event_bus(EmailStatusNotifier(email_sender, settings.SITE_URL), email_sender)


def get_settings_store(uow=Depends(get_unit_of_work)):
    return IntegrationSettingsStore(uow)


def is_valid_admin_key(api_key: Optional[str]) -> bool:
    expected = settings.ADMIN_API_TOKEN
    return bool(expected and api_key and secrets.compare_digest(api_key.encode(), expected.encode()))


async def verify_admin_key(api_key: Optional[str] = Depends(api_key_header)) -> bool:
    """Staff endpoints are reachable with the admin API token only."""
    if not is_valid_admin_key(api_key):
        logger.warning("Rejected admin request with missing or invalid X-API-Key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing X-API-Key header"
        )
    return True


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-User-Id header is required")
    return x_user_id


async def require_admin(user_id: str = Depends(get_current_user_id), uow=Depends(get_unit_of_work)) -> str:
    try:
        await AuthorizeRoleUseCase(uow)(user_id)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return user_id
