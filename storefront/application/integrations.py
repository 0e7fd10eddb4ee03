"""Mailing list and transactional email integrations.

Per-provider settings live in the CMS table under the `integrations` page, one
section per provider, e.g. `integrations/mailerlite`:

    {"api_key": ..., "connected": true, "last_sync": ..., "synced_count": 12,
     "group_id": ..., "group_name": ...}

A key saved from the admin console wins over the one in the environment.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel

from storefront.application.interfaces import EmailSender, MailingListService
from storefront.application.newsletter import normalize_email
from storefront.domain.content import parse_content
from storefront.domain.exceptions import (
    IntegrationNotConfiguredError, RemoteServiceError, ValidationError
)
from storefront.domain.models import SiteContent

logger = logging.getLogger(__name__)

INTEGRATIONS_PAGE = "integrations"


class MailingListStatus(BaseModel):
    connected: bool
    group_id: Optional[str] = None
    group_name: Optional[str] = None
    groups_count: int = 0


class SyncReport(BaseModel):
    synced_count: int
    total: int
    errors: List[str] = []
    group_id: Optional[str] = None
    group_name: Optional[str] = None


class IntegrationSettingsStore:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def get(self, provider: str) -> Dict[str, Any]:
        async with self._uow() as uow:
            section = await uow.content.get_by_key(INTEGRATIONS_PAGE, provider)
        return parse_content(section.content) if section else {}

    async def save(self, provider: str, values: Dict[str, Any]) -> Dict[str, Any]:
        async with self._uow() as uow:
            section = await uow.content.get_by_key(INTEGRATIONS_PAGE, provider)
            if section:
                merged = {**parse_content(section.content), **values}
                await uow.content.update_content(section.id, merged)
            else:
                merged = dict(values)
                await uow.content.create(SiteContent(
                    id=str(uuid.uuid4()),
                    page_name=INTEGRATIONS_PAGE,
                    section_key=provider,
                    content=merged,
                    is_active=True,
                    updated_at=datetime.now(timezone.utc),
                ))
            await uow.commit()
        return merged

    async def api_key(self, provider: str, fallback: Optional[str] = None) -> str:
        key = (await self.get(provider)).get("api_key") or fallback
        if not key:
            raise IntegrationNotConfiguredError(f"{provider} API key not configured")
        return key


class SaveIntegrationKeyUseCase:
    def __init__(self, settings_store: IntegrationSettingsStore):
        self._store = settings_store

    async def __call__(self, provider: str, api_key: str) -> Dict[str, Any]:
        api_key = (api_key or "").strip()
        if not api_key:
            raise ValidationError("API key is required")
        # a new key has not been tested yet
        await self._store.save(provider, {"api_key": api_key, "connected": False})
        logger.info(f"API key saved for {provider}")
        return {"provider": provider, "connected": False}


def pick_group(groups: List[dict], keywords: List[str]) -> Optional[dict]:
    for group in groups:
        name = (group.get("name") or "").lower()
        if any(keyword in name for keyword in keywords):
            return group
    return None


class CheckMailingListUseCase:
    provider = "mailerlite"

    def __init__(self, settings_store: IntegrationSettingsStore, mailing_list: MailingListService,
                 fallback_key: Optional[str] = None, brand: str = "Moenviron"):
        self._store = settings_store
        self._mailing_list = mailing_list
        self._fallback_key = fallback_key
        self._brand = brand

    async def __call__(self) -> MailingListStatus:
        api_key = await self._store.api_key(self.provider, self._fallback_key)
        try:
            groups = await self._mailing_list.list_groups(api_key)
        except RemoteServiceError:
            await self._store.save(self.provider, {"connected": False})
            raise

        group = pick_group(groups, [self._brand.lower(), "newsletter"])
        if group is None and groups:
            group = groups[0]

        status = MailingListStatus(
            connected=True,
            group_id=group.get("id") if group else None,
            group_name=group.get("name") if group else None,
            groups_count=len(groups),
        )
        await self._store.save(self.provider, {
            "connected": True, "group_id": status.group_id, "group_name": status.group_name,
        })
        logger.info(f"Mailing list connection ok, {len(groups)} groups")
        return status


class SyncMailingListUseCase:
    provider = "mailerlite"

    def __init__(self, unit_of_work, settings_store: IntegrationSettingsStore, mailing_list: MailingListService,
                 fallback_key: Optional[str] = None, brand: str = "Moenviron"):
        self._uow = unit_of_work
        self._store = settings_store
        self._mailing_list = mailing_list
        self._fallback_key = fallback_key
        self._brand = brand

    async def __call__(self) -> SyncReport:
        api_key = await self._store.api_key(self.provider, self._fallback_key)

        async with self._uow() as uow:
            subscribers = await uow.subscribers.list(active_only=True)

        groups = await self._mailing_list.list_groups(api_key)
        group = pick_group(groups, [self._brand.lower()])
        if group is None:
            group = await self._mailing_list.create_group(api_key, f"{self._brand} Newsletter")
        group_id = group.get("id") if group else None

        synced = 0
        errors = []
        for subscriber in subscribers:
            try:
                ok = await self._mailing_list.upsert_subscriber(api_key, subscriber.email, subscriber.name, group_id)
            except RemoteServiceError as e:
                logger.error(f"Error syncing {subscriber.email}: {e}")
                ok = False
            if ok:
                synced += 1
            else:
                errors.append(subscriber.email)

        report = SyncReport(
            synced_count=synced,
            total=len(subscribers),
            errors=errors,
            group_id=group_id,
            group_name=group.get("name") if group else None,
        )
        await self._store.save(self.provider, {
            "connected": True,
            "last_sync": datetime.now(timezone.utc).isoformat(),
            "synced_count": synced,
            "group_id": report.group_id,
            "group_name": report.group_name,
        })
        logger.info(f"Mailing list sync complete: {synced}/{len(subscribers)} synced")
        return report


class CheckEmailConnectionUseCase:
    provider = "resend"

    def __init__(self, settings_store: IntegrationSettingsStore, email_sender: EmailSender,
                 fallback_key: Optional[str] = None):
        self._store = settings_store
        self._email = email_sender
        self._fallback_key = fallback_key

    async def __call__(self) -> dict:
        api_key = await self._store.api_key(self.provider, self._fallback_key)
        try:
            result = await self._email.test_connection(api_key=api_key)
        except RemoteServiceError:
            await self._store.save(self.provider, {"connected": False})
            raise
        await self._store.save(self.provider, {"connected": True})
        return result


class SendTestEmailUseCase:
    provider = "resend"

    def __init__(self, settings_store: IntegrationSettingsStore, email_sender: EmailSender,
                 fallback_key: Optional[str] = None):
        self._store = settings_store
        self._email = email_sender
        self._fallback_key = fallback_key

    async def __call__(self, to: str) -> str:
        if not to:
            raise ValidationError("Recipient email is required")
        to = normalize_email(to)
        api_key = await self._store.api_key(self.provider, self._fallback_key)
        message_id = await self._email.send_email(
            to=to,
            subject="Test email from your store",
            html="<p>Your email integration is working.</p>",
            api_key=api_key,
        )
        logger.info(f"Test email sent to {to}: {message_id}")
        return message_id
