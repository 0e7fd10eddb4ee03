import csv
import io
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional
from pydantic import EmailStr, TypeAdapter, ValidationError as PydanticValidationError

from storefront.domain.exceptions import (
    DuplicateSubscriberError, InvalidEmailError, SubscriberNotFoundError
)
from storefront.domain.models import Subscriber

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)

SUBSCRIBERS_CSV_HEADER = ["Email", "Name", "Source", "Status", "Subscribed At"]


def normalize_email(email: str) -> str:
    email = (email or "").strip()
    try:
        return _email_adapter.validate_python(email).lower()
    except PydanticValidationError:
        raise InvalidEmailError(f"Invalid email address: {email!r}")


def subscribers_to_csv(subscribers: List[Subscriber]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(SUBSCRIBERS_CSV_HEADER)
    for s in subscribers:
        writer.writerow([
            s.email,
            s.name or "",
            s.source or "",
            "active" if s.is_active else "unsubscribed",
            s.subscribed_at.date().isoformat(),
        ])
    return buffer.getvalue()


class SubscribeUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, email: str, name: Optional[str] = None, source: Optional[str] = None) -> Subscriber:
        email = normalize_email(email)
        now = datetime.now(timezone.utc)

        async with self._uow() as uow:
            existing = await uow.subscribers.get_by_email(email)
            if existing and existing.is_active:
                raise DuplicateSubscriberError(f"{email} is already subscribed")

            if existing:
                changes = {"is_active": True, "subscribed_at": now, "unsubscribed_at": None}
                if name:
                    changes["name"] = name
                await uow.subscribers.update(existing.id, changes)
                await uow.commit()
                logger.info(f"Subscriber {email} reactivated")
                return existing.model_copy(update=changes)

            subscriber = Subscriber(
                id=str(uuid.uuid4()),
                email=email,
                name=name or None,
                source=source or "website",
                is_active=True,
                subscribed_at=now,
            )
            await uow.subscribers.create(subscriber)
            await uow.commit()

        logger.info(f"New subscriber {email}")
        return subscriber


class UnsubscribeUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, email: str) -> Subscriber:
        email = normalize_email(email)
        async with self._uow() as uow:
            existing = await uow.subscribers.get_by_email(email)
            if not existing:
                raise SubscriberNotFoundError(f"{email} is not subscribed")
            changes = {"is_active": False, "unsubscribed_at": datetime.now(timezone.utc)}
            await uow.subscribers.update(existing.id, changes)
            await uow.commit()

        logger.info(f"Subscriber {email} unsubscribed")
        return existing.model_copy(update=changes)


class ListSubscribersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, active_only: bool = False) -> List[Subscriber]:
        async with self._uow() as uow:
            return await uow.subscribers.list(active_only=active_only)


class ExportSubscribersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> str:
        async with self._uow() as uow:
            subscribers = await uow.subscribers.list()
        return subscribers_to_csv(subscribers)
