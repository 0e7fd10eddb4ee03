import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional
from pydantic import BaseModel

from storefront.application.interfaces import MessagePublisher
from storefront.domain.exceptions import ValidationError
from storefront.domain.models import AppRole, ChatMessage

logger = logging.getLogger(__name__)


class SendMessageDTO(BaseModel):
    sender_id: str
    content: str
    recipient_id: Optional[str] = None


class StaffMember(BaseModel):
    user_id: str
    roles: List[AppRole]


class SendMessageUseCase:
    def __init__(self, unit_of_work, publisher: MessagePublisher):
        self._uow = unit_of_work
        self._publisher = publisher

    async def __call__(self, dto: SendMessageDTO) -> ChatMessage:
        content = dto.content.strip()
        if not content:
            raise ValidationError("Message content is required")

        message = ChatMessage(
            id=str(uuid.uuid4()),
            sender_id=dto.sender_id,
            recipient_id=dto.recipient_id or None,
            content=content,
            created_at=datetime.now(timezone.utc),
        )
        async with self._uow() as uow:
            await uow.messages.create(message)
            await uow.commit()

        logger.info(f"Chat message {message.id} from {message.sender_id} to {message.recipient_id or 'all'}")
        await self._publisher.publish(message)
        return message


class LoadConversationUseCase:
    """History of one chat view, oldest first."""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, viewer_id: str, recipient_id: Optional[str] = None) -> List[ChatMessage]:
        async with self._uow() as uow:
            if recipient_id:
                return await uow.messages.list_thread(viewer_id, recipient_id)
            return await uow.messages.list_broadcast()


class ListStaffUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, viewer_id: Optional[str] = None) -> List[StaffMember]:
        async with self._uow() as uow:
            roles = await uow.roles.list()

        members: Dict[str, List[AppRole]] = {}
        for user_role in roles:
            if user_role.user_id == viewer_id:
                continue
            members.setdefault(user_role.user_id, []).append(user_role.role)
        return [StaffMember(user_id=user_id, roles=held) for user_id, held in members.items()]
