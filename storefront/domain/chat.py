from typing import List, Optional

from storefront.domain.models import ChatMessage


def is_relevant(message: ChatMessage, viewer_id: Optional[str]) -> bool:
    """A message without recipient goes to all staff; private ones only to both ends."""
    if message.recipient_id is None:
        return True
    if viewer_id is None:
        return False
    return message.sender_id == viewer_id or message.recipient_id == viewer_id


class ChatFeed:
    """Per-viewer ordered list of the messages shown in one chat view."""

    def __init__(self, viewer_id: str, recipient_id: Optional[str] = None, history: Optional[List[ChatMessage]] = None):
        self.viewer_id = viewer_id
        self.recipient_id = recipient_id
        self._messages: List[ChatMessage] = list(history or [])

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    def receive(self, message: ChatMessage) -> bool:
        if not is_relevant(message, self.viewer_id):
            return False
        if any(existing.id == message.id for existing in self._messages):
            return False
        self._messages.append(message)
        return True
