import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional, Type
from pydantic import BaseModel

from storefront.domain.models import Order, OrderStatus

logger = logging.getLogger(__name__)


class DomainEvent(BaseModel):
    pass


class OrderStatusChanged(DomainEvent):
    order: Order
    previous_status: OrderStatus
    new_status: OrderStatus


class OrderPlaced(DomainEvent):
    order: Order


Handler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """In-process dispatch of events emitted after a committed state change.

    Each handler gets one attempt. A failing handler is logged and reported
    back as a warning; it never affects the state change that emitted the event.
    """

    def __init__(self):
        self._handlers: Dict[Type[DomainEvent], List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[DomainEvent], handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    async def publish(self, event: DomainEvent) -> List[str]:
        warnings = []
        for handler in self._handlers.get(type(event), []):
            try:
                await handler(event)
            except Exception as e:
                name = getattr(handler, "__qualname__", type(handler).__name__)
                logger.error(f"Handler {name} failed for {type(event).__name__}: {e}")
                warnings.append(describe_failure(event, e))
        return warnings


def describe_failure(event: DomainEvent, error: Optional[Exception]) -> str:
    if isinstance(event, OrderStatusChanged):
        return f"Status updated, but the customer email for '{event.new_status.value}' was not sent: {error}"
    if isinstance(event, OrderPlaced):
        return f"Order created, but the confirmation email was not sent: {error}"
    return f"{type(event).__name__} handler failed: {error}"
