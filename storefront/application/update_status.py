import logging
from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel

from storefront.application.events import EventBus, OrderStatusChanged
from storefront.domain.exceptions import OrderNotFoundError, StaleOrderError
from storefront.domain.models import Order
from storefront.domain.workflow import apply_status, parse_status, should_notify

logger = logging.getLogger(__name__)


class UpdateStatusDTO(BaseModel):
    order_id: str
    status: str
    expected_status: Optional[str] = None


class StatusUpdateResult(BaseModel):
    order: Order
    warnings: List[str] = []


class UpdateOrderStatusUseCase:
    def __init__(self, unit_of_work, event_bus: EventBus, strict: bool = False):
        self._uow = unit_of_work
        self._events = event_bus
        self._strict = strict

    async def __call__(self, dto: UpdateStatusDTO) -> StatusUpdateResult:
        target = parse_status(dto.status)
        logger.info(f"Status update for order {dto.order_id} -> {target.value}")

        async with self._uow() as uow:
            order = await uow.orders.get_by_id(dto.order_id)
            if not order:
                raise OrderNotFoundError(f"Order {dto.order_id} not found")

            # Optimistic check, only when the caller says what it saw
            if dto.expected_status is not None:
                expected = parse_status(dto.expected_status)
                if order.status != expected:
                    raise StaleOrderError(expected.value, order.status.value)

            previous = order.status
            changes = apply_status(order, target, datetime.now(timezone.utc), strict=self._strict)
            await uow.orders.update(order.id, changes)
            await uow.commit()

            updated = order.model_copy(update=changes)

        logger.info(f"Order {order.id}: {previous.value} -> {target.value}")

        warnings = []
        if should_notify(target):
            warnings = await self._events.publish(
                OrderStatusChanged(order=updated, previous_status=previous, new_status=target)
            )
            for warning in warnings:
                logger.warning(f"Order {order.id}: {warning}")

        return StatusUpdateResult(order=updated, warnings=warnings)


class ResendStatusNotificationUseCase:
    """Re-sends the email for the order's current status, nothing is written."""

    def __init__(self, unit_of_work, event_bus: EventBus):
        self._uow = unit_of_work
        self._events = event_bus

    async def __call__(self, order_id: str) -> StatusUpdateResult:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Order {order_id} not found")

        warnings = await self._events.publish(
            OrderStatusChanged(order=order, previous_status=order.status, new_status=order.status)
        )
        return StatusUpdateResult(order=order, warnings=warnings)
