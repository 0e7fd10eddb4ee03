import logging
from datetime import date, datetime, timezone
from typing import Optional
from pydantic import BaseModel

from storefront.domain.exceptions import OrderNotFoundError
from storefront.domain.models import Order
from storefront.domain.workflow import normalize_optional

logger = logging.getLogger(__name__)


class TrackingInfoDTO(BaseModel):
    order_id: str
    tracking_number: Optional[str] = None
    tracking_carrier: Optional[str] = None
    estimated_delivery: Optional[date] = None
    admin_notes: Optional[str] = None


class SetTrackingInfoUseCase:
    """Writes tracking metadata only. Status and its timestamps stay as they are."""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, dto: TrackingInfoDTO) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(dto.order_id)
            if not order:
                raise OrderNotFoundError(f"Order {dto.order_id} not found")

            changes = {
                "tracking_number": normalize_optional(dto.tracking_number),
                "tracking_carrier": normalize_optional(dto.tracking_carrier),
                "estimated_delivery": dto.estimated_delivery,
                "admin_notes": normalize_optional(dto.admin_notes),
                "updated_at": datetime.now(timezone.utc),
            }
            await uow.orders.update(order.id, changes)
            await uow.commit()

        logger.info(f"Tracking info saved for order {order.id}")
        return order.model_copy(update=changes)
