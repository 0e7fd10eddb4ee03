"""Order status lifecycle rules.

pending → confirmed → processing → shipped → arrived → delivered, with
cancelled reachable from every non-terminal state.
"""
from datetime import datetime
from typing import Optional

from storefront.domain.exceptions import InvalidStatusError, StatusTransitionError
from storefront.domain.models import Order, OrderStatus


STATUS_SEQUENCE = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.ARRIVED,
    OrderStatus.DELIVERED,
)

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Statuses whose arrival is announced to the customer
NOTIFY_STATUSES = frozenset({
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CONFIRMED,
    OrderStatus.ARRIVED,
    OrderStatus.PROCESSING,
})

STATUS_LABELS = {
    OrderStatus.PENDING: "Pending",
    OrderStatus.CONFIRMED: "Confirmed",
    OrderStatus.PROCESSING: "Processing",
    OrderStatus.SHIPPED: "Shipped",
    OrderStatus.ARRIVED: "Arrived at Destination",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
}

CARRIER_SUGGESTIONS = ("dhl", "fedex", "ups", "usps", "royal_mail", "kenya_post", "other")


def parse_status(value) -> OrderStatus:
    """Business rule: only known status names are accepted"""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        raise InvalidStatusError(str(value))


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Strict rule: forward only, cancel from any non-terminal state."""
    if current == target:
        return True
    if current in TERMINAL_STATUSES:
        return False
    if target == OrderStatus.CANCELLED:
        return True
    return STATUS_SEQUENCE.index(target) > STATUS_SEQUENCE.index(current)


def apply_status(order: Order, target: OrderStatus, now: datetime, strict: bool = False) -> dict:
    """Returns the column values to persist for moving `order` to `target`."""
    if strict and not can_transition(order.status, target):
        raise StatusTransitionError(order.status.value, target.value)

    changes = {"status": target, "updated_at": now}
    if target == OrderStatus.SHIPPED and order.shipped_at is None:
        changes["shipped_at"] = now
    if target == OrderStatus.DELIVERED and order.delivered_at is None:
        changes["delivered_at"] = now
    return changes


def should_notify(status: OrderStatus) -> bool:
    return status in NOTIFY_STATUSES


def progress_index(status: OrderStatus) -> int:
    if status == OrderStatus.CANCELLED:
        return -1
    return STATUS_SEQUENCE.index(status)


def normalize_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None
