import csv
import io
from decimal import Decimal
from typing import Dict, List, Optional
from pydantic import BaseModel

from storefront.domain.models import Order, OrderStatus
from storefront.domain.workflow import parse_status


CSV_HEADER = ["Order ID", "Email", "Name", "Amount", "Currency", "Status", "Payment Method", "Date"]


class OrderSummary(BaseModel):
    revenue: Dict[str, Decimal]
    total_orders: int
    pending_count: int
    delivered_count: int


def matches_search(order: Order, term: str) -> bool:
    term = term.lower()
    return (
        term in order.user_email.lower()
        or (order.user_name is not None and term in order.user_name.lower())
        or term in order.id.lower()
    )


def summarize(orders: List[Order]) -> OrderSummary:
    revenue: Dict[str, Decimal] = {}
    for order in orders:
        if order.status == OrderStatus.CANCELLED:
            continue
        revenue[order.currency] = revenue.get(order.currency, Decimal("0")) + order.total_amount
    return OrderSummary(
        revenue=revenue,
        total_orders=len(orders),
        pending_count=sum(1 for o in orders if o.status == OrderStatus.PENDING),
        delivered_count=sum(1 for o in orders if o.status == OrderStatus.DELIVERED),
    )


def orders_to_csv(orders: List[Order]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for o in orders:
        writer.writerow([
            o.id,
            o.user_email,
            o.user_name or "",
            f"{o.total_amount:.2f}",
            o.currency,
            o.status.value,
            o.payment_method.value,
            o.created_at.date().isoformat(),
        ])
    return buffer.getvalue()


class ListOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, search: Optional[str] = None, status: Optional[str] = None) -> List[Order]:
        status_value = parse_status(status).value if status and status != "all" else None
        async with self._uow() as uow:
            orders = await uow.orders.list(status=status_value)
        if search:
            orders = [o for o in orders if matches_search(o, search)]
        return orders


class OrderSummaryUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> OrderSummary:
        async with self._uow() as uow:
            orders = await uow.orders.list()
        return summarize(orders)


class ExportOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> str:
        async with self._uow() as uow:
            orders = await uow.orders.list()
        return orders_to_csv(orders)
