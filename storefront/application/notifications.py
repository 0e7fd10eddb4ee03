"""Customer emails triggered by order events."""
import logging
from html import escape
from datetime import date
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel

from storefront.application.events import EventBus, OrderPlaced, OrderStatusChanged
from storefront.application.interfaces import EmailSender, StatusNotifier
from storefront.domain.currency import format_price
from storefront.domain.models import Order

logger = logging.getLogger(__name__)


class StatusNotification(BaseModel):
    order_id: str
    recipient_email: str
    recipient_name: Optional[str] = None
    new_status: str
    total_amount: Decimal
    currency: str = "GBP"
    tracking_number: Optional[str] = None
    tracking_carrier: Optional[str] = None
    estimated_delivery: Optional[date] = None

    @classmethod
    def from_order(cls, order: Order) -> "StatusNotification":
        return cls(
            order_id=order.id,
            recipient_email=order.user_email,
            recipient_name=order.user_name,
            new_status=order.status.value,
            total_amount=order.total_amount,
            currency=order.currency,
            tracking_number=order.tracking_number,
            tracking_carrier=order.tracking_carrier,
            estimated_delivery=order.estimated_delivery,
        )


def status_message(notification: StatusNotification) -> tuple:
    status = notification.new_status.lower()
    if status == "processing":
        return ("Your order is being processed",
                "We've started processing your order and will update you once it ships.")
    if status == "shipped":
        if notification.tracking_number:
            carrier = notification.tracking_carrier or "carrier"
            return ("Your order has been shipped!",
                    f"Great news! Your order is on its way. Track it with: {carrier} - {notification.tracking_number}")
        return ("Your order has been shipped!", "Great news! Your order is on its way.")
    if status == "arrived":
        return ("Your order has arrived at destination",
                "Your order has arrived at the destination and will be delivered soon.")
    if status == "delivered":
        return ("Your order has been delivered!",
                "Your order has been successfully delivered. We hope you love your sustainable fashion!")
    if status == "confirmed":
        return ("Your order is confirmed",
                "Thank you! Your order has been confirmed and payment received.")
    return (f"Order Update: {notification.new_status}",
            f"Your order status has been updated to: {notification.new_status}")


def render_status_email(notification: StatusNotification, site_url: str = "") -> tuple:
    """Customer and operator supplied values are HTML-escaped."""
    subject, message = status_message(notification)
    rows = [
        f"<p><strong>Order ID:</strong> {escape(notification.order_id[:8])}...</p>",
        f"<p><strong>Status:</strong> {escape(notification.new_status)}</p>",
        f"<p><strong>Total:</strong> {format_price(notification.total_amount, notification.currency)}</p>",
    ]
    if notification.tracking_number:
        rows.append(
            f"<p><strong>Tracking:</strong> {escape(notification.tracking_carrier or '')} {escape(notification.tracking_number)}</p>"
        )
    if notification.estimated_delivery:
        rows.append(f"<p><strong>Estimated Delivery:</strong> {notification.estimated_delivery.isoformat()}</p>")

    html = (
        "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        f"<h2>{escape(subject)}</h2>"
        f"<p>Hi {escape(notification.recipient_name or 'Valued Customer')},</p>"
        f"<p>{escape(message)}</p>"
        f"<div>{''.join(rows)}</div>"
        "<p>Thank you for supporting sustainable fashion!</p>"
        f"<p><a href=\"{escape(site_url)}/order-tracking/{escape(notification.order_id)}\">Track Your Order</a></p>"
        "</body></html>"
    )
    return subject, html


def render_confirmation_email(order: Order) -> tuple:
    subject = f"Order Confirmed! #{order.short_id}"
    rows = "".join(
        f"<tr><td>{escape(item.name)} (Qty: {item.quantity})</td>"
        f"<td style=\"text-align: right;\">{format_price(item.subtotal, order.currency)}</td></tr>"
        for item in order.items
    )
    html = (
        "<!DOCTYPE html><html><body style=\"font-family: sans-serif; max-width: 600px; margin: 0 auto;\">"
        "<h1>Thank You for Your Order!</h1>"
        f"<p>Hi <strong>{escape(order.user_name or 'there')}</strong>,</p>"
        f"<p>Your order has been confirmed. Order ID: <strong>#{order.short_id}</strong></p>"
        f"<table style=\"width: 100%;\">{rows}"
        f"<tr><td>Total</td><td style=\"text-align: right;\">{format_price(order.total_amount, order.currency)}</td></tr>"
        "</table>"
        "<p>Thank you for choosing sustainable fashion!</p>"
        "</body></html>"
    )
    return subject, html


class EmailStatusNotifier(StatusNotifier):
    def __init__(self, email_sender: EmailSender, site_url: str = ""):
        self._email = email_sender
        self._site_url = site_url

    async def notify_status(self, notification: StatusNotification) -> None:
        subject, html = render_status_email(notification, self._site_url)
        await self._email.send_email(to=notification.recipient_email, subject=subject, html=html)
        logger.info(f"Status email '{notification.new_status}' sent for order {notification.order_id}")


class OrderEmailHandlers:
    """Event handlers wired onto the EventBus."""

    def __init__(self, status_notifier: StatusNotifier, email_sender: Optional[EmailSender] = None):
        self._status_notifier = status_notifier
        self._email = email_sender

    async def on_status_changed(self, event: OrderStatusChanged) -> None:
        await self._status_notifier.notify_status(StatusNotification.from_order(event.order))

    async def on_order_placed(self, event: OrderPlaced) -> None:
        if self._email is None or not event.order.user_email:
            return
        subject, html = render_confirmation_email(event.order)
        await self._email.send_email(to=event.order.user_email, subject=subject, html=html)
        logger.info(f"Confirmation email sent for order {event.order.id}")


def build_event_bus(status_notifier: StatusNotifier, email_sender: Optional[EmailSender] = None) -> EventBus:
    handlers = OrderEmailHandlers(status_notifier, email_sender)
    bus = EventBus()
    bus.subscribe(OrderStatusChanged, handlers.on_status_changed)
    bus.subscribe(OrderPlaced, handlers.on_order_placed)
    return bus
