"""Pytest fixtures for storefront tests."""

import hashlib
import hmac
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from storefront.application.interfaces import (
    EmailSender, MailingListService, PaymentGateway, StatusNotifier
)
from storefront.application.notifications import build_event_bus
from storefront.domain.exceptions import EmailServiceError, MailingListServiceError
from storefront.domain.models import LineItem, Order, OrderStatus, Product
from storefront.infrastructure.db_schema import metadata
from storefront.infrastructure.unit_of_work import UnitOfWork


class RecordingNotifier(StatusNotifier):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.notifications = []

    async def notify_status(self, notification) -> None:
        self.notifications.append(notification)
        if self.fail:
            raise EmailServiceError("Email service error: mailbox unavailable")


class FakeEmailSender(EmailSender):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send_email(self, to, subject, html, api_key=None):
        if self.fail:
            raise EmailServiceError("Email service error: rejected")
        self.sent.append({"to": to, "subject": subject, "html": html, "api_key": api_key})
        return f"email_{len(self.sent)}"

    async def test_connection(self, api_key=None):
        if self.fail:
            raise EmailServiceError("Invalid API key or connection failed")
        return {"connected": True, "domains": ["example.com"]}


class FakePaymentGateway(PaymentGateway):
    def __init__(self):
        self.intents = {}
        self.created = []

    async def create_payment_intent(self, amount, currency, metadata, receipt_email):
        intent_id = f"pi_{len(self.created) + 1:04d}"
        intent = {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret",
            "amount": amount,
            "currency": currency,
            "metadata": metadata,
            "receipt_email": receipt_email,
            "status": "requires_payment_method",
        }
        self.created.append(intent)
        self.intents[intent_id] = intent
        return intent

    async def retrieve_payment_intent(self, payment_intent_id):
        return self.intents[payment_intent_id]


class FakeMailingList(MailingListService):
    def __init__(self, groups=None, failing_emails=(), broken=False):
        self.groups = list(groups or [])
        self.failing_emails = set(failing_emails)
        self.broken = broken
        self.upserts = []

    async def list_groups(self, api_key):
        if self.broken:
            raise MailingListServiceError("Invalid API key or connection failed")
        return list(self.groups)

    async def create_group(self, api_key, name):
        group = {"id": f"grp_{len(self.groups) + 1}", "name": name}
        self.groups.append(group)
        return group

    async def upsert_subscriber(self, api_key, email, name, group_id):
        if email in self.failing_emails:
            return False
        self.upserts.append({"email": email, "name": name, "group_id": group_id})
        return True


def stripe_signature(payload: bytes, secret: str, timestamp=None) -> str:
    """Builds a `Stripe-Signature` header the way the processor signs deliveries."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def make_order(**overrides) -> Order:
    now = datetime.now(timezone.utc)
    values = dict(
        id=str(uuid.uuid4()),
        user_email="jane@example.com",
        user_name="Jane Doe",
        total_amount=Decimal("45.00"),
        currency="GBP",
        status=OrderStatus.PENDING,
        items=[LineItem(name="Jacket", quantity=1, price=Decimal("45.00"))],
        payment_intent_id=f"pi_{uuid.uuid4().hex[:12]}",
        created_at=now,
        updated_at=now,
    )
    values.update(overrides)
    return Order(**values)


def make_product(**overrides) -> Product:
    now = datetime.now(timezone.utc)
    values = dict(
        id=str(uuid.uuid4()),
        name="Jacket",
        price=Decimal("40.00"),
        currency="GBP",
        category="outerwear",
        stock_quantity=10,
        created_at=now,
        updated_at=now,
    )
    values.update(overrides)
    return Product(**values)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def uow(session_factory):
    return UnitOfWork(session_factory)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def event_bus(notifier, email_sender):
    return build_event_bus(notifier, email_sender)


@pytest.fixture
def payment_gateway():
    return FakePaymentGateway()


@pytest.fixture
def save_order(uow):
    """Persists an order built by make_order and returns it."""

    async def _save(**overrides):
        order = make_order(**overrides)
        async with uow() as tx:
            await tx.orders.create(order)
            await tx.commit()
        return order

    return _save


@pytest.fixture
def save_product(uow):
    """Persists a catalogue product built by make_product and returns it."""

    async def _save(**overrides):
        product = make_product(**overrides)
        async with uow() as tx:
            await tx.products.create(product)
            await tx.commit()
        return product

    return _save
