import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
from fastapi import status
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from storefront.application.roles import AssignRoleUseCase
from storefront.config import settings
from storefront.domain.chat import ChatFeed
from storefront.domain.models import ChatMessage, OrderStatus
from storefront.infrastructure.realtime import MessageBroadcaster
from storefront.main import app
from storefront.presentation.admin_api import serve_chat_feed
from storefront.presentation.dependencies import (
    get_email_sender, get_mailing_list, get_payment_gateway, get_publisher, get_unit_of_work
)

from conftest import FakeMailingList, stripe_signature


ADMIN_TOKEN = "admin-token"
WEBHOOK_SECRET = "whsec_test"
ADMIN = {"X-API-Key": ADMIN_TOKEN}


@pytest.fixture
async def client(uow, email_sender, payment_gateway, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_TOKEN", ADMIN_TOKEN)
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "ORDER_INTAKE_STATUS", "pending")
    monkeypatch.setattr(settings, "STRICT_STATUS_TRANSITIONS", False)

    broadcaster = MessageBroadcaster()
    app.dependency_overrides[get_unit_of_work] = lambda: uow
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway
    app.dependency_overrides[get_mailing_list] = lambda: FakeMailingList()
    app.dependency_overrides[get_publisher] = lambda: broadcaster

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _signed_event(event: dict):
    payload = json.dumps(event).encode()
    return payload, {"Stripe-Signature": stripe_signature(payload, WEBHOOK_SECRET), "Content-Type": "application/json"}


def _succeeded_event(intent_id="pi_123"):
    return {
        "id": "evt_1",
        "type": "payment_intent.succeeded",
        "data": {"object": {
            "id": intent_id,
            "amount": 4500,
            "amount_received": 4500,
            "currency": "gbp",
            "status": "succeeded",
            "metadata": {
                "customer_email": "jane@example.com",
                "customer_name": "Jane Doe",
                "items": json.dumps([{"name": "Jacket", "qty": 1, "price": "45.00"}]),
            },
        }},
    }


class TestAdminAccess:
    async def test_missing_key(self, client):
        response = await client.get("/api/admin/orders")
        assert response.status_code == 403

    async def test_wrong_key(self, client):
        response = await client.get("/api/admin/orders", headers={"X-API-Key": "nope"})
        assert response.status_code == 403

    async def test_health_is_open(self, client):
        assert (await client.get("/health")).json() == {"status": "healthy"}


class TestOrderEndpoints:
    async def test_status_update(self, client, save_order, email_sender):
        order = await save_order(status=OrderStatus.PROCESSING)

        response = await client.patch(
            f"/api/admin/orders/{order.id}/status", json={"status": "shipped"}, headers=ADMIN
        )

        assert response.status_code == 200
        body = response.json()
        assert body["order"]["status"] == "shipped"
        assert body["order"]["shipped_at"] is not None
        assert body["warnings"] == []
        assert email_sender.sent[0]["subject"] == "Your order has been shipped!"

    async def test_invalid_status(self, client, save_order):
        order = await save_order()

        response = await client.patch(
            f"/api/admin/orders/{order.id}/status", json={"status": "lost"}, headers=ADMIN
        )

        assert response.status_code == 400

    async def test_stale_status(self, client, save_order):
        order = await save_order(status=OrderStatus.SHIPPED)

        response = await client.patch(
            f"/api/admin/orders/{order.id}/status",
            json={"status": "delivered", "expected_status": "processing"},
            headers=ADMIN,
        )

        assert response.status_code == 409

    async def test_unknown_order(self, client):
        response = await client.patch("/api/admin/orders/missing/status", json={"status": "shipped"}, headers=ADMIN)
        assert response.status_code == 404

    async def test_tracking(self, client, save_order):
        order = await save_order(status=OrderStatus.SHIPPED)

        response = await client.patch(
            f"/api/admin/orders/{order.id}/tracking",
            json={"tracking_number": "RM1", "tracking_carrier": "royal_mail", "estimated_delivery": "2026-03-10"},
            headers=ADMIN,
        )

        assert response.status_code == 200
        assert response.json()["order"]["tracking_number"] == "RM1"
        assert response.json()["order"]["status"] == "shipped"

    async def test_list_and_export(self, client, save_order):
        await save_order(user_name="Jane Doe")
        await save_order(user_email="sam@example.com", user_name="Sam", status=OrderStatus.DELIVERED)

        listed = await client.get("/api/admin/orders", params={"status": "delivered"}, headers=ADMIN)
        export = await client.get("/api/admin/orders/export", headers=ADMIN)

        assert [o["user_email"] for o in listed.json()] == ["sam@example.com"]
        assert export.headers["content-type"].startswith("text/csv")
        assert len(export.text.strip().split("\n")) == 3

    async def test_public_tracking_hides_notes(self, client, save_order):
        order = await save_order(status=OrderStatus.ARRIVED, admin_notes="internal")

        response = await client.get(f"/api/orders/{order.id}")

        body = response.json()
        assert response.status_code == 200
        assert body["status_label"] == "Arrived at Destination"
        assert body["progress_index"] == 4
        assert "admin_notes" not in body

    async def test_public_tracking_unknown(self, client):
        assert (await client.get("/api/orders/nope")).status_code == 404


class TestPaymentEndpoints:
    async def test_signed_webhook_is_idempotent(self, client, uow):
        payload, headers = _signed_event(_succeeded_event())

        first = await client.post("/api/payments/webhook", content=payload, headers=headers)
        second = await client.post("/api/payments/webhook", content=payload, headers=headers)

        assert first.status_code == 200
        assert first.json()["created"] is True
        assert second.json()["created"] is False
        assert second.json()["orderId"] == first.json()["orderId"]
        async with uow() as tx:
            assert len(await tx.orders.list()) == 1

    async def test_bad_signature(self, client):
        payload = json.dumps(_succeeded_event()).encode()

        response = await client.post(
            "/api/payments/webhook", content=payload, headers={"Stripe-Signature": "t=1,v1=deadbeef"}
        )

        assert response.status_code == 400

    async def test_client_confirmation(self, client, payment_gateway):
        payment_gateway.intents["pi_999"] = _succeeded_event("pi_999")["data"]["object"]

        response = await client.post(
            "/api/payments/webhook",
            json={"paymentIntentId": "pi_999", "shippingAddress": {"city": "Leeds", "country": "GB"}},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["paymentStatus"] == "succeeded"

    async def test_client_confirmation_not_paid(self, client, payment_gateway):
        intent = _succeeded_event("pi_555")["data"]["object"]
        intent["status"] = "processing"
        payment_gateway.intents["pi_555"] = intent

        response = await client.post("/api/payments/webhook", json={"paymentIntentId": "pi_555"})

        assert response.json()["success"] is False
        assert response.json()["paymentStatus"] == "processing"

    async def test_client_confirmation_bad_reference(self, client):
        response = await client.post("/api/payments/webhook", json={"paymentIntentId": "cs_1"})
        assert response.status_code == 400

    async def test_checkout(self, client, payment_gateway, save_product):
        jacket = await save_product(price=Decimal("40.00"))

        response = await client.post("/api/checkout/payment-intent", json={
            "items": [{"id": jacket.id, "name": "Jacket", "quantity": 1, "price": "1.00"}],
            "customerEmail": "jane@example.com",
            "customerName": "Jane",
        })

        assert response.status_code == 200
        assert response.json()["amount"] == 4500
        assert response.json()["clientSecret"] == payment_gateway.created[0]["client_secret"]

    async def test_checkout_unknown_product(self, client, payment_gateway):
        response = await client.post("/api/checkout/payment-intent", json={
            "items": [{"id": "gone", "quantity": 1}],
            "customerEmail": "jane@example.com",
        })

        assert response.status_code == 400
        assert payment_gateway.created == []


class TestProductEndpoints:
    async def test_catalogue(self, client, save_product):
        jacket = await save_product(name="Jacket", category="outerwear")
        await save_product(name="Tote", category="accessories")
        retired = await save_product(name="Old Coat", category="outerwear", is_active=False)

        listed = await client.get("/api/products", params={"category": "outerwear"})
        single = await client.get(f"/api/products/{jacket.id}")
        hidden = await client.get(f"/api/products/{retired.id}")

        assert [p["name"] for p in listed.json()] == ["Jacket"]
        assert single.json()["price"] == "40.00"
        assert "is_active" not in single.json()
        assert hidden.status_code == 404
        assert (await client.get("/api/products/nope")).status_code == 404

    async def test_admin_manages_catalogue(self, client):
        created = await client.post(
            "/api/admin/products",
            json={"name": "Tote", "category": "accessories", "price": "12.00", "stock_quantity": 4},
            headers=ADMIN,
        )
        product_id = created.json()["id"]

        retired = await client.patch(
            f"/api/admin/products/{product_id}", json={"values": {"is_active": False}}, headers=ADMIN
        )
        admin_view = await client.get("/api/admin/products", headers=ADMIN)
        public_view = await client.get("/api/products")

        assert created.status_code == 201
        assert retired.json()["is_active"] is False
        assert [p["id"] for p in admin_view.json()] == [product_id]
        assert public_view.json() == []


class TestContentAndNewsletter:
    async def test_section_lifecycle(self, client):
        created = await client.post(
            "/api/admin/content", json={"page_name": "home", "section_key": "hero", "content": {"headline": "Hi"}},
            headers=ADMIN,
        )
        content_id = created.json()["id"]

        editor = await client.get(f"/api/admin/content/{content_id}", headers=ADMIN)
        bad = await client.put(f"/api/admin/content/{content_id}", json={"content": "{nope"}, headers=ADMIN)
        public = await client.get("/api/content/home/hero")
        deleted = await client.delete(f"/api/admin/content/{content_id}", headers=ADMIN)

        assert created.status_code == 201
        assert editor.json()["editor"]["kind"] == "known"
        assert bad.status_code == 400
        assert public.json() == {"headline": "Hi"}
        assert deleted.status_code == 204
        assert (await client.get("/api/content/home/hero")).status_code == 404

    async def test_subscribe_twice(self, client):
        first = await client.post("/api/newsletter/subscribe", json={"email": "a@example.com"})
        second = await client.post("/api/newsletter/subscribe", json={"email": "a@example.com"})

        assert first.status_code == 201
        assert second.status_code == 409

    async def test_invalid_email(self, client):
        response = await client.post("/api/newsletter/subscribe", json={"email": "nope"})
        assert response.status_code == 422

    async def test_integration_view_masks_key(self, client):
        await client.put("/api/admin/integrations/resend/key", json={"api_key": "re_secret"}, headers=ADMIN)

        response = await client.get("/api/admin/integrations/resend", headers=ADMIN)

        assert response.json() == {"connected": False, "has_api_key": True}


class TestChatAndRoles:
    async def test_chat_requires_user(self, client):
        response = await client.post("/api/admin/chat/messages", json={"content": "hi"}, headers=ADMIN)
        assert response.status_code == 400

    async def test_chat_thread(self, client):
        headers_a = {**ADMIN, "X-User-Id": "A"}
        headers_b = {**ADMIN, "X-User-Id": "B"}
        await client.post("/api/admin/chat/messages", json={"content": "hi B", "recipient_id": "B"}, headers=headers_a)
        await client.post("/api/admin/chat/messages", json={"content": "all hands"}, headers=headers_a)

        thread = await client.get("/api/admin/chat/messages", params={"recipient_id": "A"}, headers=headers_b)
        broadcast = await client.get("/api/admin/chat/messages", headers=headers_b)

        assert [m["content"] for m in thread.json()] == ["hi B"]
        assert [m["content"] for m in broadcast.json()] == ["all hands"]

    async def test_role_management_needs_admin_role(self, client):
        response = await client.get("/api/admin/roles", headers={**ADMIN, "X-User-Id": "nobody"})
        assert response.status_code == 403

    async def test_admin_assigns_role(self, client, uow):
        await AssignRoleUseCase(uow)("boss", "admin")
        headers = {**ADMIN, "X-User-Id": "boss"}

        created = await client.post("/api/admin/roles", json={"user_id": "u2", "role": "support"}, headers=headers)
        duplicate = await client.post("/api/admin/roles", json={"user_id": "u2", "role": "support"}, headers=headers)

        assert created.status_code == 201
        assert duplicate.status_code == 409
        assert duplicate.json()["detail"] == "User already has this role"


class TestPaymentConfigurationEndpoints:
    async def test_default_cannot_be_deleted(self, client):
        created = await client.post(
            "/api/admin/payment-configurations",
            json={"name": "Live", "stripe_publishable_key": "pk_live_1"},
            headers=ADMIN,
        )

        response = await client.delete(f"/api/admin/payment-configurations/{created.json()['id']}", headers=ADMIN)

        assert created.json()["is_default"] is True
        assert response.status_code == 409


@pytest.fixture
def live_client(uow, engine, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_TOKEN", ADMIN_TOKEN)
    monkeypatch.setattr("storefront.main.engine", engine)

    broadcaster = MessageBroadcaster()
    app.dependency_overrides[get_unit_of_work] = lambda: uow
    app.dependency_overrides[get_publisher] = lambda: broadcaster

    with TestClient(app) as test_client:
        yield test_client, broadcaster
    app.dependency_overrides.clear()


def _wait_for_subscriber(broadcaster):
    deadline = time.monotonic() + 2
    while broadcaster.connections == 0 and time.monotonic() < deadline:
        time.sleep(0.01)


class TestChatWebSocket:
    def test_wrong_key_is_refused(self, live_client):
        test_client, _ = live_client

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with test_client.websocket_connect("/api/admin/chat/ws?user_id=C&api_key=nope"):
                pass

        assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION

    def test_viewer_only_gets_relevant_messages(self, live_client):
        test_client, broadcaster = live_client

        with test_client.websocket_connect(f"/api/admin/chat/ws?user_id=C&api_key={ADMIN_TOKEN}") as ws:
            _wait_for_subscriber(broadcaster)
            test_client.post(
                "/api/admin/chat/messages",
                json={"content": "hi B", "recipient_id": "B"},
                headers={**ADMIN, "X-User-Id": "A"},
            )
            test_client.post("/api/admin/chat/messages", json={"content": "all hands"}, headers={**ADMIN, "X-User-Id": "A"})

            received = ws.receive_json()

        assert received["content"] == "all hands"
        assert received["sender_id"] == "A"
        assert broadcaster.connections == 0


class _BrokenSocket:
    def __init__(self):
        self._closed = asyncio.Event()

    async def send_json(self, data):
        raise RuntimeError("socket gone")

    async def receive_text(self):
        await self._closed.wait()


async def test_chat_feed_logs_failed_send(caplog):
    caplog.set_level(logging.INFO)
    queue = asyncio.Queue()
    await queue.put(ChatMessage(id="m1", sender_id="A", content="all hands", created_at=datetime.now(timezone.utc)))

    await asyncio.wait_for(serve_chat_feed(_BrokenSocket(), ChatFeed("C"), queue), timeout=1)

    assert "Chat feed for C failed: socket gone" in caplog.text
