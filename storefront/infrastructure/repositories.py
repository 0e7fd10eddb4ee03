import logging
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from sqlalchemy import and_, delete, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.content import parse_content
from storefront.domain.exceptions import (
    DuplicateOrderError, DuplicateProductError, DuplicateRoleError, DuplicateSectionError,
    DuplicateSubscriberError,
)
from storefront.domain.models import (
    AppRole, ChatMessage, LineItem, Order, OrderStatus, PaymentConfiguration, PaymentMethod, Product,
    ShippingAddress, SiteContent, Subscriber, UserRole,
)
from storefront.infrastructure.db_schema import (
    admin_messages_tbl, newsletter_subscribers_tbl, orders_tbl, payment_configurations_tbl, products_tbl,
    site_content_tbl, user_roles_tbl,
)
from storefront.application.interfaces import (
    ContentRepository, MessageRepository, OrderRepository, PaymentConfigurationRepository,
    ProductRepository, RoleRepository, SubscriberRepository,
)

logger = logging.getLogger(__name__)


def _column_values(values: Dict[str, Any]) -> Dict[str, Any]:
    """Domain values → column values"""
    result = {}
    for key, value in values.items():
        if isinstance(value, Enum):
            value = value.value
        result[key] = value
    return result


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.id == order_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_by_payment_intent_id(self, payment_intent_id: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.payment_intent_id == payment_intent_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def create(self, order: Order) -> None:
        stmt = insert(orders_tbl).values(
            id=order.id,
            user_email=order.user_email,
            user_name=order.user_name,
            total_amount=order.total_amount,
            currency=order.currency,
            status=order.status.value,
            items=[item.model_dump(mode="json") for item in order.items],
            shipping_address=order.shipping_address.model_dump(mode="json") if order.shipping_address else None,
            customer_location=order.customer_location,
            payment_method=order.payment_method.value,
            payment_intent_id=order.payment_intent_id,
            mpesa_transaction_id=order.mpesa_transaction_id,
            tracking_number=order.tracking_number,
            tracking_carrier=order.tracking_carrier,
            estimated_delivery=order.estimated_delivery,
            admin_notes=order.admin_notes,
            shipped_at=order.shipped_at,
            delivered_at=order.delivered_at,
            created_at=order.created_at,
            updated_at=order.updated_at
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            logger.warning(f"Duplicate order for payment {order.payment_intent_id}: {e.orig}")
            raise DuplicateOrderError(f"Order for payment {order.payment_intent_id} already exists")

    async def update(self, order_id: str, values: Dict[str, Any]) -> None:
        values = _column_values(values)
        values.setdefault("updated_at", datetime.now(timezone.utc))
        stmt = (
            update(orders_tbl)
            .where(orders_tbl.c.id == order_id)
            .values(**values)
        )
        await self._session.execute(stmt)

    async def list(self, status: Optional[str] = None) -> List[Order]:
        query = select(orders_tbl).order_by(orders_tbl.c.created_at.desc())
        if status:
            query = query.where(orders_tbl.c.status == status)
        result = await self._session.execute(query)
        return [self._to_domain(row) for row in result.fetchall()]

    def _to_domain(self, row) -> Order:
        """DB row → Domain"""
        return Order(
            id=row.id,
            user_email=row.user_email,
            user_name=row.user_name,
            total_amount=row.total_amount,
            currency=row.currency,
            status=OrderStatus(row.status),
            items=[LineItem.model_validate(item) for item in (row.items or [])],
            shipping_address=ShippingAddress.model_validate(row.shipping_address) if row.shipping_address else None,
            customer_location=row.customer_location,
            payment_method=PaymentMethod(row.payment_method),
            payment_intent_id=row.payment_intent_id,
            mpesa_transaction_id=row.mpesa_transaction_id,
            tracking_number=row.tracking_number,
            tracking_carrier=row.tracking_carrier,
            estimated_delivery=row.estimated_delivery,
            admin_notes=row.admin_notes,
            shipped_at=row.shipped_at,
            delivered_at=row.delivered_at,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemySubscriberRepository(SubscriberRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_email(self, email: str) -> Optional[Subscriber]:
        result = await self._session.execute(
            select(newsletter_subscribers_tbl).where(newsletter_subscribers_tbl.c.email == email)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def create(self, subscriber: Subscriber) -> None:
        stmt = insert(newsletter_subscribers_tbl).values(**subscriber.model_dump())
        try:
            await self._session.execute(stmt)
        except IntegrityError:
            raise DuplicateSubscriberError(f"{subscriber.email} is already subscribed")

    async def update(self, subscriber_id: str, values: Dict[str, Any]) -> None:
        stmt = (
            update(newsletter_subscribers_tbl)
            .where(newsletter_subscribers_tbl.c.id == subscriber_id)
            .values(**values)
        )
        await self._session.execute(stmt)

    async def list(self, active_only: bool = False) -> List[Subscriber]:
        query = select(newsletter_subscribers_tbl).order_by(newsletter_subscribers_tbl.c.subscribed_at.desc())
        if active_only:
            query = query.where(newsletter_subscribers_tbl.c.is_active.is_(True))
        result = await self._session.execute(query)
        return [self._to_domain(row) for row in result.fetchall()]

    def _to_domain(self, row) -> Subscriber:
        return Subscriber(
            id=row.id,
            email=row.email,
            name=row.name,
            source=row.source,
            is_active=row.is_active,
            subscribed_at=row.subscribed_at,
            unsubscribed_at=row.unsubscribed_at
        )


class SQLAlchemyContentRepository(ContentRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, content_id: str) -> Optional[SiteContent]:
        result = await self._session.execute(
            select(site_content_tbl).where(site_content_tbl.c.id == content_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_by_key(self, page_name: str, section_key: str) -> Optional[SiteContent]:
        result = await self._session.execute(
            select(site_content_tbl).where(
                site_content_tbl.c.page_name == page_name,
                site_content_tbl.c.section_key == section_key,
            )
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list(self, page_name: Optional[str] = None) -> List[SiteContent]:
        query = select(site_content_tbl).order_by(site_content_tbl.c.page_name, site_content_tbl.c.section_key)
        if page_name:
            query = query.where(site_content_tbl.c.page_name == page_name)
        result = await self._session.execute(query)
        return [self._to_domain(row) for row in result.fetchall()]

    async def create(self, content: SiteContent) -> None:
        stmt = insert(site_content_tbl).values(
            id=content.id,
            page_name=content.page_name,
            section_key=content.section_key,
            content=content.content,
            is_active=content.is_active,
            updated_at=content.updated_at or datetime.now(timezone.utc)
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError:
            raise DuplicateSectionError(f"Section {content.registry_key} already exists")

    async def update_content(self, content_id: str, content: Dict[str, Any]) -> None:
        stmt = (
            update(site_content_tbl)
            .where(site_content_tbl.c.id == content_id)
            .values(content=content, updated_at=datetime.now(timezone.utc))
        )
        await self._session.execute(stmt)

    async def delete(self, content_id: str) -> None:
        await self._session.execute(delete(site_content_tbl).where(site_content_tbl.c.id == content_id))

    def _to_domain(self, row) -> SiteContent:
        # older rows hold the document as a JSON string
        content = row.content
        if not isinstance(content, dict):
            content = parse_content(content)
        return SiteContent(
            id=row.id,
            page_name=row.page_name,
            section_key=row.section_key,
            content=content,
            is_active=row.is_active,
            updated_at=row.updated_at
        )


class SQLAlchemyMessageRepository(MessageRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, message: ChatMessage) -> None:
        await self._session.execute(insert(admin_messages_tbl).values(**message.model_dump()))

    async def list_broadcast(self) -> List[ChatMessage]:
        result = await self._session.execute(
            select(admin_messages_tbl)
            .where(admin_messages_tbl.c.recipient_id.is_(None))
            .order_by(admin_messages_tbl.c.created_at.asc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def list_thread(self, user_a: str, user_b: str) -> List[ChatMessage]:
        tbl = admin_messages_tbl
        result = await self._session.execute(
            select(tbl)
            .where(or_(
                and_(tbl.c.sender_id == user_a, tbl.c.recipient_id == user_b),
                and_(tbl.c.sender_id == user_b, tbl.c.recipient_id == user_a),
            ))
            .order_by(tbl.c.created_at.asc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    def _to_domain(self, row) -> ChatMessage:
        return ChatMessage(
            id=row.id,
            sender_id=row.sender_id,
            recipient_id=row.recipient_id,
            content=row.content,
            created_at=row.created_at
        )


class SQLAlchemyRoleRepository(RoleRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, user_id: str, role: AppRole) -> Optional[UserRole]:
        result = await self._session.execute(
            select(user_roles_tbl).where(
                user_roles_tbl.c.user_id == user_id,
                user_roles_tbl.c.role == role.value,
            )
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_by_id(self, role_id: str) -> Optional[UserRole]:
        result = await self._session.execute(
            select(user_roles_tbl).where(user_roles_tbl.c.id == role_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def create(self, user_role: UserRole) -> None:
        stmt = insert(user_roles_tbl).values(**_column_values(user_role.model_dump()))
        try:
            await self._session.execute(stmt)
        except IntegrityError:
            raise DuplicateRoleError("User already has this role")

    async def delete(self, role_id: str) -> None:
        await self._session.execute(delete(user_roles_tbl).where(user_roles_tbl.c.id == role_id))

    async def list(self, user_id: Optional[str] = None) -> List[UserRole]:
        query = select(user_roles_tbl).order_by(user_roles_tbl.c.created_at.asc())
        if user_id:
            query = query.where(user_roles_tbl.c.user_id == user_id)
        result = await self._session.execute(query)
        return [self._to_domain(row) for row in result.fetchall()]

    def _to_domain(self, row) -> UserRole:
        return UserRole(
            id=row.id,
            user_id=row.user_id,
            role=AppRole(row.role),
            responsibilities=row.responsibilities,
            created_at=row.created_at
        )


class SQLAlchemyPaymentConfigurationRepository(PaymentConfigurationRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, config_id: str) -> Optional[PaymentConfiguration]:
        result = await self._session.execute(
            select(payment_configurations_tbl).where(payment_configurations_tbl.c.id == config_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list(self) -> List[PaymentConfiguration]:
        result = await self._session.execute(
            select(payment_configurations_tbl).order_by(payment_configurations_tbl.c.created_at.desc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def create(self, config: PaymentConfiguration) -> None:
        await self._session.execute(insert(payment_configurations_tbl).values(**config.model_dump()))

    async def update(self, config_id: str, values: Dict[str, Any]) -> None:
        stmt = (
            update(payment_configurations_tbl)
            .where(payment_configurations_tbl.c.id == config_id)
            .values(**values)
        )
        await self._session.execute(stmt)

    async def clear_default(self) -> None:
        await self._session.execute(
            update(payment_configurations_tbl)
            .where(payment_configurations_tbl.c.is_default.is_(True))
            .values(is_default=False, updated_at=datetime.now(timezone.utc))
        )

    async def delete(self, config_id: str) -> None:
        await self._session.execute(
            delete(payment_configurations_tbl).where(payment_configurations_tbl.c.id == config_id)
        )

    def _to_domain(self, row) -> PaymentConfiguration:
        return PaymentConfiguration(
            id=row.id,
            name=row.name,
            provider=row.provider,
            is_test_mode=row.is_test_mode,
            is_default=row.is_default,
            is_active=row.is_active,
            stripe_publishable_key=row.stripe_publishable_key,
            connection_type=row.connection_type,
            metadata=row._mapping["metadata"] or {},
            created_by=row.created_by,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyProductRepository(ProductRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id == product_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list(self, category: Optional[str] = None, active_only: bool = True) -> List[Product]:
        query = select(products_tbl).order_by(products_tbl.c.created_at.desc())
        if category:
            query = query.where(products_tbl.c.category == category)
        if active_only:
            query = query.where(products_tbl.c.is_active.is_(True))
        result = await self._session.execute(query)
        return [self._to_domain(row) for row in result.fetchall()]

    async def create(self, product: Product) -> None:
        stmt = insert(products_tbl).values(**product.model_dump())
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            logger.warning(f"Duplicate product {product.sku}: {e.orig}")
            raise DuplicateProductError(f"A product with SKU {product.sku} already exists")

    async def update(self, product_id: str, values: Dict[str, Any]) -> None:
        values = dict(values)
        values.setdefault("updated_at", datetime.now(timezone.utc))
        stmt = (
            update(products_tbl)
            .where(products_tbl.c.id == product_id)
            .values(**values)
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            logger.warning(f"Product {product_id} update rejected: {e.orig}")
            raise DuplicateProductError(f"A product with SKU {values.get('sku')} already exists")

    def _to_domain(self, row) -> Product:
        return Product(
            id=row.id,
            name=row.name,
            description=row.description,
            price=row.price,
            sale_price=row.sale_price,
            currency=row.currency,
            category=row.category,
            images=row.images or [],
            image_url=row.image_url,
            carbon_offset_kg=row.carbon_offset_kg,
            source_location=row.source_location,
            stock_quantity=row.stock_quantity,
            sku=row.sku,
            is_active=row.is_active,
            featured=row.featured,
            created_at=row.created_at,
            updated_at=row.updated_at
        )
