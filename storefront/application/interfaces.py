from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from storefront.domain.models import (
    AppRole, ChatMessage, Order, PaymentConfiguration, Product, SiteContent, Subscriber, UserRole
)


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_payment_intent_id(self, payment_intent_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def update(self, order_id: str, values: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def list(self, status: Optional[str] = None) -> List[Order]:
        pass


class SubscriberRepository(ABC):
    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[Subscriber]:
        pass

    @abstractmethod
    async def create(self, subscriber: Subscriber) -> None:
        pass

    @abstractmethod
    async def update(self, subscriber_id: str, values: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def list(self, active_only: bool = False) -> List[Subscriber]:
        pass


class ContentRepository(ABC):
    @abstractmethod
    async def get_by_id(self, content_id: str) -> Optional[SiteContent]:
        pass

    @abstractmethod
    async def get_by_key(self, page_name: str, section_key: str) -> Optional[SiteContent]:
        pass

    @abstractmethod
    async def list(self, page_name: Optional[str] = None) -> List[SiteContent]:
        pass

    @abstractmethod
    async def create(self, content: SiteContent) -> None:
        pass

    @abstractmethod
    async def update_content(self, content_id: str, content: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def delete(self, content_id: str) -> None:
        pass


class MessageRepository(ABC):
    @abstractmethod
    async def create(self, message: ChatMessage) -> None:
        pass

    @abstractmethod
    async def list_broadcast(self) -> List[ChatMessage]:
        pass

    @abstractmethod
    async def list_thread(self, user_a: str, user_b: str) -> List[ChatMessage]:
        pass


class RoleRepository(ABC):
    @abstractmethod
    async def get(self, user_id: str, role: AppRole) -> Optional[UserRole]:
        pass

    @abstractmethod
    async def get_by_id(self, role_id: str) -> Optional[UserRole]:
        pass

    @abstractmethod
    async def create(self, user_role: UserRole) -> None:
        pass

    @abstractmethod
    async def delete(self, role_id: str) -> None:
        pass

    @abstractmethod
    async def list(self, user_id: Optional[str] = None) -> List[UserRole]:
        pass


class PaymentConfigurationRepository(ABC):
    @abstractmethod
    async def get_by_id(self, config_id: str) -> Optional[PaymentConfiguration]:
        pass

    @abstractmethod
    async def list(self) -> List[PaymentConfiguration]:
        pass

    @abstractmethod
    async def create(self, config: PaymentConfiguration) -> None:
        pass

    @abstractmethod
    async def update(self, config_id: str, values: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def clear_default(self) -> None:
        pass

    @abstractmethod
    async def delete(self, config_id: str) -> None:
        pass


class ProductRepository(ABC):
    @abstractmethod
    async def get_by_id(self, product_id: str) -> Optional[Product]:
        pass

    @abstractmethod
    async def list(self, category: Optional[str] = None, active_only: bool = True) -> List[Product]:
        pass

    @abstractmethod
    async def create(self, product: Product) -> None:
        pass

    @abstractmethod
    async def update(self, product_id: str, values: Dict[str, Any]) -> None:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @property
    @abstractmethod
    def subscribers(self) -> SubscriberRepository:
        pass

    @property
    @abstractmethod
    def content(self) -> ContentRepository:
        pass

    @property
    @abstractmethod
    def messages(self) -> MessageRepository:
        pass

    @property
    @abstractmethod
    def roles(self) -> RoleRepository:
        pass

    @property
    @abstractmethod
    def payment_configs(self) -> PaymentConfigurationRepository:
        pass

    @property
    @abstractmethod
    def products(self) -> ProductRepository:
        pass

    @abstractmethod
    async def __call__(self):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class StatusNotifier(ABC):
    """Customer email for an order status change"""

    @abstractmethod
    async def notify_status(self, notification) -> None:
        pass


class EmailSender(ABC):
    @abstractmethod
    async def send_email(self, to: str, subject: str, html: str, api_key: Optional[str] = None) -> str:
        pass

    @abstractmethod
    async def test_connection(self, api_key: Optional[str] = None) -> dict:
        pass


class MailingListService(ABC):
    @abstractmethod
    async def list_groups(self, api_key: str) -> List[dict]:
        pass

    @abstractmethod
    async def create_group(self, api_key: str, name: str) -> Optional[dict]:
        pass

    @abstractmethod
    async def upsert_subscriber(self, api_key: str, email: str, name: Optional[str], group_id: Optional[str]) -> bool:
        pass


class PaymentGateway(ABC):
    @abstractmethod
    async def create_payment_intent(self, amount: int, currency: str, metadata: Dict[str, str], receipt_email: str) -> dict:
        pass

    @abstractmethod
    async def retrieve_payment_intent(self, payment_intent_id: str) -> dict:
        pass


class MessagePublisher(ABC):
    @abstractmethod
    async def publish(self, message: ChatMessage) -> None:
        pass
