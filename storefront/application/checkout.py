import json
import logging
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from storefront.application.interfaces import PaymentGateway
from storefront.domain.currency import DEFAULT_CURRENCY, convert_amount, ensure_chargeable, to_minor_units
from storefront.domain.exceptions import InsufficientStockError, ProductUnavailableError, ValidationError
from storefront.domain.models import Product

logger = logging.getLogger(__name__)


class CartItem(BaseModel):
    id: str
    quantity: int = Field(gt=0)


class PricedItem(BaseModel):
    id: str
    name: str
    quantity: int
    price: Decimal


class CheckoutDTO(BaseModel):
    items: List[CartItem] = []
    customer_email: str = ""
    customer_name: str = ""
    currency: str = "GBP"
    customer_location: Optional[str] = None


class PaymentIntentResult(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount: int


class CreatePaymentIntentUseCase:
    """Prices the cart from the catalogue; client-side prices are never charged."""

    def __init__(self, unit_of_work, payment_gateway: PaymentGateway, shipping_rate: Decimal = Decimal("5")):
        self._uow = unit_of_work
        self._payments = payment_gateway
        self._shipping_rate = shipping_rate

    async def __call__(self, dto: CheckoutDTO) -> PaymentIntentResult:
        if not dto.items:
            raise ValidationError("No items in cart")
        if not dto.customer_email:
            raise ValidationError("Customer email is required")

        currency = dto.currency.upper()
        async with self._uow() as uow:
            priced = [await self._price(uow, item, currency) for item in dto.items]

        subtotal = sum((item.price * item.quantity for item in priced), Decimal("0"))
        shipping = convert_amount(self._shipping_rate, DEFAULT_CURRENCY, currency)
        amount = to_minor_units(subtotal + shipping, currency)
        ensure_chargeable(amount, currency)

        metadata = {
            "customer_email": dto.customer_email,
            "customer_name": dto.customer_name,
            "items": json.dumps([
                {"id": item.id, "name": item.name, "qty": item.quantity, "price": str(item.price)}
                for item in priced
            ]),
        }
        if dto.customer_location:
            metadata["customerLocation"] = dto.customer_location

        intent = await self._payments.create_payment_intent(
            amount=amount,
            currency=currency.lower(),
            metadata=metadata,
            receipt_email=dto.customer_email,
        )
        logger.info(f"Payment intent {intent['id']} created for {amount} {currency}")
        return PaymentIntentResult(
            client_secret=intent["client_secret"],
            payment_intent_id=intent["id"],
            amount=amount,
        )

    async def _price(self, uow, item: CartItem, currency: str) -> PricedItem:
        product: Optional[Product] = await uow.products.get_by_id(item.id)
        if product is None or not product.is_active:
            logger.warning(f"Checkout rejected: product {item.id} is not available")
            raise ProductUnavailableError(f"Product {item.id} is not available")
        if product.stock_quantity < item.quantity:
            raise InsufficientStockError(product.id, product.stock_quantity, item.quantity)
        return PricedItem(
            id=product.id,
            name=product.name,
            quantity=item.quantity,
            price=convert_amount(product.unit_price, product.currency, currency),
        )
