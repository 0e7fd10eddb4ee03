import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from storefront.domain.exceptions import ProductNotFoundError, ValidationError
from storefront.domain.models import Product

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "name", "description", "price", "sale_price", "category", "images", "image_url",
    "carbon_offset_kg", "source_location", "stock_quantity", "sku", "is_active", "featured",
}


class CreateProductDTO(BaseModel):
    name: str
    category: str
    price: Decimal = Field(ge=0)
    sale_price: Optional[Decimal] = Field(default=None, ge=0)
    currency: str = "GBP"
    description: Optional[str] = None
    images: List[str] = []
    image_url: Optional[str] = None
    carbon_offset_kg: Optional[Decimal] = None
    source_location: Optional[str] = None
    stock_quantity: int = Field(default=0, ge=0)
    sku: Optional[str] = None
    is_active: bool = True
    featured: bool = False


class ListProductsUseCase:
    """Storefront listing: active products, newest first"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, category: Optional[str] = None, include_inactive: bool = False) -> List[Product]:
        async with self._uow() as uow:
            return await uow.products.list(category=category or None, active_only=not include_inactive)


class GetProductUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, product_id: str) -> Product:
        async with self._uow() as uow:
            product = await uow.products.get_by_id(product_id)
        if not product:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return product


class CreateProductUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, dto: CreateProductDTO) -> Product:
        if not dto.name.strip():
            raise ValidationError("Product name is required")
        if not dto.category.strip():
            raise ValidationError("Product category is required")

        now = datetime.now(timezone.utc)
        product = Product(
            id=str(uuid.uuid4()),
            **dto.model_dump(exclude={"name", "category", "currency"}),
            name=dto.name.strip(),
            category=dto.category.strip(),
            currency=dto.currency.upper(),
            created_at=now,
            updated_at=now,
        )
        async with self._uow() as uow:
            await uow.products.create(product)
            await uow.commit()

        logger.info(f"Product {product.id} ({product.name}) created")
        return product


class UpdateProductUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, product_id: str, changes: Dict[str, Any]) -> Product:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        async with self._uow() as uow:
            product = await uow.products.get_by_id(product_id)
            if not product:
                raise ProductNotFoundError(f"Product {product_id} not found")
            try:
                updated = Product.model_validate({**product.model_dump(), **changes})
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid product values: {e.errors()[0]['msg']}")
            await uow.products.update(product_id, {key: getattr(updated, key) for key in changes})
            await uow.commit()
            product = await uow.products.get_by_id(product_id)

        logger.info(f"Product {product_id} updated: {', '.join(sorted(changes))}")
        return product
