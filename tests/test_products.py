from decimal import Decimal

import pytest

from storefront.application.products import (
    CreateProductDTO, CreateProductUseCase, GetProductUseCase, ListProductsUseCase, UpdateProductUseCase
)
from storefront.domain.currency import convert_amount
from storefront.domain.exceptions import DuplicateProductError, ProductNotFoundError, ValidationError


class TestCatalogue:
    async def test_listing_skips_inactive(self, uow, save_product):
        await save_product(name="Jacket")
        await save_product(name="Old Coat", is_active=False)

        names = [p.name for p in await ListProductsUseCase(uow)()]
        everything = await ListProductsUseCase(uow)(include_inactive=True)

        assert names == ["Jacket"]
        assert len(everything) == 2

    async def test_by_category(self, uow, save_product):
        await save_product(name="Jacket", category="outerwear")
        await save_product(name="Tote", category="accessories")
        await save_product(name="Belt", category="accessories", is_active=False)

        products = await ListProductsUseCase(uow)(category="accessories")

        assert [p.name for p in products] == ["Tote"]

    async def test_get_by_id(self, uow, save_product):
        saved = await save_product(price=Decimal("40.00"), sale_price=Decimal("32.50"))

        product = await GetProductUseCase(uow)(saved.id)

        assert product.price == Decimal("40.00")
        assert product.unit_price == Decimal("32.50")

    async def test_missing_product(self, uow):
        with pytest.raises(ProductNotFoundError):
            await GetProductUseCase(uow)("nope")


class TestCatalogueEditing:
    async def test_create(self, uow):
        product = await CreateProductUseCase(uow)(CreateProductDTO(
            name=" Upcycled Denim Jacket ", category="outerwear", price=Decimal("85.00"),
            currency="gbp", stock_quantity=3, sku="DEN-001",
        ))

        stored = await GetProductUseCase(uow)(product.id)
        assert stored.name == "Upcycled Denim Jacket"
        assert stored.currency == "GBP"
        assert stored.stock_quantity == 3

    async def test_duplicate_sku(self, uow):
        create = CreateProductUseCase(uow)
        await create(CreateProductDTO(name="A", category="outerwear", price=Decimal("1"), sku="SKU-1"))

        with pytest.raises(DuplicateProductError):
            await create(CreateProductDTO(name="B", category="outerwear", price=Decimal("1"), sku="SKU-1"))

    async def test_blank_name(self, uow):
        with pytest.raises(ValidationError):
            await CreateProductUseCase(uow)(CreateProductDTO(name="  ", category="outerwear", price=Decimal("1")))

    async def test_update(self, uow, save_product):
        saved = await save_product(stock_quantity=5)

        product = await UpdateProductUseCase(uow)(saved.id, {"stock_quantity": 2, "is_active": False})

        assert product.stock_quantity == 2
        assert product.is_active is False
        assert product.name == saved.name

    async def test_update_rejects_bad_values(self, uow, save_product):
        saved = await save_product()

        with pytest.raises(ValidationError):
            await UpdateProductUseCase(uow)(saved.id, {"price": "-3"})
        with pytest.raises(ValidationError):
            await UpdateProductUseCase(uow)(saved.id, {"id": "other"})
        with pytest.raises(ProductNotFoundError):
            await UpdateProductUseCase(uow)("nope", {"stock_quantity": 1})


class TestConversion:
    def test_same_currency(self):
        assert convert_amount(Decimal("40.00"), "GBP", "gbp") == Decimal("40.00")

    def test_through_gbp(self):
        assert convert_amount(Decimal("10.00"), "GBP", "EUR") == Decimal("11.70")
        assert convert_amount(Decimal("10.00"), "GBP", "UGX") == Decimal("47000")
        assert convert_amount(Decimal("165"), "KES", "GBP") == Decimal("1.00")
