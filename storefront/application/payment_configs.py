import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel

from storefront.domain.exceptions import (
    DefaultConfigurationError, PaymentConfigurationNotFoundError, ValidationError
)
from storefront.domain.models import PaymentConfiguration

logger = logging.getLogger(__name__)


class CreatePaymentConfigurationDTO(BaseModel):
    name: str
    provider: str = "stripe"
    is_test_mode: bool = True
    stripe_publishable_key: Optional[str] = None
    connection_type: str = "api_keys"
    metadata: Dict[str, Any] = {}
    created_by: Optional[str] = None


class ConnectionCheck(BaseModel):
    ok: bool
    message: str


async def _load(uow, config_id: str) -> PaymentConfiguration:
    config = await uow.payment_configs.get_by_id(config_id)
    if not config:
        raise PaymentConfigurationNotFoundError(f"Payment configuration {config_id} not found")
    return config


class CreatePaymentConfigurationUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, dto: CreatePaymentConfigurationDTO) -> PaymentConfiguration:
        if not dto.name.strip():
            raise ValidationError("Please enter a configuration name")
        if dto.connection_type == "api_keys" and not (dto.stripe_publishable_key or "").strip():
            raise ValidationError("Please enter your Stripe publishable key")

        now = datetime.now(timezone.utc)
        async with self._uow() as uow:
            existing = await uow.payment_configs.list()
            config = PaymentConfiguration(
                id=str(uuid.uuid4()),
                name=dto.name.strip(),
                provider=dto.provider,
                is_test_mode=dto.is_test_mode,
                # the first configuration becomes the default
                is_default=not existing,
                is_active=True,
                stripe_publishable_key=(dto.stripe_publishable_key or "").strip() or None,
                connection_type=dto.connection_type,
                metadata=dto.metadata,
                created_by=dto.created_by,
                created_at=now,
                updated_at=now,
            )
            await uow.payment_configs.create(config)
            await uow.commit()

        logger.info(f"Payment configuration {config.name} created (default={config.is_default})")
        return config


class ListPaymentConfigurationsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> List[PaymentConfiguration]:
        async with self._uow() as uow:
            return await uow.payment_configs.list()


class SetDefaultPaymentConfigurationUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, config_id: str) -> PaymentConfiguration:
        async with self._uow() as uow:
            config = await _load(uow, config_id)
            changes = {"is_default": True, "updated_at": datetime.now(timezone.utc)}
            await uow.payment_configs.clear_default()
            await uow.payment_configs.update(config.id, changes)
            await uow.commit()

        logger.info(f"Payment configuration {config.name} is now default")
        return config.model_copy(update=changes)


class TogglePaymentConfigurationUseCase:
    """Flips one boolean flag: `is_active` or `is_test_mode`."""

    FLAGS = ("is_active", "is_test_mode")

    def __init__(self, unit_of_work, flag: str):
        if flag not in self.FLAGS:
            raise ValueError(f"Unknown flag {flag}")
        self._uow = unit_of_work
        self._flag = flag

    async def __call__(self, config_id: str) -> PaymentConfiguration:
        async with self._uow() as uow:
            config = await _load(uow, config_id)
            changes = {self._flag: not getattr(config, self._flag), "updated_at": datetime.now(timezone.utc)}
            await uow.payment_configs.update(config.id, changes)
            await uow.commit()
        return config.model_copy(update=changes)


class DeletePaymentConfigurationUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, config_id: str) -> None:
        async with self._uow() as uow:
            config = await _load(uow, config_id)
            if config.is_default:
                raise DefaultConfigurationError(
                    "Cannot delete the default configuration. Set another as default first."
                )
            await uow.payment_configs.delete(config.id)
            await uow.commit()
        logger.info(f"Payment configuration {config.name} deleted")


class CheckPaymentConfigurationUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, config_id: str) -> ConnectionCheck:
        async with self._uow() as uow:
            config = await _load(uow, config_id)
        if (config.stripe_publishable_key or "").startswith("pk_"):
            return ConnectionCheck(ok=True, message="Publishable key format is valid")
        logger.warning(f"Payment configuration {config.name} has an invalid publishable key")
        return ConnectionCheck(ok=False, message="Invalid publishable key format")
