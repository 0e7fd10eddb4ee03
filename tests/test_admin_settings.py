from decimal import Decimal

import pytest

from storefront.application.list_orders import (
    CSV_HEADER, ExportOrdersUseCase, ListOrdersUseCase, OrderSummaryUseCase
)
from storefront.application.payment_configs import (
    CheckPaymentConfigurationUseCase, CreatePaymentConfigurationDTO, CreatePaymentConfigurationUseCase,
    DeletePaymentConfigurationUseCase, ListPaymentConfigurationsUseCase,
    SetDefaultPaymentConfigurationUseCase, TogglePaymentConfigurationUseCase
)
from storefront.application.roles import (
    AssignRoleUseCase, AuthorizeRoleUseCase, CancelInvitationUseCase, InviteStaffUseCase,
    ListInvitationsUseCase, ListRolesUseCase, RevokeRoleUseCase
)
from storefront.domain.exceptions import (
    DefaultConfigurationError, DuplicateInvitationError, DuplicateRoleError, InvalidStatusError,
    PermissionDeniedError, RoleNotFoundError, ValidationError
)
from storefront.domain.models import AppRole, OrderStatus

from conftest import FakeEmailSender


class TestRoles:
    async def test_assign_and_authorize(self, uow):
        await AssignRoleUseCase(uow)("user-1", "Admin", responsibilities="Everything")

        await AuthorizeRoleUseCase(uow)("user-1")
        roles = await ListRolesUseCase(uow)("user-1")
        assert roles[0].role == AppRole.ADMIN
        assert roles[0].responsibilities == "Everything"

    async def test_authorize_without_role(self, uow):
        await AssignRoleUseCase(uow)("user-2", "support")

        with pytest.raises(PermissionDeniedError):
            await AuthorizeRoleUseCase(uow)("user-2")
        with pytest.raises(PermissionDeniedError):
            await AuthorizeRoleUseCase(uow)(None)

    async def test_duplicate_role(self, uow):
        await AssignRoleUseCase(uow)("user-1", "marketing")

        with pytest.raises(DuplicateRoleError, match="User already has this role"):
            await AssignRoleUseCase(uow)("user-1", "marketing")

    async def test_unknown_role(self, uow):
        with pytest.raises(ValidationError):
            await AssignRoleUseCase(uow)("user-1", "overlord")

    async def test_revoke(self, uow):
        role = await AssignRoleUseCase(uow)("user-1", "content")

        await RevokeRoleUseCase(uow)(role.id)

        assert await ListRolesUseCase(uow)("user-1") == []
        with pytest.raises(RoleNotFoundError):
            await RevokeRoleUseCase(uow)(role.id)


class TestInvitations:
    async def test_invite_sends_email(self, uow):
        sender = FakeEmailSender()

        result = await InviteStaffUseCase(uow, sender, site_url="https://shop.example.com")(
            "New.Hire@Example.com", "shipping", invited_by="user-1"
        )

        assert result.warnings == []
        assert result.invitation.email == "new.hire@example.com"
        assert sender.sent[0]["to"] == "new.hire@example.com"
        assert "https://shop.example.com/auth" in sender.sent[0]["html"]
        pending = await ListInvitationsUseCase(uow)()
        assert [(i.email, i.role) for i in pending] == [("new.hire@example.com", AppRole.SHIPPING)]

    async def test_duplicate_invitation(self, uow):
        invite = InviteStaffUseCase(uow)
        await invite("a@example.com", "support")
        await invite("a@example.com", "marketing")

        with pytest.raises(DuplicateInvitationError):
            await invite("a@example.com", "support")

    async def test_email_failure_keeps_invitation(self, uow):
        result = await InviteStaffUseCase(uow, FakeEmailSender(fail=True))("a@example.com", "support")

        assert result.warnings == ["Invitation saved but email delivery failed"]
        assert len(await ListInvitationsUseCase(uow)()) == 1

    async def test_cancel(self, uow):
        invite = InviteStaffUseCase(uow)
        await invite("a@example.com", "support")
        await invite("b@example.com", "support")

        await CancelInvitationUseCase(uow)("a@example.com", "support")

        assert [i.email for i in await ListInvitationsUseCase(uow)()] == ["b@example.com"]
        with pytest.raises(RoleNotFoundError):
            await CancelInvitationUseCase(uow)("a@example.com", "support")


def _config_dto(name="Live", key="pk_live_123", **extra):
    return CreatePaymentConfigurationDTO(name=name, stripe_publishable_key=key, **extra)


class TestPaymentConfigurations:
    async def test_first_configuration_is_default(self, uow):
        first = await CreatePaymentConfigurationUseCase(uow)(_config_dto("Test"))
        second = await CreatePaymentConfigurationUseCase(uow)(_config_dto("Live"))

        assert first.is_default
        assert not second.is_default

    async def test_publishable_key_required_for_api_keys(self, uow):
        with pytest.raises(ValidationError):
            await CreatePaymentConfigurationUseCase(uow)(_config_dto(key=""))

        oauth = await CreatePaymentConfigurationUseCase(uow)(_config_dto(key=None, connection_type="oauth"))
        assert oauth.stripe_publishable_key is None

    async def test_set_default_moves_the_flag(self, uow):
        create = CreatePaymentConfigurationUseCase(uow)
        first = await create(_config_dto("Test"))
        second = await create(_config_dto("Live"))

        await SetDefaultPaymentConfigurationUseCase(uow)(second.id)

        configs = {c.id: c for c in await ListPaymentConfigurationsUseCase(uow)()}
        assert configs[second.id].is_default
        assert not configs[first.id].is_default

    async def test_default_cannot_be_deleted(self, uow):
        create = CreatePaymentConfigurationUseCase(uow)
        first = await create(_config_dto("Test"))
        second = await create(_config_dto("Live"))

        with pytest.raises(DefaultConfigurationError):
            await DeletePaymentConfigurationUseCase(uow)(first.id)
        await DeletePaymentConfigurationUseCase(uow)(second.id)

        assert [c.id for c in await ListPaymentConfigurationsUseCase(uow)()] == [first.id]

    async def test_toggles(self, uow):
        config = await CreatePaymentConfigurationUseCase(uow)(_config_dto())

        toggled = await TogglePaymentConfigurationUseCase(uow, "is_active")(config.id)
        test_mode = await TogglePaymentConfigurationUseCase(uow, "is_test_mode")(config.id)

        assert toggled.is_active is False
        assert test_mode.is_test_mode is False

    def test_unknown_toggle(self, uow):
        with pytest.raises(ValueError):
            TogglePaymentConfigurationUseCase(uow, "is_default")

    async def test_connection_check(self, uow):
        good = await CreatePaymentConfigurationUseCase(uow)(_config_dto())
        bad = await CreatePaymentConfigurationUseCase(uow)(_config_dto("Bad", key="sk_live_oops"))

        assert (await CheckPaymentConfigurationUseCase(uow)(good.id)).ok
        assert not (await CheckPaymentConfigurationUseCase(uow)(bad.id)).ok


class TestOrderListing:
    async def test_search_and_status_filter(self, uow, save_order):
        await save_order(user_email="jane@example.com", user_name="Jane Doe")
        await save_order(user_email="sam@example.com", user_name="Sam Smith", status=OrderStatus.SHIPPED)

        list_orders = ListOrdersUseCase(uow)
        assert [o.user_email for o in await list_orders(search="SMITH")] == ["sam@example.com"]
        assert [o.user_email for o in await list_orders(status="shipped")] == ["sam@example.com"]
        assert len(await list_orders(status="all")) == 2

    async def test_unknown_status_filter(self, uow):
        with pytest.raises(InvalidStatusError):
            await ListOrdersUseCase(uow)(status="lost")

    async def test_summary_skips_cancelled_revenue(self, uow, save_order):
        await save_order(total_amount=Decimal("45.00"))
        await save_order(total_amount=Decimal("10.00"), status=OrderStatus.DELIVERED)
        await save_order(total_amount=Decimal("99.00"), status=OrderStatus.CANCELLED)
        await save_order(total_amount=Decimal("1000"), currency="KES")

        summary = await OrderSummaryUseCase(uow)()

        assert summary.total_orders == 4
        assert summary.pending_count == 2
        assert summary.delivered_count == 1
        assert summary.revenue == {"GBP": Decimal("55.00"), "KES": Decimal("1000")}

    async def test_export(self, uow, save_order):
        order = await save_order()

        lines = (await ExportOrdersUseCase(uow)()).strip().split("\n")

        assert lines[0] == ",".join(CSV_HEADER)
        assert lines[1].startswith(f"{order.id},jane@example.com,Jane Doe,45.00,GBP,pending,stripe,")
