import pytest

from storefront.application.integrations import (
    CheckEmailConnectionUseCase, CheckMailingListUseCase, IntegrationSettingsStore,
    SaveIntegrationKeyUseCase, SendTestEmailUseCase, SyncMailingListUseCase
)
from storefront.application.newsletter import (
    ExportSubscribersUseCase, ListSubscribersUseCase, SubscribeUseCase, UnsubscribeUseCase,
    SUBSCRIBERS_CSV_HEADER, normalize_email
)
from storefront.domain.exceptions import (
    DuplicateSubscriberError, EmailServiceError, IntegrationNotConfiguredError,
    InvalidEmailError, MailingListServiceError, SubscriberNotFoundError
)

from conftest import FakeEmailSender, FakeMailingList


class TestSubscriptions:
    def test_email_is_normalized(self):
        assert normalize_email("  Jane@Example.COM ") == "jane@example.com"

    @pytest.mark.parametrize("email", [
        "", "jane", "jane@", "jane @example.com", "a@b..com", "a@-b.com", "a..b@c.com", "\"a@b.com",
    ])
    def test_invalid_email(self, email):
        with pytest.raises(InvalidEmailError):
            normalize_email(email)

    async def test_subscribe(self, uow):
        subscriber = await SubscribeUseCase(uow)("Jane@Example.com", name="Jane")

        assert subscriber.email == "jane@example.com"
        assert subscriber.source == "website"
        assert subscriber.is_active

    async def test_active_duplicate(self, uow):
        await SubscribeUseCase(uow)("jane@example.com")

        with pytest.raises(DuplicateSubscriberError):
            await SubscribeUseCase(uow)("JANE@example.com")

    async def test_resubscribe_reactivates(self, uow):
        first = await SubscribeUseCase(uow)("jane@example.com")
        await UnsubscribeUseCase(uow)("jane@example.com")

        again = await SubscribeUseCase(uow)("jane@example.com")

        assert again.id == first.id
        assert again.is_active
        assert again.unsubscribed_at is None
        assert len(await ListSubscribersUseCase(uow)()) == 1

    async def test_unsubscribe_unknown(self, uow):
        with pytest.raises(SubscriberNotFoundError):
            await UnsubscribeUseCase(uow)("ghost@example.com")

    async def test_active_only_listing(self, uow):
        await SubscribeUseCase(uow)("a@example.com")
        await SubscribeUseCase(uow)("b@example.com")
        await UnsubscribeUseCase(uow)("b@example.com")

        active = await ListSubscribersUseCase(uow)(active_only=True)

        assert [s.email for s in active] == ["a@example.com"]

    async def test_export(self, uow):
        await SubscribeUseCase(uow)("a@example.com", name="Ann", source="footer")
        await SubscribeUseCase(uow)("b@example.com")
        await UnsubscribeUseCase(uow)("b@example.com")

        lines = (await ExportSubscribersUseCase(uow)()).strip().split("\n")

        assert lines[0] == ",".join(SUBSCRIBERS_CSV_HEADER)
        assert len(lines) == 3
        assert any(line.startswith("a@example.com,Ann,footer,active,") for line in lines)
        assert any(line.startswith("b@example.com,,website,unsubscribed,") for line in lines)


class TestIntegrationSettings:
    async def test_saved_key_wins_over_fallback(self, uow):
        store = IntegrationSettingsStore(uow)
        await SaveIntegrationKeyUseCase(store)("mailerlite", " ml_saved ")

        assert await store.api_key("mailerlite", "ml_env") == "ml_saved"
        assert (await store.get("mailerlite"))["connected"] is False

    async def test_fallback_key(self, uow):
        assert await IntegrationSettingsStore(uow).api_key("resend", "re_env") == "re_env"

    async def test_no_key(self, uow):
        with pytest.raises(IntegrationNotConfiguredError):
            await IntegrationSettingsStore(uow).api_key("resend")

    async def test_save_merges(self, uow):
        store = IntegrationSettingsStore(uow)
        await store.save("mailerlite", {"api_key": "k"})
        await store.save("mailerlite", {"connected": True})

        assert await store.get("mailerlite") == {"api_key": "k", "connected": True}


class TestMailingList:
    async def test_check_picks_brand_group(self, uow):
        store = IntegrationSettingsStore(uow)
        mailing_list = FakeMailingList(groups=[{"id": "1", "name": "VIP"}, {"id": "2", "name": "Moenviron list"}])

        status = await CheckMailingListUseCase(store, mailing_list, fallback_key="ml_env")()

        assert status.connected
        assert status.group_id == "2"
        assert status.groups_count == 2
        assert (await store.get("mailerlite"))["group_name"] == "Moenviron list"

    async def test_check_failure_marks_disconnected(self, uow):
        store = IntegrationSettingsStore(uow)
        await store.save("mailerlite", {"api_key": "bad", "connected": True})

        with pytest.raises(MailingListServiceError):
            await CheckMailingListUseCase(store, FakeMailingList(broken=True))()

        assert (await store.get("mailerlite"))["connected"] is False

    async def test_sync_creates_group_and_reports_failures(self, uow):
        await SubscribeUseCase(uow)("a@example.com", name="Ann")
        await SubscribeUseCase(uow)("b@example.com")
        await SubscribeUseCase(uow)("c@example.com")
        await UnsubscribeUseCase(uow)("c@example.com")
        store = IntegrationSettingsStore(uow)
        mailing_list = FakeMailingList(failing_emails={"b@example.com"})

        report = await SyncMailingListUseCase(uow, store, mailing_list, fallback_key="ml_env")()

        assert report.total == 2
        assert report.synced_count == 1
        assert report.errors == ["b@example.com"]
        assert report.group_name == "Moenviron Newsletter"
        assert mailing_list.upserts == [{"email": "a@example.com", "name": "Ann", "group_id": report.group_id}]
        saved = await store.get("mailerlite")
        assert saved["synced_count"] == 1
        assert "last_sync" in saved

    async def test_sync_without_key(self, uow):
        with pytest.raises(IntegrationNotConfiguredError):
            await SyncMailingListUseCase(uow, IntegrationSettingsStore(uow), FakeMailingList())()


class TestTransactionalEmail:
    async def test_connection_check(self, uow):
        store = IntegrationSettingsStore(uow)

        result = await CheckEmailConnectionUseCase(store, FakeEmailSender(), fallback_key="re_env")()

        assert result["connected"] is True
        assert (await store.get("resend"))["connected"] is True

    async def test_connection_failure(self, uow):
        store = IntegrationSettingsStore(uow)

        with pytest.raises(EmailServiceError):
            await CheckEmailConnectionUseCase(store, FakeEmailSender(fail=True), fallback_key="re_env")()

        assert (await store.get("resend"))["connected"] is False

    async def test_send_test_email_uses_saved_key(self, uow):
        store = IntegrationSettingsStore(uow)
        await store.save("resend", {"api_key": "re_saved"})
        sender = FakeEmailSender()

        await SendTestEmailUseCase(store, sender, fallback_key="re_env")("ops@example.com")

        assert sender.sent[0]["to"] == "ops@example.com"
        assert sender.sent[0]["api_key"] == "re_saved"
