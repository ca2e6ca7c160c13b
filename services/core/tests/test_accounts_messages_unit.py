"""Unit tests for AccountService and InboundMessageService."""

from datetime import datetime, timedelta, timezone

import pytest

from echodesk_core.domain.services.accounts import (
    AccountNotFoundError,
    AccountService,
    AccountValidationError,
    QuickSetupError,
)
from echodesk_core.domain.services.messages import (
    InboundMessageService,
    MessageValidationError,
)
from echodesk_core.infrastructure.crypto import DecryptionError
from tests.factories import create_user


@pytest.fixture
def accounts(db_session, crypto):
    return AccountService(db_session, crypto)


class TestAccountService:
    """Connected accounts."""

    def test_credentials_are_decrypted(self, db_session, accounts):
        user = create_user(db_session)
        accounts.connect_account(
            user_id=user.id,
            platform="Twitter",
            access_token="user-token",
            access_secret="user-secret",
            platform_id="42",
        )

        credentials = accounts.get_credentials(user.id, "Twitter")

        assert credentials.access_token == "user-token"
        assert credentials.access_secret == "user-secret"
        assert credentials.refresh_token is None
        assert credentials.platform_id == "42"

    def test_no_account(self, db_session, accounts):
        user = create_user(db_session)

        assert accounts.get_credentials(user.id, "Telegram") is None

    def test_rotated_key_fails_to_decrypt(self, db_session, accounts):
        from echodesk_core.infrastructure.crypto import CryptoService

        user = create_user(db_session)
        accounts.connect_account(user_id=user.id, platform="Telegram", access_token="t")

        rotated = AccountService(db_session, CryptoService(CryptoService.generate_key()))
        with pytest.raises(DecryptionError):
            rotated.get_credentials(user.id, "Telegram")

    def test_validation(self, db_session, accounts):
        user = create_user(db_session)

        with pytest.raises(AccountValidationError):
            accounts.connect_account(user_id=user.id, platform="MySpace", access_token="t")
        with pytest.raises(AccountValidationError):
            accounts.connect_account(user_id=user.id, platform="Telegram", access_token="")

    def test_delete_missing(self, db_session, accounts):
        user = create_user(db_session)

        with pytest.raises(AccountNotFoundError):
            accounts.delete_account(user.id, 999)

    @pytest.mark.asyncio
    async def test_quick_setup_network_error(self, db_session, accounts):
        import httpx

        def unreachable(request):
            raise httpx.ConnectError("connection refused")

        user = create_user(db_session)

        with pytest.raises(QuickSetupError, match="Could not reach Telegram"):
            await accounts.telegram_quick_setup(
                user.id, "1:abc", transport=httpx.MockTransport(unreachable)
            )

    def test_telegram_connection_url(self, db_session, accounts):
        user = create_user(db_session)
        accounts.connect_account(
            user_id=user.id, platform="Telegram", access_token="t", bot_username="echo_bot"
        )

        assert accounts.telegram_connection_url(user.id) == ("https://t.me/echo_bot", "echo_bot")

    def test_telegram_connection_url_without_username(self, db_session, accounts):
        user = create_user(db_session)
        accounts.connect_account(user_id=user.id, platform="Telegram", access_token="t")

        with pytest.raises(AccountNotFoundError):
            accounts.telegram_connection_url(user.id)


class TestWhatsAppQuickSetup:
    """Connecting a WhatsApp Cloud API number."""

    @pytest.mark.asyncio
    async def test_reads_phone_number_and_stores_account(self, db_session, accounts):
        import httpx

        requests = []

        def graph(request):
            requests.append(request)
            return httpx.Response(
                200,
                json={"id": "10987", "display_phone_number": "+1 555 0100", "verified_name": "Acme"},
            )

        user = create_user(db_session)

        account = await accounts.whatsapp_quick_setup(
            user.id,
            phone_number_id=" 10987 ",
            access_token="wa-token",
            verify_token="my-verify",
            graph_version="v19.0",
            transport=httpx.MockTransport(graph),
        )

        assert str(requests[0].url) == "https://graph.facebook.com/v19.0/10987"
        assert requests[0].headers["Authorization"] == "Bearer wa-token"
        assert account.page_id == "10987"
        assert account.display_name == "+1 555 0100"
        assert account.is_quick_setup is True

        credentials = accounts.get_credentials(user.id, "WhatsApp")
        assert credentials.access_token == "wa-token"
        assert credentials.access_secret == "my-verify"
        assert credentials.page_id == "10987"

    @pytest.mark.asyncio
    async def test_graph_error(self, db_session, accounts):
        import httpx

        def graph(request):
            return httpx.Response(
                400,
                json={"error": {"message": "Unsupported get request", "code": 100}},
            )

        user = create_user(db_session)

        with pytest.raises(QuickSetupError, match="Invalid credentials: Unsupported get request"):
            await accounts.whatsapp_quick_setup(
                user.id, "10987", "wa-token", "v", transport=httpx.MockTransport(graph)
            )
        assert accounts.get_account(user.id, "WhatsApp") is None

    @pytest.mark.asyncio
    async def test_network_error(self, db_session, accounts):
        import httpx

        def unreachable(request):
            raise httpx.ConnectError("connection refused")

        user = create_user(db_session)

        with pytest.raises(QuickSetupError, match="Could not reach WhatsApp"):
            await accounts.whatsapp_quick_setup(
                user.id, "10987", "wa-token", "v", transport=httpx.MockTransport(unreachable)
            )

    @pytest.mark.asyncio
    async def test_blank_fields(self, db_session, accounts):
        user = create_user(db_session)

        with pytest.raises(QuickSetupError, match="are required"):
            await accounts.whatsapp_quick_setup(user.id, "10987", "wa-token", "  ")


class TestInboundMessageService:
    """Storing inbound messages."""

    def record(self, service, user, **kwargs):
        values = {
            "user_id": user.id,
            "platform": "WhatsApp",
            "platform_message_id": "wamid.1",
            "sender_id": "15551234567",
            "sender_name": "Bob",
            "content": "hi",
        }
        values.update(kwargs)
        return service.record(**values)

    def test_dedupe_by_platform_message_id(self, db_session):
        user = create_user(db_session)
        service = InboundMessageService(db_session)

        first, created = self.record(service, user)
        again, created_again = self.record(service, user, content="changed")

        assert created is True
        assert created_again is False
        assert again.id == first.id
        assert again.content == "hi"

    def test_same_id_on_another_platform_is_new(self, db_session):
        user = create_user(db_session)
        service = InboundMessageService(db_session)

        first, _ = self.record(service, user)
        other, created = self.record(service, user, platform="Telegram")

        assert created is True
        assert other.id != first.id

    def test_received_at_is_stored_as_naive_utc(self, db_session):
        user = create_user(db_session)
        aware = datetime(2026, 3, 2, 9, 0, tzinfo=timezone(timedelta(hours=-5)))

        message, _ = self.record(InboundMessageService(db_session), user, received_at=aware)

        assert message.received_at == datetime(2026, 3, 2, 14, 0)

    def test_same_id_from_another_chat_is_new(self, db_session):
        user = create_user(db_session)
        service = InboundMessageService(db_session)

        first, _ = self.record(
            service, user, platform="Telegram", platform_message_id="1",
            sender_id="111", content="price?",
        )
        second, created = self.record(
            service, user, platform="Telegram", platform_message_id="1",
            sender_id="222", content="hello",
        )

        assert created is True
        assert second.id != first.id
        assert second.sender_id == "222"
        assert second.content == "hello"

    def test_same_id_for_another_user_is_new(self, db_session):
        owner = create_user(db_session, username="owner")
        stranger = create_user(db_session, username="stranger")
        service = InboundMessageService(db_session)
        first, _ = self.record(service, owner)

        other, created = self.record(service, stranger)

        assert created is True
        assert other.user_id == stranger.id
        assert other.id != first.id

    @pytest.mark.parametrize(
        "kwargs", [{"platform": "MySpace"}, {"message_type": "fax"}, {"sender_id": ""}]
    )
    def test_invalid(self, db_session, kwargs):
        user = create_user(db_session)

        with pytest.raises(MessageValidationError):
            self.record(InboundMessageService(db_session), user, **kwargs)
