"""Integration tests for connected account endpoints."""

import pytest
from httpx import AsyncClient

from echodesk_core.domain.models import Account, AuditLog
from echodesk_core.providers.base import PlatformAPIError
from echodesk_core.providers.telegram import TelegramBotInfo
from echodesk_core.providers.whatsapp import WhatsAppPhoneInfo
from tests.factories import create_account, create_user


class TestConnectAccount:
    """POST /accounts and GET /accounts."""

    @pytest.mark.asyncio
    async def test_connect_encrypts_secrets(
        self, authenticated_client: AsyncClient, db_session, crypto
    ):
        response = await authenticated_client.post(
            "/accounts",
            json={
                "platform": "Facebook",
                "access_token": "page-token",
                "page_id": "1234",
                "display_name": "My Page",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["platform"] == "Facebook"
        assert data["page_id"] == "1234"
        assert "access_token" not in data
        assert data["is_quick_setup"] is False

        account = db_session.get(Account, data["id"])
        assert account.access_token_encrypted != "page-token"
        assert crypto.decrypt(account.access_token_encrypted) == "page-token"

        entry = db_session.query(AuditLog).filter_by(action_type="account.connect").one()
        assert entry.entity_id == data["id"]

    @pytest.mark.asyncio
    async def test_reconnect_updates_in_place(
        self, authenticated_client: AsyncClient, db_session, crypto
    ):
        first = await authenticated_client.post(
            "/accounts", json={"platform": "Twitter", "access_token": "old"}
        )
        second = await authenticated_client.post(
            "/accounts", json={"platform": "Twitter", "access_token": "new"}
        )

        assert first.json()["id"] == second.json()["id"]
        account = db_session.get(Account, second.json()["id"])
        db_session.refresh(account)
        assert crypto.decrypt(account.access_token_encrypted) == "new"

    @pytest.mark.asyncio
    async def test_unknown_platform(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post(
            "/accounts", json={"platform": "MySpace", "access_token": "t"}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_only_own_accounts(
        self, authenticated_client: AsyncClient, db_session, crypto, auth_user
    ):
        create_account(db_session, crypto, auth_user, platform="Telegram")
        stranger = create_user(db_session, username="stranger")
        create_account(db_session, crypto, stranger, platform="WhatsApp")
        db_session.commit()

        response = await authenticated_client.get("/accounts")

        assert response.status_code == 200
        assert [a["platform"] for a in response.json()["accounts"]] == ["Telegram"]


class TestDeleteAccount:
    """DELETE /accounts/{id}."""

    @pytest.mark.asyncio
    async def test_delete(self, authenticated_client: AsyncClient, db_session, crypto, auth_user):
        account_id = create_account(db_session, crypto, auth_user).id
        db_session.commit()

        response = await authenticated_client.delete(f"/accounts/{account_id}")

        assert response.status_code == 204
        db_session.expire_all()
        assert db_session.get(Account, account_id) is None

    @pytest.mark.asyncio
    async def test_cannot_delete_other_users_account(
        self, authenticated_client: AsyncClient, db_session, crypto
    ):
        stranger = create_user(db_session, username="stranger")
        account_id = create_account(db_session, crypto, stranger).id
        db_session.commit()

        response = await authenticated_client.delete(f"/accounts/{account_id}")

        assert response.status_code == 404


class TestTelegramQuickSetup:
    """POST /accounts/telegram/quick-setup."""

    @pytest.mark.asyncio
    async def test_valid_token(
        self, authenticated_client: AsyncClient, db_session, crypto, monkeypatch
    ):
        calls = []

        async def fake_get_bot_info(token, timeout=15.0, transport=None):
            calls.append((token, timeout))
            return TelegramBotInfo(id=4242, username="echo_bot", first_name="Echo")

        monkeypatch.setattr(
            "echodesk_core.domain.services.accounts.get_bot_info", fake_get_bot_info
        )

        response = await authenticated_client.post(
            "/accounts/telegram/quick-setup", json={"bot_token": " 4242:secret "}
        )

        assert response.status_code == 201
        data = response.json()
        assert data["platform"] == "Telegram"
        assert data["platform_id"] == "4242"
        assert data["bot_username"] == "echo_bot"
        assert data["display_name"] == "Echo"
        assert data["is_quick_setup"] is True
        assert calls == [("4242:secret", 5.0)]

        account = db_session.get(Account, data["id"])
        assert crypto.decrypt(account.access_token_encrypted) == "4242:secret"

    @pytest.mark.asyncio
    async def test_rejected_token_is_audited(
        self, authenticated_client: AsyncClient, db_session, monkeypatch
    ):
        async def fake_get_bot_info(token, timeout=15.0, transport=None):
            raise PlatformAPIError("Unauthorized", status_code=401)

        monkeypatch.setattr(
            "echodesk_core.domain.services.accounts.get_bot_info", fake_get_bot_info
        )

        response = await authenticated_client.post(
            "/accounts/telegram/quick-setup", json={"bot_token": "bad"}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid bot token: Unauthorized"
        assert db_session.query(Account).count() == 0

        entry = (
            db_session.query(AuditLog)
            .filter_by(action_type="account.telegram_quick_setup")
            .one()
        )
        assert entry.result == "error"

    @pytest.mark.asyncio
    async def test_blank_token(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post(
            "/accounts/telegram/quick-setup", json={"bot_token": "   "}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Bot token is required"


class TestTelegramConnectionUrl:
    """GET /accounts/telegram/connection-url."""

    @pytest.mark.asyncio
    async def test_link_to_bot(
        self, authenticated_client: AsyncClient, db_session, crypto, auth_user
    ):
        create_account(db_session, crypto, auth_user, platform="Telegram", bot_username="echo_bot")
        db_session.commit()

        response = await authenticated_client.get("/accounts/telegram/connection-url")

        assert response.status_code == 200
        assert response.json() == {
            "connection_url": "https://t.me/echo_bot",
            "bot_username": "echo_bot",
        }

    @pytest.mark.asyncio
    async def test_no_bot(self, authenticated_client: AsyncClient):
        response = await authenticated_client.get("/accounts/telegram/connection-url")

        assert response.status_code == 404
        assert response.json()["detail"] == "Telegram bot not configured"


class TestWhatsAppQuickSetup:
    """POST /accounts/whatsapp/quick-setup."""

    @pytest.mark.asyncio
    async def test_valid_credentials(
        self, authenticated_client: AsyncClient, db_session, crypto, monkeypatch
    ):
        calls = []

        async def fake_lookup(phone_number_id, access_token, graph_version="v18.0", timeout=15.0, transport=None):
            calls.append((phone_number_id, access_token, graph_version, timeout))
            return WhatsAppPhoneInfo(id=phone_number_id, display_phone_number="+1 555 0100")

        monkeypatch.setattr(
            "echodesk_core.domain.services.accounts.get_phone_number_info", fake_lookup
        )

        response = await authenticated_client.post(
            "/accounts/whatsapp/quick-setup",
            json={
                "phone_number_id": "10987",
                "access_token": "wa-token",
                "verify_token": "my-verify",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["platform"] == "WhatsApp"
        assert data["page_id"] == "10987"
        assert data["display_name"] == "+1 555 0100"
        assert data["is_quick_setup"] is True
        assert calls == [("10987", "wa-token", "v18.0", 5.0)]

        account = db_session.get(Account, data["id"])
        assert crypto.decrypt(account.access_token_encrypted) == "wa-token"
        assert crypto.decrypt(account.access_secret_encrypted) == "my-verify"

        entry = (
            db_session.query(AuditLog)
            .filter_by(action_type="account.whatsapp_quick_setup")
            .one()
        )
        assert entry.result == "ok"

    @pytest.mark.asyncio
    async def test_rejected_credentials_are_audited(
        self, authenticated_client: AsyncClient, db_session, monkeypatch
    ):
        async def fake_lookup(*args, **kwargs):
            raise PlatformAPIError("Invalid OAuth access token", status_code=401)

        monkeypatch.setattr(
            "echodesk_core.domain.services.accounts.get_phone_number_info", fake_lookup
        )

        response = await authenticated_client.post(
            "/accounts/whatsapp/quick-setup",
            json={"phone_number_id": "10987", "access_token": "bad", "verify_token": "v"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid credentials: Invalid OAuth access token"
        assert db_session.query(Account).count() == 0

        entry = (
            db_session.query(AuditLog)
            .filter_by(action_type="account.whatsapp_quick_setup")
            .one()
        )
        assert entry.result == "error"

    @pytest.mark.asyncio
    async def test_missing_verify_token(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post(
            "/accounts/whatsapp/quick-setup",
            json={"phone_number_id": "10987", "access_token": "wa-token"},
        )

        assert response.status_code == 422


class TestWhatsAppTestMessage:
    """POST /accounts/whatsapp/test-message."""

    @pytest.mark.asyncio
    async def test_sends_from_connected_number(
        self, authenticated_client: AsyncClient, db_session, crypto, auth_user, outbox
    ):
        create_account(
            db_session, crypto, auth_user, platform="WhatsApp", access_token="wa-token", page_id="10987"
        )
        db_session.commit()

        response = await authenticated_client.post(
            "/accounts/whatsapp/test-message",
            json={"phone_number": "15551234567", "message": "Setup works"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "message_id": "whatsapp_reply_1"}
        platform, credentials, context = outbox.sent[0]
        assert platform == "WhatsApp"
        assert credentials.page_id == "10987"
        assert context.sender_id == "15551234567"
        assert context.reply_content == "Setup works"

    @pytest.mark.asyncio
    async def test_delivery_failure(
        self, authenticated_client: AsyncClient, db_session, crypto, auth_user, outbox
    ):
        create_account(db_session, crypto, auth_user, platform="WhatsApp", page_id="10987")
        db_session.commit()
        outbox.fail_with = "WhatsApp API error: Recipient not allowed"

        response = await authenticated_client.post(
            "/accounts/whatsapp/test-message",
            json={"phone_number": "15551234567", "message": "Setup works"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == (
            "Failed to send message: WhatsApp API error: Recipient not allowed"
        )

    @pytest.mark.asyncio
    async def test_not_configured(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post(
            "/accounts/whatsapp/test-message",
            json={"phone_number": "15551234567", "message": "hi"},
        )

        assert response.status_code == 404
