import json

import firebase_admin
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from firebase_admin import exceptions, messaging

from src.notifications.errors import (
    INVALID_ARGUMENT,
    INVALID_REGISTRATION_TOKEN,
    REGISTRATION_TOKEN_NOT_REGISTERED,
)
from src.notifications.providers import (
    FCMNotificationProvider,
    MockNotificationProvider,
    _translate_firebase_error,
    to_fcm_message,
)


def test_firebase_errors_map_to_token_codes() -> None:
    assert _translate_firebase_error(messaging.UnregisteredError("gone")).code == REGISTRATION_TOKEN_NOT_REGISTERED
    assert _translate_firebase_error(messaging.SenderIdMismatchError("other")).code == INVALID_REGISTRATION_TOKEN
    assert _translate_firebase_error(exceptions.InvalidArgumentError("bad")).code == INVALID_ARGUMENT


def test_other_firebase_errors_are_transient() -> None:
    error = _translate_firebase_error(exceptions.UnavailableError("down"))

    assert error.code == "unavailable"
    assert error.is_token_error is False


def test_to_fcm_message_maps_platform_blocks() -> None:
    message = to_fcm_message(
        {
            "token": "t" * 60,
            "data": {"type": "0"},
            "apns": {
                "headers": {"apns-priority": "10", "apns-push-type": "background"},
                "payload": {"aps": {"content-available": 1}},
            },
        }
    )

    assert message.token == "t" * 60
    assert message.notification is None
    assert message.android is None
    assert message.apns.payload.aps.content_available is True
    assert message.apns.headers["apns-push-type"] == "background"


def test_unconfigured_fcm_provider_reports_not_ready() -> None:
    provider = FCMNotificationProvider(credentials_path="")

    assert provider.is_configured is False


@pytest.mark.asyncio
async def test_mock_provider_records_messages() -> None:
    provider = MockNotificationProvider()

    message_id = await provider.send({"token": "abc"})

    assert message_id.startswith("mock-")
    assert provider.sent == [{"token": "abc"}]


def _write_service_account(path) -> None:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    path.write_text(
        json.dumps(
            {
                "type": "service_account",
                "project_id": "push-engine-test",
                "private_key_id": "key-1",
                "private_key": pem,
                "client_email": "push@push-engine-test.iam.gserviceaccount.com",
                "client_id": "1",
                "token_uri": "https://oauth2.googleapis.com/token",
            }
        )
    )


def test_second_fcm_provider_reuses_initialized_app(tmp_path) -> None:
    account = tmp_path / "service-account.json"
    _write_service_account(account)

    first = FCMNotificationProvider(str(account), app_name="reuse-test")
    try:
        second = FCMNotificationProvider(str(account), app_name="reuse-test")

        assert first.is_configured is True
        assert second.is_configured is True
    finally:
        firebase_admin.delete_app(firebase_admin.get_app("reuse-test"))
