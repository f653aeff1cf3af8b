import pytest

from src.models.notification import MessageData, NotificationPayload
from src.notifications.retry import CALL_RETRY_POLICY, MESSAGE_RETRY_POLICY
from src.storage.repository import DeviceRepository
from tests.helpers import make_token


class UntouchableRepository(DeviceRepository):
    def find_tokens_by_user_id(self, user_id):
        raise AssertionError("store must not be queried")


@pytest.mark.asyncio
async def test_register_and_notify_message(service, provider) -> None:
    token = make_token("android")
    service.register_device("u1", "android", token)

    result = await service.notify_message("u1", {"id": 42, "sender_id": "u7", "sender_name": "Ada", "text": "hello"})

    assert result.success is True
    assert result.sent == 1
    message = provider.calls[0]
    assert message["notification"] == {"title": "New message from Ada", "body": "hello"}
    assert message["data"]["messageId"] == "42"
    assert message["data"]["receiverId"] == "u1"


@pytest.mark.asyncio
async def test_message_body_truncated_and_sender_defaulted(service, provider) -> None:
    service.register_device("u1", "ios", make_token("ios"))

    await service.notify_message("u1", MessageData(id="m1", sender_id="u7", text="x" * 250))

    message = provider.calls[0]
    assert message["notification"]["title"] == "New message from Someone"
    assert message["notification"]["body"] == "x" * 200 + "..."


@pytest.mark.asyncio
async def test_malformed_token_filtered_before_network(service, provider) -> None:
    service.register_device("u1", "ios", make_token("valid"))
    service.register_device("u1", "android", "bad-token")

    result = await service.send_to_user("u1", NotificationPayload(title="Hi"))

    assert result.total == 1
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_group_message_with_unregistered_token_is_pruned(service, provider, repository) -> None:
    dead = make_token("dead")
    alive = make_token("alive")
    service.register_device("u1", "android", dead)
    service.register_device("u1", "ios", alive)
    provider.outcomes[dead] = "error:registration-token-not-registered"

    result = await service.notify_group_message(
        "u1",
        {"id": "m1", "sender_id": "u7", "sender_name": "Ada", "text": "y" * 160},
        {"id": "g1", "name": "Climbers"},
    )

    assert result.invalid_removed == 1
    assert dead not in repository.list_tokens("u1")
    assert alive in repository.list_tokens("u1")
    sent = provider.calls[-1]
    assert sent["notification"]["title"] == "Climbers"
    assert sent["notification"]["body"] == "Ada: " + "y" * 150 + "..."
    assert sent["data"]["groupName"] == "Climbers"


@pytest.mark.asyncio
async def test_incoming_call_builds_platform_specific_messages(service, provider) -> None:
    service.register_device("u1", "ios", make_token("ios"))
    service.register_device("u1", "android", make_token("android"))

    result = await service.notify_incoming_call(
        "u1", {"call_id": "c1", "caller_id": "u7", "caller_name": "Ada", "call_type": "video"}
    )

    assert result.sent == 2
    ios, android = provider.calls
    assert "notification" not in ios
    assert ios["apns"]["payload"]["aps"]["content-available"] == 1
    assert android["android"]["notification"]["channelId"] == "incoming_calls"
    assert android["notification"] == {"title": "Incoming video call", "body": "Ada is calling you"}
    assert ios["data"]["type"] == android["data"]["type"] == "1"


@pytest.mark.asyncio
async def test_missed_call_notification(service, provider) -> None:
    service.register_device("u1", "android", make_token("android"))

    result = await service.notify_missed_call("u1", {"call_id": "c1", "caller_id": "u7"})

    assert result.success is True
    message = provider.calls[0]
    assert message["notification"] == {"title": "Missed call", "body": "You missed a voice call from Unknown"}
    assert message["data"]["type"] == "missed_call"


@pytest.mark.asyncio
async def test_validation_failures_are_returned_not_raised(service) -> None:
    assert (await service.notify_message("", {"id": "m", "sender_id": "s"})).error == "receiver_id is required"
    assert (await service.notify_message("u1", None)).error == "message_data is required"
    assert (await service.notify_group_message("u1", {"id": "m", "sender_id": "s"}, None)).error == "group_data is required"
    assert (await service.notify_incoming_call("u1", {"caller_id": "u7"})).error == "Missing required call data"
    assert (await service.notify_message("u1", {"sender_id": "s"})).success is False


@pytest.mark.asyncio
async def test_missing_title_never_touches_store(provider, breaker) -> None:
    from src.notifications.service import NotificationService

    service = NotificationService(repository=UntouchableRepository(), provider=provider, breaker=breaker)

    result = await service.send_to_user("u1", NotificationPayload(title=""))

    assert result.success is False
    assert result.error == "payload.title is required"
    assert provider.calls == []


@pytest.mark.asyncio
async def test_breaker_opens_after_five_failures_and_resets(service, provider, breaker, clock) -> None:
    tokens = [make_token(f"t{i}") for i in range(5)]
    for token in tokens:
        service.register_device("u1", "android", token)
        provider.outcomes[token] = "error:unavailable"

    first = await service.send_to_user("u1", NotificationPayload(title="Hi"))
    calls_after_outage = len(provider.calls)
    second = await service.send_to_user("u1", NotificationPayload(title="Hi"))

    assert first.failed == 5
    assert second.error == "Circuit breaker open - too many failures"
    assert len(provider.calls) == calls_after_outage

    provider.outcomes.clear()
    clock.advance(61)
    third = await service.send_to_user("u1", NotificationPayload(title="Hi"))

    assert third.success is True
    assert breaker.failure_count == 0


@pytest.mark.asyncio
async def test_unexpected_errors_are_captured(service, provider) -> None:
    token = make_token("boom")
    service.register_device("u1", "ios", token)

    async def explode(message):
        raise RuntimeError("kaboom")

    provider.send = explode
    result = await service.notify_message("u1", {"id": "m", "sender_id": "s"})

    assert result.success is False
    assert result.failed == 1
    assert result.results[0].error == "kaboom"


def test_call_and_message_policies_differ() -> None:
    assert (MESSAGE_RETRY_POLICY.max_attempts, MESSAGE_RETRY_POLICY.base_delay_seconds) == (3, 0.1)
    assert (CALL_RETRY_POLICY.max_attempts, CALL_RETRY_POLICY.base_delay_seconds) == (2, 0.05)
    assert MESSAGE_RETRY_POLICY.send_timeout_seconds == 10
    assert CALL_RETRY_POLICY.send_timeout_seconds == 12


@pytest.mark.asyncio
async def test_incoming_call_uses_call_retry_budget(service, provider, recorded_sleep) -> None:
    token = make_token("android")
    service.register_device("u1", "android", token)
    provider.outcomes[token] = "error:unavailable"

    result = await service.notify_incoming_call("u1", {"call_id": "c1", "caller_id": "u7"})

    assert result.failed == 1
    assert len(provider.calls) == 2
    assert recorded_sleep.delays == [0.05]
