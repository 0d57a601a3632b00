# tests/test_notifications.py
import json
from datetime import timedelta

import httpx
import pytest
import redis.asyncio as redis

from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.notification_schemas import (
    NotificationType, OutboxChannel, OutboxStatus, PushTokenRegister,
)
from haatbazaar.modules.notifications.channels import ExpoPushChannel, RealtimeChannel
from haatbazaar.modules.notifications.exceptions import DeliveryError, NotificationNotFoundError
from haatbazaar.modules.notifications.outbox import OutboxDispatcher, retry_delay_seconds
from haatbazaar.modules.notifications.repository import OutboxRepository
from haatbazaar.services.event_publisher import EventPublisher

from tests.factories import make_user

TOKEN = "ExponentPushToken[abc123]"


class RecordingChannel:
    def __init__(self, failures: int = 0):
        self.failures = failures
        self.sent = []

    async def send(self, entry):
        if self.failures:
            self.failures -= 1
            raise DeliveryError("test", "boom")
        self.sent.append(entry)


class BrokenChannel:
    """Fails with something other than a DeliveryError."""

    async def send(self, entry):
        raise RuntimeError("unexpected payload")


class FakeRedis:
    def __init__(self, error: Exception = None):
        self.error = error
        self.published = []

    async def publish(self, channel, message):
        if self.error:
            raise self.error
        self.published.append((channel, json.loads(message)))
        return 1


# --- Recording ---

async def test_notify_stores_notification_and_realtime_entry(notifier, user_repo, db):
    buyer = await make_user(user_repo)
    farmer = await make_user(user_repo, name="Sita")

    notification = await notifier.notify(
        farmer.id, NotificationType.NEGOTIATION, "New offer", "Rs. 90/kg offered",
        sender_id=buyer.id, related={"negotiation_id": "n-1"},
    )

    assert notification.recipient == farmer.id
    assert notification.related_data.negotiation_id == "n-1"
    channels = [e["channel"] for e in db.notification_outbox.docs]
    assert channels == [OutboxChannel.REALTIME.value]


async def test_push_entry_only_for_push_types_and_valid_tokens(notifier, user_repo, db):
    with_token = await make_user(user_repo, expo_push_token=TOKEN)
    without_token = await make_user(user_repo)

    await notifier.notify(with_token.id, NotificationType.ORDER_PLACED, "New order", "2 kg tomatoes",
                          related={"order_id": "o-1"})
    await notifier.notify(without_token.id, NotificationType.ORDER_PLACED, "New order", "2 kg tomatoes")
    await notifier.notify(with_token.id, NotificationType.ORDER_STATUS, "Shipped", "On the way")

    push = [e for e in db.notification_outbox.docs if e["channel"] == OutboxChannel.PUSH.value]
    assert len(push) == 1
    assert push[0]["payload"]["to"] == TOKEN
    assert push[0]["payload"]["data"]["type"] == "order_placed"
    assert push[0]["payload"]["data"]["order_id"] == "o-1"
    assert len(db.notification_outbox.docs) == 4


async def test_notify_survives_a_storage_failure(notifier, user_repo, db):
    user = await make_user(user_repo)
    db.notifications.fail_with = RuntimeError("disk full")

    assert await notifier.notify(user.id, NotificationType.ORDER_STATUS, "t", "m") is None


async def test_notify_many_deduplicates_recipients(notifier, user_repo, db):
    a = await make_user(user_repo)
    b = await make_user(user_repo)

    sent = await notifier.notify_many([a.id, b.id, a.id], NotificationType.GROUP_SALE_INVITE, "Join", "Bulk sale")
    assert sent == 2
    assert len(db.notifications.docs) == 2


def test_push_token_format():
    assert PushTokenRegister(token=f"  {TOKEN} ").token == TOKEN
    with pytest.raises(ValueError):
        PushTokenRegister(token="fcm:12345")


# --- Inbox ---

async def test_inbox_read_and_delete_are_scoped_to_the_recipient(notifier, user_repo):
    owner = await make_user(user_repo)
    other = await make_user(user_repo)
    first = await notifier.notify(owner.id, NotificationType.ORDER_STATUS, "one", "m")
    await notifier.notify(owner.id, NotificationType.ORDER_STATUS, "two", "m")

    notifications, unread = await notifier.list_for_user(owner.id)
    assert unread == 2 and len(notifications) == 2

    with pytest.raises(NotificationNotFoundError):
        await notifier.mark_read(first.id, other.id)
    read = await notifier.mark_read(first.id, owner.id)
    assert read.is_read and read.read_at is not None
    assert await notifier.unread_count(owner.id) == 1

    unread_only, _ = await notifier.list_for_user(owner.id, is_read=False)
    assert [n.title for n in unread_only] == ["two"]

    assert await notifier.mark_all_read(owner.id) == 1
    assert await notifier.unread_count(owner.id) == 0

    with pytest.raises(NotificationNotFoundError):
        await notifier.delete(first.id, other.id)
    await notifier.delete(first.id, owner.id)
    remaining, _ = await notifier.list_for_user(owner.id)
    assert len(remaining) == 1


# --- Outbox dispatch ---

def test_retry_delay_doubles_per_attempt():
    assert [retry_delay_seconds(n, 5) for n in (1, 2, 3, 4)] == [5, 10, 20, 40]


async def _queue_one(notifier, user_repo):
    user = await make_user(user_repo)
    await notifier.notify(user.id, NotificationType.ORDER_STATUS, "t", "m")
    return user


async def test_dispatch_delivers_pending_entries(notifier, user_repo, db):
    await _queue_one(notifier, user_repo)
    channel = RecordingChannel()
    dispatcher = OutboxDispatcher(OutboxRepository(db), channels={OutboxChannel.REALTIME: channel})

    stats = await dispatcher.dispatch_pending()
    assert stats == {"delivered": 1, "retried": 0, "failed": 0}
    assert len(channel.sent) == 1
    assert db.notification_outbox.docs[0]["status"] == OutboxStatus.DELIVERED.value

    # Delivered entries are never claimed again
    assert await dispatcher.dispatch_pending() == {"delivered": 0, "retried": 0, "failed": 0}


async def test_failed_delivery_backs_off_then_gives_up(notifier, user_repo, db):
    await _queue_one(notifier, user_repo)
    dispatcher = OutboxDispatcher(
        OutboxRepository(db),
        channels={OutboxChannel.REALTIME: RecordingChannel(failures=10)},
        max_attempts=2,
        retry_base_seconds=30,
    )
    now = utcnow() + timedelta(seconds=1)

    assert await dispatcher.dispatch_pending(now=now) == {"delivered": 0, "retried": 1, "failed": 0}
    entry = db.notification_outbox.docs[0]
    assert entry["status"] == OutboxStatus.PENDING.value
    assert entry["attempts"] == 1
    assert entry["next_attempt_at"] == now + timedelta(seconds=30)
    assert entry["last_error"]

    # Not due yet
    assert await dispatcher.dispatch_pending(now=now + timedelta(seconds=10)) == {"delivered": 0, "retried": 0, "failed": 0}

    later = now + timedelta(seconds=31)
    assert await dispatcher.dispatch_pending(now=later) == {"delivered": 0, "retried": 0, "failed": 1}
    assert db.notification_outbox.docs[0]["status"] == OutboxStatus.FAILED.value


async def test_unexpected_channel_errors_follow_the_retry_path(notifier, user_repo, db):
    await _queue_one(notifier, user_repo)
    await _queue_one(notifier, user_repo)
    dispatcher = OutboxDispatcher(
        OutboxRepository(db),
        channels={OutboxChannel.REALTIME: BrokenChannel()},
        max_attempts=2,
        retry_base_seconds=30,
    )
    now = utcnow() + timedelta(seconds=1)

    # One bad entry does not stop the rest of the batch
    assert await dispatcher.dispatch_pending(now=now) == {"delivered": 0, "retried": 2, "failed": 0}
    assert all(d["status"] == OutboxStatus.PENDING.value for d in db.notification_outbox.docs)
    assert "RuntimeError" in db.notification_outbox.docs[0]["last_error"]

    later = now + timedelta(seconds=31)
    assert await dispatcher.dispatch_pending(now=later) == {"delivered": 0, "retried": 0, "failed": 2}
    assert all(d["status"] == OutboxStatus.FAILED.value for d in db.notification_outbox.docs)
    assert await dispatcher.dispatch_pending(now=later + timedelta(hours=1)) == {"delivered": 0, "retried": 0, "failed": 0}


async def test_expired_lease_is_reclaimed(notifier, user_repo, db):
    await _queue_one(notifier, user_repo)
    repo = OutboxRepository(db)
    now = utcnow() + timedelta(seconds=1)

    claimed = await repo.claim_next(lease_seconds=60, now=now)
    assert claimed.status == OutboxStatus.IN_FLIGHT
    assert await repo.claim_next(lease_seconds=60, now=now + timedelta(seconds=30)) is None

    reclaimed = await repo.claim_next(lease_seconds=60, now=now + timedelta(seconds=61))
    assert reclaimed.id == claimed.id
    assert reclaimed.attempts == 2


async def test_missing_channel_counts_as_a_failed_attempt(notifier, user_repo, db):
    await _queue_one(notifier, user_repo)
    dispatcher = OutboxDispatcher(OutboxRepository(db), channels={OutboxChannel.PUSH: RecordingChannel()}, max_attempts=1)

    assert (await dispatcher.dispatch_pending())["failed"] == 1


# --- Channels ---

async def test_realtime_channel_publishes_to_the_recipient(notifier, user_repo, db):
    user = await _queue_one(notifier, user_repo)
    entry = await OutboxRepository(db).claim_next(lease_seconds=60, now=utcnow() + timedelta(seconds=1))
    fake = FakeRedis()

    await RealtimeChannel(EventPublisher(fake)).send(entry)
    channel, message = fake.published[0]
    assert channel == f"notifications.{user.id}"
    assert message["event_type"] == "notification"
    assert message["data"]["title"] == "t"

    with pytest.raises(DeliveryError):
        await RealtimeChannel(EventPublisher(FakeRedis(redis.ConnectionError("refused")))).send(entry)


async def _push_entry(notifier, user_repo, db):
    user = await make_user(user_repo, expo_push_token=TOKEN)
    await notifier.notify(user.id, NotificationType.NEW_EVENT, "Haat tomorrow", "Near you")
    repo = OutboxRepository(db)
    push = next(d for d in db.notification_outbox.docs if d["channel"] == OutboxChannel.PUSH.value)
    return await repo.get_by_id(str(push["_id"]))


def _expo(handler) -> ExpoPushChannel:
    return ExpoPushChannel(httpx.AsyncClient(transport=httpx.MockTransport(handler)), url="https://expo.test/send")


async def test_expo_channel_posts_payload(notifier, user_repo, db):
    entry = await _push_entry(notifier, user_repo, db)
    bodies = []

    def handler(request: httpx.Request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"data": {"status": "ok", "id": "ticket-1"}})

    await _expo(handler).send(entry)
    assert bodies[0]["to"] == TOKEN
    assert bodies[0]["title"] == "Haat tomorrow"


@pytest.mark.parametrize("response", [
    httpx.Response(500, text="oops"),
    httpx.Response(200, json={"data": {"status": "error", "message": "DeviceNotRegistered"}}),
    httpx.Response(200, json={"data": [{"status": "error"}]}),
])
async def test_expo_channel_raises_on_rejection(notifier, user_repo, db, response):
    entry = await _push_entry(notifier, user_repo, db)

    with pytest.raises(DeliveryError):
        await _expo(lambda request: response).send(entry)


async def test_expo_channel_accepts_an_unexpected_body_shape(notifier, user_repo, db):
    await _push_entry(notifier, user_repo, db)
    dispatcher = OutboxDispatcher(
        OutboxRepository(db),
        channels={
            OutboxChannel.REALTIME: RecordingChannel(),
            OutboxChannel.PUSH: _expo(lambda request: httpx.Response(200, json=[{"status": "ok"}])),
        },
        max_attempts=1,
    )

    stats = await dispatcher.dispatch_pending(now=utcnow() + timedelta(seconds=1))
    assert stats == {"delivered": 2, "retried": 0, "failed": 0}
    assert all(d["status"] == OutboxStatus.DELIVERED.value for d in db.notification_outbox.docs)

    entry = await OutboxRepository(db).get_by_id(str(db.notification_outbox.docs[-1]["_id"]))
    await _expo(lambda request: httpx.Response(200, json={"data": ["ok"]})).send(entry)
