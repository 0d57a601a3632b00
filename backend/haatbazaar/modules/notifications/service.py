# haatbazaar/modules/notifications/service.py
from typing import Any, Dict, Iterable, List, Optional
from fastapi import Depends

from haatbazaar.core.exceptions import RepositoryError
from haatbazaar.core.logging_setup import logger
from haatbazaar.db.schemas.notification_schemas import (
    PUSH_NOTIFICATION_TYPES, NotificationDoc, NotificationType, OutboxChannel, RelatedData, is_expo_push_token,
)
from haatbazaar.modules.notifications.exceptions import NotificationNotFoundError
from haatbazaar.modules.notifications.repository import NotificationRepository, OutboxRepository
from haatbazaar.modules.users.repository import UserRepository


class NotificationService:
    """Records in-app notifications and queues their realtime/push delivery in the outbox."""

    def __init__(
        self,
        notification_repo: NotificationRepository = Depends(),
        outbox_repo: OutboxRepository = Depends(),
        user_repo: UserRepository = Depends(),
    ):
        self.notification_repo = notification_repo
        self.outbox_repo = outbox_repo
        self.user_repo = user_repo

    async def notify(
        self,
        recipient_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        sender_id: Optional[str] = None,
        related: Optional[Dict[str, Any]] = None,
    ) -> Optional[NotificationDoc]:
        """Stores the notification and its outbox entries.

        Never raises: a notification that cannot be recorded is logged and
        the calling state transition proceeds.
        """
        log = logger.bind(recipient=recipient_id, notification_type=notification_type.value)
        try:
            notification = await self.notification_repo.insert({
                "recipient": recipient_id,
                "sender": sender_id,
                "type": notification_type.value,
                "title": title,
                "message": message,
                "related_data": RelatedData(**(related or {})).model_dump(),
                "is_read": False,
                "read_at": None,
            })
            entries: List[Dict[str, Any]] = [{
                "notification_id": notification.id,
                "recipient": recipient_id,
                "channel": OutboxChannel.REALTIME.value,
                "payload": notification.to_api(),
            }]
            if notification_type in PUSH_NOTIFICATION_TYPES:
                recipient = await self.user_repo.get_by_id(recipient_id)
                if recipient and is_expo_push_token(recipient.expo_push_token):
                    entries.append({
                        "notification_id": notification.id,
                        "recipient": recipient_id,
                        "channel": OutboxChannel.PUSH.value,
                        "payload": {
                            "to": recipient.expo_push_token,
                            "sound": "default",
                            "title": title,
                            "body": message,
                            "data": {"type": notification_type.value, "notificationId": notification.id,
                                     **{k: v for k, v in notification.related_data.model_dump().items() if v}},
                        },
                    })
                else:
                    log.debug("Recipient has no Expo push token; push skipped.")
            await self.outbox_repo.enqueue(entries)
            log.info(f"Notification {notification.id} queued on {len(entries)} channel(s).")
            return notification
        except RepositoryError:
            log.exception("Failed to record notification.")
            return None

    async def notify_many(
        self,
        recipient_ids: Iterable[str],
        notification_type: NotificationType,
        title: str,
        message: str,
        sender_id: Optional[str] = None,
        related: Optional[Dict[str, Any]] = None,
    ) -> int:
        sent = 0
        for recipient_id in dict.fromkeys(recipient_ids):
            if await self.notify(recipient_id, notification_type, title, message, sender_id, related):
                sent += 1
        return sent

    # --- Inbox operations ---

    async def list_for_user(self, user_id: str, is_read: Optional[bool] = None, limit: int = 50):
        notifications = await self.notification_repo.list_for_user(user_id, is_read=is_read, limit=limit)
        unread = await self.notification_repo.count_unread(user_id)
        return notifications, unread

    async def unread_count(self, user_id: str) -> int:
        return await self.notification_repo.count_unread(user_id)

    async def mark_read(self, notification_id: str, user_id: str) -> NotificationDoc:
        notification = await self.notification_repo.mark_read(notification_id, user_id)
        if not notification:
            raise NotificationNotFoundError(notification_id)
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        count = await self.notification_repo.mark_all_read(user_id)
        logger.bind(user_id=user_id).info(f"Marked {count} notifications as read.")
        return count

    async def delete(self, notification_id: str, user_id: str):
        if not await self.notification_repo.delete_for_user(notification_id, user_id):
            raise NotificationNotFoundError(notification_id)
