# haatbazaar/api/v1/endpoints/notifications.py
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Path, Query

from haatbazaar.core.security import CurrentUser
from haatbazaar.db.schemas.notification_schemas import PushTokenRegister
from haatbazaar.modules.notifications.service import NotificationService
from haatbazaar.modules.users.service import UserService

router = APIRouter()

NotificationServiceDep = Annotated[NotificationService, Depends()]
NotificationId = Annotated[str, Path(description="Notification ID")]


@router.get("", summary="My latest notifications")
async def list_notifications(
    current_user: CurrentUser,
    service: NotificationServiceDep,
    is_read: Annotated[Optional[bool], Query(alias="isRead")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
):
    notifications, unread = await service.list_for_user(current_user.id, is_read=is_read, limit=limit)
    return {"notifications": [n.to_api() for n in notifications], "unread_count": unread}


@router.get("/unread-count", summary="Unread notification count")
async def unread_count(current_user: CurrentUser, service: NotificationServiceDep):
    return {"count": await service.unread_count(current_user.id)}


@router.put("/push-token", summary="Register an Expo push token")
async def register_push_token(
    data: PushTokenRegister, current_user: CurrentUser, user_service: Annotated[UserService, Depends()],
):
    await user_service.set_push_token(current_user, data.token)
    return {"message": "Push token registered"}


@router.put("/mark-all/read", summary="Mark every notification as read")
async def mark_all_read(current_user: CurrentUser, service: NotificationServiceDep):
    count = await service.mark_all_read(current_user.id)
    return {"message": "All notifications marked as read", "updated": count}


@router.put("/{notification_id}/read", summary="Mark a notification as read")
async def mark_read(notification_id: NotificationId, current_user: CurrentUser, service: NotificationServiceDep):
    notification = await service.mark_read(notification_id, current_user.id)
    return {"message": "Notification marked as read", "notification": notification.to_api()}


@router.delete("/{notification_id}", summary="Delete a notification")
async def delete_notification(notification_id: NotificationId, current_user: CurrentUser, service: NotificationServiceDep):
    await service.delete(notification_id, current_user.id)
    return {"message": "Notification deleted"}
