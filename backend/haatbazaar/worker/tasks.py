# haatbazaar/worker/tasks.py
# Periodic maintenance tasks. Each run opens its own MongoDB connection
# because Motor clients are bound to the event loop that created them.
import asyncio

from haatbazaar.core.logging_setup import logger
from haatbazaar.core.redis_client import close_redis, connect_redis
from haatbazaar.db.mongo_client import close_mongo_connection, connect_to_mongo, get_database
from haatbazaar.db.schemas.notification_schemas import OutboxChannel
from haatbazaar.modules.negotiations.repository import NegotiationRepository
from haatbazaar.modules.negotiations.service import NegotiationService
from haatbazaar.modules.notifications.channels import ExpoPushChannel, RealtimeChannel
from haatbazaar.modules.notifications.outbox import OutboxDispatcher
from haatbazaar.modules.notifications.repository import NotificationRepository, OutboxRepository
from haatbazaar.modules.notifications.service import NotificationService
from haatbazaar.modules.orders.inventory import InventoryManager
from haatbazaar.modules.orders.repository import InventoryLedgerRepository, OrderRepository
from haatbazaar.modules.products.repository import ProductRepository
from haatbazaar.modules.users.repository import UserRepository
from haatbazaar.services.audit_service import audit_service
from haatbazaar.services.event_publisher import EventPublisher
from haatbazaar.worker.celery_app import celery_app


async def _with_database(work):
    await connect_to_mongo()
    try:
        return await work(get_database())
    finally:
        await close_mongo_connection()
        audit_service.reset()


@celery_app.task(bind=True, name="health_check")
def health_check_task(self):
    logger.info(f"Celery health check task running. Task ID: {self.request.id}")
    return {"status": "ok"}


@celery_app.task(bind=True, name="negotiations.expire_stale")
def expire_stale_negotiations_task(self):
    log = logger.bind(celery_task_id=self.request.id, task_name="expire_stale_negotiations")

    async def run(db):
        notifier = NotificationService(NotificationRepository(db), OutboxRepository(db), UserRepository(db))
        service = NegotiationService(NegotiationRepository(db), ProductRepository(db), notifier)
        return await service.expire_stale_negotiations()

    try:
        expired = asyncio.run(_with_database(run))
    except Exception as e:
        log.exception("Negotiation sweep failed.")
        raise self.retry(exc=e, countdown=60, max_retries=3)
    return {"expired": expired}


@celery_app.task(bind=True, name="inventory.release_abandoned")
def release_abandoned_inventory_task(self):
    log = logger.bind(celery_task_id=self.request.id, task_name="release_abandoned_inventory")

    async def run(db):
        inventory = InventoryManager(ProductRepository(db), InventoryLedgerRepository(db), OrderRepository(db))
        return await inventory.sweep_abandoned()

    try:
        released = asyncio.run(_with_database(run))
    except Exception as e:
        log.exception("Inventory sweep failed.")
        raise self.retry(exc=e, countdown=60, max_retries=3)
    if released:
        log.success(f"Released stock held by {released} abandoned attempt(s).")
    return {"released": released}


@celery_app.task(bind=True, name="notifications.dispatch_outbox")
def dispatch_outbox_task(self):
    """Drains the outbox from the worker when the API process does not run the dispatcher loop."""
    log = logger.bind(celery_task_id=self.request.id, task_name="dispatch_outbox")

    async def run(db):
        await connect_redis()
        push = ExpoPushChannel()
        try:
            dispatcher = OutboxDispatcher(
                OutboxRepository(db),
                channels={OutboxChannel.REALTIME: RealtimeChannel(EventPublisher()), OutboxChannel.PUSH: push},
            )
            return await dispatcher.dispatch_pending()
        finally:
            await push.aclose()
            await close_redis()

    try:
        stats = asyncio.run(_with_database(run))
    except Exception as e:
        log.exception("Outbox dispatch failed.")
        raise self.retry(exc=e, countdown=30, max_retries=3)
    log.info(f"Outbox dispatch finished: {stats}")
    return stats
