# haatbazaar/modules/notifications/outbox.py
# Drains the notification outbox: at-least-once delivery with exponential backoff.
import asyncio
from datetime import datetime, timedelta
from typing import Dict, Optional

from haatbazaar.core.config import settings
from haatbazaar.core.exceptions import RepositoryError
from haatbazaar.core.logging_setup import logger
from haatbazaar.db.mongo_client import get_database
from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.notification_schemas import OutboxChannel, OutboxEntryDoc
from haatbazaar.modules.notifications.channels import ExpoPushChannel, RealtimeChannel
from haatbazaar.modules.notifications.exceptions import DeliveryError
from haatbazaar.modules.notifications.repository import OutboxRepository


def retry_delay_seconds(attempts: int, base_seconds: float) -> float:
    """Backoff before the next attempt, given how many attempts were already made."""
    return base_seconds * (2 ** max(attempts - 1, 0))


class OutboxDispatcher:
    def __init__(
        self,
        outbox_repo: OutboxRepository,
        channels: Optional[Dict[OutboxChannel, object]] = None,
        max_attempts: Optional[int] = None,
        retry_base_seconds: Optional[float] = None,
        lease_seconds: Optional[float] = None,
    ):
        self.outbox_repo = outbox_repo
        self.channels = channels or {
            OutboxChannel.REALTIME: RealtimeChannel(),
            OutboxChannel.PUSH: ExpoPushChannel(),
        }
        self.max_attempts = max_attempts or settings.OUTBOX_MAX_ATTEMPTS
        self.retry_base_seconds = retry_base_seconds if retry_base_seconds is not None else settings.OUTBOX_RETRY_BASE_SECONDS
        self.lease_seconds = lease_seconds or settings.OUTBOX_LEASE_SECONDS
        self.log = logger.bind(service="OutboxDispatcher")

    async def dispatch_pending(self, limit: Optional[int] = None, now: Optional[datetime] = None) -> Dict[str, int]:
        """Claims and delivers up to `limit` due entries. Returns counts per outcome."""
        limit = limit or settings.OUTBOX_BATCH_SIZE
        stats = {"delivered": 0, "retried": 0, "failed": 0}
        for _ in range(limit):
            entry = await self.outbox_repo.claim_next(self.lease_seconds, now=now)
            if entry is None:
                break
            outcome = await self._deliver(entry, now=now)
            stats[outcome] += 1
        if any(stats.values()):
            self.log.info(f"Outbox batch processed: {stats}")
        return stats

    async def _deliver(self, entry: OutboxEntryDoc, now: Optional[datetime] = None) -> str:
        log = self.log.bind(outbox_id=entry.id, channel=entry.channel.value, attempt=entry.attempts)
        channel = self.channels.get(entry.channel)
        try:
            if channel is None:
                raise DeliveryError(entry.channel.value, "no channel configured")
            await channel.send(entry)
        except DeliveryError as e:
            return await self._handle_failure(entry, str(e), log, now)
        except Exception as e:
            log.exception("Unexpected error delivering outbox entry.")
            return await self._handle_failure(entry, f"{type(e).__name__}: {e}", log, now)
        await self.outbox_repo.mark_delivered(entry.id)
        log.debug("Outbox entry delivered.")
        return "delivered"

    async def _handle_failure(self, entry: OutboxEntryDoc, error: str, log, now: Optional[datetime]) -> str:
        if entry.attempts >= self.max_attempts:
            log.error(f"Giving up on outbox entry after {entry.attempts} attempts: {error}")
            await self.outbox_repo.mark_failed(entry.id, error)
            return "failed"
        delay = retry_delay_seconds(entry.attempts, self.retry_base_seconds)
        log.warning(f"Delivery failed, retrying in {delay:.0f}s: {error}")
        await self.outbox_repo.schedule_retry(entry.id, (now or utcnow()) + timedelta(seconds=delay), error)
        return "retried"


# --- Background loop (runs inside the API process) ---
_dispatcher_task: asyncio.Task | None = None
_stop_event = asyncio.Event()


async def outbox_dispatcher_loop(dispatcher: OutboxDispatcher):
    log = logger.bind(service="OutboxLoop")
    log.info("Starting notification outbox loop...")
    while not _stop_event.is_set():
        try:
            await dispatcher.dispatch_pending()
        except RepositoryError as e:
            log.error(f"Outbox loop database error: {e}. Retrying...")
        except Exception:
            log.exception("Outbox loop: unexpected error.")
        try:
            await asyncio.wait_for(_stop_event.wait(), timeout=settings.OUTBOX_POLL_INTERVAL_SECONDS)
        except asyncio.TimeoutError:
            pass
    log.info("Notification outbox loop shutting down.")


async def start_outbox_dispatcher():
    global _dispatcher_task
    if not settings.OUTBOX_ENABLED:
        logger.info("Notification outbox dispatcher is disabled in settings.")
        return
    if _dispatcher_task is None or _dispatcher_task.done():
        _stop_event.clear()
        dispatcher = OutboxDispatcher(OutboxRepository(get_database()))
        _dispatcher_task = asyncio.create_task(outbox_dispatcher_loop(dispatcher))
    else:
        logger.warning("Outbox dispatcher task already running.")


async def stop_outbox_dispatcher():
    global _dispatcher_task
    if _dispatcher_task and not _dispatcher_task.done():
        logger.info("Signaling outbox dispatcher to stop...")
        _stop_event.set()
        try:
            await asyncio.wait_for(_dispatcher_task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Outbox dispatcher did not stop in time. Cancelling.")
            _dispatcher_task.cancel()
            try:
                await _dispatcher_task
            except asyncio.CancelledError:
                logger.info("Outbox dispatcher cancellation confirmed.")
        finally:
            _dispatcher_task = None
