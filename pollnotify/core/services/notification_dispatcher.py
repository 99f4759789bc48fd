"""Notification Dispatcher: delivers queued notifications periodically.

Every ``interval_s`` seconds a batch of pending records is read from the
queue and published through the SocialAPI by a bounded pool of concurrent
units. A record is removed from the queue only after it was published, so
failed records are retried on the next cycle (at-least-once delivery).
"""

import asyncio
import enum
import logging
from typing import List

from pollnotify.domain.errors import DeliveryError, QueueError
from pollnotify.domain.events.api_events import (
    DispatchCycleCompleted, NotificationDelivered, dispatch_event,
)
from pollnotify.domain.interfaces.notification_queue import NotificationQueue
from pollnotify.domain.interfaces.social_api import SocialAPI
from pollnotify.domain.models.farcaster import MessageContext
from pollnotify.domain.models.notification import DispatchResult, NotificationRecord

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 30.0
DEFAULT_SEND_COOLDOWN_S = 0.5
DEFAULT_BATCH_SIZE = 100
DEFAULT_POOL_SIZE = 10

NOTIFICATION_MESSAGE = (
    "👋 Hey @{username}!\n\n"
    "The user {author} created a new poll!\n\n"
    "🗳 And you're eligible to vote!\n\n"
    "Cast your vote to make a difference 👇"
)


class DispatcherState(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DISTRIBUTING = "distributing"
    STOPPED = "stopped"


class NotificationDispatcher:
    """Periodic batch poller fanning notifications out to a bounded pool."""

    def __init__(
        self,
        queue: NotificationQueue,
        api: SocialAPI,
        interval_s: float = DEFAULT_INTERVAL_S,
        batch_size: int = DEFAULT_BATCH_SIZE,
        pool_size: int = DEFAULT_POOL_SIZE,
        send_cooldown_s: float = DEFAULT_SEND_COOLDOWN_S,
        message_template: str = NOTIFICATION_MESSAGE,
    ):
        """Initializes the dispatcher.

        Args:
            queue: Source of pending notification records.
            api: API used to publish the notifications.
            interval_s: Wait between two cycles.
            batch_size: Maximum number of records fetched per cycle.
            pool_size: Maximum number of records processed concurrently.
            send_cooldown_s: Pause between starting two consecutive records.
            message_template: ``str.format`` template with ``username`` and ``author``.
        """
        if batch_size <= 0 or pool_size <= 0:
            raise ValueError("batch_size and pool_size must be positive.")
        self.queue = queue
        self.api = api
        self.interval_s = interval_s
        self.batch_size = batch_size
        self.pool_size = pool_size
        self.send_cooldown_s = send_cooldown_s
        self.message_template = message_template
        self.state = DispatcherState.IDLE
        self._stop_event = asyncio.Event()

        logger.info(
            f"NotificationDispatcher initialized: interval={interval_s}s, batch={batch_size}, "
            f"pool={pool_size}, cooldown={send_cooldown_s}s"
        )

    # --- Loop control ---

    async def run(self) -> None:
        """Runs dispatch cycles until ``stop()`` is called."""
        logger.info("Notification dispatcher started.")
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_s)
                break
            except asyncio.TimeoutError:
                pass
            await self.run_cycle()
        self.state = DispatcherState.STOPPED
        logger.info("Notification dispatcher stopped.")

    def stop(self) -> None:
        """Stops the loop. Units already in flight are allowed to finish."""
        self._stop_event.set()
        self.state = DispatcherState.STOPPED

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    # --- Cycle ---

    async def run_cycle(self) -> DispatchResult:
        """Fetches one batch and delivers it."""
        self._set_state(DispatcherState.FETCHING)
        try:
            records = await self.queue.list_pending(self.batch_size)
        except Exception as e:
            error = e if isinstance(e, QueueError) else QueueError("list", str(e))
            logger.error(f"error getting notifications: {error}")
            self._set_state(DispatcherState.IDLE)
            return DispatchResult(first_error=error, skipped=True)

        logger.info(f"notifications found: count={len(records)}")
        self._set_state(DispatcherState.DISTRIBUTING)
        result = await self.send_notifications(records)
        self._set_state(DispatcherState.IDLE)

        dispatch_event(DispatchCycleCompleted(
            fetched=result.fetched,
            delivered=result.delivered,
            failed=result.failed,
            first_error=str(result.first_error) if result.first_error else None,
        ))
        return result

    async def send_notifications(self, records: List[NotificationRecord]) -> DispatchResult:
        """Delivers ``records`` with at most ``pool_size`` in flight.

        Returns once every unit has finished. Only the first error that
        occurred is kept in the result and logged.
        """
        result = DispatchResult(fetched=len(records))
        pool = asyncio.Semaphore(self.pool_size)
        tasks = []
        for index, record in enumerate(records):
            if index and self.send_cooldown_s > 0:
                await asyncio.sleep(self.send_cooldown_s)
            await pool.acquire()
            tasks.append(asyncio.create_task(self._run_unit(record, pool, result)))

        if tasks:
            await asyncio.gather(*tasks)

        if result.first_error is not None:
            logger.error(f"error sending notifications: {result.first_error}")
        return result

    def compose_message(self, record: NotificationRecord) -> str:
        return self.message_template.format(
            username=record.recipient_username,
            author=record.author_username,
        )

    async def _run_unit(self, record: NotificationRecord, pool: asyncio.Semaphore, result: DispatchResult) -> None:
        try:
            await self._deliver(record, result)
        finally:
            pool.release()

    async def _deliver(self, record: NotificationRecord, result: DispatchResult) -> None:
        """Publishes one record, then removes it from the queue."""
        try:
            await self.api.publish(
                self.compose_message(record),
                [record.recipient_fid],
                MessageContext(embed_url=record.frame_url),
            )
        except Exception as e:
            self._record_failure(result, DeliveryError(record.id, record.recipient_fid, e))
            return

        try:
            await self.queue.remove(record.id)
        except Exception as e:
            # Already published: the record will be sent again next cycle.
            error = e if isinstance(e, QueueError) else QueueError("remove", str(e), record.id)
            self._record_failure(result, error)
            return

        result.delivered += 1
        dispatch_event(NotificationDelivered(record_id=record.id, recipient_fid=record.recipient_fid))

    @staticmethod
    def _record_failure(result: DispatchResult, error: Exception) -> None:
        result.failed += 1
        if result.first_error is None:
            result.first_error = error
        else:
            logger.debug(f"discarding additional error: {error}")

    def _set_state(self, state: DispatcherState) -> None:
        if self.state is not DispatcherState.STOPPED:
            self.state = state
