"""In-memory notification queue.

Used by tests and by hosts that keep the queue in process.
"""

import asyncio
import logging
from typing import Dict, List

from pollnotify.domain.interfaces.notification_queue import NotificationQueue
from pollnotify.domain.models.common import RecordID
from pollnotify.domain.models.notification import NotificationRecord

logger = logging.getLogger(__name__)


class InMemoryNotificationQueue(NotificationQueue):
    """Dict-backed queue, oldest record first."""

    def __init__(self):
        self._records: Dict[RecordID, NotificationRecord] = {}
        self._lock = asyncio.Lock()

    async def enqueue(self, record: NotificationRecord) -> None:
        async with self._lock:
            self._records[record.id] = record

    async def list_pending(self, limit: int) -> List[NotificationRecord]:
        async with self._lock:
            records = sorted(self._records.values(), key=lambda r: r.created_at)
        return records[:max(limit, 0)]

    async def remove(self, record_id: RecordID) -> None:
        async with self._lock:
            if self._records.pop(record_id, None) is None:
                logger.debug(f"Record {record_id} already removed.")

    async def count(self) -> int:
        async with self._lock:
            return len(self._records)
