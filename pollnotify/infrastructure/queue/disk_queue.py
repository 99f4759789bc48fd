"""Durable notification queue stored on disk with ``diskcache``.

Each record is stored under its id, so enqueueing the same id twice keeps
a single record and removing an unknown id is a no-op.
"""

import logging
from pathlib import Path
from typing import List, Union

import diskcache

from pollnotify.domain.errors import QueueError
from pollnotify.domain.interfaces.notification_queue import NotificationQueue
from pollnotify.domain.models.common import RecordID
from pollnotify.domain.models.notification import NotificationRecord

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_DIR = Path.home() / ".pollnotify" / "queue"
KEY_PREFIX = "notification:"
CORRUPT_PREFIX = "corrupt:"


class DiskNotificationQueue(NotificationQueue):
    """Queue backed by a ``diskcache.Cache`` directory."""

    def __init__(self, directory: Union[str, Path] = DEFAULT_QUEUE_DIR):
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._cache = diskcache.Cache(str(self.directory))
        except OSError as e:
            logger.error(f"Failed to open queue directory {self.directory}: {e}")
            raise QueueError("open", str(e)) from e
        logger.info(f"DiskNotificationQueue opened at {self.directory}")

    def close(self) -> None:
        self._cache.close()

    async def enqueue(self, record: NotificationRecord) -> None:
        try:
            self._cache.set(KEY_PREFIX + record.id, record.to_dict())
        except Exception as e:
            raise QueueError("enqueue", str(e), record.id) from e

    async def list_pending(self, limit: int) -> List[NotificationRecord]:
        try:
            records = []
            for key in list(self._cache.iterkeys()):
                if not str(key).startswith(KEY_PREFIX):
                    continue
                data = self._cache.get(key)
                if data is None:  # removed concurrently
                    continue
                try:
                    records.append(NotificationRecord.from_dict(data))
                except (KeyError, TypeError, ValueError) as e:
                    self._quarantine(key, data, e)
        except Exception as e:
            raise QueueError("list", str(e)) from e
        records.sort(key=lambda r: r.created_at)
        return records[:max(limit, 0)]

    def _quarantine(self, key: str, data, error: Exception) -> None:
        """Moves an undecodable entry out of the pending keys."""
        record_id = str(key)[len(KEY_PREFIX):]
        logger.error(f"Undecodable queue entry {record_id} moved aside: {error!r}")
        self._cache.set(CORRUPT_PREFIX + record_id, data)
        self._cache.delete(key)

    async def remove(self, record_id: RecordID) -> None:
        try:
            if not self._cache.delete(KEY_PREFIX + record_id):
                logger.debug(f"Record {record_id} already removed.")
        except Exception as e:
            raise QueueError("remove", str(e), record_id) from e

    async def count(self) -> int:
        return sum(1 for key in self._cache.iterkeys() if str(key).startswith(KEY_PREFIX))
