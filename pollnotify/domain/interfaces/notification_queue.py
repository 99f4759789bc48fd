"""Interface for the pending-notification queue.

The queue is owned by the host process; the dispatcher only lists pending
records and removes delivered ones. Implementations are expected to be
externally synchronized and must tolerate removal of unknown ids.
"""

import abc
from typing import List

from ..models.common import RecordID
from ..models.notification import NotificationRecord


class NotificationQueue(abc.ABC):
    """Abstract Base Class for notification queue storage."""

    @abc.abstractmethod
    async def list_pending(self, limit: int) -> List[NotificationRecord]:
        """Returns up to ``limit`` pending records, oldest first.

        Raises:
            QueueError: If the storage cannot be read.
        """
        pass

    @abc.abstractmethod
    async def remove(self, record_id: RecordID) -> None:
        """Removes a delivered record. Unknown ids are ignored.

        Raises:
            QueueError: If the storage cannot be written.
        """
        pass
