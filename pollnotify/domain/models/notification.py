"""Domain models for queued notifications and dispatch cycles."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .common import FID, RecordID


@dataclass(frozen=True)
class NotificationRecord:
    """A pending notification. Present in the queue until delivered."""
    id: RecordID
    recipient_fid: FID
    recipient_username: str
    author_username: str
    frame_url: str
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "recipient_fid": self.recipient_fid,
            "recipient_username": self.recipient_username,
            "author_username": self.author_username,
            "frame_url": self.frame_url,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationRecord":
        return cls(
            id=RecordID(str(data["id"])),
            recipient_fid=FID(int(data["recipient_fid"])),
            recipient_username=str(data["recipient_username"]),
            author_username=str(data["author_username"]),
            frame_url=str(data["frame_url"]),
            created_at=float(data.get("created_at", 0.0)),
        )


@dataclass
class DispatchResult:
    """Outcome of one dispatch cycle.

    Only the first error that occurred is kept; later failures in the same
    batch are counted but not retained.
    """
    fetched: int = 0
    delivered: int = 0
    failed: int = 0
    first_error: Optional[Exception] = None
    skipped: bool = False  # True when the batch could not be fetched

    @property
    def ok(self) -> bool:
        return self.first_error is None
