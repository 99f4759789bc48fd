"""Domain Events related to upstream API calls and notification dispatch.

Examples include events for when calls are deferred, retried, fail, or
succeed, and for the outcome of each dispatch cycle.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


# --- Upstream API Events ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when a physical API call is about to be made."""
    method: str
    url: str
    attempt: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when an API call succeeds."""
    method: str
    url: str
    attempt: int
    latency_ms: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when an API call fails definitively."""
    method: str
    url: str
    error_type: str
    error_message: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallDeferred(DomainEvent):
    """Event triggered when a call has to wait for a free rate gate token."""
    method: str
    url: str
    in_flight: int
    capacity: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a throttled call is scheduled for retry."""
    method: str
    url: str
    attempt_number: int
    delay_seconds: float
    timestamp: float = field(default_factory=time.time)


# --- Dispatch Events ---

@dataclass
class NotificationDelivered(DomainEvent):
    """Event triggered when a record was published and removed from the queue."""
    record_id: str
    recipient_fid: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class DispatchCycleCompleted(DomainEvent):
    """Event triggered at the end of every dispatch cycle."""
    fetched: int
    delivered: int
    failed: int
    first_error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


def dispatch_event(event: DomainEvent) -> None:
    """Publishes an event. Events are only logged for now."""
    logger.debug(f"EVENT: {event}")
