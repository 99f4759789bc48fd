"""Error kinds raised across the notification pipeline.

Every error carries enough context (operation, identifier) to be logged by
the caller. Lower-level exceptions are chained with ``raise ... from ...``.
"""

from typing import Optional


class NotifierError(Exception):
    """Base class for all pollnotify errors."""


class TransportError(NotifierError):
    """Network or timeout failure on a physical call. Never retried."""

    def __init__(self, method: str, url: str, reason: str):
        self.method = method
        self.url = url
        self.reason = reason
        super().__init__(f"{method} {url} failed: {reason}")


class RateLimited(NotifierError):
    """The upstream answered with a throttling status."""

    def __init__(self, method: str, url: str, attempt: int):
        self.method = method
        self.url = url
        self.attempt = attempt
        super().__init__(f"{method} {url} rate limited on attempt {attempt}")


class UpstreamError(NotifierError):
    """Any other non-success status from the upstream. Terminal."""

    def __init__(self, method: str, url: str, status_code: int, detail: str = ""):
        self.method = method
        self.url = url
        self.status_code = status_code
        self.detail = detail
        message = f"{method} {url} returned HTTP {status_code}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class RetryExhausted(NotifierError):
    """Attempt ceiling reached while the upstream kept throttling."""

    def __init__(self, method: str, url: str, attempts: int):
        self.method = method
        self.url = url
        self.attempts = attempts
        super().__init__(f"{method} {url}: retry limit exceeded after {attempts} attempts")


class NotConfigured(NotifierError):
    """An identity-dependent operation was invoked before setup."""


class NoDataFound(NotifierError):
    """Identity resolution found no matching record upstream."""


class DecodeError(NotifierError):
    """The upstream body could not be decoded into the expected shape."""


class QueueError(NotifierError):
    """Fetching from or removing from the notification queue failed."""

    def __init__(self, operation: str, detail: str, record_id: Optional[str] = None):
        self.operation = operation
        self.record_id = record_id
        target = f" record {record_id}" if record_id else ""
        super().__init__(f"queue {operation}{target} failed: {detail}")


class DeliveryError(NotifierError):
    """A single notification could not be published."""

    def __init__(self, record_id: str, recipient_fid: int, cause: Exception):
        self.record_id = record_id
        self.recipient_fid = recipient_fid
        self.cause = cause
        super().__init__(
            f"error sending notification {record_id} to fid {recipient_fid}: {cause}"
        )
