"""pollnotify: delivers new-poll notifications to Farcaster users.

Pulls pending notification records from a queue and publishes them through
the rate-limited Neynar API with bounded concurrency and retries.
"""

__version__ = "0.3.0"
