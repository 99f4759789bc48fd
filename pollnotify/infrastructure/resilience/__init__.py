"""API Resilience Implementations.

Contains the rate gate bounding concurrent upstream requests and the
executor that retries throttled calls with backoff.
Bounded Context: API Resilience
"""
