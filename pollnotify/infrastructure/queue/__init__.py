"""Notification queue adapters."""
