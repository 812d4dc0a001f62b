"""Notification adapters."""

from gatekeep.adapters.notifications.email import EmailNotifier

__all__ = ["EmailNotifier"]
