"""
Adapters layer - Store and notification integrations.
"""

from .memory_store import InMemoryStore
from .notifier import LoggingNotifier, NotificationSender, WebhookNotifier
from .store import SchedulingStore, StoreSession

__all__ = [
    "InMemoryStore",
    "LoggingNotifier",
    "NotificationSender",
    "SchedulingStore",
    "StoreSession",
    "WebhookNotifier",
]
