"""WebSocket event subscriptions."""

from solconnect.monitoring.events import SubscriptionEvent, SubscriptionKind
from solconnect.monitoring.subscriptions import Subscription, SubscriptionManager, SubscriptionState

__all__ = [
    "Subscription",
    "SubscriptionEvent",
    "SubscriptionKind",
    "SubscriptionManager",
    "SubscriptionState",
]
