"""
Registry Module

Connection pool and subscription map owned by the stream coordinator.
"""

from .connections import ConnectionRegistry
from .subscriptions import SubscriptionKey, SubscriptionRegistry

__all__ = [
    "ConnectionRegistry",
    "SubscriptionKey",
    "SubscriptionRegistry",
]
