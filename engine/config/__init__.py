"""
Config Module

Environment settings and YAML subscription loading.
"""

from .loader import BridgeConfig, ConfigLoader, SubscriptionConfig

__all__ = [
    "BridgeConfig",
    "ConfigLoader",
    "SubscriptionConfig",
]
