"""
Scheduler Module

Reconnect scheduling for upstream connections.
"""

from .reconnect import ReconnectSupervisor

__all__ = [
    "ReconnectSupervisor",
]
