"""
Runtime Module

Stream coordinator that ties registries, aggregation and delivery together.
"""

from .coordinator import StreamCoordinator

__all__ = [
    "StreamCoordinator",
]
