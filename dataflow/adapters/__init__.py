"""
NATS Adapters

Provides the NATS client wrapper used for publishing delivered candles.
"""

from dataflow.adapters.nats_client import NatsClient, NatsConfig, Topics

__all__ = ["NatsClient", "NatsConfig", "Topics"]
