"""
Delivery

Fire-and-forget fan-out of candles to subscribers.
"""

from dataflow.delivery.dispatcher import (
    CandleSink,
    DeliveryDispatcher,
    DeliveryOutcome,
    log_outcome,
)
from dataflow.delivery.sinks import HttpCandleSink, NatsCandleSink

__all__ = [
    "CandleSink",
    "DeliveryDispatcher",
    "DeliveryOutcome",
    "HttpCandleSink",
    "NatsCandleSink",
    "log_outcome",
]
