"""
Candle Bridge - Typed Message Catalog

Data types for candles flowing from exchange streams to subscribers.
"""

from schemas.market_data import Candle

__all__ = [
    "Candle",
]
