"""
Market Data Types

Core market data types used throughout the candle bridge.
These types are used for upstream decoding, aggregation and delivery.
"""

import math
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class Candle:
    """
    Finalized OHLCV candle for one exchange stream.

    open_time is the interval start in the exchange's native epoch
    milliseconds. Candles are only ever built for closed intervals.
    """
    exchange: str
    symbol: str
    timeframe: str  # '1m', '5m', '15m', '1h', '1d', etc.
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def __post_init__(self):
        for name in ("open", "high", "low", "close", "volume"):
            if not math.isfinite(getattr(self, name)):
                raise ValueError(f"Candle {name} must be finite, got {getattr(self, name)!r}")

    def relabel(self, timeframe: str) -> "Candle":
        """Return a copy carrying a different timeframe label"""
        if timeframe == self.timeframe:
            return self
        return replace(self, timeframe=timeframe)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "exchange": self.exchange,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "timestamp": self.open_time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }
