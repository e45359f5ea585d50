"""
Candle Aggregator

Folds consecutive base-interval candles into candles of a coarser timeframe.
One buffer is kept per subscription so every subscriber sees its own,
arrival-ordered sequence of derived candles.
"""

import logging
from collections import deque
from typing import Deque, Dict, Iterable, Optional, Tuple

from dataflow.errors import InvalidArgument
from schemas.market_data import Candle

logger = logging.getLogger(__name__)

TIMEFRAMES = {
    "1m": 60,
    "3m": 180,
    "5m": 300,
    "15m": 900,
    "30m": 1800,
    "1h": 3600,
    "2h": 7200,
    "4h": 14400,
    "6h": 21600,
    "12h": 43200,
    "1d": 86400,
}

# (subscriber_id, exchange, symbol, timeframe)
BufferKey = Tuple[str, str, str, str]


def base_candle_count(timeframe: str, base_interval: str = "1m") -> int:
    """
    Number of base candles that make up one candle of `timeframe`.

    Raises:
        InvalidArgument: If either timeframe is unknown, or `timeframe` is not
            a whole multiple of `base_interval`
    """
    if timeframe not in TIMEFRAMES:
        raise InvalidArgument(
            f"Unsupported timeframe: {timeframe}. "
            f"Available timeframes: {', '.join(TIMEFRAMES)}"
        )
    if base_interval not in TIMEFRAMES:
        raise InvalidArgument(f"Unsupported base interval: {base_interval}")

    count, remainder = divmod(TIMEFRAMES[timeframe], TIMEFRAMES[base_interval])
    if count < 1 or remainder:
        raise InvalidArgument(
            f"Timeframe {timeframe} is not a multiple of base interval {base_interval}"
        )
    return count


class CandleBuilder:
    """Builds a derived candle from consecutive base candles"""

    def __init__(self, timeframe: str):
        self.timeframe = timeframe
        self.first: Optional[Candle] = None
        self.high: Optional[float] = None
        self.low: Optional[float] = None
        self.close: Optional[float] = None
        self.volume: float = 0.0
        self.candle_count: int = 0

    def add_candle(self, candle: Candle) -> None:
        """Add a base candle to this derived candle"""
        if self.first is None:
            self.first = candle
            self.high = candle.high
            self.low = candle.low

        self.high = max(self.high, candle.high)
        self.low = min(self.low, candle.low)
        self.close = candle.close
        self.volume += candle.volume
        self.candle_count += 1

    def is_empty(self) -> bool:
        """Check if candle has any data"""
        return self.first is None

    def build(self) -> Candle:
        """Build the final Candle object"""
        if self.is_empty():
            raise ValueError("Cannot build empty candle")

        return Candle(
            exchange=self.first.exchange,
            symbol=self.first.symbol,
            timeframe=self.timeframe,
            open_time=self.first.open_time,
            open=self.first.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.volume,
        )


def fold_candles(candles: Iterable[Candle], timeframe: str) -> Candle:
    """Fold base candles, oldest first, into one candle labelled `timeframe`"""
    builder = CandleBuilder(timeframe)
    for candle in candles:
        builder.add_candle(candle)
    return builder.build()


class AggregationBuffer:
    """
    Arrival-ordered base candles waiting to be folded for one subscription.

    Holds at most 2 * required candles; anything beyond that is dropped from
    the front.
    """

    def __init__(self, timeframe: str, required: int):
        self.timeframe = timeframe
        self.required = required
        self.candles: Deque[Candle] = deque(maxlen=2 * required)

    def __len__(self) -> int:
        return len(self.candles)

    def add(self, candle: Candle) -> Optional[Candle]:
        """
        Append a base candle and fold the oldest `required` candles when enough
        have arrived.

        Returns:
            The derived candle, or None while still waiting for data
        """
        self.candles.append(candle)

        if len(self.candles) < self.required:
            return None

        window = [self.candles.popleft() for _ in range(self.required)]
        return fold_candles(window, self.timeframe)


class TimeframeAggregator:
    """
    Aggregates base candles into per-subscriber derived timeframes.

    Example usage:
        aggregator = TimeframeAggregator(base_interval="1m")
        derived = aggregator.on_base_candle("u1", "5m", candle)
        if derived is not None:
            dispatcher.deliver(derived, "u1")
    """

    def __init__(self, base_interval: str = "1m"):
        base_candle_count(base_interval, base_interval)
        self.base_interval = base_interval
        self._buffers: Dict[BufferKey, AggregationBuffer] = {}

    def required_candles(self, timeframe: str) -> int:
        return base_candle_count(timeframe, self.base_interval)

    def on_base_candle(
        self, subscriber_id: str, timeframe: str, candle: Candle
    ) -> Optional[Candle]:
        """
        Feed one finalized base candle for a subscriber's timeframe.

        Returns:
            Candle ready for delivery, or None if the subscriber's buffer is
            still filling
        """
        if timeframe == self.base_interval:
            return candle.relabel(timeframe)

        key = (subscriber_id, candle.exchange, candle.symbol, timeframe)
        buffer = self._buffers.get(key)
        if buffer is None:
            buffer = AggregationBuffer(timeframe, self.required_candles(timeframe))
            self._buffers[key] = buffer
            logger.debug(
                f"Created {timeframe} buffer for {subscriber_id} "
                f"on {candle.exchange}/{candle.symbol} ({buffer.required} candles)"
            )

        derived = buffer.add(candle)
        if derived is not None:
            logger.debug(
                f"Folded {buffer.required} candles into {timeframe} "
                f"{derived.exchange}/{derived.symbol} @ {derived.open_time}"
            )
        return derived

    def buffer_length(
        self, subscriber_id: str, exchange: str, symbol: str, timeframe: str
    ) -> int:
        buffer = self._buffers.get((subscriber_id, exchange, symbol, timeframe))
        return len(buffer) if buffer is not None else 0

    def discard(
        self, subscriber_id: str, exchange: str, symbol: str, timeframe: str
    ) -> None:
        """Drop the buffer of one subscription"""
        self._buffers.pop((subscriber_id, exchange, symbol, timeframe), None)

    def discard_pair(self, exchange: str, symbol: str) -> int:
        """Drop every buffer fed by an exchange+symbol stream"""
        stale = [key for key in self._buffers if key[1] == exchange and key[2] == symbol]
        for key in stale:
            del self._buffers[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._buffers)
