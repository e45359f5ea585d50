"""
Candle Aggregation

Folds 1-minute base candles into coarser timeframes: 5m, 15m, 1h, etc.
"""

from dataflow.candle_aggregation.aggregator import (
    TIMEFRAMES,
    AggregationBuffer,
    CandleBuilder,
    TimeframeAggregator,
    base_candle_count,
    fold_candles,
)

__all__ = [
    "TIMEFRAMES",
    "AggregationBuffer",
    "CandleBuilder",
    "TimeframeAggregator",
    "base_candle_count",
    "fold_candles",
]
