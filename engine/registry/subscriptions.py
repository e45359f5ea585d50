"""
Subscription Registry

Maps (exchange, symbol, timeframe) to the set of subscribers interested in
it. Drives both candle fan-out and upstream connection lifecycle: a key
with no subscribers is removed, never left empty.
"""

import logging
from typing import Dict, List, NamedTuple, Set, Tuple

logger = logging.getLogger(__name__)


class SubscriptionKey(NamedTuple):
    """One candle stream as requested by subscribers"""
    exchange: str
    symbol: str
    timeframe: str

    def __str__(self) -> str:
        return f"{self.exchange}-{self.symbol}-{self.timeframe}"


class SubscriptionRegistry:
    """
    Per-timeframe subscriber sets.

    Lookups by exchange+symbol compare exact tuple fields, so "BTC" never
    matches "BTCUSDT".

    Example usage:
        registry = SubscriptionRegistry()
        registry.subscribe("binance", "BTCUSDT", "5m", "u1")      # -> 1
        registry.interested_subscribers("binance", "BTCUSDT")     # -> [("5m", "u1")]
        registry.unsubscribe("binance", "BTCUSDT", "5m", "u1")    # -> False
    """

    def __init__(self):
        self._subscribers: Dict[SubscriptionKey, Set[str]] = {}

    def subscribe(self, exchange: str, symbol: str, timeframe: str, subscriber_id: str) -> int:
        """
        Add a subscriber to a stream.

        Returns:
            Number of subscribers for this (exchange, symbol, timeframe)
        """
        key = SubscriptionKey(exchange, symbol, timeframe)
        subscribers = self._subscribers.setdefault(key, set())
        if subscriber_id not in subscribers:
            subscribers.add(subscriber_id)
            logger.info(f"Subscribed {subscriber_id} to {key} ({len(subscribers)} total)")
        return len(subscribers)

    def unsubscribe(self, exchange: str, symbol: str, timeframe: str, subscriber_id: str) -> bool:
        """
        Remove a subscriber from a stream. Unknown subscribers are ignored.

        Returns:
            True if any timeframe of the same exchange+symbol still has subscribers
        """
        key = SubscriptionKey(exchange, symbol, timeframe)
        subscribers = self._subscribers.get(key)
        if subscribers is not None and subscriber_id in subscribers:
            subscribers.discard(subscriber_id)
            logger.info(f"Unsubscribed {subscriber_id} from {key} ({len(subscribers)} remaining)")
            if not subscribers:
                del self._subscribers[key]

        return self.has_interest(exchange, symbol)

    def has_interest(self, exchange: str, symbol: str) -> bool:
        """Check if any timeframe of an exchange+symbol has subscribers"""
        return any(
            key.exchange == exchange and key.symbol == symbol
            for key in self._subscribers
        )

    def interested_subscribers(self, exchange: str, symbol: str) -> List[Tuple[str, str]]:
        """
        Snapshot of every (timeframe, subscriber_id) pair for an exchange+symbol.

        The returned list is detached from the registry, so subscribe and
        unsubscribe calls made while it is being consumed do not affect it.
        """
        pairs = []
        for key, subscribers in self._subscribers.items():
            if key.exchange == exchange and key.symbol == symbol:
                pairs.extend((key.timeframe, subscriber_id) for subscriber_id in sorted(subscribers))
        return pairs

    def subscribers(self, exchange: str, symbol: str, timeframe: str) -> Set[str]:
        return set(self._subscribers.get(SubscriptionKey(exchange, symbol, timeframe), ()))

    def subscriber_counts(self) -> Dict[str, int]:
        return {str(key): len(subscribers) for key, subscribers in self._subscribers.items()}

    def keys(self) -> List[SubscriptionKey]:
        return list(self._subscribers)

    def __len__(self) -> int:
        return len(self._subscribers)
