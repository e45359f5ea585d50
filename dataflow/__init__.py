"""
Dataflow Layer

Event I/O layer of the candle bridge. Contains:
- ingestion: Exchange WebSocket streams and the HTTP gateway
- candle_aggregation: Base candle to coarser timeframe aggregation
- delivery: Fan-out of candles to subscriber sinks
- adapters: NATS client adapter
"""
