"""
Engine Layer

Subscription and connection state, reconnect scheduling and the stream
coordinator.
"""
