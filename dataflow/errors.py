"""
Bridge Errors

Exception types shared by the dataflow and engine layers.
"""


class BridgeError(Exception):
    """Base class for candle bridge errors"""


class InvalidArgument(BridgeError, ValueError):
    """A control request carried a missing or unsupported field"""


class UnsupportedExchange(InvalidArgument):
    """The requested exchange has no registered codec"""

    def __init__(self, exchange: str):
        super().__init__(f"Unsupported exchange: {exchange}")
        self.exchange = exchange


class DeliveryError(BridgeError):
    """A sink rejected a candle or could not be reached"""
