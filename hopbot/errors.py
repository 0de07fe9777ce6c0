# hopbot/errors.py


class FatalError(Exception):
    """Terminates the process. Only the control loop raises it."""


class OrderHistoryError(FatalError):
    """The persisted order history is missing or unreadable."""


class GatewayError(Exception):
    """Any failure reported by the exchange connectivity layer."""


class EmptyBookError(ValueError):
    """An order-book snapshot has no asks or no bids."""

    def __init__(self, pair: str, side: str):
        super().__init__(f"Order book for {pair} has no {side}")
        self.pair = pair
        self.side = side


class ReportError(Exception):
    """A sidecar report could not be produced. The message is user-facing."""
