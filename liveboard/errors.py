"""
Exception taxonomy for the ranking core
"""


class LiveboardError(Exception):
    """Base class for all core errors"""


class InvalidInput(LiveboardError):
    """Malformed or missing participant identifier / numeric value.

    Raised before the store is touched, so nothing is ever partially applied.
    """


class StoreUnavailable(LiveboardError):
    """The backing ranking store could not be reached"""


class DeliveryFailure(LiveboardError):
    """Sending to a single observer connection failed"""

    def __init__(self, handle: str, reason: str = ""):
        self.handle = handle
        self.reason = reason
        super().__init__(f"delivery to {handle} failed: {reason}" if reason else f"delivery to {handle} failed")
