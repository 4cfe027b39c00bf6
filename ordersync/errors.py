"""
errors.py — Exception taxonomy for order mutations and imports

Business Rules:
- Busy and ValidationFailure are raised before any store or network call
- StoreReadFailure / StoreWriteFailure abort the operation, nothing is
  partially written
- UpstreamFetchFailure covers a single external fetch; callers skip the item
- Nothing here is retried automatically — every retry is user-initiated

Called by: store/*, services/*, connectors/*, main.py (exception handlers)
"""


class OrderSyncError(Exception):
    """Base class for every error surfaced to a caller."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)
        self.message = message or str(self.args[0])


class Busy(OrderSyncError):
    """Another operation is in progress, try again later."""

    status_code = 409


class ValidationFailure(OrderSyncError):
    """Required order fields are missing or a transition is not allowed."""

    status_code = 422


class OrderNotFound(OrderSyncError):
    """No order with this id exists in the store."""

    status_code = 404


class StoreReadFailure(OrderSyncError):
    """The record store returned no data."""

    status_code = 503


class StoreWriteFailure(OrderSyncError):
    """The record store reported a failed write."""

    status_code = 503


class UpstreamFetchFailure(OrderSyncError):
    """A single request to the external system failed."""

    status_code = 502

    def __init__(self, message: str = "", status: int | None = None):
        super().__init__(message)
        self.status = status


class ImportFailure(OrderSyncError):
    """The external listing could not be read or decoded."""

    status_code = 502
