"""Exception hierarchy shared by the sync pipeline and the read services."""


class FintrackError(Exception):
    """Base exception for fintrack."""
    pass


class NotFoundError(FintrackError):
    """A requested row does not exist or is not owned by the caller."""
    pass


class ConflictError(FintrackError):
    """A row with the same natural key already exists."""
    pass


class SyncError(FintrackError):
    """Transaction sync failed."""
    pass


class AggregatorError(SyncError):
    """The bank aggregator rejected or failed a request.

    The message is what the retry classifier inspects, so translations of
    provider error codes must keep the wording it looks for.
    """

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.error_code = error_code
