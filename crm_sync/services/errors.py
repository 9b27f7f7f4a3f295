"""Errors raised by the sync services."""


class NotFoundError(LookupError):
    """Raised when a sync job or integration does not exist."""
