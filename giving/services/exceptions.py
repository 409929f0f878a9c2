"""Domain exceptions for the giving services.

Each exception carries the HTTP status the error handler in
``giving.__init__`` responds with. Payment declines are not exceptions:
they come back from the gateway as ``success=False`` and are persisted.
"""


class GivingServiceError(Exception):
    """Base exception for giving service errors."""

    status_code = 500

    def __init__(self, message: str = "", **details):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or "error"
        self.details = details

    def to_dict(self) -> dict:
        out = {"error": self.message}
        out.update(self.details)
        return out


class ValidationError(GivingServiceError):
    """Request rejected before any side effect."""

    status_code = 400


class InvalidTransitionError(ValidationError):
    """Status transition not allowed by the donation state table."""

    def __init__(self, current, new):
        cur = getattr(current, "value", current)
        nxt = getattr(new, "value", new)
        super().__init__(
            f"invalid status transition from {cur} to {nxt}", current=cur, requested=nxt
        )


class NotFoundError(GivingServiceError):
    """Record not found."""

    status_code = 404


class PermissionDeniedError(GivingServiceError):
    """Caller may not perform this operation."""

    status_code = 403


class ExternalServiceError(GivingServiceError):
    """Payment provider unreachable or returned an unusable response."""

    status_code = 502
