"""
Domain exceptions that do not map directly onto an HTTP response.

Validation and not-found conditions are raised as HTTPException by the
services, the same way the rest of the API reports them.
"""


class DispatchError(Exception):
    """Raised when the notifier is unreachable or rejects a push."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
