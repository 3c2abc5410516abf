"""
Client Exceptions

All client exceptions inherit from SandtermClientError, so callers can catch
every client-side failure with a single except clause.
"""


class SandtermClientError(Exception):
    """
    Base exception for all client errors.

    Attributes:
        message: Error message
        details: Optional dict with additional error context
    """

    def __init__(self, message: str, details: dict = None):
        """Initialize client error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransportError(SandtermClientError):
    """
    Connection to the backend failed.

    Raised when:
    - The backend is unreachable
    - The connection drops before a response arrives
    - The request times out
    """
    pass


class RequestError(SandtermClientError):
    """
    The backend answered but refused the request.

    Raised when:
    - The backend returns a non-2xx status
    - The backend returns an ErrorResponse (success=false)
    - The response body is not the expected shape
    """
    pass
