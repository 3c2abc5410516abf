"""Custom exceptions for the sandterm backend"""


class SandtermException(Exception):
    """Base exception for all sandterm business errors

    All custom exceptions should inherit from this class.
    The global exception handler will catch this and return ErrorResponse.

    Attributes:
        message: Human-readable error message
        code: Error code for client-side error handling
    """

    def __init__(self, message: str, code: str):
        """Initialize sandterm exception

        Args:
            message: Human-readable error message
            code: Error code (e.g., "VALIDATION_ERROR", "PROTOCOL_ERROR")
        """
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(SandtermException):
    """Validation error (invalid input data)

    Examples:
        - Empty command
        - Unknown sandbox backend in config.toml
    """

    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")


class NotFoundError(SandtermException):
    """Resource not found error

    Examples:
        - Sandbox not found on the lifecycle server
        - Sandbox has no execd endpoint
    """

    def __init__(self, message: str):
        super().__init__(message, "NOT_FOUND")


class InternalError(SandtermException):
    """Internal server error (unexpected errors)"""

    def __init__(self, message: str):
        super().__init__(message, "INTERNAL_ERROR")


# ==================== Terminal Layer Exceptions ====================


class ProtocolError(SandtermException):
    """Malformed terminal frame

    Examples:
        - Frame is not valid JSON
        - Frame is not a JSON object
        - Unknown message type
        - Missing required field (e.g. exec without command)
    """

    def __init__(self, message: str):
        super().__init__(message, "PROTOCOL_ERROR")


class SessionConflictError(SandtermException):
    """Execution session already registered for a channel

    Examples:
        - Registering the same channel id twice
    """

    def __init__(self, message: str):
        super().__init__(message, "SESSION_CONFLICT")


# ==================== Sandbox Layer Exceptions ====================


class SandboxConnectionError(SandtermException):
    """Sandbox execution backend could not be reached

    Examples:
        - Lifecycle server unreachable
        - execd endpoint refused the connection
        - execd answered with a non-2xx status
    """

    def __init__(self, message: str):
        super().__init__(message, "SANDBOX_CONNECTION_ERROR")
