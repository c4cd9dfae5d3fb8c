"""Application exception types rendered as structured JSON error bodies."""


class TaskAPIError(Exception):
    """Base error carrying the HTTP status and the public error label."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: str, headers: dict[str, str] | None = None):
        super().__init__(message)
        self.message = message
        self.headers = headers

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class BadRequestError(TaskAPIError):
    """Raised when a request is well-formed but carries nothing usable."""

    status_code = 400
    error = "Bad Request"


class AuthenticationError(TaskAPIError):
    """Raised when the API key is missing or unknown."""

    status_code = 401
    error = "Unauthorized"


class NotFoundError(TaskAPIError):
    """Raised when a resource does not exist or is not owned by the caller."""

    status_code = 404
    error = "Not Found"
