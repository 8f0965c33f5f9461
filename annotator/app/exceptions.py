"""Custom exceptions for the annotation service."""

from typing import Any, Dict, Optional


class AnnotatorException(Exception):
    """Base class for service exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code and error code for consistent HTTP
    response handling.
    """
    status_code: int = 500
    error: str = "internal_error"

    def __init__(self, message: str = "Internal server error"):
        self.message = message
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        return {"error": self.error, "message": self.message}

    def headers(self) -> Optional[Dict[str, str]]:
        return None


class NotFoundError(AnnotatorException):
    """Raised when a resource is absent, or a supplied share token is invalid.

    Maps to HTTP 404 Not Found.
    """
    status_code = 404
    error = "not_found"

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class PermissionDeniedError(AnnotatorException):
    """Raised when the caller lacks rights on an existing resource.

    Maps to HTTP 403 Forbidden.
    """
    status_code = 403
    error = "permission_denied"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class InvalidArgumentError(AnnotatorException):
    """Raised for malformed input such as an empty or oversized chat message.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400
    error = "invalid_argument"

    def __init__(self, message: str = "Invalid argument", field: str | None = None):
        self.field = field
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        body = super().to_response()
        if self.field:
            body["field"] = self.field
        return body


class PayloadTooLargeError(AnnotatorException):
    """Raised when a request body exceeds the configured size limit.

    Maps to HTTP 413 Content Too Large.
    """
    status_code = 413
    error = "payload_too_large"

    def __init__(self, message: str = "Request body too large"):
        super().__init__(message)


class RateLimitExceededError(AnnotatorException):
    """Raised when a client exhausts its window for a limiter category.

    Maps to HTTP 429 Too Many Requests. Always carries the number of
    seconds until the window resets.
    """
    status_code = 429
    error = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int,
        reset_time: int,
        limit: int,
        category: str,
    ):
        self.retry_after = retry_after
        self.reset_time = reset_time
        self.limit = limit
        self.category = category
        super().__init__(
            f"Rate limit exceeded. Try again in {retry_after} seconds."
        )

    def to_response(self) -> Dict[str, Any]:
        return {
            "error": self.error,
            "message": self.message,
            "retryAfter": self.retry_after,
            "resetTime": self.reset_time,
        }

    def headers(self) -> Dict[str, str]:
        return {
            "Retry-After": str(self.retry_after),
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(self.reset_time),
        }


class InternalError(AnnotatorException):
    """Raised when a storage write fails. Fatal to the request, never retried.

    Maps to HTTP 500 Internal Server Error.
    """
    status_code = 500
    error = "internal_error"


# Error codes for framework-raised HTTP errors (unknown routes, wrong methods)
HTTP_ERROR_CODES: Dict[int, str] = {
    400: "invalid_argument",
    403: "permission_denied",
    404: "not_found",
    405: "method_not_allowed",
    413: "payload_too_large",
    429: "rate_limit_exceeded",
}


def http_error_code(status_code: int) -> str:
    if status_code >= 500:
        return "internal_error"
    return HTTP_ERROR_CODES.get(status_code, "http_error")
