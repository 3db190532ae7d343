"""
Error taxonomy shared by every request handler.

Each error carries the HTTP status it maps to and renders itself as the
standard response envelope. Handlers raise these; the gateway's error
handlers turn them into JSON responses.
"""

from typing import Any, Dict, Optional


class ApiError(Exception):
    """Base class for errors that end a request with an error envelope."""

    status_code: int = 500

    def __init__(self, message: str, error: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.error = error

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": "error", "message": self.message}
        if self.error is not None:
            body["error"] = self.error
        return body


class ValidationError(ApiError):
    """Missing or malformed fields, or a business rule violation."""

    status_code = 400


class Unauthenticated(ApiError):
    """Missing, malformed, invalid or expired credential."""

    status_code = 401


class Forbidden(ApiError):
    """Role or ownership check failed."""

    status_code = 403


class NotFound(ApiError):
    status_code = 404


class MethodNotAllowed(ApiError):
    status_code = 405

    def __init__(self, message: str = "Method not allowed") -> None:
        super().__init__(message)


class Conflict(ApiError):
    """Uniqueness violation."""

    status_code = 409


class UpstreamError(ApiError):
    """Unexpected failure surfaced from the auth provider or record store."""

    status_code = 500
