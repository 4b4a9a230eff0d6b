"""Error taxonomy shared by the server and the client.

Every error carries a machine-readable ``kind`` and a human-readable
``message``; the server turns them into ``{"success": false, "kind", "message"}``
bodies and the client turns such bodies back into exceptions.
"""

from typing import Any


class LibraryError(Exception):
    kind = "InternalError"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "kind": self.kind, "message": self.message}


class InvalidCredentials(LibraryError):
    kind = "InvalidCredentials"
    status_code = 401
    default_message = "Invalid email or password"


class Unauthorized(LibraryError):
    kind = "Unauthorized"
    status_code = 401
    default_message = "Session invalid or expired"


class Forbidden(LibraryError):
    kind = "Forbidden"
    status_code = 403
    default_message = "Permission denied"


class NotFound(LibraryError):
    kind = "NotFound"
    status_code = 404
    default_message = "Not found"


class Conflict(LibraryError):
    kind = "Conflict"
    status_code = 409
    default_message = "Conflict"


class AlreadyReturned(Conflict):
    kind = "AlreadyReturned"
    default_message = "Loan already returned"


class RenewalLimitExceeded(Conflict):
    kind = "RenewalLimitExceeded"
    default_message = "Renewal limit reached"


class ValidationError(LibraryError):
    kind = "ValidationError"
    status_code = 422
    default_message = "Invalid request"


class InternalError(LibraryError):
    pass


ERROR_KINDS: dict[str, type[LibraryError]] = {
    cls.kind: cls
    for cls in (
        InvalidCredentials,
        Unauthorized,
        Forbidden,
        NotFound,
        Conflict,
        AlreadyReturned,
        RenewalLimitExceeded,
        ValidationError,
        InternalError,
    )
}

_STATUS_FALLBACK: dict[int, type[LibraryError]] = {
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    409: Conflict,
    422: ValidationError,
}


def error_from_body(body: Any, status_code: int) -> LibraryError:
    """Rebuild an error from a response body of any shape."""
    message = None
    cls = None
    if isinstance(body, dict):
        if isinstance(body.get("message"), str):
            message = body["message"]
        cls = ERROR_KINDS.get(body.get("kind"))
    if cls is None:
        cls = _STATUS_FALLBACK.get(status_code, InternalError)
    if message is None:
        message = f"HTTP {status_code}: {cls.default_message}"
    return cls(message)
