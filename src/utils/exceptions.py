from enum import Enum

from starlette import status


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream"
    AUTH = "auth"


class DocumentError(Exception):
    kind: ErrorKind = ErrorKind.UPSTREAM
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DocumentError):
    """A required value (usually an id) is missing or malformed."""

    kind = ErrorKind.VALIDATION
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidTransitionError(ValidationError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move document from '{current}' to '{target}'")
        self.current = current
        self.target = target


class NotFoundError(DocumentError):
    kind = ErrorKind.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND


class UpstreamError(DocumentError):
    """Storage, network or database failure."""

    kind = ErrorKind.UPSTREAM
    status_code = status.HTTP_502_BAD_GATEWAY


class AuthError(DocumentError):
    kind = ErrorKind.AUTH
    status_code = status.HTTP_401_UNAUTHORIZED


def describe_error(error: BaseException, default: str = "Unknown error") -> str:
    """Message for logs, the document and failure payloads."""
    if isinstance(error, DocumentError):
        return error.message
    return str(error) or default


_ERRORS_BY_KIND = {
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.UPSTREAM: UpstreamError,
    ErrorKind.AUTH: AuthError,
}


def error_for_kind(kind: ErrorKind, message: str) -> DocumentError:
    return _ERRORS_BY_KIND.get(kind, UpstreamError)(message)
