"""Error taxonomy for the gateway: every failure surfaces as one of these kinds."""

from enum import Enum
from typing import Any, Iterable, Mapping


class ErrorKind(str, Enum):
    """Classified failure kinds, used to pick a wire status."""

    VALIDATION = "validation_error"
    EXTERNAL_SERVICE = "external_service_error"
    TIMEOUT = "timeout_error"
    UNCLASSIFIED = "unclassified_error"


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    kind: ErrorKind = ErrorKind.UNCLASSIFIED
    http_status: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(GatewayError):
    """Raised when caller-supplied input is missing, blank or malformed."""

    kind = ErrorKind.VALIDATION
    http_status = 400

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class UploadTooLargeError(ValidationError):
    """Raised when an uploaded file exceeds the size limit."""

    http_status = 413


class ExternalServiceError(GatewayError):
    """Raised when the inference backend fails or cannot be reached."""

    kind = ErrorKind.EXTERNAL_SERVICE
    http_status = 502

    def __init__(
        self,
        message: str,
        upstream: str | None = None,
        status_code: int | None = None,
    ):
        self.upstream = upstream
        self.status_code = status_code
        super().__init__(message)


class BackendTimeoutError(GatewayError):
    """Raised when the backend does not answer before the deadline.

    Surfaces as a plain 500, the same as unclassified failures.
    """

    kind = ErrorKind.TIMEOUT
    http_status = 500

    def __init__(self, message: str, upstream: str | None = None):
        self.upstream = upstream
        super().__init__(message)


class UnclassifiedError(GatewayError):
    """Anything that does not match a more specific kind."""


def classify(exc: BaseException) -> GatewayError:
    """Return ``exc`` if already classified, otherwise wrap it as unclassified."""
    if isinstance(exc, GatewayError):
        return exc
    return UnclassifiedError(str(exc) or exc.__class__.__name__)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return not value
    return str(value).strip() == ""


def validate_required(data: Mapping[str, Any], fields: Iterable[str]) -> None:
    """Raise ValidationError listing every required field that is absent or blank."""
    missing = [field for field in fields if _is_blank(data.get(field))]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            field=missing[0],
        )
