"""Wire form of classified gateway errors, shared by routes and middleware."""

from fastapi.responses import JSONResponse

from app.schemas import ErrorDetail, ErrorResponse
from homegpt.core.exceptions import GatewayError


def error_response(error: GatewayError) -> JSONResponse:
    """Serialize a classified error to its wire status and body."""
    body = ErrorResponse(
        error=ErrorDetail(type=error.kind.value, message=error.message),
        upstream=getattr(error, "upstream", None),
    )
    return JSONResponse(status_code=error.http_status, content=body.model_dump(exclude_none=True))
