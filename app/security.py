"""Request tracing, API key authentication and upload size middleware."""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.errors import error_response
from homegpt.core.logging import REQUEST_ID_HEADER, new_request_id, request_context
from homegpt.core.uploads import upload_too_large

logger = logging.getLogger(__name__)

# Allowance for multipart boundaries and the small form fields next to the file
MULTIPART_OVERHEAD_BYTES = 64 * 1024


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID and write one access line when it completes.

    A well-formed ``X-Request-ID`` from the caller is kept so a trace can span
    the caller, the gateway and the backend. The ID is echoed on the response
    and is visible to ``OllamaClient`` calls made while the request runs.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = new_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = rid
        start = time.perf_counter()
        with request_context(rid):
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f} ms)")
        response.headers[REQUEST_ID_HEADER] = rid
        return response


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Enforce Bearer token authentication when API_KEY is configured.

    The /health endpoint is always accessible without authentication.
    """

    def __init__(self, app, api_key: str | None) -> None:  # noqa: ANN001
        super().__init__(app)
        self.api_key = api_key

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if self.api_key is None or request.url.path == "/health":
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Bearer "):
            return JSONResponse(
                status_code=401,
                content={"error": {"type": "auth_required", "message": "Missing or malformed Authorization header. Expected: Bearer <API_KEY>"}},
            )

        if auth_header[len("Bearer "):] != self.api_key:
            logger.warning(f"Rejected request with invalid API key on {request.url.path}")
            return JSONResponse(
                status_code=401,
                content={"error": {"type": "auth_failed", "message": "Invalid API key"}},
            )

        return await call_next(request)


class MaxBodySizeMiddleware(BaseHTTPMiddleware):
    """Turn away audio uploads whose Content-Length already exceeds the limit.

    The rejection is the same 413 ``validation_error`` the upload route gives,
    produced before any of the body is read. ``overhead_bytes`` covers the
    multipart framing around the file itself.
    """

    def __init__(
        self,
        app,  # noqa: ANN001
        max_bytes: int,
        overhead_bytes: int = MULTIPART_OVERHEAD_BYTES,
        guarded_paths: tuple[str, ...] = ("/api/generate-audio",),
    ) -> None:
        super().__init__(app)
        self.max_bytes = max_bytes
        self.overhead_bytes = overhead_bytes
        self._guarded_paths = set(guarded_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method == "POST" and request.url.path in self._guarded_paths:
            content_length = request.headers.get("content-length", "")
            if content_length.isdigit() and int(content_length) > self.max_bytes + self.overhead_bytes:
                logger.warning(f"Rejected {content_length} byte upload on {request.url.path}")
                return error_response(upload_too_large(self.max_bytes))

        return await call_next(request)
