"""FastAPI application entry point for the HomeGPT gateway."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, TypeVar

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from app import __version__
from app.config import Settings, get_settings
from app.schemas import (
    AskRequest,
    AskResponse,
    ChatRequest,
    ChatResponse,
    GenerateRequest,
    HealthResponse,
    UploadMetadata,
    UploadResponse,
)
from app.errors import error_response
from app.security import APIKeyMiddleware, MaxBodySizeMiddleware, RequestIDMiddleware
from homegpt.core.client import OllamaClient
from homegpt.core.exceptions import (
    ExternalServiceError,
    GatewayError,
    UnclassifiedError,
    ValidationError,
    validate_required,
)
from homegpt.core.logging import setup_logging
from homegpt.core.messages import OMITTED, ConversationMessage, Role
from homegpt.core.result import capture
from homegpt.core.uploads import AUDIO_MIME_TYPES, store_upload, validate_upload

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_AUDIO_MODEL = "mistral"

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependencies and helpers
# ---------------------------------------------------------------------------

def get_client(request: Request) -> OllamaClient:
    """The gateway client owned by the running application."""
    return request.app.state.ollama


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def read_json_object(request: Request) -> dict[str, Any]:
    """Parse the request body as a JSON object.

    Raises:
        ValidationError: If the body is not valid JSON or not an object
    """
    body_bytes = await request.body()
    try:
        body = json.loads(body_bytes)
    except ValueError as e:
        raise ValidationError(f"Invalid JSON in request body: {e}") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def parse_body(model_cls: type[ModelT], body: dict[str, Any]) -> ModelT:
    """Validate ``body`` against a request schema, reporting the first bad field."""
    try:
        return model_cls.model_validate(body)
    except SchemaError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "body"
        raise ValidationError(f"Invalid field '{location}': {first['msg']}", field=location) from e


async def _health_report(client: OllamaClient, message: str) -> HealthResponse:
    healthy, models = await asyncio.gather(client.is_healthy(), client.list_models())
    return HealthResponse(
        message=message,
        status="healthy" if healthy else "unavailable",
        available_models=models,
        config=client.get_config().to_public_dict(),
    )


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

async def _gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    logger.error(f"Error in {request.method} {request.url.path}: {exc.message}")
    return error_response(exc)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = errors[0]["msg"] if errors else "Invalid request"
    return error_response(ValidationError(detail))


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unexpected error in {request.method} {request.url.path}: {exc}")
    return error_response(UnclassifiedError("An unexpected error occurred"))


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def _load_settings_safe() -> Settings | None:
    """Load settings, returning None when the environment is invalid (e.g. tests)."""
    try:
        return get_settings()
    except ValueError as e:
        logger.warning(f"Falling back to default settings: {e}")
        return None


def build_client(settings: Settings) -> OllamaClient:
    return OllamaClient(
        base_url=settings.ollama_base_url,
        model=settings.ollama_model,
        timeout_ms=settings.ollama_timeout_ms,
    )


def create_app(settings: Settings | None = None, client: OllamaClient | None = None) -> FastAPI:
    """Build the FastAPI application with its client, middleware and routes."""
    if settings is None:
        settings = _load_settings_safe() or Settings.model_construct()
        setup_logging(settings.log_level)

    application = FastAPI(
        title="HomeGPT Gateway",
        description="REST gateway for ask, chat, generate and audio upload in front of a local Ollama server",
        version=__version__,
    )
    application.state.settings = settings
    application.state.ollama = client if client is not None else build_client(settings)

    # Middleware stack (last added runs first)
    application.add_middleware(MaxBodySizeMiddleware, max_bytes=settings.upload_max_bytes)
    application.add_middleware(APIKeyMiddleware, api_key=settings.api_key)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allow_origins_list,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestIDMiddleware)

    application.add_exception_handler(GatewayError, _gateway_error_handler)
    application.add_exception_handler(RequestValidationError, _request_validation_handler)
    application.add_exception_handler(Exception, _unhandled_error_handler)

    application.include_router(router)
    return application


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.get("/health")
async def health():
    """Gateway liveness; does not touch the backend."""
    return {"ok": True, "version": __version__}


@router.get("/api/chat", response_model=HealthResponse)
async def chat_health(client: OllamaClient = Depends(get_client)):
    return await _health_report(client, "Chat API endpoint - Ready for conversation")


@router.post("/api/chat", response_model=ChatResponse)
async def chat(request: Request, client: OllamaClient = Depends(get_client)):
    """
    Send one chat turn.

    The conversation sent to the backend is the optional system prompt,
    then the caller's history, then the new user message.
    """
    body = await read_json_object(request)
    validate_required(body, ["message"])
    chat_request = parse_body(ChatRequest, body)

    conversation: list[ConversationMessage] = []
    if chat_request.system_prompt:
        conversation.append(ConversationMessage(role=Role.SYSTEM, content=chat_request.system_prompt))
    if chat_request.messages:
        conversation.extend(chat_request.messages)
    conversation.append(ConversationMessage(role=Role.USER, content=chat_request.message))

    result = await capture(client.chat(conversation))
    if not result.ok:
        logger.error(f"Error in /api/chat POST: {result.error.message}")
        return error_response(result.error)

    return ChatResponse(
        message=result.value,
        user_message=chat_request.message,
        timestamp=_timestamp(),
        conversation_length=len(conversation),
    )


@router.get("/api/ask", response_model=HealthResponse)
async def ask_health(client: OllamaClient = Depends(get_client)):
    return await _health_report(client, "Ask API endpoint - Ready to answer questions")


@router.post("/api/ask", response_model=AskResponse)
async def ask(request: Request, client: OllamaClient = Depends(get_client)):
    """Answer a single question, optionally with background context."""
    body = await read_json_object(request)
    validate_required(body, ["question"])
    ask_request = parse_body(AskRequest, body)

    result = await capture(client.ask(ask_request.question, ask_request.context))
    if not result.ok:
        logger.error(f"Error in /api/ask POST: {result.error.message}")
        return error_response(result.error)

    return AskResponse(message=result.value, question=ask_request.question, timestamp=_timestamp())


@router.get("/api/generate", response_model=HealthResponse)
async def generate_health(client: OllamaClient = Depends(get_client)):
    return await _health_report(client, "Generate API endpoint - Ready to generate responses")


@router.post("/api/generate")
async def generate(request: Request, client: OllamaClient = Depends(get_client)):
    """
    Backend-format generation.

    Model and prompt must be strings; stream and options are forwarded
    exactly as sent, including an explicit null, and options are left out
    only when the key is absent. The backend's payload is returned without
    reshaping.
    """
    body = await read_json_object(request)
    validate_required(body, ["model", "prompt"])
    generate_request = parse_body(GenerateRequest, body)

    result = await capture(
        client.generate_direct(
            generate_request.model,
            generate_request.prompt,
            body.get("stream", False),
            body.get("options", OMITTED),
        )
    )
    if not result.ok:
        logger.error(f"Error in /api/generate POST: {result.error.message}")
        return error_response(result.error)

    return JSONResponse(content=result.value, status_code=200)


@router.get("/api/generate-audio")
async def generate_audio_health(settings: Settings = Depends(get_app_settings)):
    return {
        "message": "Generate Audio API endpoint - Ready to process audio files",
        "status": "healthy",
        "features": ["audio_upload", "temp_storage", "file_processing"],
        "supportedFormats": list(AUDIO_MIME_TYPES),
        "maxFileSize": f"{settings.upload_max_bytes // (1024 * 1024)}MB",
    }


def _parse_upload_options(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        options = json.loads(raw)
    except ValueError:
        logger.warning("Invalid options JSON, using defaults")
        return {}
    if not isinstance(options, dict):
        logger.warning("Options must be a JSON object, using defaults")
        return {}
    return options


@router.post("/api/generate-audio", response_model=UploadResponse)
async def generate_audio(
    audio: UploadFile | None = File(None),
    model: str | None = Form(None),
    options: str | None = Form(None),
    settings: Settings = Depends(get_app_settings),
):
    """
    Store an uploaded audio file for later processing.

    Size is checked before the file is read, then type; nothing is written
    unless both pass.
    """
    if audio is None:
        raise ValidationError("No audio file provided", field="audio")

    if audio.size is not None:
        validate_upload(audio.size, audio.content_type, settings.upload_max_bytes)

    data = await audio.read()
    stored = await store_upload(
        data,
        filename=audio.filename or "audio",
        mime_type=audio.content_type,
        upload_dir=settings.upload_dir,
        max_bytes=settings.upload_max_bytes,
    )

    return UploadResponse(
        file_id=stored.file_id,
        file_path=stored.file_path,
        file_name=stored.file_name,
        file_size=stored.file_size,
        mime_type=stored.mime_type,
        model=model or DEFAULT_AUDIO_MODEL,
        options=_parse_upload_options(options),
        uploaded_at=stored.uploaded_at,
        metadata=UploadMetadata(original_name=stored.original_name),
    )


@router.get("/single-chat", response_class=PlainTextResponse)
async def single_chat_info():
    return "Single chat endpoint - POST a plain-text message"


@router.post("/single-chat", response_class=PlainTextResponse)
async def single_chat(request: Request, client: OllamaClient = Depends(get_client)):
    """Plain-text prompt in, plain-text completion out, using the configured model."""
    prompt = (await request.body()).decode("utf-8", errors="replace")
    if not prompt.strip():
        raise ValidationError("Message body is required", field="message")

    result = await capture(client.generate_direct(client.model, prompt, stream=False))
    if not result.ok:
        return error_response(result.error)

    payload = result.value
    text = payload.get("response") if isinstance(payload, dict) else None
    if not isinstance(text, str):
        return error_response(
            ExternalServiceError("Ollama request failed: response text missing", upstream=client.base_url)
        )
    return PlainTextResponse(text)


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = app.state.settings
    uvicorn.run(app, host=settings.gateway_host, port=settings.gateway_port, log_config=None)
