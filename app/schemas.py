"""Wire request/response schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from homegpt.core.messages import ConversationMessage


class ErrorDetail(BaseModel):
    """Error detail structure."""

    type: str = Field(description="Error kind identifier")
    message: str = Field(description="Human-readable error message")


class ErrorResponse(BaseModel):
    """Structured error response format."""

    error: ErrorDetail = Field(description="Error details")
    upstream: str | None = Field(default=None, description="Backend URL that failed")


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    messages: list[ConversationMessage] | None = Field(
        default=None, description="Earlier turns, oldest first"
    )
    system_prompt: str | None = Field(default=None, alias="systemPrompt")


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    user_message: str = Field(alias="userMessage")
    timestamp: str
    conversation_length: int = Field(alias="conversationLength")


class AskRequest(BaseModel):
    """Body of ``POST /api/ask``."""

    question: str
    context: str | None = None


class AskResponse(BaseModel):
    message: str
    question: str
    timestamp: str


class GenerateRequest(BaseModel):
    """Body of ``POST /api/generate``, in the backend's own format.

    Only model and prompt are checked. ``stream`` and ``options`` are read
    from the raw body by the route so they reach the backend untouched.
    """

    model: str
    prompt: str


class HealthResponse(BaseModel):
    """Liveness report for the ask/chat/generate routes."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    status: str = Field(description="healthy or unavailable")
    available_models: list[str] = Field(alias="availableModels")
    config: dict[str, Any]


class UploadMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_name: str = Field(alias="originalName")
    duration: float | None = None
    transcription_ready: bool = Field(default=False, alias="transcriptionReady")
    processing_ready: bool = Field(default=True, alias="processingReady")


class UploadResponse(BaseModel):
    """Response of ``POST /api/generate-audio``."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = "Audio file successfully uploaded and stored"
    file_id: str = Field(alias="fileId")
    file_path: str = Field(alias="filePath")
    file_name: str = Field(alias="fileName")
    file_size: int = Field(alias="fileSize")
    mime_type: str = Field(alias="mimeType")
    model: str
    options: dict[str, Any] = Field(default_factory=dict)
    uploaded_at: str = Field(alias="uploadedAt")
    status: str = "stored"
    metadata: UploadMetadata
