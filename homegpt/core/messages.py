"""Request shaping for the backend chat and generate endpoints."""

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from homegpt.core.exceptions import ValidationError

DEFAULT_TEMPERATURE = 0.7


class Role(str, Enum):
    """Speaker of a conversation message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ConversationMessage(BaseModel):
    """A single chat turn."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class GenerationOptions(BaseModel):
    """Sampling options understood by the backend. Unset fields are not sent."""

    model_config = ConfigDict(extra="forbid")

    temperature: float | None = Field(default=None, ge=0, le=2)
    top_p: float | None = Field(default=None, ge=0, le=1)
    max_tokens: int | None = Field(default=None, gt=0)


MessageLike = ConversationMessage | Mapping[str, Any]
OptionsLike = GenerationOptions | Mapping[str, Any]

# Stands in for an optional request field the caller did not send
OMITTED: Any = object()


def _coerce_role(value: Any) -> Role:
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        allowed = ", ".join(role.value for role in Role)
        raise ValidationError(
            f"Unsupported message role {value!r}; expected one of: {allowed}",
            field="role",
        ) from None


def shape_message(message: MessageLike) -> dict[str, str]:
    """Convert a message into the backend's ``{role, content}`` shape.

    Raises:
        ValidationError: If the role is not one of system/user/assistant or
            content is not a string.
    """
    if isinstance(message, ConversationMessage):
        role, content = message.role, message.content
    elif isinstance(message, Mapping):
        role, content = _coerce_role(message.get("role")), message.get("content")
    else:
        raise ValidationError(f"Message must be an object, got {type(message).__name__}")

    if not isinstance(content, str):
        raise ValidationError("Message content must be a string", field="content")

    if role is Role.SYSTEM:
        return {"role": "system", "content": content}
    if role is Role.USER:
        return {"role": "user", "content": content}
    if role is Role.ASSISTANT:
        return {"role": "assistant", "content": content}
    raise ValidationError(f"Unsupported message role {role!r}", field="role")


def shape_messages(messages: Sequence[MessageLike]) -> list[dict[str, str]]:
    """Shape a whole conversation, preserving order."""
    return [shape_message(message) for message in messages]


def options_to_dict(options: OptionsLike | None) -> dict[str, Any]:
    """Flatten caller options into a plain dict, dropping unset fields."""
    if options is None:
        return {}
    if isinstance(options, GenerationOptions):
        return options.model_dump(exclude_none=True)
    return dict(options)


def merge_chat_options(options: OptionsLike | None) -> dict[str, Any]:
    """Default temperature first, caller fields override per field."""
    return {"temperature": DEFAULT_TEMPERATURE, **options_to_dict(options)}


def user_prompt_messages(prompt: str) -> list[ConversationMessage]:
    return [ConversationMessage(role=Role.USER, content=prompt)]


def ask_messages(question: str, context: str | None = None) -> list[ConversationMessage]:
    """System context (when given) followed by the user's question."""
    messages: list[ConversationMessage] = []
    if context:
        messages.append(ConversationMessage(role=Role.SYSTEM, content=f"Context: {context}"))
    messages.append(ConversationMessage(role=Role.USER, content=question))
    return messages


def build_chat_request(
    model: str,
    messages: Sequence[MessageLike],
    options: OptionsLike | None = None,
) -> dict[str, Any]:
    """Body for ``POST /api/chat``. Streaming is always disabled."""
    return {
        "model": model,
        "messages": shape_messages(messages),
        "stream": False,
        "options": merge_chat_options(options),
    }


def build_generate_request(
    model: str,
    prompt: str,
    stream: Any = False,
    options: Any = OMITTED,
) -> dict[str, Any]:
    """Body for ``POST /api/generate``.

    Fields are forwarded as given. ``options`` is left out only when it is
    :data:`OMITTED`; ``None`` is sent as null and ``{}`` stays ``{}``.
    """
    body: dict[str, Any] = {"model": model, "prompt": prompt, "stream": stream}
    if isinstance(options, GenerationOptions):
        options = options_to_dict(options)
    if options is not OMITTED:
        body["options"] = options
    return body
