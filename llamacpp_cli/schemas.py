"""Completion request/response schemas.

The request side mirrors llama-cpp-python's ``/v1/completions`` body. The
response side is decoded leniently: the server is an opaque service and a
garbled reply must degrade to an empty result instead of breaking the
interactive session.
"""

import json
import math
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

# Defaults suggested by llama-cpp-python (llama_cpp/server/types.py)
DEFAULT_TOP_K = 40
DEFAULT_TOP_P = 0.95
DEFAULT_REPEAT_PENALTY = 1.1
DEFAULT_TEMPERATURE = 0.8
DEFAULT_MAX_TOKENS = 16


def _positive(value: float | None, default: float) -> float:
    """Return value when it is a finite number above zero, else default."""
    if value is None or not math.isfinite(value) or value <= 0:
        return default
    return value


# --- Request Models ---


class ChatMessage(BaseModel):
    """A single message in a conversation."""

    role: str
    content: str | None = None


class GenerationParameters(BaseModel):
    """Generation request sent to the completion endpoint.

    Numeric fields carry no bounds: out-of-range values are accepted here
    and coerced by normalize().

    Exactly one of prompt/messages is sent. Completion endpoints take a
    prompt, chat-completion endpoints take messages.
    """

    model_config = ConfigDict(frozen=True)

    model: str = ""
    prompt: str | None = None
    messages: list[ChatMessage] | None = None
    top_k: int | None = None
    top_p: float | None = None
    repeat_penalty: float | None = None
    temperature: float | None = None
    stream: bool = False
    max_tokens: int | None = None

    def normalize(self) -> "GenerationParameters":
        """Return a copy with every missing or invalid field set to its default.

        Total and idempotent. Valid values pass through unchanged.
        """
        top_p = self.top_p
        if top_p is None or not math.isfinite(top_p) or not 0 < top_p <= 1.0:
            top_p = DEFAULT_TOP_P

        return self.model_copy(
            update={
                "top_k": int(_positive(self.top_k, DEFAULT_TOP_K)),
                "top_p": top_p,
                "repeat_penalty": _positive(self.repeat_penalty, DEFAULT_REPEAT_PENALTY),
                "temperature": _positive(self.temperature, DEFAULT_TEMPERATURE),
                "max_tokens": int(_positive(self.max_tokens, DEFAULT_MAX_TOKENS)),
            }
        )

    def with_prompt(self, prompt: str) -> "GenerationParameters":
        """Return a copy carrying the given (already formatted) prompt."""
        return self.model_copy(update={"prompt": prompt, "messages": None})

    def with_messages(self, messages: list[ChatMessage]) -> "GenerationParameters":
        """Return a copy carrying a message list instead of a prompt."""
        return self.model_copy(update={"prompt": None, "messages": list(messages)})

    def to_payload(self) -> dict[str, Any]:
        """Normalize and serialize to the JSON request body."""
        normalized = self.normalize()
        exclude = {"prompt"} if normalized.messages is not None else {"messages"}
        return normalized.model_dump(mode="json", exclude=exclude)


# --- Response Models ---


class CompletionChoice(BaseModel):
    """A single choice in a completion response."""

    text: str = ""
    index: int = 0
    logprobs: Any = None
    finish_reason: str | None = None
    # Chat-completion servers answer with a message instead of text
    message: ChatMessage | None = None


class CompletionResponse(BaseModel):
    """Completion response. Only the first choice's text is consumed."""

    id: str = ""
    object: str = ""
    created: int = 0
    model: str = ""
    choices: list[CompletionChoice] = []
    usage: Any = None

    @classmethod
    def decode(cls, raw: bytes | str) -> "CompletionResponse":
        """Decode a raw response body without ever raising.

        Invalid JSON, or a top level that is not an object, yields an empty
        response. A top-level field that fails validation is dropped and left
        at its default while the remaining fields are kept.
        """
        try:
            data = json.loads(raw)
        except (ValueError, TypeError, RecursionError) as e:
            logger.debug(f"Undecodable completion body: {e}")
            return cls()

        if not isinstance(data, dict):
            logger.debug(f"Completion body is not an object: {type(data).__name__}")
            return cls()

        while True:
            try:
                return cls.model_validate(data)
            except ValidationError as e:
                invalid = {err["loc"][0] for err in e.errors() if err["loc"]}
                if not invalid:
                    return cls()
                logger.debug(f"Dropping invalid completion fields: {sorted(map(str, invalid))}")
                data = {key: value for key, value in data.items() if key not in invalid}

    def first_text(self) -> str:
        """Text of the first choice, or an empty string when there is none."""
        if not self.choices:
            return ""
        choice = self.choices[0]
        if choice.text:
            return choice.text
        if choice.message is not None and choice.message.content:
            return choice.message.content
        return ""
