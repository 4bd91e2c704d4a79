"""Inference request boundary: a provider-neutral request shape and the OpenAI-backed client that sends it."""
import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Union

from openai import AsyncOpenAI

from syncnotes.core.config import settings

DEFAULT_AUDIO_MIME = "audio/mpeg"

_AUDIO_FORMATS = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
}


def audio_format_for(mime_type: Optional[str]) -> str:
    """Map a declared audio media type onto the input_audio format name (audio/mpeg -> mp3, audio/x-wav -> wav, audio/webm -> webm)."""
    mime = (mime_type or DEFAULT_AUDIO_MIME).split(";", 1)[0].strip().lower()
    if mime in _AUDIO_FORMATS:
        return _AUDIO_FORMATS[mime]
    _, _, subtype = mime.partition("/")
    return subtype or "mp3"


# input_audio only accepts these encodings.
SUPPORTED_AUDIO_FORMATS = ("mp3", "wav")


def is_supported_audio(mime_type: Optional[str]) -> bool:
    return audio_format_for(mime_type) in SUPPORTED_AUDIO_FORMATS


@dataclass
class AudioPart:
    data: bytes
    mime_type: str = DEFAULT_AUDIO_MIME


@dataclass
class InferenceRequest:
    """One model call: ordered input parts (audio or text), an optional JSON schema the reply must follow, and an optional system instruction."""

    model: str
    parts: List[Union[AudioPart, str]]
    response_schema: Optional[Dict[str, Any]] = None
    schema_name: str = "response"
    system_instruction: Optional[str] = None
    temperature: float = 0.1
    extra: Dict[str, Any] = field(default_factory=dict)


_openai_client: Optional[AsyncOpenAI] = None


def get_openai_client() -> AsyncOpenAI:
    """Return the shared AsyncOpenAI client. SDK retries are off because RequestGuard owns deadlines and retries."""
    global _openai_client
    if _openai_client is None:
        _openai_client = AsyncOpenAI(api_key=settings.openai_api_key, max_retries=0)
    return _openai_client


class InferenceClient(Protocol):
    async def generate(self, request: InferenceRequest) -> str:
        ...


def build_messages(request: InferenceRequest) -> List[Dict[str, Any]]:
    """Translate an InferenceRequest into chat messages: system instruction first, then one user message with text and input_audio content parts in order."""
    messages: List[Dict[str, Any]] = []
    if request.system_instruction:
        messages.append({"role": "system", "content": request.system_instruction})

    content: List[Dict[str, Any]] = []
    for part in request.parts:
        if isinstance(part, AudioPart):
            content.append({
                "type": "input_audio",
                "input_audio": {
                    "data": base64.b64encode(part.data).decode("ascii"),
                    "format": audio_format_for(part.mime_type),
                },
            })
        else:
            content.append({"type": "text", "text": str(part)})
    messages.append({"role": "user", "content": content})
    return messages


class OpenAIInferenceClient:
    """Sends InferenceRequests through AsyncOpenAI chat completions and returns the raw reply text (possibly markdown-fenced)."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    async def generate(self, request: InferenceRequest) -> str:
        kwargs: Dict[str, Any] = {
            "model": request.model,
            "messages": build_messages(request),
            "temperature": request.temperature,
        }
        if request.response_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": request.schema_name, "schema": request.response_schema},
            }
        kwargs.update(request.extra)

        resp = await self.client.chat.completions.create(**kwargs)
        if not resp.choices:
            return ""
        return resp.choices[0].message.content or ""
