"""Provider adapters for the supported LLM backends.

Each backend differs in four ways: the JSON body it expects, the headers
that authenticate a request, the envelope its reply arrives in, and how its
streaming frames are shaped. One Provider subclass per ProviderKind owns
all four, so the client itself never branches on the backend.

Supported backends:
- OpenAI and OpenAI-compatible APIs (custom endpoints, Cerebras)
- Anthropic Messages API
- Ollama local chat API (NDJSON streaming)
"""

import json
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from termai.jsonutil import json_number, json_string
from termai.stream import Framing, sse_data_payloads

logger = logging.getLogger("termai")

ANTHROPIC_VERSION = "2023-06-01"
DONE_SENTINEL = "[DONE]"


class ProviderKind(str, Enum):
    """The closed set of backends a client can talk to."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"
    CUSTOM = "custom"
    CEREBRAS = "cerebras"


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings for one client instance.

    An empty endpoint selects the provider's default endpoint.
    """

    provider: ProviderKind
    api_key: str = ""
    endpoint: str = ""
    model: str = ""
    max_tokens: int = 1024
    temperature: float = 0.7
    timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.max_tokens < 0:
            raise ValueError("max_tokens must be non-negative")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if not math.isfinite(self.temperature):
            raise ValueError("temperature must be a finite number")


@dataclass(frozen=True)
class FrameEvent:
    """What a single decoded stream payload means for the caller."""

    text: Optional[str] = None
    done: bool = False
    error: Optional[str] = None


_DONE = FrameEvent(done=True)
_IGNORED = FrameEvent()


def json_path(data: Any, *path: Any) -> Any:
    """Follow a path of dict keys and list indexes, returning None if absent."""
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
        elif not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def _message_json(role: str, content: str) -> str:
    return '{{"role":"{}","content":{}}}'.format(role, json_string(content))


class Provider(ABC):
    """Request building and response interpretation for one backend."""

    kind: ProviderKind
    label: str
    default_endpoint: str = ""
    framing: Framing = Framing.SSE

    def endpoint(self, config: ClientConfig) -> str:
        """Return the URL to POST to for this configuration."""
        return config.endpoint or self.default_endpoint

    @abstractmethod
    def build_payload(
        self,
        config: ClientConfig,
        system_prompt: str,
        user_prompt: str,
        stream: bool = False,
    ) -> str:
        """Return the exact JSON request body."""

    @abstractmethod
    def auth_headers(self, config: ClientConfig) -> Dict[str, str]:
        """Return the headers that authenticate a request."""

    @abstractmethod
    def extract_content(self, data: Any) -> Optional[str]:
        """Pull the assistant text out of a complete reply, or None."""

    @abstractmethod
    def interpret_event(self, data: Any) -> FrameEvent:
        """Interpret one parsed streaming payload."""

    def request_headers(self, config: ClientConfig, stream: bool = False) -> Dict[str, str]:
        """Return all headers for a request, including auth."""
        headers = {"Content-Type": "application/json"}
        headers.update(self.auth_headers(config))
        if stream:
            headers["Accept-Encoding"] = "identity"
            if self.framing == Framing.SSE:
                headers["Accept"] = "text/event-stream"
        return headers

    def is_sentinel(self, payload: str) -> bool:
        """Return True if an SSE payload marks the end of the stream."""
        return payload == DONE_SENTINEL

    def error_message(self, data: Any) -> Optional[str]:
        """Return a provider-reported error message, if the body carries one."""
        err = json_path(data, "error")
        if isinstance(err, str):
            return err
        message = json_path(err, "message")
        if isinstance(message, str):
            return message
        return None

    def decode_frame(self, frame: bytes) -> List[FrameEvent]:
        """Turn one complete wire frame into events.

        Malformed JSON is not fatal: the offending payload is dropped and
        decoding carries on with the next one.
        """
        if self.framing == Framing.SSE:
            payloads = sse_data_payloads(frame)
        else:
            line = frame.rstrip(b"\r").strip()
            payloads = [line.decode("utf-8", errors="replace")] if line else []

        events: List[FrameEvent] = []
        for payload in payloads:
            if self.framing == Framing.SSE and self.is_sentinel(payload):
                events.append(_DONE)
                break
            try:
                data = json.loads(payload)
            except ValueError:
                logger.debug("%s stream: skipping malformed frame", self.label)
                continue
            event = self.interpret_event(data)
            events.append(event)
            if event.done:
                break
        return events


class OpenAICompatibleProvider(Provider):
    """OpenAI chat completions and every API that copies its shape."""

    kind = ProviderKind.OPENAI
    label = "openai"
    default_endpoint = "https://api.openai.com/v1/chat/completions"

    def build_payload(
        self,
        config: ClientConfig,
        system_prompt: str,
        user_prompt: str,
        stream: bool = False,
    ) -> str:
        body = '{{"model":{},"messages":[{},{}],"max_tokens":{},"temperature":{}'.format(
            json_string(config.model),
            _message_json("system", system_prompt),
            _message_json("user", user_prompt),
            int(config.max_tokens),
            json_number(config.temperature),
        )
        if stream:
            body += ',"stream":true'
        return body + "}"

    def auth_headers(self, config: ClientConfig) -> Dict[str, str]:
        return {"Authorization": "Bearer {}".format(config.api_key)}

    def extract_content(self, data: Any) -> Optional[str]:
        content = json_path(data, "choices", 0, "message", "content")
        return content if isinstance(content, str) else None

    def interpret_event(self, data: Any) -> FrameEvent:
        message = self.error_message(data)
        if message is not None:
            return FrameEvent(done=True, error=message)
        content = json_path(data, "choices", 0, "delta", "content")
        if isinstance(content, str):
            return FrameEvent(text=content)
        return _IGNORED


class CustomProvider(OpenAICompatibleProvider):
    """A user-supplied OpenAI-compatible endpoint; there is no default URL."""

    kind = ProviderKind.CUSTOM
    label = "custom"
    default_endpoint = ""


class CerebrasProvider(OpenAICompatibleProvider):
    """Cerebras inference, which speaks the OpenAI chat completions API."""

    kind = ProviderKind.CEREBRAS
    label = "cerebras"
    default_endpoint = "https://api.cerebras.ai/v1/chat/completions"


class AnthropicProvider(Provider):
    """Anthropic Messages API."""

    kind = ProviderKind.ANTHROPIC
    label = "anthropic"
    default_endpoint = "https://api.anthropic.com/v1/messages"

    def build_payload(
        self,
        config: ClientConfig,
        system_prompt: str,
        user_prompt: str,
        stream: bool = False,
    ) -> str:
        body = '{{"model":{},"max_tokens":{},"system":{},"messages":[{}],"temperature":{}'.format(
            json_string(config.model),
            int(config.max_tokens),
            json_string(system_prompt),
            _message_json("user", user_prompt),
            json_number(config.temperature),
        )
        if stream:
            body += ',"stream":true'
        return body + "}"

    def auth_headers(self, config: ClientConfig) -> Dict[str, str]:
        return {"x-api-key": config.api_key, "anthropic-version": ANTHROPIC_VERSION}

    def extract_content(self, data: Any) -> Optional[str]:
        text = json_path(data, "content", 0, "text")
        return text if isinstance(text, str) else None

    def is_sentinel(self, payload: str) -> bool:
        return payload in (DONE_SENTINEL, "event_done")

    def interpret_event(self, data: Any) -> FrameEvent:
        event_type = json_path(data, "type")
        if event_type == "content_block_delta":
            text = json_path(data, "delta", "text")
            if isinstance(text, str):
                return FrameEvent(text=text)
        elif event_type == "message_stop":
            return _DONE
        elif event_type == "error":
            return FrameEvent(done=True, error=self.error_message(data) or "stream error")
        return _IGNORED


class OllamaProvider(Provider):
    """Ollama's local /api/chat endpoint."""

    kind = ProviderKind.OLLAMA
    label = "ollama"
    default_endpoint = "http://localhost:11434/api/chat"
    framing = Framing.NDJSON

    def build_payload(
        self,
        config: ClientConfig,
        system_prompt: str,
        user_prompt: str,
        stream: bool = False,
    ) -> str:
        return '{{"model":{},"stream":{},"messages":[{},{}],"options":{{"num_ctx":{}}}}}'.format(
            json_string(config.model),
            "true" if stream else "false",
            _message_json("system", system_prompt),
            _message_json("user", user_prompt),
            int(config.max_tokens),
        )

    def auth_headers(self, config: ClientConfig) -> Dict[str, str]:
        return {}

    def extract_content(self, data: Any) -> Optional[str]:
        content = json_path(data, "message", "content")
        return content if isinstance(content, str) else None

    def interpret_event(self, data: Any) -> FrameEvent:
        if json_path(data, "done") is True:
            return _DONE
        message = self.error_message(data)
        if message is not None:
            return FrameEvent(done=True, error=message)
        content = json_path(data, "message", "content")
        if isinstance(content, str):
            return FrameEvent(text=content)
        return _IGNORED


PROVIDERS: Dict[ProviderKind, Provider] = {
    provider.kind: provider
    for provider in (
        OpenAICompatibleProvider(),
        AnthropicProvider(),
        OllamaProvider(),
        CustomProvider(),
        CerebrasProvider(),
    )
}


def get_provider(kind: ProviderKind) -> Provider:
    """Return the adapter for a provider kind.

    Raises:
        ValueError: If no adapter is registered for the kind.
    """
    try:
        return PROVIDERS[ProviderKind(kind)]
    except (KeyError, ValueError):
        raise ValueError("Unsupported provider: {}".format(kind)) from None
