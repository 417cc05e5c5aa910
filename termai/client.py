"""Chat client for the terminal assistant.

Sends one system prompt and one user prompt to the configured provider and
returns either the complete reply or a sequence of streamed chunks.

Streaming guarantees:
- Chunks arrive in exactly the order the provider sent them.
- Every call ends with exactly one chunk whose done flag is True, whether
  the stream finished, hit its sentinel, was cancelled, or failed.
- Nothing is delivered after that terminal chunk.

Cancellation is cooperative: the flag is checked before each network read
and before each decoded frame. A read that is already in flight completes,
but its contents are discarded.
"""

import logging
import threading
from typing import Callable, Iterator, Optional

import httpx

from termai.models import ChatResponse, StreamChunk
from termai.providers import ClientConfig, Provider, get_provider
from termai.shell import Shell, detect_shell, shell_prompt
from termai.stream import StreamDecoder

logger = logging.getLogger("termai")

ChunkCallback = Callable[[str, bool], None]


class ProviderError(Exception):
    """Base class for failures talking to a provider."""

    def __init__(self, provider: str, detail: str) -> None:
        self.provider = provider
        self.detail = detail
        super().__init__("{}: {}".format(provider, detail))


class NetworkError(ProviderError):
    """The provider could not be reached or answered with a non-2xx status.

    status_code is None when no HTTP response was received at all.
    """

    def __init__(
        self, provider: str, status_code: Optional[int] = None, detail: str = ""
    ) -> None:
        self.status_code = status_code
        if not detail:
            detail = "HTTP {}".format(status_code) if status_code else "request failed"
        super().__init__(provider, detail)


class InvalidResponse(ProviderError):
    """The provider replied, but not with the expected envelope."""


class CancellationFlag:
    """A one-way stop signal shared by a caller and one streaming call.

    The caller is the only writer; the streaming loop is the only reader.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request that the stream stop at its next check."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _is_cancelled(flag: Optional[CancellationFlag]) -> bool:
    return flag is not None and flag.cancelled


_TERMINAL = StreamChunk(content="", done=True)


class AIClient:
    """Provider-agnostic chat client bound to one ClientConfig.

    Args:
        config: Provider, credentials, model and sampling settings.
        shell: Shell to describe in the system prompt; detected from the
            environment when omitted.
        transport: Optional httpx transport (e.g. httpx.MockTransport).

    Raises:
        ValueError: If the provider has no default endpoint and none is
            configured.
    """

    def __init__(
        self,
        config: ClientConfig,
        shell: Optional[Shell] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._config = config
        self._provider = get_provider(config.provider)
        self._shell = detect_shell() if shell is None else shell
        self._transport = transport

        if not self.endpoint:
            raise ValueError(
                "Provider '{}' requires an explicit endpoint".format(self._provider.label)
            )

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def provider(self) -> Provider:
        return self._provider

    @property
    def shell(self) -> Shell:
        return self._shell

    @property
    def endpoint(self) -> str:
        """The URL requests are sent to."""
        return self._provider.endpoint(self._config)

    def enhance_system_prompt(self, system_prompt: str) -> str:
        """Append the shell-specific instructions to a system prompt."""
        return "{}\n\n{}".format(system_prompt, shell_prompt(self._shell))

    def build_payload(self, system_prompt: str, user_prompt: str, stream: bool = False) -> str:
        """Return the request body that would be sent for these prompts."""
        return self._provider.build_payload(
            self._config, self.enhance_system_prompt(system_prompt), user_prompt, stream
        )

    def _http_client(self) -> httpx.Client:
        return httpx.Client(timeout=self._config.timeout, transport=self._transport)

    def send_chat(self, system_prompt: str, user_prompt: str) -> ChatResponse:
        """Send a chat request and wait for the complete reply.

        Args:
            system_prompt: Assistant instructions (shell context is appended).
            user_prompt: The user's request, already redacted by the caller.

        Returns:
            A ChatResponse with the assistant text.

        Raises:
            NetworkError: On connection failure or any non-2xx status.
            InvalidResponse: If the body lacks the provider's content field,
                even when the status was successful.
        """
        label = self._provider.label
        body = self.build_payload(system_prompt, user_prompt, stream=False)
        headers = self._provider.request_headers(self._config, stream=False)

        try:
            with self._http_client() as client:
                resp = client.post(self.endpoint, content=body.encode("utf-8"), headers=headers)
        except httpx.TransportError as exc:
            logger.error("%s API request failed: %s", label, exc)
            raise NetworkError(label, detail=str(exc)) from exc

        if not resp.is_success:
            logger.error("%s API returned status: %s", label, resp.status_code)
            raise NetworkError(label, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            logger.error("%s API returned a non-JSON body", label)
            raise InvalidResponse(label, "response body is not valid JSON") from exc

        content = self._provider.extract_content(data)
        if content is None:
            message = self._provider.error_message(data)
            if message:
                logger.error("%s API error: %s", label, message)
                raise InvalidResponse(label, message)
            raise InvalidResponse(label, "response is missing the assistant content")

        return ChatResponse(content=content, model=self._config.model, provider=label)

    def iter_chat(
        self,
        system_prompt: str,
        user_prompt: str,
        cancel: Optional[CancellationFlag] = None,
    ) -> Iterator[StreamChunk]:
        """Stream a reply as StreamChunk objects.

        The last chunk yielded always has done=True. If the provider cannot
        be reached or answers with a non-2xx status, the terminal chunk is
        yielded first and NetworkError is raised afterwards.
        """
        if _is_cancelled(cancel):
            yield _TERMINAL
            return

        label = self._provider.label
        body = self.build_payload(system_prompt, user_prompt, stream=True)
        headers = self._provider.request_headers(self._config, stream=True)
        terminated = False

        try:
            with self._http_client() as client:
                with client.stream(
                    "POST", self.endpoint, content=body.encode("utf-8"), headers=headers
                ) as resp:
                    if not resp.is_success:
                        logger.error("%s streaming returned status: %s", label, resp.status_code)
                        terminated = True
                        yield _TERMINAL
                        raise NetworkError(label, status_code=resp.status_code)

                    for chunk in self._decode(resp, cancel):
                        terminated = chunk.done
                        yield chunk
        except httpx.TransportError as exc:
            logger.error("%s streaming request failed: %s", label, exc)
            if terminated:
                return
            yield _TERMINAL
            raise NetworkError(label, detail=str(exc)) from exc

    def _decode(
        self, resp: httpx.Response, cancel: Optional[CancellationFlag]
    ) -> Iterator[StreamChunk]:
        label = self._provider.label
        decoder = StreamDecoder(self._provider.framing)
        reads = resp.iter_bytes()

        while True:
            if _is_cancelled(cancel):
                yield _TERMINAL
                return

            try:
                data = next(reads)
            except StopIteration:
                break
            except httpx.TransportError as exc:
                logger.warning("%s stream read error: %s", label, exc)
                yield _TERMINAL
                return

            for frame in decoder.feed(data):
                if _is_cancelled(cancel):
                    yield _TERMINAL
                    return
                for chunk in self._frame_chunks(frame):
                    yield chunk
                    if chunk.done:
                        return

        for frame in decoder.flush():
            for chunk in self._frame_chunks(frame):
                yield chunk
                if chunk.done:
                    return

        yield _TERMINAL

    def _frame_chunks(self, frame: bytes) -> Iterator[StreamChunk]:
        for event in self._provider.decode_frame(frame):
            if event.error:
                logger.error("%s stream error: %s", self._provider.label, event.error)
            if event.done:
                yield _TERMINAL
                return
            if event.text is not None:
                yield StreamChunk(content=event.text, done=False)

    def stream_chat(
        self,
        system_prompt: str,
        user_prompt: str,
        on_chunk: ChunkCallback,
        cancel: Optional[CancellationFlag] = None,
        enabled: bool = True,
    ) -> None:
        """Stream a reply through a callback.

        on_chunk(content, done) is called zero or more times with
        done=False, then exactly once with done=True, on every path.

        Args:
            system_prompt: Assistant instructions.
            user_prompt: The user's request.
            on_chunk: Receives each chunk's content and done flag.
            cancel: Optional flag that stops the stream when set.
            enabled: If False, perform a regular request and deliver the
                whole reply as a single terminal chunk.

        Raises:
            NetworkError: After the terminal chunk, if the provider could not
                be reached or returned a non-2xx status.
            InvalidResponse: Only when enabled is False and the reply is
                malformed.
        """
        if not enabled:
            try:
                response = self.send_chat(system_prompt, user_prompt)
            except ProviderError:
                on_chunk("", True)
                raise
            on_chunk(response.content, True)
            return

        for chunk in self.iter_chat(system_prompt, user_prompt, cancel):
            on_chunk(chunk.content, chunk.done)
