"""FastAPI application exposing the assistant core to a host terminal.

Endpoints:
- POST /v1/redact       scrub secrets from terminal text
- POST /v1/validate     screen a shell command before execution
- POST /v1/chat         redact the prompt, ask the provider, validate any
                        suggested command in the reply
- POST /v1/chat/stream  same, streamed as server-sent events

Privacy-first flow:
1. The user prompt is redacted BEFORE it is sent to any provider
2. Commands in replies are validated BEFORE they are returned
3. Prompt text and keys are never logged
"""

import os
import re
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterator, Optional, Tuple

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from termai.client import AIClient, InvalidResponse, NetworkError, ProviderError
from termai.config import AssistantConfig, ProfileConfig, load_config
from termai.models import (
    ChatRequest,
    ChatResult,
    ErrorDetail,
    ErrorResponse,
    RedactRequest,
    RedactResponse,
    ValidateRequest,
    ValidationInfo,
)
from termai.redaction import SecretRedactor
from termai.telemetry import log_request, logger, setup_logging
from termai.validation import CommandValidator, RuleSet, ValidationResult, load_rules

CONFIG_PATH = os.getenv("TERMAI_CONFIG", "config/example.config.json")

_config: Optional[AssistantConfig] = None
_redactor: Optional[SecretRedactor] = None
_rules: Optional[RuleSet] = None
_validator: Optional[CommandValidator] = None
# Optional transport handed to every AIClient (tests use httpx.MockTransport).
_transport: Optional[httpx.BaseTransport] = None

_FENCED_BLOCK = re.compile(
    r"```(?:bash|sh|zsh|shell|console|fish|pwsh|powershell)?[ \t]*\r?\n(.*?)```",
    re.DOTALL,
)


def get_config() -> AssistantConfig:
    """Return the loaded assistant configuration (lazy-init)."""
    global _config
    if _config is None:
        _config = load_config(CONFIG_PATH)
    return _config


def get_redactor() -> SecretRedactor:
    """Return the secret redactor (lazy-init from config)."""
    global _redactor
    if _redactor is None:
        cfg = get_config().redaction
        _redactor = SecretRedactor(
            label=cfg.label,
            enabled=cfg.enabled,
            min_entropy=cfg.min_entropy,
            max_secrets=cfg.max_secrets,
        )
    return _redactor


def get_rules() -> RuleSet:
    """Return the extra validation rules (lazy-init from config).

    A rules file that cannot be loaded is logged and the built-in rules
    are used on their own.
    """
    global _rules
    if _rules is None:
        rules_file = get_config().validation.rules_file
        _rules = RuleSet()
        if rules_file:
            try:
                _rules = load_rules(rules_file)
            except (FileNotFoundError, ValueError) as exc:
                logger.warning("Ignoring validation rules file: %s", exc)
    return _rules


def get_validator() -> CommandValidator:
    """Return a command validator configured from config.

    With the PATH existence check enabled, each call builds a new
    validator so its lookup cache lives for one request only.
    """
    global _validator
    cfg = get_config().validation
    if _validator is not None and not cfg.check_command_exists:
        return _validator
    validator = CommandValidator(
        enabled=cfg.enabled,
        allow_dangerous=cfg.allow_dangerous,
        rules=get_rules(),
        check_command_exists=cfg.check_command_exists,
    )
    if not cfg.check_command_exists:
        _validator = validator
    return validator


def get_client(profile: ProfileConfig) -> AIClient:
    """Build a client for one profile."""
    return AIClient(profile.to_client_config(), transport=_transport)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Initialize config, logging, redactor and validator on startup."""
    cfg = get_config()
    setup_logging(cfg.log_file, cfg.log_level)
    get_redactor()
    get_validator()
    yield


app = FastAPI(title="Terminal AI Assistant", version="0.1.0", lifespan=lifespan)


def _error_response(status: int, error_type: str, message: str) -> JSONResponse:
    """Build a consistent JSON error response."""
    body = ErrorResponse(error=ErrorDetail(type=error_type, message=message))
    return JSONResponse(status_code=status, content=body.model_dump())


def _validation_info(result: ValidationResult) -> ValidationInfo:
    return ValidationInfo(
        valid=result.valid,
        risk_level=result.risk_level.value,
        warnings=list(result.warnings),
        errors=list(result.errors),
    )


def extract_command(content: str) -> Optional[str]:
    """Return the first fenced code block in an assistant reply, if any."""
    match = _FENCED_BLOCK.search(content)
    if match is None:
        return None
    command = match.group(1).strip()
    return command or None


def _resolve(request: ChatRequest) -> Tuple[ProfileConfig, AIClient]:
    profile = get_config().get_profile(request.profile)
    return profile, get_client(profile)


@app.post("/v1/redact", response_model=RedactResponse)
async def redact(request: RedactRequest) -> RedactResponse:
    """Redact secrets from terminal text."""
    redactor = get_redactor()
    kinds = sorted(kind.value for kind in redactor.summary(request.text))
    return RedactResponse(redacted=redactor.redact(request.text), secret_types=kinds)


@app.post("/v1/validate", response_model=ValidationInfo)
async def validate(request: ValidateRequest) -> ValidationInfo:
    """Screen a shell command and report its risk tier."""
    return _validation_info(get_validator().validate(request.command))


@app.post("/v1/chat", response_model=None)
async def chat(request: ChatRequest) -> JSONResponse:
    """Handle a chat request.

    Request flow:
    1. Resolve the provider profile
    2. Redact secrets from the user prompt
    3. Call the provider
    4. Validate the first fenced command in the reply, if any
    """
    request_id = "ta-{}".format(uuid.uuid4().hex[:12])
    profile_name = request.profile or ""

    try:
        profile, client = _resolve(request)
    except ValueError as exc:
        log_request(
            profile=profile_name,
            provider=None,
            model="",
            outcome="profile_error",
            error=str(exc),
            request_id=request_id,
        )
        return _error_response(400, "profile_error", str(exc))

    redactor = get_redactor()
    user_prompt = redactor.redact(request.user_prompt)
    was_redacted = user_prompt != request.user_prompt

    try:
        response = await run_in_threadpool(
            client.send_chat, request.system_prompt, user_prompt
        )
    except ProviderError as exc:
        error_type = "invalid_response" if isinstance(exc, InvalidResponse) else "provider_error"
        log_request(
            profile=profile.name,
            provider=client.provider.label,
            model=profile.model,
            outcome=error_type,
            redacted=was_redacted,
            error=str(exc),
            request_id=request_id,
        )
        return _error_response(502, error_type, str(exc))

    command = extract_command(response.content)
    validation = None
    if command is not None:
        validation = _validation_info(get_validator().validate(command))

    log_request(
        profile=profile.name,
        provider=response.provider,
        model=response.model,
        outcome="success",
        redacted=was_redacted,
        request_id=request_id,
    )

    result = ChatResult(
        content=response.content,
        model=response.model,
        provider=response.provider,
        redacted=was_redacted,
        command=command,
        validation=validation,
    )
    return JSONResponse(status_code=200, content=result.model_dump())


def _sse_events(
    client: AIClient,
    profile: ProfileConfig,
    system_prompt: str,
    user_prompt: str,
    redacted: bool,
    request_id: str,
) -> Iterator[str]:
    outcome = "success"
    error: Optional[str] = None
    try:
        for chunk in client.iter_chat(system_prompt, user_prompt):
            yield "data: {}\n\n".format(chunk.model_dump_json())
    except NetworkError as exc:
        # The terminal chunk has already been sent.
        outcome = "provider_error"
        error = str(exc)
    log_request(
        profile=profile.name,
        provider=client.provider.label,
        model=profile.model,
        outcome=outcome,
        streamed=True,
        redacted=redacted,
        error=error,
        request_id=request_id,
    )


@app.post("/v1/chat/stream", response_model=None)
async def chat_stream(request: ChatRequest) -> Response:
    """Stream a chat reply as server-sent events.

    Each event is ``data: {"content": ..., "done": ...}``; the last event
    always has done set to true, including when the provider fails.
    """
    request_id = "ta-{}".format(uuid.uuid4().hex[:12])
    try:
        profile, client = _resolve(request)
    except ValueError as exc:
        return _error_response(400, "profile_error", str(exc))

    user_prompt = get_redactor().redact(request.user_prompt)
    events = _sse_events(
        client,
        profile,
        request.system_prompt,
        user_prompt,
        user_prompt != request.user_prompt,
        request_id,
    )
    return StreamingResponse(events, media_type="text/event-stream")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert FastAPI's validation errors into our error envelope format."""
    return _error_response(
        422,
        "validation_error",
        "Request validation failed: {}".format(exc.errors()),
    )

