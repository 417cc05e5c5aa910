"""Response models for the assistant core and its HTTP surface."""

from typing import List, Optional

from pydantic import BaseModel, Field


class ChatResponse(BaseModel):
    """A completed, non-streaming assistant reply."""

    content: str
    model: str
    provider: str


class StreamChunk(BaseModel):
    """One incremental piece of a streamed reply.

    A chunk with done=True is always the last one delivered for a call.
    """

    content: str = ""
    done: bool = False


class RedactRequest(BaseModel):
    """Terminal text to scrub before it leaves the machine."""

    text: str


class RedactResponse(BaseModel):
    """Redacted text plus the categories of secrets that were removed."""

    redacted: str
    secret_types: List[str] = Field(default_factory=list)


class ValidateRequest(BaseModel):
    """A shell command to screen before execution."""

    command: str


class ValidationInfo(BaseModel):
    """Outcome of screening a command."""

    valid: bool
    risk_level: str
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class ChatRequest(BaseModel):
    """Incoming chat request from the host terminal."""

    system_prompt: str = Field(default="", description="Assistant instructions")
    user_prompt: str = Field(..., min_length=1, description="User prompt")
    profile: Optional[str] = Field(
        default=None, description="Configured provider profile to use"
    )


class ChatResult(BaseModel):
    """Chat response envelope returned to the host terminal."""

    content: str
    model: str
    provider: str
    redacted: bool = Field(
        default=False, description="True if secrets were removed from the prompt"
    )
    command: Optional[str] = None
    validation: Optional[ValidationInfo] = None


class ErrorDetail(BaseModel):
    """Structured error detail."""

    type: str
    message: str


class ErrorResponse(BaseModel):
    """Error response envelope."""

    error: ErrorDetail
