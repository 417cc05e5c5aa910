"""Configuration loader for the terminal assistant.

Reads a JSON config file containing provider profiles, redaction and
validation settings. API keys are resolved from environment variables and
never stored in the file itself.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from termai.providers import ClientConfig, ProviderKind
from termai.redaction import DEFAULT_LABEL
from termai.telemetry import parse_log_level


@dataclass
class ProfileConfig:
    """Connection settings for one named provider profile."""

    name: str
    provider: ProviderKind
    api_key_env: str = ""
    endpoint: str = ""
    model: str = ""
    max_tokens: int = 1024
    temperature: float = 0.7
    timeout: float = 60.0

    @property
    def api_key(self) -> str:
        """Resolve the API key from the environment variable."""
        if not self.api_key_env:
            return ""
        return os.getenv(self.api_key_env, "")

    def to_client_config(self) -> ClientConfig:
        """Build the immutable ClientConfig used by AIClient."""
        return ClientConfig(
            provider=self.provider,
            api_key=self.api_key,
            endpoint=self.endpoint,
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            timeout=self.timeout,
        )


@dataclass
class RedactionConfig:
    """Secret redaction settings."""

    enabled: bool = True
    label: str = DEFAULT_LABEL
    min_entropy: Optional[float] = None
    max_secrets: Optional[int] = None


@dataclass
class ValidationConfig:
    """Command validation settings."""

    enabled: bool = True
    allow_dangerous: bool = False
    check_command_exists: bool = False
    rules_file: Optional[str] = None


@dataclass
class AssistantConfig:
    """Top-level assistant configuration."""

    profiles: Dict[str, ProfileConfig] = field(default_factory=dict)
    default_profile: Optional[str] = None
    redaction: RedactionConfig = field(default_factory=RedactionConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    log_file: str = "logs/termai.log"
    log_level: str = "INFO"

    def get_profile(self, name: Optional[str] = None) -> ProfileConfig:
        """Return the named profile, or the default profile when name is None.

        Raises:
            ValueError: If the profile is not configured.
        """
        profile_name = name or self.default_profile
        if profile_name is None and len(self.profiles) == 1:
            profile_name = next(iter(self.profiles))
        if profile_name not in self.profiles:
            raise ValueError("Unknown profile: {}".format(profile_name))
        return self.profiles[profile_name]


def _parse_provider(value: Any) -> ProviderKind:
    try:
        return ProviderKind(str(value).lower())
    except ValueError:
        raise ValueError("Unsupported provider: {}".format(value)) from None


def load_config(path: Union[str, Path]) -> AssistantConfig:
    """Load assistant configuration from a JSON file.

    Args:
        path: Path to the JSON config file.

    Returns:
        A fully resolved AssistantConfig instance.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the config file contains invalid data.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError("Config file not found: {}".format(path))

    with open(path) as f:
        raw: Dict[str, Any] = json.load(f)

    profiles: Dict[str, ProfileConfig] = {}
    for name, prof in raw.get("profiles", {}).items():
        profiles[name] = ProfileConfig(
            name=name,
            provider=_parse_provider(prof["provider"]),
            api_key_env=prof.get("api_key_env", ""),
            endpoint=prof.get("endpoint", ""),
            model=prof.get("model", ""),
            max_tokens=int(prof.get("max_tokens", 1024)),
            temperature=float(prof.get("temperature", 0.7)),
            timeout=float(prof.get("timeout", 60.0)),
        )

    default_profile = raw.get("default_profile")
    if default_profile is not None and default_profile not in profiles:
        raise ValueError("default_profile '{}' is not a configured profile".format(default_profile))

    redaction_raw = raw.get("redaction", {})
    redaction = RedactionConfig(
        enabled=redaction_raw.get("enabled", True),
        label=redaction_raw.get("label", DEFAULT_LABEL),
        min_entropy=redaction_raw.get("min_entropy"),
        max_secrets=redaction_raw.get("max_secrets"),
    )

    validation_raw = raw.get("validation", {})
    validation = ValidationConfig(
        enabled=validation_raw.get("enabled", True),
        allow_dangerous=validation_raw.get("allow_dangerous", False),
        check_command_exists=validation_raw.get("check_command_exists", False),
        rules_file=validation_raw.get("rules_file"),
    )

    log_level = str(raw.get("log_level", "INFO")).upper()
    parse_log_level(log_level)

    return AssistantConfig(
        profiles=profiles,
        default_profile=default_profile,
        redaction=redaction,
        validation=validation,
        log_file=raw.get("log_file", "logs/termai.log"),
        log_level=log_level,
    )
