"""Secret detection and redaction for terminal content.

Terminal buffers routinely contain API keys, tokens, connection strings and
private keys. Everything sent to an AI provider is scrubbed here first.

Detection runs independent passes and merges the results:
- Literal prefixes: well-known key/token prefixes, PEM private-key headers
  and database URL schemes.
- Environment assignments: ``[export ]NAME=value`` lines whose NAME looks
  like it holds a credential (PASSWORD, TOKEN, API_KEY, ...).
- High-entropy tokens (optional): long random-looking strings.

Overlapping or adjacent detections are merged before redaction so that each
secret region is replaced by a single label. When unsure, redact.
"""

import math
import re
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Set, Tuple

DEFAULT_LABEL = "[REDACTED]"


class SecretType(str, Enum):
    """Categories of secrets the redactor recognises."""

    API_KEY = "api_key"
    PASSWORD = "password"
    BEARER_TOKEN = "bearer_token"
    PRIVATE_KEY = "private_key"
    AWS_KEY = "aws_key"
    GITHUB_TOKEN = "github_token"
    DATABASE_URL = "database_url"
    JWT_TOKEN = "jwt_token"
    GENERIC_SECRET = "generic_secret"


@dataclass(frozen=True)
class DetectedSecret:
    """A secret found in scanned text; start/end are offsets into it."""

    kind: SecretType
    start: int
    end: int
    original: str


@dataclass(frozen=True)
class _PrefixRule:
    prefix: str
    kind: SecretType
    end_marker: Optional[str] = None
    # Token prefixes must not start in the middle of a word.
    word_start: bool = True


def _pem(name: str, block: str = "PRIVATE KEY") -> _PrefixRule:
    header = "{} {}".format(name, block).strip()
    return _PrefixRule(
        prefix="-----BEGIN {}-----".format(header),
        kind=SecretType.PRIVATE_KEY,
        end_marker="-----END {}-----".format(header),
        word_start=False,
    )


# Ordered; each prefix is scanned independently.
_PREFIX_RULES: Tuple[_PrefixRule, ...] = (
    _PrefixRule("sk-", SecretType.API_KEY),  # OpenAI, Anthropic
    _PrefixRule("sk_live_", SecretType.API_KEY),  # Stripe
    _PrefixRule("sk_test_", SecretType.API_KEY),
    _PrefixRule("AKIA", SecretType.AWS_KEY),
    _PrefixRule("ASIA", SecretType.AWS_KEY),
    _PrefixRule("ghp_", SecretType.GITHUB_TOKEN),
    _PrefixRule("gho_", SecretType.GITHUB_TOKEN),
    _PrefixRule("ghu_", SecretType.GITHUB_TOKEN),
    _PrefixRule("ghs_", SecretType.GITHUB_TOKEN),
    _PrefixRule("github_pat_", SecretType.GITHUB_TOKEN),
    _PrefixRule("glpat-", SecretType.API_KEY),  # GitLab
    _PrefixRule("xox", SecretType.API_KEY),  # Slack
    _PrefixRule("AIza", SecretType.API_KEY),  # Google
    _PrefixRule("Bearer ", SecretType.BEARER_TOKEN),
    _PrefixRule("eyJ", SecretType.JWT_TOKEN),
    _pem("RSA"),
    _pem("OPENSSH"),
    _pem("EC"),
    _pem("DSA"),
    _pem("ENCRYPTED"),
    _pem(""),
    _pem("PGP", "PRIVATE KEY BLOCK"),
    _PrefixRule("postgres://", SecretType.DATABASE_URL),
    _PrefixRule("postgresql://", SecretType.DATABASE_URL),
    _PrefixRule("mysql://", SecretType.DATABASE_URL),
    _PrefixRule("mongodb://", SecretType.DATABASE_URL),
    _PrefixRule("mongodb+srv://", SecretType.DATABASE_URL),
    _PrefixRule("redis://", SecretType.DATABASE_URL),
)

SECRET_ENV_KEYWORDS: Tuple[str, ...] = (
    "PASSWORD",
    "PASSWD",
    "SECRET",
    "TOKEN",
    "API_KEY",
    "APIKEY",
    "PRIVATE_KEY",
    "ACCESS_KEY",
    "AUTH",
    "CREDENTIAL",
)

_SECRET_TERMINATORS = frozenset(" \t\r\n\"'`;&")

_ENV_ASSIGNMENT = re.compile(
    r"^[ \t]*(?:export[ \t]+)?(?P<name>[A-Za-z_][A-Za-z0-9_]*)[ \t]*=[ \t]*(?P<value>.*)$"
)

_ENTROPY_MIN_LENGTH = 20
_TOKEN = re.compile(r"[^\s\"'`;&]+")


def calculate_entropy(value: str) -> float:
    """Return the Shannon entropy of value in bits per character."""
    if len(value) < 2:
        return 0.0
    length = len(value)
    return -sum(
        (count / length) * math.log2(count / length)
        for count in Counter(value).values()
    )


def contains_secrets(text: str) -> bool:
    """Cheap pre-check: True if text contains any secret marker at all.

    This errs on the side of True; use SecretRedactor.detect() for exact
    spans.
    """
    if any(rule.prefix in text for rule in _PREFIX_RULES):
        return True
    if "=" not in text:
        return False
    upper = text.upper()
    return any(keyword in upper for keyword in SECRET_ENV_KEYWORDS)


def _find_secret_end(text: str, start: int, rule: _PrefixRule) -> int:
    if rule.end_marker is not None:
        marker_pos = text.find(rule.end_marker, start)
        if marker_pos >= 0:
            return marker_pos + len(rule.end_marker)
        # Unterminated key block: everything after the header is key material.
        return len(text)

    end = start + len(rule.prefix)
    if rule.prefix.endswith(" "):
        while end < len(text) and text[end] in " \t":
            end += 1
    while end < len(text) and text[end] not in _SECRET_TERMINATORS:
        end += 1
    return end


def _at_word_start(text: str, pos: int) -> bool:
    return pos == 0 or not text[pos - 1].isalnum()


class SecretRedactor:
    """Finds and masks secrets in arbitrary text.

    The redactor keeps no state between calls and may be shared freely.

    Args:
        label: Replacement text for each redacted region.
        enabled: When False, nothing is detected and text passes through.
        min_entropy: If set, also flag long tokens whose Shannon entropy is
            at least this many bits per character.
        max_secrets: Optional cap on the number of detections returned.
    """

    def __init__(
        self,
        label: str = DEFAULT_LABEL,
        enabled: bool = True,
        min_entropy: Optional[float] = None,
        max_secrets: Optional[int] = None,
    ) -> None:
        self.label = label
        self.enabled = enabled
        self.min_entropy = min_entropy
        self.max_secrets = max_secrets

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    def detect(self, text: str) -> List[DetectedSecret]:
        """Return merged, non-overlapping detections ordered by position."""
        if not self.enabled:
            return []
        merged = _merge(self._scan(text), text)
        if self.max_secrets is not None:
            merged = merged[: self.max_secrets]
        return merged

    def redact(self, text: str) -> str:
        """Return text with every detected secret replaced by the label.

        Text without secrets is returned unchanged.
        """
        if not self.enabled:
            return text
        # max_secrets only caps reporting; every secret is still masked.
        detections = _merge(self._scan(text), text)
        if not detections:
            return text

        parts: List[str] = []
        pos = 0
        for secret in detections:
            parts.append(text[pos:secret.start])
            parts.append(self.label)
            pos = secret.end
        parts.append(text[pos:])
        return "".join(parts)

    def summary(self, text: str) -> Set[SecretType]:
        """Return the distinct categories of secret present in text."""
        if not self.enabled:
            return set()
        return {secret.kind for secret in _merge(self._scan(text), text)}

    # --- Detection passes ---

    def _scan(self, text: str) -> List[DetectedSecret]:
        found = self._scan_prefixes(text)
        found.extend(self._scan_env_assignments(text))
        if self.min_entropy is not None:
            found.extend(self._scan_entropy(text))
        return found

    def _scan_prefixes(self, text: str) -> List[DetectedSecret]:
        found: List[DetectedSecret] = []
        for rule in _PREFIX_RULES:
            pos = 0
            while pos < len(text):
                start = text.find(rule.prefix, pos)
                if start < 0:
                    break
                if rule.word_start and not _at_word_start(text, start):
                    pos = start + 1
                    continue
                end = _find_secret_end(text, start, rule)
                found.append(DetectedSecret(rule.kind, start, end, text[start:end]))
                pos = end
        return found

    def _scan_env_assignments(self, text: str) -> List[DetectedSecret]:
        found: List[DetectedSecret] = []
        line_start = 0
        for line in text.split("\n"):
            offset = line_start
            line_start += len(line) + 1

            stripped = line.lstrip(" \t")
            if not stripped or stripped.startswith("#"):
                continue
            match = _ENV_ASSIGNMENT.match(line)
            if match is None:
                continue
            name = match.group("name").upper()
            if not any(keyword in name for keyword in SECRET_ENV_KEYWORDS):
                continue

            value_start = match.start("value")
            value_end = len(line.rstrip("\r"))
            if value_end > value_start and line[value_start] in "\"'":
                quote = line[value_start]
                close = line.rfind(quote, value_start + 1, value_end)
                if close > value_start:
                    value_start += 1
                    value_end = close
            if value_end <= value_start:
                continue

            found.append(
                DetectedSecret(
                    SecretType.GENERIC_SECRET,
                    offset + value_start,
                    offset + value_end,
                    text[offset + value_start:offset + value_end],
                )
            )
        return found

    def _scan_entropy(self, text: str) -> List[DetectedSecret]:
        found: List[DetectedSecret] = []
        for match in _TOKEN.finditer(text):
            token = match.group(0)
            if len(token) < _ENTROPY_MIN_LENGTH or self.label in token:
                continue
            if calculate_entropy(token) >= self.min_entropy:
                found.append(
                    DetectedSecret(SecretType.GENERIC_SECRET, match.start(), match.end(), token)
                )
        return found


def _merge(detections: List[DetectedSecret], text: str) -> List[DetectedSecret]:
    """Collapse overlapping or touching spans into single detections.

    The merged span keeps the kind of its earliest detection; on a tie the
    more specific (non-generic) kind wins.
    """
    ordered = sorted(
        detections,
        key=lambda s: (s.start, s.kind == SecretType.GENERIC_SECRET, -s.end),
    )
    merged: List[DetectedSecret] = []
    for secret in ordered:
        if secret.end <= secret.start:
            continue
        if merged and secret.start <= merged[-1].end:
            last = merged[-1]
            if secret.end > last.end:
                merged[-1] = DetectedSecret(
                    last.kind, last.start, secret.end, text[last.start:secret.end]
                )
            continue
        merged.append(secret)
    return merged
