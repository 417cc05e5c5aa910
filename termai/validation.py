"""Risk screening for shell commands suggested by the assistant.

Every command the assistant proposes is validated before the host offers to
run it. Validation assigns an ordered risk tier and collects human-readable
findings:

    safe < low < medium < high < dangerous

All rules are evaluated on every call and the result keeps the highest tier
that fired; later rules never lower it. Rule classes:
- Recursive forced deletion (rm -rf and friends) of root, home or system dirs
- Literal patterns (fork bombs, raw disk writes, world-writable chmod, ...)
- Contextual injection (eval/exec/sh -c immediately followed by a control
  metacharacter)
- Piping downloaded content into a shell
- Path traversal combined with a file-manipulating verb
- Aggregate metacharacter heuristics and command substitution
- Privilege escalation (sudo) and network fetches (curl/wget)
- Optionally, whether the leading executable exists on PATH

Additional literal and contextual rules can be loaded from a YAML file.
"""

import os
import re
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


class RiskLevel(str, Enum):
    """Ordered risk tiers assigned to a command."""

    SAFE = "safe"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    DANGEROUS = "dangerous"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)


_RISK_ORDER = [
    RiskLevel.SAFE,
    RiskLevel.LOW,
    RiskLevel.MEDIUM,
    RiskLevel.HIGH,
    RiskLevel.DANGEROUS,
]


def max_risk(first: RiskLevel, second: RiskLevel) -> RiskLevel:
    """Return the more severe of two risk tiers."""
    return first if first.rank >= second.rank else second


@dataclass
class ValidationResult:
    """Outcome of validating one command."""

    valid: bool = True
    risk_level: RiskLevel = RiskLevel.SAFE
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def flag(self, risk: RiskLevel, message: str, error: bool = False) -> None:
        """Record a finding and raise the risk tier if needed.

        Dangerous findings are reported as errors; hard errors (error=True)
        also make the command invalid regardless of allow_dangerous.
        """
        self.risk_level = max_risk(self.risk_level, risk)
        if error:
            self.errors.append(message)
            self.valid = False
        elif risk == RiskLevel.DANGEROUS:
            self.errors.append(message)
        else:
            self.warnings.append(message)


# Patterns longer than this are never searched; they count as a match.
MAX_PATTERN_LENGTH = 256

# Control characters that turn a bare eval/exec into an injection vector.
_CONTROL_METACHARS = frozenset("|;&`$(){}[]")
_CHAINING_CHARS = frozenset("|;&`$()")
_SHELL_METACHARS = frozenset("|;&`$()<>")

MAX_CHAINING_CHARS = 4
MAX_METACHARS = 3

_FILE_VERBS = ("cat", "rm", "cp", "mv", "chmod", "chown", "ls", "find", "grep", "sed", "awk")

_PIPE_TO_SHELL = re.compile(r"\|\s*(?:sudo\s+)?(?:/\S*/)?(?:sh|bash|zsh)\b")
_SEGMENT_SPLIT = re.compile(r"[;&|]+")
_WHITESPACE_RUN = re.compile(r"[ \t]+")
_ENV_PREFIX = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")

_CRITICAL_TARGETS = frozenset(
    ["/", "/*", "~", "~/", "~/*", "$HOME", "$HOME/", "$HOME/*", "${HOME}", "${HOME}/"]
)
_SYSTEM_DIR = re.compile(
    r"^/(?:bin|boot|dev|etc|home|lib|lib32|lib64|opt|proc|root|sbin|srv|sys|usr|var)(?:/.*)?$"
)

# Commands that exist in every POSIX shell without a binary on PATH.
_SHELL_BUILTINS = frozenset(
    [
        "alias", "bg", "cd", "command", "echo", "eval", "exec", "exit", "export",
        "fg", "jobs", "printf", "pwd", "read", "set", "source", "test", "type",
        "ulimit", "umask", "unalias", "unset", "wait", ".", "[",
    ]
)


@dataclass
class LiteralRule:
    """A substring pattern mapped to a risk tier and message."""

    pattern: str
    risk: RiskLevel
    message: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LiteralRule":
        """Create a LiteralRule from a dictionary (YAML-parsed)."""
        return cls(
            pattern=str(data.get("pattern", "")),
            risk=_parse_risk(data.get("risk", "high")),
            message=data.get("message", "") or "Matched rule: {}".format(data.get("pattern", "")),
        )

    def matches(self, command: str) -> bool:
        if not self.pattern:
            return False
        if len(self.pattern) > MAX_PATTERN_LENGTH:
            return True
        if self.pattern in command:
            return True
        return any(
            "{0}{1}{0}".format(quote, self.pattern) in command for quote in ("'", '"')
        )


@dataclass
class ContextualRule:
    """A pattern that only fires when a control metacharacter follows it."""

    pattern: str
    risk: RiskLevel
    message: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextualRule":
        """Create a ContextualRule from a dictionary (YAML-parsed)."""
        return cls(
            pattern=str(data.get("pattern", "")),
            risk=_parse_risk(data.get("risk", "high")),
            message=data.get("message", "") or "Possible injection: {}".format(data.get("pattern", "")),
        )

    def matches(self, command: str) -> bool:
        if not self.pattern:
            return False
        if len(self.pattern) > MAX_PATTERN_LENGTH:
            return True
        pos = command.find(self.pattern)
        while pos >= 0:
            after = pos + len(self.pattern)
            if after < len(command) and command[after] in _CONTROL_METACHARS:
                return True
            pos = command.find(self.pattern, pos + 1)
        return False


def _parse_risk(value: Any) -> RiskLevel:
    """Parse a tier name; unknown names fail closed to HIGH."""
    try:
        return RiskLevel(str(value).lower())
    except ValueError:
        return RiskLevel.HIGH


DEFAULT_LITERAL_RULES: List[LiteralRule] = [
    LiteralRule(":(){ :|:& };:", RiskLevel.DANGEROUS, "Dangerous: Fork bomb detected"),
    LiteralRule("dd if=", RiskLevel.HIGH, "High risk: Disk operations"),
    LiteralRule("mkfs", RiskLevel.HIGH, "High risk: Filesystem creation"),
    LiteralRule("fdisk", RiskLevel.HIGH, "High risk: Partition operations"),
    LiteralRule("> /dev/sd", RiskLevel.HIGH, "High risk: Writing to block device"),
    LiteralRule("> /dev/nvme", RiskLevel.HIGH, "High risk: Writing to block device"),
    LiteralRule("of=/dev/sd", RiskLevel.HIGH, "High risk: Writing to block device"),
    LiteralRule("of=/dev/nvme", RiskLevel.HIGH, "High risk: Writing to block device"),
    LiteralRule("chmod -R 777", RiskLevel.MEDIUM, "Warning: Recursive permissive permissions"),
    LiteralRule("chmod 777", RiskLevel.MEDIUM, "Warning: Overly permissive permissions"),
]

DEFAULT_CONTEXTUAL_RULES: List[ContextualRule] = [
    ContextualRule("eval ", RiskLevel.HIGH, "High risk: eval with shell control characters"),
    ContextualRule("exec ", RiskLevel.HIGH, "High risk: exec with shell control characters"),
    ContextualRule("sh -c ", RiskLevel.HIGH, "High risk: sh -c with shell control characters"),
    ContextualRule("bash -c ", RiskLevel.HIGH, "High risk: bash -c with shell control characters"),
]


@dataclass
class RuleSet:
    """Literal and contextual rules applied in addition to the built-ins."""

    version: str = "1.0"
    literals: List[LiteralRule] = field(default_factory=list)
    contextual: List[ContextualRule] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuleSet":
        """Create a RuleSet from a dictionary (YAML-parsed)."""
        return cls(
            version=str(data.get("version", "1.0")),
            literals=[LiteralRule.from_dict(r) for r in data.get("literals", []) or []],
            contextual=[ContextualRule.from_dict(r) for r in data.get("contextual", []) or []],
        )


def load_rules(path: str) -> RuleSet:
    """Load extra validation rules from a YAML file.

    Args:
        path: Path to the YAML rule file.

    Returns:
        A RuleSet with the parsed rules.

    Raises:
        FileNotFoundError: If the rule file does not exist.
        ValueError: If the YAML does not hold a mapping at the top level.
    """
    rules_path = Path(path)
    if not rules_path.exists():
        raise FileNotFoundError("Rule file not found: {}".format(path))

    with open(rules_path, "r") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError("Rule file must contain a YAML mapping at the top level")

    return RuleSet.from_dict(raw)


def normalize_command(command: str) -> str:
    """Trim a command and collapse runs of spaces and tabs."""
    return _WHITESPACE_RUN.sub(" ", command.strip())


def _strip_quotes(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"'":
        return token[1:-1]
    return token


def _is_critical_target(target: str) -> bool:
    return target in _CRITICAL_TARGETS or _SYSTEM_DIR.match(target) is not None


def _words(command: str) -> List[str]:
    return [os.path.basename(word) or word for word in command.split()]


class CommandValidator:
    """Screens shell commands and assigns them a risk tier.

    Args:
        enabled: When False, every command is valid and safe.
        allow_dangerous: When True, dangerous-tier findings are reported
            but no longer make the command invalid on their own.
        rules: Extra literal and contextual rules.
        check_command_exists: Also warn when the leading executable cannot
            be found on PATH.
    """

    def __init__(
        self,
        enabled: bool = True,
        allow_dangerous: bool = False,
        rules: Optional[RuleSet] = None,
        check_command_exists: bool = False,
    ) -> None:
        self.enabled = enabled
        self.allow_dangerous = allow_dangerous
        self.check_command_exists = check_command_exists
        extra = rules or RuleSet()
        self._literals = DEFAULT_LITERAL_RULES + extra.literals
        self._contextual = DEFAULT_CONTEXTUAL_RULES + extra.contextual
        self._exists_cache: Dict[str, bool] = {}

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    def set_allow_dangerous(self, allow: bool) -> None:
        self.allow_dangerous = allow

    def validate(self, command: str) -> ValidationResult:
        """Validate a command and return its risk assessment.

        Args:
            command: The shell command as the assistant suggested it.

        Returns:
            A ValidationResult. valid is False when any error finding fired,
            or when the command is dangerous and dangerous commands are not
            allowed.
        """
        result = ValidationResult()
        if not self.enabled:
            return result

        normalized = normalize_command(command)
        if not normalized:
            return result

        self._check_recursive_delete(normalized, result)
        for rule in self._literals:
            if rule.matches(normalized):
                result.flag(rule.risk, rule.message)
        for rule in self._contextual:
            if rule.matches(normalized):
                result.flag(rule.risk, rule.message, error=True)
        self._check_pipe_to_shell(normalized, result)
        self._check_path_traversal(normalized, result)
        self._check_metacharacters(normalized, result)
        self._check_privilege(normalized, result)
        self._check_network(normalized, result)
        if self.check_command_exists:
            self._check_executable(normalized, result)

        if result.risk_level == RiskLevel.DANGEROUS and not self.allow_dangerous:
            result.valid = False
        return result

    # --- Rule checks ---

    def _check_recursive_delete(self, command: str, result: ValidationResult) -> None:
        for segment in _SEGMENT_SPLIT.split(command):
            # Quotes are dropped so that rm inside bash -c "..." is still seen.
            tokens = [token.strip("\"'") for token in segment.split()]
            rm_index = next(
                (i for i, token in enumerate(tokens) if os.path.basename(token) == "rm"),
                None,
            )
            if rm_index is None:
                continue

            recursive = force = False
            targets: List[str] = []
            for token in tokens[rm_index + 1:]:
                if token == "--recursive":
                    recursive = True
                elif token == "--force":
                    force = True
                elif token.startswith("-") and not token.startswith("--"):
                    recursive = recursive or "r" in token or "R" in token
                    force = force or "f" in token
                elif token and not token.startswith("-"):
                    targets.append(token)

            if not (recursive and force):
                continue
            if any(_is_critical_target(target) for target in targets):
                result.flag(
                    RiskLevel.DANGEROUS,
                    "Dangerous: Recursive forced deletion of critical directory",
                )
            else:
                result.flag(RiskLevel.HIGH, "High risk: Recursive forced deletion")

    def _check_pipe_to_shell(self, command: str, result: ValidationResult) -> None:
        if _PIPE_TO_SHELL.search(command):
            result.flag(
                RiskLevel.HIGH, "High risk: Piping content into a shell", error=True
            )

    def _check_path_traversal(self, command: str, result: ValidationResult) -> None:
        if ".." not in command:
            return
        if any(word in _FILE_VERBS for word in _words(command)):
            result.flag(RiskLevel.MEDIUM, "Warning: Path traversal with file operation")

    def _check_metacharacters(self, command: str, result: ValidationResult) -> None:
        chaining = sum(1 for ch in command if ch in _CHAINING_CHARS)
        if chaining > MAX_CHAINING_CHARS:
            result.flag(
                RiskLevel.HIGH, "High risk: Excessive command chaining", error=True
            )
        if "$(" in command or "`" in command:
            result.flag(
                RiskLevel.HIGH, "High risk: Command substitution detected", error=True
            )
        metachars = sum(1 for ch in command if ch in _SHELL_METACHARS)
        if metachars > MAX_METACHARS:
            result.flag(RiskLevel.MEDIUM, "Warning: Multiple shell metacharacters")

    def _check_privilege(self, command: str, result: ValidationResult) -> None:
        words = command.split()
        if "sudo" not in words:
            return
        result.flag(RiskLevel.MEDIUM, "Warning: Command requires elevated privileges")
        index = words.index("sudo")
        if index + 1 < len(words) and os.path.basename(words[index + 1]) == "rm":
            result.flag(RiskLevel.MEDIUM, "Warning: Elevated deletion")

    def _check_network(self, command: str, result: ValidationResult) -> None:
        words = _words(command)
        if "curl" in words or "wget" in words:
            result.flag(RiskLevel.LOW, "Info: Command accesses the network")

    def _check_executable(self, command: str, result: ValidationResult) -> None:
        tokens = _SEGMENT_SPLIT.split(command)[0].split()
        while tokens and (tokens[0] == "sudo" or _ENV_PREFIX.match(tokens[0])):
            tokens = tokens[1:]
        if not tokens:
            return
        name = _strip_quotes(tokens[0])
        if not self._command_exists(name):
            result.flag(RiskLevel.LOW, "Warning: Command not found: {}".format(name))

    def _command_exists(self, name: str) -> bool:
        if name in self._exists_cache:
            return self._exists_cache[name]
        if name in _SHELL_BUILTINS:
            exists = True
        elif "/" in name:
            exists = os.path.isfile(name) and os.access(name, os.X_OK)
        else:
            exists = shutil.which(name) is not None
        self._exists_cache[name] = exists
        return exists
