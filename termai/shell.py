"""Host shell detection and shell-specific prompt context.

The assistant's system prompt is suffixed with instructions for the shell
the user is actually running, so suggested commands use the right syntax.
"""

import os
from enum import Enum
from typing import Dict, Mapping, Optional


class Shell(str, Enum):
    """Shells the assistant knows how to target."""

    BASH = "bash"
    ZSH = "zsh"
    FISH = "fish"
    NUSHELL = "nushell"
    PWSH = "pwsh"
    CMD = "cmd"
    SH = "sh"
    UNKNOWN = "unknown"


_EXECUTABLE_NAMES: Dict[str, Shell] = {
    "bash": Shell.BASH,
    "zsh": Shell.ZSH,
    "fish": Shell.FISH,
    "nu": Shell.NUSHELL,
    "nushell": Shell.NUSHELL,
    "pwsh": Shell.PWSH,
    "powershell": Shell.PWSH,
    "cmd": Shell.CMD,
    "sh": Shell.SH,
    "dash": Shell.SH,
    "ash": Shell.SH,
}

_SHELL_PROMPTS: Dict[Shell, str] = {
    Shell.BASH: (
        "The user's shell is bash. Suggest POSIX-compatible bash commands; "
        "bash-specific features such as [[ ]], arrays and $(...) are available."
    ),
    Shell.ZSH: (
        "The user's shell is zsh. Suggest commands compatible with zsh; "
        "bash-style syntax generally works, and zsh globbing is available."
    ),
    Shell.FISH: (
        "The user's shell is fish. Use fish syntax: (command) for substitution, "
        "set VAR value for variables, and 'and'/'or' instead of &&/||."
    ),
    Shell.NUSHELL: (
        "The user's shell is nushell. Use nushell pipelines and structured "
        "data commands; POSIX syntax such as $(...) is not supported."
    ),
    Shell.PWSH: (
        "The user's shell is PowerShell. Use PowerShell cmdlets and syntax "
        "(Get-ChildItem, $env:VAR, ForEach-Object) rather than POSIX commands."
    ),
    Shell.CMD: (
        "The user's shell is Windows cmd.exe. Use cmd syntax (%VAR%, dir, copy) "
        "and avoid POSIX-only commands."
    ),
    Shell.SH: (
        "The user's shell is a POSIX sh. Suggest strictly POSIX commands "
        "without bash extensions."
    ),
    Shell.UNKNOWN: (
        "The user's shell could not be detected. Prefer portable POSIX sh "
        "commands and mention any shell-specific assumptions."
    ),
}


def shell_from_path(path: str) -> Shell:
    """Map a shell executable path (e.g. /usr/bin/zsh) to a Shell."""
    name = os.path.basename(path.strip().replace("\\", "/")).lower()
    if name.endswith(".exe"):
        name = name[: -len(".exe")]
    return _EXECUTABLE_NAMES.get(name, Shell.UNKNOWN)


def detect_shell(environ: Optional[Mapping[str, str]] = None) -> Shell:
    """Detect the user's shell from environment variables.

    $SHELL is authoritative when present. Without it, PowerShell and cmd
    are recognised from their Windows environment markers.

    Args:
        environ: Environment mapping to inspect; defaults to os.environ.

    Returns:
        The detected Shell, or Shell.UNKNOWN.
    """
    env = os.environ if environ is None else environ

    shell_path = env.get("SHELL", "")
    if shell_path:
        return shell_from_path(shell_path)

    if env.get("PSModulePath"):
        return Shell.PWSH
    if env.get("ComSpec"):
        return shell_from_path(env["ComSpec"])
    return Shell.UNKNOWN


def shell_prompt(shell: Shell) -> str:
    """Return the system-prompt suffix describing the given shell."""
    return _SHELL_PROMPTS[shell]
