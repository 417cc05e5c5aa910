"""Logging for the terminal assistant.

Emits log records to stdout and appends them to an append-only log file.
Chat calls are additionally recorded as one JSON line each. Records carry
provider labels, models and outcomes only; prompt text and keys are never
logged.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("termai")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def parse_log_level(name: str) -> int:
    """Map a level name such as "info" or "DEBUG" to its logging constant.

    Raises:
        ValueError: If the name is not a standard logging level.
    """
    level = logging.getLevelName(str(name).upper())
    if not isinstance(level, int):
        raise ValueError("Unknown log level: {}".format(name))
    return level


def setup_logging(log_file: str, level: str = "INFO") -> None:
    """Attach stdout and append-only file handlers to the termai logger.

    Handlers are attached on the first call only; later calls just adjust
    the level.

    Args:
        log_file: Path to the append-only log file.
        level: Logging level name from the assistant config.
    """
    logger.setLevel(parse_log_level(level))
    if logger.handlers:
        return

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    for handler in (
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(log_path, mode="a", encoding="utf-8"),
    ):
        handler.setFormatter(formatter)
        logger.addHandler(handler)


def log_request(
    *,
    profile: str,
    provider: Optional[str],
    model: str,
    outcome: str,
    streamed: bool = False,
    redacted: bool = False,
    error: Optional[str] = None,
    request_id: Optional[str] = None
) -> None:
    """Log a single chat call.

    Args:
        profile: The configured profile used for the call.
        provider: Provider label (None if the profile could not be resolved).
        model: Model name sent to the provider.
        outcome: Short outcome label (e.g. "success", "provider_error").
        streamed: True for streaming calls.
        redacted: True if secrets were removed from the prompt.
        error: Error message if the call failed.
        request_id: Service-assigned request ID.
    """
    record: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id,
        "profile": profile,
        "provider": provider,
        "model": model,
        "outcome": outcome,
        "streamed": streamed,
        "redacted": redacted,
    }

    if error:
        record["error"] = error

    logger.info(json.dumps(record))
