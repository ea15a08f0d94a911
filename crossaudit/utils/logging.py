"""Loguru configuration for crossaudit.

Usage:
    from crossaudit.utils.logging import logger
    logger.info("Message")
    step_logger("schema-index").warning("...")  # adds "step" to JSON records

Environment Variables:
    CROSSAUDIT_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO)
    CROSSAUDIT_LOG_JSON: 0|1 (default: 0, human-readable)
    CROSSAUDIT_LOG_FILE: path to an NDJSON log file (optional)
    CROSSAUDIT_REQUEST_ID: correlation ID attached to every JSON record

The audit reads env files that hold provider credentials, so every message
is masked by ``redact_secrets`` before any sink sees it.
"""

import json
import os
import re
import sys
import uuid
from pathlib import Path

from loguru import logger

PINO_LEVELS = {
    "TRACE": 10,
    "DEBUG": 20,
    "INFO": 30,
    "SUCCESS": 30,
    "WARNING": 40,
    "ERROR": 50,
    "CRITICAL": 60,
}

# Provider credential shapes: Stripe keys and webhook secrets, Resend,
# EasyPost, Sanity tokens, and bearer headers.
SECRET_PATTERNS = (
    re.compile(r"\b(?:sk|rk|pk)_(?:live|test)_[A-Za-z0-9]{8,}"),
    re.compile(r"\bwhsec_[A-Za-z0-9]{8,}"),
    re.compile(r"\bre_[A-Za-z0-9_]{16,}"),
    re.compile(r"\bEZ[AT]K[A-Za-z0-9]{16,}"),
    re.compile(r"\bsk[A-Za-z0-9]{40,}"),
    re.compile(r"(?<=Bearer )[A-Za-z0-9._~+/=-]{8,}"),
)
REDACTED = "[redacted]"

_log_level = os.environ.get("CROSSAUDIT_LOG_LEVEL", "INFO").upper()
_json_mode = os.environ.get("CROSSAUDIT_LOG_JSON", "0") == "1"
_log_file = os.environ.get("CROSSAUDIT_LOG_FILE")
_request_id = os.environ.get("CROSSAUDIT_REQUEST_ID") or str(uuid.uuid4())

_human_format = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[step]}</cyan> - "
    "<level>{message}</level>"
)
_file_format = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[step]} | {name}:{function}:{line} - {message}"


def redact(text: str) -> str:
    for pattern in SECRET_PATTERNS:
        text = pattern.sub(REDACTED, text)
    return text


def redact_secrets(record) -> None:
    """Patcher: mask credential-shaped substrings in the message."""
    record["message"] = redact(record["message"])


def _pino_record(record) -> dict:
    """Build a Pino-shaped dict from a loguru record."""
    pino_log = {
        "level": PINO_LEVELS.get(record["level"].name, 30),
        "time": int(record["time"].timestamp() * 1000),
        "msg": record["message"],
        "pid": record["process"].id,
        "request_id": record["extra"].get("request_id", _request_id),
    }
    for key, value in record["extra"].items():
        if key == "step" and value == "-":
            continue
        if key != "request_id":
            pino_log[key] = value

    if record["exception"]:
        pino_log["err"] = {
            "type": record["exception"].type.__name__ if record["exception"].type else "Error",
            "message": redact(str(record["exception"].value)) if record["exception"].value else "",
        }
    return pino_log


def _ndjson_line(message) -> str:
    return json.dumps(_pino_record(message.record), default=str) + "\n"


def pino_compatible_sink(message):
    """NDJSON on stdout. Never call logger.* inside a sink."""
    sys.stdout.write(_ndjson_line(message))
    sys.stdout.flush()


def _file_pino_sink(message):
    with open(_log_file, "a", encoding="utf-8") as f:
        f.write(_ndjson_line(message))


logger.remove()
logger.configure(extra={"step": "-"}, patcher=redact_secrets)

logger.level("DEBUG", color="<blue>")
logger.level("WARNING", color="<yellow>")
logger.level("ERROR", color="<red>")

if _json_mode:
    logger.add(pino_compatible_sink, level=_log_level, colorize=False)
else:
    logger.add(sys.stderr, level=_log_level, format=_human_format, colorize=None)

if _log_file:
    logger.add(_file_pino_sink, level="DEBUG")


def step_logger(step: str):
    """Logger bound to one pipeline step."""
    return logger.bind(step=step)


def configure_file_logging(log_dir: Path, level: str = "DEBUG") -> int:
    """Add a human-readable ``crossaudit.log`` inside a run directory.

    Returns the handler id so callers can detach it once a run finishes.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    return logger.add(
        log_dir / "crossaudit.log",
        rotation="10 MB",
        retention="7 days",
        level=level,
        format=_file_format,
        encoding="utf-8",
    )


def get_request_id() -> str:
    """Get the current request ID for correlation."""
    return _request_id


__all__ = [
    "logger",
    "configure_file_logging",
    "get_request_id",
    "redact",
    "step_logger",
]
