"""crossaudit utilities package."""

from .constants import (
    DEFAULT_OUT_DIR,
    ERROR_LOG_NAME,
    STATE_DIR,
    SUMMARY_JSON,
    SUMMARY_MD,
    VERDICT_JSON,
)
from .error_handler import handle_exceptions
from .exit_codes import ExitCodes
from .helpers import (
    load_json_file,
    normalize_path,
    unique_sorted,
    write_json,
    write_text,
)
from .logging import logger

__all__ = [
    "STATE_DIR",
    "DEFAULT_OUT_DIR",
    "ERROR_LOG_NAME",
    "SUMMARY_JSON",
    "SUMMARY_MD",
    "VERDICT_JSON",
    "handle_exceptions",
    "ExitCodes",
    "load_json_file",
    "normalize_path",
    "unique_sorted",
    "write_json",
    "write_text",
    "logger",
]
