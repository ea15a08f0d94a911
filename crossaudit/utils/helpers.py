"""Helper utility functions shared by indexers, detectors and steps.

IMPORTANT UTILITIES:
- normalize_path(): every path stored in an index or finding goes through
  this so that artifacts are identical on Windows and POSIX hosts.
- write_json(): the only way step artifacts are written. Keys are sorted
  recursively so two runs over the same tree diff cleanly.
"""

import bisect
import json
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .logging import logger


def normalize_path(file_path: str | Path, project_root: Path | str | None = None) -> str:
    """Normalize a file path to forward slashes, optionally relative to a root.

    Examples:
        >>> normalize_path("netlify\\\\functions\\\\stripeWebhook.ts")
        'netlify/functions/stripeWebhook.ts'

        >>> normalize_path("/repo/netlify/functions/a.ts", project_root="/repo")
        'netlify/functions/a.ts'
    """
    normalized = str(file_path).replace("\\", "/")

    if project_root is not None:
        root_str = str(project_root).replace("\\", "/").rstrip("/")

        if normalized.startswith(root_str + "/"):
            normalized = normalized[len(root_str) + 1 :]
        elif normalized == root_str:
            normalized = ""

    return normalized


def unique_sorted(values: Iterable[Any]) -> list:
    """Deduplicate and sort, dropping ``None``."""
    return sorted({value for value in values if value is not None})


class LineIndex:
    """Offset -> line lookups for one file without rescanning the text."""

    def __init__(self, text: str):
        self._starts = [0]
        for pos, char in enumerate(text):
            if char == "\n":
                self._starts.append(pos + 1)

    def line_for(self, index: int) -> int:
        return bisect.bisect_right(self._starts, max(index, 0))


def snippet_at(text: str, index: int, max_chars: int = 200) -> str:
    """Return the stripped source line containing ``index``, truncated."""
    start = text.rfind("\n", 0, index) + 1
    end = text.find("\n", index)
    if end == -1:
        end = len(text)
    return text[start:end].strip()[:max_chars]


def utc_now_iso() -> str:
    """ISO-8601 timestamp used for ``generatedAt`` fields."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def now_stamp() -> str:
    """Filesystem-safe run stamp; lexical order equals chronological order."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


def read_text(file_path: Path) -> str | None:
    """Read a source file as UTF-8, returning None when it cannot be read."""
    try:
        return Path(file_path).read_text(encoding="utf-8", errors="ignore")
    except OSError as e:
        logger.debug(f"Could not read {file_path}: {e}")
        return None


def dump_json(data: Any) -> str:
    """Serialize with recursively sorted keys for diff-friendly artifacts."""
    return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False, default=str) + "\n"


def write_json(file_path: Path, data: Any) -> Path:
    """Write ``data`` as deterministic JSON, creating parent directories."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(dump_json(data), encoding="utf-8")
    return file_path


def write_text(file_path: Path, text: str) -> Path:
    """Write a text artifact, creating parent directories."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(text, encoding="utf-8")
    return file_path


def load_json_file(file_path: str | Path) -> dict[str, Any]:
    """
    Load and parse a JSON file.

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file contains invalid JSON
    """
    try:
        with open(file_path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.error(f"JSON file not found: {file_path}")
        raise
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in file {file_path}: {e}")
        raise
