"""Environment declaration files (``.env`` and friends).

Only key names and their locations are indexed. Values are read solely to
look up document-store credentials and are never stored in an index or
written to an artifact.
"""

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from crossaudit.repos import RepoDescriptor
from crossaudit.utils.helpers import read_text
from crossaudit.utils.logging import logger

_ASSIGNMENT = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=(.*)$")


def parse_env_text(text: str) -> list[tuple[str, int, str]]:
    """``(key, line_number, value)`` for each assignment; comments skipped."""
    entries = []
    for number, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _ASSIGNMENT.match(line)
        if not match:
            continue
        value = match.group(2).strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        elif " #" in value:
            value = value.split(" #", 1)[0].rstrip()
        entries.append((match.group(1), number, value))
    return entries


@dataclass(frozen=True)
class EnvDeclarations:
    """Declared keys of one repository: env files plus the process environment."""

    repo: str
    file_keys: Mapping[str, tuple[dict[str, Any], ...]] = field(default_factory=dict)
    process_keys: frozenset[str] = frozenset()

    def declared(self) -> frozenset[str]:
        return frozenset(self.file_keys) | self.process_keys

    def __contains__(self, key: str) -> bool:
        return key in self.file_keys or key in self.process_keys

    def locations(self, key: str) -> list[dict[str, Any]]:
        return list(self.file_keys.get(key, ()))

    def source_of(self, key: str) -> str | None:
        """Where the effective value comes from; the process environment wins."""
        if key in self.process_keys:
            return "process"
        if key in self.file_keys:
            return self.file_keys[key][-1]["file"]
        return None


def load_env_declarations(
    repo: RepoDescriptor, env_files: list[str], environ: Mapping[str, str] | None = None
) -> EnvDeclarations:
    environ = os.environ if environ is None else environ
    keys: dict[str, list[dict[str, Any]]] = {}
    if repo.ok:
        for name in env_files:
            path = repo.path / name
            if not path.is_file():
                continue
            text = read_text(path)
            if text is None:
                continue
            for key, line_number, _ in parse_env_text(text):
                keys.setdefault(key, []).append({"file": name, "lineNumber": line_number})
            logger.debug(f"Loaded env declarations from {path}")

    return EnvDeclarations(
        repo=repo.name,
        file_keys={k: tuple(v) for k, v in sorted(keys.items())},
        process_keys=frozenset(environ),
    )


def lookup_env_value(
    candidates: tuple[str, ...],
    repos: tuple[RepoDescriptor, ...],
    env_files: list[str],
    environ: Mapping[str, str] | None = None,
) -> tuple[str, str] | None:
    """First ``(key, value)`` found: process environment, then repo env files in order."""
    environ = os.environ if environ is None else environ
    for key in candidates:
        if environ.get(key):
            return key, environ[key]

    for repo in repos:
        if not repo.ok:
            continue
        for name in env_files:
            path: Path = repo.path / name
            if not path.is_file():
                continue
            values = {k: v for k, _, v in parse_env_text(read_text(path) or "")}
            for key in candidates:
                if values.get(key):
                    return key, values[key]
    return None
