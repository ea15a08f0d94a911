"""Repository File Scanner.

Walks each usable repository once and tags every candidate source file with
the roles it plays:

- ``code``: any JS/TS source file
- ``functions``: code under a serverless-function location
- ``schema``: code under a schema-definition location

Dependency folders, build output and VCS metadata are always skipped.
"""

import fnmatch
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from crossaudit.repos import RepoDescriptor
from crossaudit.utils.helpers import normalize_path, read_text
from crossaudit.utils.logging import logger

ROLE_CODE = "code"
ROLE_FUNCTIONS = "functions"
ROLE_SCHEMA = "schema"

ALWAYS_SKIP_DIRS = frozenset(
    {"node_modules", "dist", "build", ".git", ".netlify", ".next", ".sanity", "coverage", "out"}
)


@lru_cache(maxsize=256)
def _glob_regex(pattern: str) -> re.Pattern:
    """Translate a ``**``-aware glob into a regex over posix paths."""
    out = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(out) + "$")


def glob_match(path: str, pattern: str) -> bool:
    """Match a posix relative path against a glob where ``**`` spans directories."""
    return bool(_glob_regex(pattern).match(path))


@dataclass(frozen=True)
class SourceFile:
    """A scanned file. ``path`` is repo-relative and posix-normalized."""

    repo: str
    repo_role: str
    path: str
    abs_path: Path
    roles: frozenset[str]

    def read(self) -> str:
        return read_text(self.abs_path) or ""

    def to_dict(self) -> dict[str, Any]:
        return {"repo": self.repo, "path": self.path, "roles": sorted(self.roles)}


@dataclass(frozen=True)
class FileSet:
    """Immutable scan output shared by every step."""

    files: tuple[SourceFile, ...]
    skipped_repos: tuple[str, ...] = ()

    def with_role(self, role: str) -> list[SourceFile]:
        return [f for f in self.files if role in f.roles]

    def for_repo(self, repo: str, role: str | None = None) -> list[SourceFile]:
        return [f for f in self.files if f.repo == repo and (role is None or role in f.roles)]

    def visited(self) -> frozenset[tuple[str, str]]:
        return frozenset((f.repo, f.path) for f in self.files)

    def __len__(self) -> int:
        return len(self.files)


class FileScanner:
    """Walks repository roots applying role globs and directory exclusions."""

    def __init__(self, config: dict[str, Any], exclude_patterns: list[str] | None = None):
        scan = config["scan"]
        self.max_file_size = config["limits"]["max_file_size"]
        self.skip_dirs = ALWAYS_SKIP_DIRS | frozenset(scan["exclude_dirs"])
        self.code_globs = list(scan["code_globs"])
        self.function_globs = list(scan["function_globs"])
        self.schema_globs = list(scan["schema_globs"])
        self.exclude_patterns = exclude_patterns or []
        self.stats = {"total_files": 0, "large_files": 0, "skipped_dirs": 0, "matched_files": 0}

    def _roles_for(self, rel_path: str) -> frozenset[str]:
        if not any(glob_match(rel_path, g) for g in self.code_globs):
            return frozenset()
        roles = {ROLE_CODE}
        if any(glob_match(rel_path, g) for g in self.function_globs):
            roles.add(ROLE_FUNCTIONS)
        if any(glob_match(rel_path, g) for g in self.schema_globs):
            roles.add(ROLE_SCHEMA)
        return frozenset(roles)

    def _excluded(self, rel_path: str) -> bool:
        name = rel_path.rsplit("/", 1)[-1]
        return any(
            fnmatch.fnmatch(name, pattern) or glob_match(rel_path, pattern)
            for pattern in self.exclude_patterns
        )

    def scan_repo(self, repo: RepoDescriptor) -> list[SourceFile]:
        """Files of one repository; an unusable repository yields nothing."""
        if not repo.ok:
            logger.info(f"Skipping repository {repo.name}: {repo.status}")
            return []

        files: dict[str, SourceFile] = {}
        for dirpath, dirnames, filenames in os.walk(repo.path):
            skipped = [d for d in dirnames if d in self.skip_dirs]
            self.stats["skipped_dirs"] += len(skipped)
            dirnames[:] = sorted(d for d in dirnames if d not in self.skip_dirs)

            if not os.access(dirpath, os.R_OK):
                continue

            for filename in filenames:
                self.stats["total_files"] += 1
                file = Path(dirpath) / filename
                rel_path = normalize_path(file.relative_to(repo.path).as_posix())

                roles = self._roles_for(rel_path)
                if not roles or self._excluded(rel_path):
                    continue

                try:
                    if file.is_symlink() or file.stat().st_size >= self.max_file_size:
                        self.stats["large_files"] += 1
                        continue
                except OSError:
                    continue

                files[rel_path] = SourceFile(
                    repo=repo.name,
                    repo_role=repo.role,
                    path=rel_path,
                    abs_path=file,
                    roles=roles,
                )

        self.stats["matched_files"] += len(files)
        return [files[p] for p in sorted(files)]

    def scan(self, repos: tuple[RepoDescriptor, ...]) -> FileSet:
        collected: list[SourceFile] = []
        for repo in repos:
            collected.extend(self.scan_repo(repo))
        skipped = tuple(sorted(r.name for r in repos if not r.ok))
        logger.debug(f"Scanner stats: {self.stats}")
        return FileSet(files=tuple(collected), skipped_repos=skipped)
