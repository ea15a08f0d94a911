"""Repository descriptors: which trees are audited and in what role."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from crossaudit.config_runtime import VALID_ROLES
from crossaudit.pipeline.structures import ConfigurationError
from crossaudit.utils.logging import logger

STATUS_OK = "OK"
STATUS_MISSING = "MISSING_PATH"
STATUS_NOT_DIR = "NOT_A_DIRECTORY"
STATUS_UNREADABLE = "UNREADABLE"

DEFAULT_ROLE = "studio"


@dataclass(frozen=True)
class RepoDescriptor:
    """One audited repository. ``status`` is ``OK`` or the reason it is skipped."""

    name: str
    role: str
    path: Path
    status: str = STATUS_OK

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "role": self.role,
            "path": self.path.as_posix(),
            "status": self.status,
        }


def check_repo_path(path: Path) -> str:
    """Status string for a repository root."""
    if not path.exists():
        return STATUS_MISSING
    if not path.is_dir():
        return STATUS_NOT_DIR
    if not os.access(path, os.R_OK | os.X_OK):
        return STATUS_UNREADABLE
    return STATUS_OK


def parse_repo_option(spec: str) -> dict[str, str]:
    """Parse a ``--repo name=path[:role]`` value.

    The role suffix is only split off when it names a known role, so
    Windows drive letters survive.
    """
    if "=" not in spec:
        raise ConfigurationError(f"Invalid --repo '{spec}': expected name=path[:role]")
    name, rest = spec.split("=", 1)
    role = DEFAULT_ROLE
    head, sep, tail = rest.rpartition(":")
    if sep and tail in VALID_ROLES:
        rest, role = head, tail
    if not name.strip() or not rest.strip():
        raise ConfigurationError(f"Invalid --repo '{spec}': name and path are required")
    return {"name": name.strip(), "path": rest.strip(), "role": role}


def build_repo(entry: dict[str, Any], root: Path) -> RepoDescriptor:
    """Create a descriptor from a config entry, checking the path once."""
    if not isinstance(entry, dict) or "path" not in entry:
        raise ConfigurationError(f"Repository entry must be an object with a 'path': {entry!r}")

    role = entry.get("role", DEFAULT_ROLE)
    if role not in VALID_ROLES:
        raise ConfigurationError(
            f"Unknown role '{role}' for repository {entry.get('name', entry['path'])} "
            f"(expected one of {', '.join(sorted(VALID_ROLES))})"
        )

    path = Path(entry["path"])
    if not path.is_absolute():
        path = (root / path).resolve()
    name = entry.get("name") or path.name

    status = check_repo_path(path)
    if status != STATUS_OK:
        logger.warning(f"Repository {name} at {path} is not usable: {status}")
    return RepoDescriptor(name=name, role=role, path=path, status=status)


def resolve_repos(
    cfg: dict[str, Any], root: Path, cli_specs: tuple[str, ...] | list[str] = ()
) -> tuple[RepoDescriptor, ...]:
    """Resolve the audited repositories.

    ``--repo`` options replace the configured list; with neither, the root
    directory itself is the single repository.
    """
    root = Path(root).resolve()
    if cli_specs:
        entries = [parse_repo_option(spec) for spec in cli_specs]
    elif cfg.get("repos"):
        entries = cfg["repos"]
    else:
        entries = [{"name": root.name or "repo", "path": str(root), "role": DEFAULT_ROLE}]

    repos = [build_repo(entry, root) for entry in entries]

    seen: set[str] = set()
    for repo in repos:
        if repo.name in seen:
            raise ConfigurationError(f"Duplicate repository name: {repo.name}")
        seen.add(repo.name)

    return tuple(repos)
