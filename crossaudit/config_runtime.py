"""Runtime configuration for crossaudit - centralized configuration management."""

import copy
import json
import os
from pathlib import Path
from typing import Any

from crossaudit.pipeline.structures import ConfigurationError
from crossaudit.utils.constants import (
    DEFAULT_MAX_FILE_SIZE,
    DEFAULT_OUT_DIR,
    DEFAULT_SNIPPET_CHARS,
    ENV_PREFIX,
    STATE_DIR,
)
from crossaudit.utils.logging import logger

DEFAULTS = {
    "paths": {
        "out_dir": str(DEFAULT_OUT_DIR),
    },
    "limits": {
        "max_file_size": DEFAULT_MAX_FILE_SIZE,
        "max_workers": 8,
        "snippet_chars": DEFAULT_SNIPPET_CHARS,
    },
    "timeouts": {
        "runtime_sample": 15,
    },
    "scan": {
        "exclude_dirs": [
            "node_modules",
            "dist",
            "build",
            ".git",
            ".netlify",
            ".next",
            ".sanity",
            "coverage",
            "out",
            ".crossaudit",
        ],
        "code_globs": ["**/*.ts", "**/*.tsx", "**/*.js", "**/*.jsx", "**/*.mjs", "**/*.cjs"],
        "function_globs": ["netlify/functions/**", "api/**", "src/pages/api/**"],
        "schema_globs": ["**/schemaTypes/**", "**/schemas/**"],
    },
    "env": {
        "env_files": [".env", ".env.local", ".env.development", ".env.production", ".env.example"],
    },
    "runtime": {
        "sample_size": 25,
        "api_version": "2024-01-01",
    },
    "enforcement": {
        "phases": {
            "schema-vs-query": "WARN",
            "env-resolution-matrix": "WARN",
            "external-id-integrity": "WARN",
            "functions-audit": "WARN",
        },
        "approved": [],
    },
}

# Phase used for any step not listed in enforcement.phases
DEFAULT_PHASE = "BLOCK"
VALID_PHASES = frozenset({"WARN", "BLOCK"})

VALID_ROLES = frozenset({"studio", "functions", "storefront", "code"})


def _merge_user_config(cfg: dict[str, Any], user: dict[str, Any], source: Path) -> None:
    """Overlay a parsed config file onto ``cfg`` in place.

    Only known keys are taken, and only when the value has the default's type.
    """
    for section, defaults in DEFAULTS.items():
        overrides = user.get(section)
        if not isinstance(overrides, dict):
            continue
        for key, value in overrides.items():
            if key not in defaults:
                logger.warning(f"Ignoring unknown config key {section}.{key} in {source}")
                continue
            if isinstance(defaults[key], dict) and isinstance(value, dict):
                cfg[section][key] = {**cfg[section][key], **value}
            elif isinstance(value, type(defaults[key])):
                cfg[section][key] = value
            else:
                logger.warning(
                    f"Ignoring {section}.{key} in {source}: expected "
                    f"{type(defaults[key]).__name__}, got {type(value).__name__}"
                )

    if "repos" in user:
        if not isinstance(user["repos"], list):
            raise ConfigurationError(f"'repos' in {source} must be a list")
        cfg["repos"] = user["repos"]


def _apply_env_overrides(cfg: dict[str, Any]) -> None:
    for section in DEFAULTS:
        for key, default_value in DEFAULTS[section].items():
            env_var = f"{ENV_PREFIX}_{section.upper()}_{key.upper()}"
            if env_var not in os.environ:
                continue
            value = os.environ[env_var]
            try:
                if isinstance(default_value, bool):
                    cfg[section][key] = value.strip().lower() in ("1", "true", "yes", "on")
                elif isinstance(default_value, int):
                    cfg[section][key] = int(value)
                elif isinstance(default_value, float):
                    cfg[section][key] = float(value)
                elif isinstance(default_value, list):
                    cfg[section][key] = [v.strip() for v in value.split(",") if v.strip()]
                elif isinstance(default_value, dict):
                    # STEP=PHASE pairs, e.g. CROSSAUDIT_ENFORCEMENT_PHASES="schema-vs-query=BLOCK"
                    pairs = dict(
                        item.split("=", 1) for item in value.split(",") if "=" in item
                    )
                    cfg[section][key] = {
                        **cfg[section][key],
                        **{k.strip(): v.strip().upper() for k, v in pairs.items()},
                    }
                else:
                    cfg[section][key] = value
            except (ValueError, AttributeError) as e:
                logger.warning(
                    f"Invalid value for environment variable {env_var}: '{value}' - {e}; "
                    f"using {cfg[section][key]!r}"
                )


def load_runtime_config(root: str | Path = ".", config_path: str | Path | None = None) -> dict[str, Any]:
    """
    Load runtime configuration from .crossaudit/config.json and environment variables.

    Config priority (highest to lowest):
    1. Environment variables (CROSSAUDIT_<SECTION>_<KEY>)
    2. The config file (``config_path`` or <root>/.crossaudit/config.json)
    3. Built-in defaults

    Raises:
        ConfigurationError: an explicitly requested config file is missing
            or malformed, or a phase name is unknown.
    """
    cfg = copy.deepcopy(DEFAULTS)
    cfg["repos"] = []

    explicit = config_path is not None
    path = Path(config_path) if explicit else Path(root) / STATE_DIR.name / "config.json"

    if explicit and not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                user = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            if explicit:
                raise ConfigurationError(f"Could not load config file {path}: {e}") from e
            logger.warning(f"Could not load config file from {path}: {e}")
            logger.info("Continuing with default configuration")
            user = {}

        if isinstance(user, dict):
            _merge_user_config(cfg, user, path)
        elif explicit:
            raise ConfigurationError(f"Config file {path} must contain a JSON object")

    _apply_env_overrides(cfg)

    phases = cfg["enforcement"]["phases"]
    for step, phase in phases.items():
        if str(phase).upper() not in VALID_PHASES:
            raise ConfigurationError(
                f"Unknown enforcement phase '{phase}' for step '{step}' "
                f"(expected one of {', '.join(sorted(VALID_PHASES))})"
            )
        phases[step] = str(phase).upper()

    return cfg


def phase_for(cfg: dict[str, Any], step_name: str) -> str:
    """Enforcement phase of a step: ``WARN`` (advisory) or ``BLOCK``."""
    return cfg["enforcement"]["phases"].get(step_name, DEFAULT_PHASE)
