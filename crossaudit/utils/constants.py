"""Centralized constants for the crossaudit utils package.

Single source of truth for paths, artifact names and environment variable
names used across the pipeline.
"""

from pathlib import Path

# ============================================================================
# OUTPUT DIRECTORIES
# ============================================================================

# Per-project working directory (config file, run outputs, error log)
STATE_DIR = Path("./.crossaudit")

DEFAULT_OUT_DIR = STATE_DIR / "out"
ERROR_LOG_NAME = "error.log"

# ============================================================================
# ARTIFACT NAMES
# ============================================================================

SUMMARY_JSON = "summary.json"
SUMMARY_MD = "summary.md"
VERDICT_JSON = "ci-verdict.json"

# ============================================================================
# FILE PROCESSING LIMITS
# ============================================================================

# Maximum file size to analyze (default: 2MB)
DEFAULT_MAX_FILE_SIZE = 2 * 1024 * 1024

# Snippet length captured for findings and integration hits
DEFAULT_SNIPPET_CHARS = 200

# ============================================================================
# ENVIRONMENT VARIABLES
# ============================================================================

ENV_PREFIX = "CROSSAUDIT"

# Document store credentials, first present name wins
SANITY_PROJECT_KEYS = ("SANITY_PROJECT_ID", "SANITY_STUDIO_PROJECT_ID")
SANITY_DATASET_KEYS = ("SANITY_DATASET", "SANITY_STUDIO_DATASET")
SANITY_TOKEN_KEYS = ("SANITY_API_TOKEN", "SANITY_READ_TOKEN", "SANITY_AUTH_TOKEN")
