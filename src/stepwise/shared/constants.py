"""Centralized defaults for Stepwise. Overridable via configuration."""

from __future__ import annotations

# =============================================================================
# JOB QUEUE
# =============================================================================

JOB_MAX_ATTEMPTS = 3
JOB_BACKOFF_BASE_SECONDS = 1.0
JOB_LEASE_SECONDS = 600.0
DEFAULT_WORKER_CONCURRENCY = 4
DEFAULT_POLL_INTERVAL_SECONDS = 1.0

# =============================================================================
# STEP PARTITIONING
# =============================================================================

LARGE_STEP_CHANGED_LINES = 100
MEDIUM_STEP_CHANGED_LINES = 30
HIGH_IMPACT_ADDITIONS = 50
HIGH_IMPACT_TAG = "high-impact"
NEW_FILE_CATEGORY = "New File"
MODIFICATION_CATEGORY = "Modification"

# =============================================================================
# REVIEW SUBMISSION
# =============================================================================

CONVERSATION_BODY_SEPARATOR = "\n\n---\n\n"
APPROVE_PLACEHOLDER_BODY = "Approved. See inline comments."
INLINE_PLACEHOLDER_BODY = "See inline comments."

# =============================================================================
# CHAT
# =============================================================================

CHAT_HISTORY_LIMIT = 10

# =============================================================================
# REPOSITORY CONTEXT
# =============================================================================

REPO_CONTEXT_MAX_FILE_CHARS = 5_000
REPO_CONTEXT_TREE_DEPTH = 2

KEY_REPOSITORY_FILES = (
    "README.md",
    "README",
    "CONTRIBUTING.md",
    "ARCHITECTURE.md",
    "docs/ARCHITECTURE.md",
    "package.json",
    "tsconfig.json",
    "pyproject.toml",
    "requirements.txt",
    "setup.py",
    "setup.cfg",
    "Cargo.toml",
    "go.mod",
    "build.gradle",
    "build.gradle.kts",
    "pom.xml",
    "Gemfile",
    "Dockerfile",
    "docker-compose.yml",
    ".github/workflows/ci.yml",
)

# =============================================================================
# RETRY / TIMEOUTS
# =============================================================================

DEFAULT_TIMEOUT_SECONDS = 120
