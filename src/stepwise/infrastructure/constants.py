"""Infrastructure-layer constants and enums.

Eliminates magic strings across all infrastructure modules.
"""

from __future__ import annotations

from enum import StrEnum

# =============================================================================
# PROVIDER CONSTANTS
# =============================================================================


class GitHubAPI(StrEnum):
    """GitHub REST API constants."""

    BASE_URL = "https://api.github.com"
    ACCEPT_JSON = "application/vnd.github.v3+json"
    ACCEPT_DIFF = "application/vnd.github.v3.diff"
    ACCEPT_RAW = "application/vnd.github.v3.raw"
    PROVIDER_NAME = "GitHub"


class GitHubHeader(StrEnum):
    """Webhook request headers."""

    SIGNATURE = "X-Hub-Signature-256"
    EVENT = "X-GitHub-Event"
    DELIVERY = "X-GitHub-Delivery"


FILES_PAGE_SIZE = 100
"""Files per page when listing a pull request's changed files."""

SIGNATURE_PREFIX = "sha256="

# =============================================================================
# LLM
# =============================================================================

LLM_PROVIDER_NAME = "LLM"
