"""GitHub webhook verification and event parsing."""

from __future__ import annotations

import hashlib
import hmac
import logging

from dataclasses import dataclass
from typing import cast

from stepwise.infrastructure.constants import SIGNATURE_PREFIX
from stepwise.shared.types import CommitSHA

logger = logging.getLogger(__name__)

_SYNCHRONIZE_ACTION = "synchronize"


def verify_signature(payload: bytes, signature: str, secret: str) -> bool:
    """Check an ``X-Hub-Signature-256`` header against the raw request body."""
    if not signature.startswith(SIGNATURE_PREFIX):
        logger.warning("Webhook signature is missing the sha256= prefix")
        return False
    received = signature[len(SIGNATURE_PREFIX) :]
    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, received)


@dataclass(frozen=True)
class PullRequestPush:
    """New commits were pushed to an open pull request."""

    owner: str
    repo: str
    number: int
    head_sha: CommitSHA


def parse_pull_request_push(
    event_type: str, payload: dict[str, object]
) -> PullRequestPush | None:
    """Extract a push from a ``pull_request``/``synchronize`` event.

    Returns None for every other event or action.
    """
    if event_type != "pull_request" or payload.get("action") != _SYNCHRONIZE_ACTION:
        return None
    pr = payload.get("pull_request")
    repository = payload.get("repository")
    if not isinstance(pr, dict) or not isinstance(repository, dict):
        return None
    pr_data = cast(dict[str, object], pr)
    repo_data = cast(dict[str, object], repository)
    head = pr_data.get("head")
    owner = repo_data.get("owner")
    number = pr_data.get("number")
    name = repo_data.get("name")
    if not isinstance(head, dict) or not isinstance(owner, dict):
        return None
    head_sha = cast(dict[str, object], head).get("sha")
    login = cast(dict[str, object], owner).get("login")
    if not (
        isinstance(number, int)
        and isinstance(name, str)
        and isinstance(head_sha, str)
        and isinstance(login, str)
    ):
        return None
    return PullRequestPush(
        owner=login, repo=name, number=number, head_sha=CommitSHA(head_sha)
    )
