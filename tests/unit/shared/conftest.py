"""Fixtures for shared kernel tests."""

from __future__ import annotations

import pytest

from stepwise.shared.types import CommitSHA, PullRequestRef


@pytest.fixture
def commit_sha() -> CommitSHA:
    return CommitSHA("a1b2c3d4e5f6")


@pytest.fixture
def pull_request_ref() -> PullRequestRef:
    return PullRequestRef(owner="acme", repo="widgets", number=42)
