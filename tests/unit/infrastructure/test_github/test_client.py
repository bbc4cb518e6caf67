"""Tests for the GitHub REST API client."""

from __future__ import annotations

import logging

from unittest.mock import MagicMock, patch

import httpx
import pytest

from stepwise.infrastructure.github.client import GitHubClient
from stepwise.shared.exceptions import (
    ExternalServiceError,
    ReviewCommentRejectedError,
)
from stepwise.shared.types import (
    DiffSide,
    FilePath,
    PullRequestRef,
    PullRequestState,
    ReviewEvent,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def client() -> GitHubClient:
    return GitHubClient(token="test-token")


@pytest.fixture
def ref() -> PullRequestRef:
    return PullRequestRef(owner="acme", repo="widgets", number=42)


def _mock_response(
    status_code: int = 200,
    json_data: object = None,
    text: str = "",
    headers: dict[str, str] | None = None,
) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = json_data if json_data is not None else {}
    resp.text = text
    resp.headers = headers or {}
    return resp


def _patch_httpx(*responses: MagicMock) -> tuple[MagicMock, object]:
    mock_client = MagicMock()
    mock_client.request.side_effect = list(responses)
    mock_client.__enter__ = MagicMock(return_value=mock_client)
    mock_client.__exit__ = MagicMock(return_value=False)
    patcher = patch(
        "stepwise.infrastructure.github.client.httpx.Client",
        return_value=mock_client,
    )
    return mock_client, patcher


# =============================================================================
# Pull requests
# =============================================================================


def test_get_pull_request_maps_fields(client: GitHubClient, ref: PullRequestRef) -> None:
    mock_client, patcher = _patch_httpx(
        _mock_response(
            json_data={
                "title": "Add cache",
                "state": "open",
                "user": {"login": "bob"},
                "head": {"sha": "a" * 40, "ref": "feature"},
                "base": {"sha": "c" * 40, "ref": "main"},
            }
        )
    )

    with patcher:
        pr = client.get_pull_request(ref)

    assert pr.title == "Add cache"
    assert pr.author_login == "bob"
    assert pr.head_sha == "a" * 40
    assert pr.is_open
    method, url = mock_client.request.call_args.args
    assert method == "GET"
    assert url == "https://api.github.com/repos/acme/widgets/pulls/42"
    headers = mock_client.request.call_args.kwargs["headers"]
    assert headers["authorization"] == "Bearer test-token"


def test_merged_pull_request_is_closed(client: GitHubClient, ref: PullRequestRef) -> None:
    _, patcher = _patch_httpx(_mock_response(json_data={"state": "closed"}))

    with patcher:
        pr = client.get_pull_request(ref)

    assert pr.state == PullRequestState.CLOSED


def test_get_diff_and_files_follows_pagination(
    client: GitHubClient, ref: PullRequestRef
) -> None:
    mock_client, patcher = _patch_httpx(
        _mock_response(text="diff --git a/a.py b/a.py\n"),
        _mock_response(
            json_data=[{"filename": "a.py", "status": "modified", "additions": 3}],
            headers={"link": '<https://api.github.com/next?page=2>; rel="next"'},
        ),
        _mock_response(json_data=[{"filename": "b.py", "status": "added"}]),
    )

    with patcher:
        diff, files = client.get_diff_and_files(ref)

    assert diff.startswith("diff --git")
    assert [f.path for f in files] == ["a.py", "b.py"]
    assert files[0].additions == 3
    assert files[1].is_added
    diff_headers = mock_client.request.call_args_list[0].kwargs["headers"]
    assert diff_headers["accept"] == "application/vnd.github.v3.diff"
    assert mock_client.request.call_args_list[2].args[1] == (
        "https://api.github.com/next?page=2"
    )


def test_http_error_becomes_external_service_error(
    client: GitHubClient, ref: PullRequestRef
) -> None:
    _, patcher = _patch_httpx(_mock_response(status_code=502, text="Bad Gateway"))

    with patcher, pytest.raises(ExternalServiceError) as exc_info:
        client.get_pull_request(ref)

    assert exc_info.value.status_code == 502
    assert exc_info.value.service == "GitHub"


def test_transport_error_becomes_external_service_error(
    client: GitHubClient, ref: PullRequestRef
) -> None:
    mock_client, patcher = _patch_httpx()
    mock_client.request.side_effect = httpx.ConnectError("refused")

    with patcher, pytest.raises(ExternalServiceError) as exc_info:
        client.get_pull_request(ref)

    assert exc_info.value.status_code is None


# =============================================================================
# Reviews & comments
# =============================================================================


def test_create_review_sends_event_and_commit(
    client: GitHubClient, ref: PullRequestRef
) -> None:
    mock_client, patcher = _patch_httpx(_mock_response(json_data={"id": 77}))

    with patcher:
        review_id = client.create_review(ref, ReviewEvent.APPROVE, "LGTM", "a" * 40)

    assert review_id == "77"
    payload = mock_client.request.call_args.kwargs["json"]
    assert payload == {"event": "APPROVE", "commit_id": "a" * 40, "body": "LGTM"}


def test_create_review_omits_empty_body(client: GitHubClient, ref: PullRequestRef) -> None:
    mock_client, patcher = _patch_httpx(_mock_response(json_data={"id": 1}))

    with patcher:
        client.create_review(ref, ReviewEvent.COMMENT, "", "a" * 40)

    assert "body" not in mock_client.request.call_args.kwargs["json"]


def test_multi_line_review_comment_sends_start_fields(
    client: GitHubClient, ref: PullRequestRef
) -> None:
    mock_client, patcher = _patch_httpx(_mock_response(json_data={"id": 5}))

    with patcher:
        comment_id = client.create_review_comment(
            ref, "Hmm", "a" * 40, "src/a.py", 14, side=DiffSide.LEFT, start_line=10
        )

    assert comment_id == "5"
    payload = mock_client.request.call_args.kwargs["json"]
    assert payload["side"] == "LEFT"
    assert payload["start_line"] == 10
    assert payload["start_side"] == "LEFT"


def test_single_line_review_comment_defaults_to_right_side(
    client: GitHubClient, ref: PullRequestRef
) -> None:
    mock_client, patcher = _patch_httpx(_mock_response(json_data={"id": 5}))

    with patcher:
        client.create_review_comment(ref, "Hmm", "a" * 40, "src/a.py", 14, start_line=14)

    payload = mock_client.request.call_args.kwargs["json"]
    assert payload["side"] == "RIGHT"
    assert "start_line" not in payload


def test_review_comment_4xx_is_a_rejection(
    client: GitHubClient, ref: PullRequestRef
) -> None:
    _, patcher = _patch_httpx(
        _mock_response(status_code=422, text="pull_request_review_thread.line")
    )

    with patcher, pytest.raises(ReviewCommentRejectedError) as exc_info:
        client.create_review_comment(ref, "Hmm", "a" * 40, "src/a.py", 999)

    assert exc_info.value.status_code == 422


def test_review_comment_5xx_is_not_a_rejection(
    client: GitHubClient, ref: PullRequestRef
) -> None:
    _, patcher = _patch_httpx(_mock_response(status_code=500, text="oops"))

    with patcher, pytest.raises(ExternalServiceError) as exc_info:
        client.create_review_comment(ref, "Hmm", "a" * 40, "src/a.py", 1)

    assert not isinstance(exc_info.value, ReviewCommentRejectedError)


def test_create_issue_comment_posts_body(
    client: GitHubClient, ref: PullRequestRef
) -> None:
    mock_client, patcher = _patch_httpx(_mock_response(json_data={"id": 9}))

    with patcher:
        assert client.create_issue_comment(ref, "Nice") == "9"

    method, url = mock_client.request.call_args.args
    assert method == "POST"
    assert url.endswith("/repos/acme/widgets/issues/42/comments")


# =============================================================================
# Repository contents
# =============================================================================


def test_get_file_content_url_encodes_special_chars(client: GitHubClient) -> None:
    mock_client, patcher = _patch_httpx(_mock_response(text="file content"))

    with patcher:
        content = client.get_file_content(
            "acme", "widgets", FilePath("path with spaces/file#1.py"), "main"
        )

    assert content == "file content"
    url = mock_client.request.call_args.args[1]
    assert "path%20with%20spaces/file%231.py" in url


def test_get_file_content_missing_file_is_none(client: GitHubClient) -> None:
    _, patcher = _patch_httpx(_mock_response(status_code=404, text="Not Found"))

    with patcher:
        assert client.get_file_content("acme", "widgets", FilePath("nope"), "main") is None


def test_get_tree_warns_on_truncation(
    client: GitHubClient, caplog: pytest.LogCaptureFixture
) -> None:
    _, patcher = _patch_httpx(
        _mock_response(
            json_data={
                "tree": [{"path": "src", "type": "tree"}, {"path": "src/a.py", "type": "blob"}],
                "truncated": True,
            }
        )
    )

    with patcher, caplog.at_level(logging.WARNING):
        entries = client.get_tree("acme", "widgets", "main")

    assert [(e.path, e.is_directory) for e in entries] == [
        ("src", True),
        ("src/a.py", False),
    ]
    assert "truncated" in caplog.text


def test_get_default_branch(client: GitHubClient) -> None:
    _, patcher = _patch_httpx(_mock_response(json_data={"default_branch": "develop"}))

    with patcher:
        assert client.get_default_branch("acme", "widgets") == "develop"
