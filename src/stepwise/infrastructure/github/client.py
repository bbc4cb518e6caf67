"""GitHub REST API client."""

from __future__ import annotations

import logging
import re
import urllib.parse

from dataclasses import dataclass
from typing import cast

import httpx

from stepwise.domain.review.value_objects import (
    FileChange,
    RemotePullRequest,
    TreeEntry,
)
from stepwise.infrastructure.constants import FILES_PAGE_SIZE, GitHubAPI
from stepwise.shared.constants import DEFAULT_TIMEOUT_SECONDS
from stepwise.shared.exceptions import (
    ExternalServiceError,
    ReviewCommentRejectedError,
)
from stepwise.shared.types import (
    CommitSHA,
    DiffSide,
    FilePath,
    PullRequestRef,
    PullRequestState,
    ReviewEvent,
)

logger = logging.getLogger(__name__)

_LINK_NEXT_RE = re.compile(r'<([^>]+)>;\s*rel="next"')

_STATUS_OK_MAX = 299
_STATUS_CLIENT_ERROR_MAX = 499
_STATUS_NOT_FOUND = 404


def _next_page_url(response: httpx.Response) -> str | None:
    """Extract the next page URL from a GitHub ``Link`` header."""
    link = response.headers.get("link", "")
    match = _LINK_NEXT_RE.search(link)
    return match.group(1) if match else None


def _nested_str(data: dict[str, object], key: str, field: str) -> str:
    nested = data.get(key)
    if isinstance(nested, dict):
        value = cast(dict[str, object], nested).get(field)
        if isinstance(value, str):
            return value
    return ""


def _is_client_error(status_code: int | None) -> bool:
    return status_code is not None and _STATUS_OK_MAX < status_code <= (
        _STATUS_CLIENT_ERROR_MAX
    )


# =============================================================================
# CLIENT
# =============================================================================


@dataclass
class GitHubClient:
    """Thin wrapper around the GitHub REST API.

    Every transport failure or non-2xx response surfaces as
    ``ExternalServiceError`` carrying the HTTP status when there was one.
    """

    token: str
    base_url: str = GitHubAPI.BASE_URL
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    # =================================================================
    # Pull requests
    # =================================================================

    def get_pull_request(self, ref: PullRequestRef) -> RemotePullRequest:
        """Fetch PR metadata, including the current head commit.

        Raises:
            ExternalServiceError: If the API call fails.
        """
        data = self._get(f"{self._repo_path(ref)}/pulls/{ref.number}")
        state = (
            PullRequestState.OPEN
            if data.get("state") == "open"
            else PullRequestState.CLOSED
        )
        return RemotePullRequest(
            number=ref.number,
            title=str(data.get("title", "")),
            author_login=_nested_str(data, "user", "login"),
            state=state,
            head_sha=CommitSHA(_nested_str(data, "head", "sha")),
            head_ref=_nested_str(data, "head", "ref"),
            base_sha=CommitSHA(_nested_str(data, "base", "sha")),
            base_ref=_nested_str(data, "base", "ref"),
        )

    def get_diff_and_files(self, ref: PullRequestRef) -> tuple[str, list[FileChange]]:
        """Fetch the unified diff and per-file metadata for a PR.

        Raises:
            ExternalServiceError: If either API call fails.
        """
        pulls = f"{self._repo_path(ref)}/pulls/{ref.number}"
        headers = self._headers()
        headers["accept"] = GitHubAPI.ACCEPT_DIFF
        diff = self._send("GET", f"{self.base_url}{pulls}", headers).text

        raw_files = self._get_list(f"{pulls}/files?per_page={FILES_PAGE_SIZE}")
        files = [FileChange.from_dict(self._file_fields(f)) for f in raw_files]
        logger.info("Fetched diff for %s: %d file(s)", ref, len(files))
        return diff, files

    def create_review(
        self,
        ref: PullRequestRef,
        event: ReviewEvent,
        body: str,
        commit_sha: str,
    ) -> str:
        """Submit a formal review and return its id.

        Raises:
            ExternalServiceError: If the API call fails.
        """
        payload: dict[str, object] = {"event": str(event), "commit_id": commit_sha}
        if body:
            payload["body"] = body
        data = self._post_json(
            f"{self._repo_path(ref)}/pulls/{ref.number}/reviews", payload
        )
        return str(data.get("id", ""))

    def create_issue_comment(self, ref: PullRequestRef, body: str) -> str:
        """Post a conversation comment on a PR and return its id.

        Raises:
            ExternalServiceError: If the API call fails.
        """
        data = self._post_json(
            f"{self._repo_path(ref)}/issues/{ref.number}/comments", {"body": body}
        )
        return str(data.get("id", ""))

    def create_review_comment(
        self,
        ref: PullRequestRef,
        body: str,
        commit_sha: str,
        path: str,
        line: int,
        side: DiffSide | None = None,
        start_line: int | None = None,
        start_side: DiffSide | None = None,
    ) -> str:
        """Attach a comment to a line (or line range) of the PR diff.

        Raises:
            ReviewCommentRejectedError: If GitHub refuses the comment, e.g.
                because the line is not part of the diff.
            ExternalServiceError: On transport or server failures.
        """
        payload: dict[str, object] = {
            "body": body,
            "commit_id": commit_sha,
            "path": path,
            "line": line,
            "side": str(side or DiffSide.RIGHT),
        }
        if start_line is not None and start_line != line:
            payload["start_line"] = start_line
            payload["start_side"] = str(start_side or side or DiffSide.RIGHT)
        try:
            data = self._post_json(
                f"{self._repo_path(ref)}/pulls/{ref.number}/comments", payload
            )
        except ExternalServiceError as e:
            if _is_client_error(e.status_code):
                raise ReviewCommentRejectedError(
                    e.service, e.reason, e.status_code
                ) from e
            raise
        return str(data.get("id", ""))

    # =================================================================
    # Repository contents
    # =================================================================

    def get_default_branch(self, owner: str, repo: str) -> str:
        """Fetch a repository's default branch name.

        Raises:
            ExternalServiceError: If the API call fails.
        """
        data = self._get(f"/repos/{owner}/{repo}")
        return str(data.get("default_branch", "main"))

    def get_tree(self, owner: str, repo: str, ref: str) -> list[TreeEntry]:
        """Fetch the full file tree at a ref (recursive).

        Raises:
            ExternalServiceError: If the API call fails.
        """
        encoded_ref = urllib.parse.quote(ref, safe="")
        data = self._get(f"/repos/{owner}/{repo}/git/trees/{encoded_ref}?recursive=1")
        if data.get("truncated"):
            logger.warning(
                "GitHub tree response was truncated for %s/%s@%s", owner, repo, ref
            )
        tree = data.get("tree")
        if not isinstance(tree, list):
            return []
        entries: list[TreeEntry] = []
        for raw in cast(list[object], tree):
            if not isinstance(raw, dict):
                continue
            item = cast(dict[str, object], raw)
            path = item.get("path")
            if isinstance(path, str) and path:
                entries.append(TreeEntry(path=path, is_directory=item.get("type") == "tree"))
        return entries

    def get_file_content(
        self, owner: str, repo: str, path: FilePath, ref: str
    ) -> str | None:
        """Fetch raw file content at a ref, or None if the file does not exist.

        Raises:
            ExternalServiceError: If the API call fails for another reason.
        """
        encoded_path = urllib.parse.quote(str(path), safe="/")
        url = f"{self.base_url}/repos/{owner}/{repo}/contents/{encoded_path}"
        headers = self._headers()
        headers["accept"] = GitHubAPI.ACCEPT_RAW
        try:
            response = self._send("GET", f"{url}?ref={ref}", headers)
        except ExternalServiceError as e:
            if e.status_code == _STATUS_NOT_FOUND:
                return None
            raise
        return response.text

    # =================================================================
    # HTTP helpers
    # =================================================================

    def _repo_path(self, ref: PullRequestRef) -> str:
        return f"/repos/{ref.owner}/{ref.repo}"

    def _file_fields(self, raw: dict[str, object]) -> dict[str, object]:
        return {
            "path": raw.get("filename", ""),
            "status": raw.get("status", "modified"),
            "additions": raw.get("additions", 0),
            "deletions": raw.get("deletions", 0),
            "patch": raw.get("patch"),
        }

    def _get(self, path: str) -> dict[str, object]:
        response = self._send("GET", f"{self.base_url}{path}", self._headers())
        return response.json()  # type: ignore[no-any-return]

    def _get_list(self, path: str) -> list[dict[str, object]]:
        url: str | None = f"{self.base_url}{path}"
        all_items: list[dict[str, object]] = []
        while url is not None:
            response = self._send("GET", url, self._headers())
            data = response.json()
            if isinstance(data, list):
                all_items.extend(cast(list[dict[str, object]], data))
            url = _next_page_url(response)
        return all_items

    def _post_json(self, path: str, payload: dict[str, object]) -> dict[str, object]:
        """POST and return the response JSON body."""
        response = self._send(
            "POST", f"{self.base_url}{path}", self._headers(), payload
        )
        return response.json()  # type: ignore[no-any-return]

    def _send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        payload: dict[str, object] | None = None,
    ) -> httpx.Response:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.request(method, url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise ExternalServiceError(GitHubAPI.PROVIDER_NAME, str(e)) from e

        if response.status_code > _STATUS_OK_MAX:
            raise ExternalServiceError(
                GitHubAPI.PROVIDER_NAME,
                f"HTTP {response.status_code}: {response.text}",
                response.status_code,
            )
        return response

    def _headers(self) -> dict[str, str]:
        return {
            "authorization": f"Bearer {self.token}",
            "accept": GitHubAPI.ACCEPT_JSON,
        }
