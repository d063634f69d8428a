"""Create or close merge-blocker issues for a branch."""

from __future__ import annotations

import json
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any

MERGE_BLOCKER_LABEL = "tide/merge-blocker"
GITHUB_API_URL = "https://api.github.com"


@dataclass(frozen=True)
class RepoInfo:
    """Owner and name of a repository."""

    owner: str
    repo: str


@dataclass
class Issue:
    """An issue as returned by the issue tracker."""

    title: str = ""
    number: int | None = None
    state: str | None = None
    labels: list[str] = field(default_factory=list)
    html_url: str = ""

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Issue:
        return cls(
            title=data.get("title") or "",
            number=data.get("number"),
            state=data.get("state"),
            labels=[label["name"] for label in data.get("labels") or []],
            html_url=data.get("html_url") or "",
        )


@dataclass
class IssueRequest:
    """Fields sent when creating or editing an issue."""

    title: str
    labels: list[str]
    state: str

    def to_json(self) -> dict[str, Any]:
        return {"title": self.title, "labels": list(self.labels), "state": self.state}


class MergeBlockerError(Exception):
    """Raised when a merge blocker cannot be managed."""


class IssuesService:
    """Issue operations against the GitHub REST API."""

    def __init__(self, token: str, base_url: str = GITHUB_API_URL, timeout: float = 30.0) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> Any:
        data = json.dumps(body).encode() if body is not None else None
        request = urllib.request.Request(
            self.base_url + path,
            data=data,
            method=method,
            headers={
                "Authorization": f"token {self.token}",
                "Accept": "application/vnd.github.v3+json",
                "Content-Type": "application/json",
            },
        )
        with urllib.request.urlopen(request, timeout=self.timeout) as response:
            return json.loads(response.read().decode() or "null")

    def _issues_path(self, owner: str, repo: str) -> str:
        return f"/repos/{urllib.parse.quote(owner)}/{urllib.parse.quote(repo)}/issues"

    def list_by_repo(self, owner: str, repo: str, state: str, labels: list[str]) -> list[Issue]:
        """List the repository's issues in ``state`` carrying all ``labels``."""
        query = urllib.parse.urlencode({"state": state, "labels": ",".join(labels)})
        payload = self._request("GET", f"{self._issues_path(owner, repo)}?{query}")
        return [Issue.from_json(item) for item in payload or []]

    def create(self, owner: str, repo: str, request: IssueRequest) -> Issue:
        """Open a new issue."""
        return Issue.from_json(self._request("POST", self._issues_path(owner, repo), request.to_json()))

    def edit(self, owner: str, repo: str, number: int, request: IssueRequest) -> Issue:
        """Update an existing issue."""
        path = f"{self._issues_path(owner, repo)}/{number}"
        return Issue.from_json(self._request("PATCH", path, request.to_json()))


def search_merge_blockers(client: IssuesService, repo_info: RepoInfo, branch: str) -> Issue | None:
    """Return the open merge-blocker issue for ``branch``, or None."""
    issues = client.list_by_repo(repo_info.owner, repo_info.repo, "open", [MERGE_BLOCKER_LABEL])
    marker = f"branch:{branch}"
    return next((issue for issue in issues if marker in issue.title), None)


def create_merge_blocker(client: IssuesService, repo_info: RepoInfo, branch: str) -> Issue:
    """Open a merge blocker for ``branch`` unless one already exists."""
    existing = search_merge_blockers(client, repo_info, branch)
    if existing is not None:
        print(f"Merge blocker issue is already created: {existing.html_url}")
        return existing
    request = IssueRequest(
        title=f"Merge Blocker|branch:{branch}",
        labels=[MERGE_BLOCKER_LABEL],
        state="open",
    )
    created = client.create(repo_info.owner, repo_info.repo, request)
    print(f"Merge blocker issue created: {created.html_url}")
    return created


def close_merge_blocker(client: IssuesService, repo_info: RepoInfo, branch: str) -> Issue:
    """Close the merge blocker for ``branch``; raise if there is none."""
    existing = search_merge_blockers(client, repo_info, branch)
    if existing is None:
        raise MergeBlockerError(f"no merge blocker issue for the given branch: {branch}")
    if existing.number is None:
        raise MergeBlockerError(f"merge blocker issue for branch {branch} has no number")
    request = IssueRequest(title=existing.title, labels=[MERGE_BLOCKER_LABEL], state="closed")
    updated = client.edit(repo_info.owner, repo_info.repo, existing.number, request)
    print(f"Merge blocker issue closed: {updated.html_url}")
    return updated


def do_merge_blocker(
    client: IssuesService, repo_info: RepoInfo, branch: str = "master", delete: bool = False
) -> Issue:
    """Close the branch's merge blocker if ``delete`` is set, otherwise create one."""
    if delete:
        return close_merge_blocker(client, repo_info, branch)
    return create_merge_blocker(client, repo_info, branch)