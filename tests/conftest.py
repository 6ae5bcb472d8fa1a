from typing import Dict, List, Optional, Tuple

import pytest

from formbridge.errors import RemoteOperationError
from formbridge.github import CreatedResource
from formbridge.settings import Settings


class FakeGitHubClient:
    """In-memory stand-in for GitHubClient that records every call."""

    def __init__(self, config_document: Optional[bytes] = None, fail_on: Optional[str] = None) -> None:
        self.config_document = config_document
        self.fail_on = fail_on
        self.calls: List[Tuple[str, tuple]] = []
        self.files: Dict[str, bytes] = {}
        self.branches: Dict[str, str] = {}
        self.issues: List[Dict[str, object]] = []
        self.pull_requests: List[Dict[str, object]] = []

    def _record(self, name: str, *args: object) -> None:
        self.calls.append((name, args))
        if self.fail_on == name:
            raise RemoteOperationError(f"{name} exploded", status=422)

    @property
    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    @property
    def mutations(self) -> List[str]:
        return [name for name in self.call_names if name not in {"get_file_content", "get_branch_head_commit"}]

    async def get_file_content(self, owner, repo, path, ref):
        self._record("get_file_content", owner, repo, path, ref)
        return self.config_document

    async def get_branch_head_commit(self, owner, repo, branch):
        self._record("get_branch_head_commit", owner, repo, branch)
        return "abc123"

    async def create_branch(self, owner, repo, branch, sha):
        self._record("create_branch", owner, repo, branch, sha)
        self.branches[branch] = sha

    async def commit_file(self, owner, repo, path, content, branch, message):
        self._record("commit_file", owner, repo, path, content, branch, message)
        self.files[path] = content

    async def create_pull_request(self, owner, repo, title, body, head, base):
        self._record("create_pull_request", owner, repo, title, body, head, base)
        self.pull_requests.append({"title": title, "body": body, "head": head, "base": base})
        return CreatedResource("pull_request", 7, f"https://github.com/{owner}/{repo}/pull/7")

    async def create_issue(self, owner, repo, title, body, labels=(), assignees=()):
        self._record("create_issue", owner, repo, title, body, labels, assignees)
        self.issues.append({"title": title, "body": body, "labels": list(labels), "assignees": list(assignees)})
        return CreatedResource("issue", 12, f"https://github.com/{owner}/{repo}/issues/12")


@pytest.fixture
def settings() -> Settings:
    return Settings(github_token="test-token", github_api_url="https://api.example.test")


@pytest.fixture
def fake_client() -> FakeGitHubClient:
    return FakeGitHubClient()


@pytest.fixture
def timeline_fields() -> Dict[str, str]:
    return {
        "name": "A",
        "email": "a@b.com",
        "date": "2024-01-01",
        "title": "T",
        "description": "D",
    }
