import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence
from urllib.parse import quote

import aiohttp

from . import __version__
from .errors import RemoteOperationError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30


@dataclass(frozen=True)
class CreatedResource:
    kind: str
    number: int
    url: str

    def as_dict(self) -> Dict[str, object]:
        return {"number": self.number, "url": self.url}


class GitHubClient:
    """Thin async wrapper over the GitHub REST endpoints the publisher needs."""

    def __init__(self, session: aiohttp.ClientSession, token: Optional[str], api_url: str) -> None:
        self.session = session
        self.token = token
        self.api_url = api_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": f"formbridge/{__version__}",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        allow_not_found: bool = False,
    ) -> Optional[Dict[str, Any]]:
        url = f"{self.api_url}{path}"
        logger.debug("GitHub %s %s", method, path)
        try:
            async with self.session.request(
                method,
                url,
                json=payload,
                params=params,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
            ) as resp:
                if resp.status == 404 and allow_not_found:
                    return None
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data = None
                if resp.status >= 400:
                    message = data.get("message") if isinstance(data, dict) else None
                    raise RemoteOperationError(
                        f"GitHub {method} {path} failed with HTTP {resp.status}: {message or resp.reason}",
                        status=resp.status,
                    )
                return data if isinstance(data, dict) else {}
        except asyncio.TimeoutError as exc:
            raise RemoteOperationError(f"GitHub {method} {path} timed out after {REQUEST_TIMEOUT}s") from exc
        except aiohttp.ClientError as exc:
            raise RemoteOperationError(f"GitHub {method} {path} failed: {exc}") from exc

    def _created(self, kind: str, data: Optional[Dict[str, Any]]) -> CreatedResource:
        number = (data or {}).get("number")
        if isinstance(number, bool) or not isinstance(number, int):
            label = kind.replace("_", " ")
            raise RemoteOperationError(f"GitHub returned no {label} number")
        url = (data or {}).get("html_url")
        return CreatedResource(kind, number, url if isinstance(url, str) else "")

    def _repo_path(self, owner: str, repo: str) -> str:
        return f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"

    async def get_branch_head_commit(self, owner: str, repo: str, branch: str) -> str:
        data = await self._request("GET", f"{self._repo_path(owner, repo)}/git/ref/heads/{quote(branch)}")
        ref_object = (data or {}).get("object")
        sha = ref_object.get("sha") if isinstance(ref_object, dict) else None
        if not isinstance(sha, str) or not sha:
            raise RemoteOperationError(f"Branch {branch} has no head commit")
        return sha

    async def create_branch(self, owner: str, repo: str, branch: str, sha: str) -> None:
        await self._request(
            "POST",
            f"{self._repo_path(owner, repo)}/git/refs",
            {"ref": f"refs/heads/{branch}", "sha": sha},
        )

    async def commit_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: bytes,
        branch: str,
        message: str,
    ) -> None:
        await self._request(
            "PUT",
            f"{self._repo_path(owner, repo)}/contents/{quote(path)}",
            {
                "message": message,
                "content": base64.b64encode(content).decode("ascii"),
                "branch": branch,
            },
        )

    async def create_pull_request(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> CreatedResource:
        data = await self._request(
            "POST",
            f"{self._repo_path(owner, repo)}/pulls",
            {"title": title, "body": body, "head": head, "base": base},
        )
        return self._created("pull_request", data)

    async def create_issue(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str,
        labels: Sequence[str] = (),
        assignees: Sequence[str] = (),
    ) -> CreatedResource:
        payload: Dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = list(labels)
        if assignees:
            payload["assignees"] = list(assignees)
        data = await self._request("POST", f"{self._repo_path(owner, repo)}/issues", payload)
        return self._created("issue", data)

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> Optional[bytes]:
        data = await self._request(
            "GET",
            f"{self._repo_path(owner, repo)}/contents/{quote(path)}",
            params={"ref": ref},
            allow_not_found=True,
        )
        if data is None:
            return None
        encoded = data.get("content")
        if not isinstance(encoded, str):
            raise RemoteOperationError(f"{path} is not a file")
        try:
            return base64.b64decode(encoded)
        except ValueError as exc:
            raise RemoteOperationError(f"{path} has undecodable content: {exc}") from exc
