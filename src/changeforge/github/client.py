"""HTTP client for the GitHub REST API."""

from __future__ import annotations

import json
import time
from typing import Any, Callable
from urllib.parse import quote

import httpx

from changeforge.errors import HostingApiError
from changeforge.util.logging import get_logger, redact

_RETRYABLE_STATUS = {429, 502, 503, 504}


class GitHubClient:
    """Bearer-authenticated client for the hosting API surface the orchestrator uses.

    Reads are retried on rate limiting and gateway errors with exponential backoff;
    writes are sent once. Any non-2xx response raises `HostingApiError`.
    """

    def __init__(
        self,
        token: str,
        owner: str,
        base_url: str = "https://api.github.com",
        timeout_seconds: int = 30,
        max_read_attempts: int = 3,
        owner_is_org: bool = False,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.token = token
        self.owner = owner
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_read_attempts = max(1, max_read_attempts)
        self.owner_is_org = owner_is_org
        self.transport = transport
        self.sleep = sleep
        self.request_count = 0
        self.logger = get_logger("changeforge.github")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "changeforge",
        }

    def request(
        self,
        method: str,
        endpoint: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        attempts = self.max_read_attempts if method == "GET" else 1
        timeout = httpx.Timeout(self.timeout_seconds)
        for attempt in range(attempts):
            self.request_count += 1
            try:
                with httpx.Client(timeout=timeout, transport=self.transport) as client:
                    response = client.request(
                        method,
                        f"{self.base_url}{endpoint}",
                        headers=self._headers(),
                        json=body,
                        params=params,
                    )
            except httpx.HTTPError as exc:
                if attempt + 1 < attempts:
                    self.sleep(2**attempt)
                    continue
                raise HostingApiError(method, endpoint, 0, str(exc)) from exc
            if response.status_code in _RETRYABLE_STATUS and attempt + 1 < attempts:
                self.logger.warning(
                    "github.retry method=%s endpoint=%s status=%s", method, endpoint, response.status_code
                )
                self.sleep(2**attempt)
                continue
            return self._decode(method, endpoint, response)
        raise HostingApiError(method, endpoint, 0, "retries exhausted")  # pragma: no cover

    def _decode(self, method: str, endpoint: str, response: httpx.Response) -> Any:
        if response.status_code >= 400:
            body = redact(response.text[:2000], [self.token])
            raise HostingApiError(method, endpoint, response.status_code, body)
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            raise HostingApiError(method, endpoint, response.status_code, "Malformed JSON response") from exc

    def _repo(self, repo: str) -> str:
        return f"/repos/{self.owner}/{repo}"

    def create_repository(self, name: str, description: str = "", private: bool = False) -> dict[str, Any]:
        endpoint = f"/orgs/{self.owner}/repos" if self.owner_is_org else "/user/repos"
        return self.request(
            "POST",
            endpoint,
            {"name": name, "private": private, "auto_init": True, "description": description},
        )

    def get_ref(self, repo: str, branch: str) -> dict[str, Any]:
        return self.request("GET", f"{self._repo(repo)}/git/ref/heads/{quote(branch, safe='/')}")

    def create_ref(self, repo: str, branch: str, sha: str) -> dict[str, Any]:
        return self.request(
            "POST", f"{self._repo(repo)}/git/refs", {"ref": f"refs/heads/{branch}", "sha": sha}
        )

    def get_contents(self, repo: str, path: str, ref: str) -> dict[str, Any]:
        return self.request(
            "GET", f"{self._repo(repo)}/contents/{quote(path, safe='/')}", params={"ref": ref}
        )

    def put_contents(
        self,
        repo: str,
        path: str,
        message: str,
        content_b64: str,
        branch: str,
        sha: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"message": message, "content": content_b64, "branch": branch}
        if sha:
            body["sha"] = sha
        return self.request("PUT", f"{self._repo(repo)}/contents/{quote(path, safe='/')}", body)

    def list_pull_requests(self, repo: str, head: str, base: str, state: str = "open") -> list[dict[str, Any]]:
        payload = self.request(
            "GET",
            f"{self._repo(repo)}/pulls",
            params={"state": state, "head": f"{self.owner}:{head}", "base": base, "per_page": 50},
        )
        return payload if isinstance(payload, list) else []

    def create_pull_request(self, repo: str, head: str, base: str, title: str, body: str) -> dict[str, Any]:
        return self.request(
            "POST",
            f"{self._repo(repo)}/pulls",
            {"head": head, "base": base, "title": title, "body": body},
        )

    def get_pull_request(self, repo: str, number: int) -> dict[str, Any]:
        return self.request("GET", f"{self._repo(repo)}/pulls/{number}")

    def merge_pull_request(self, repo: str, number: int, method: str = "squash") -> dict[str, Any]:
        return self.request("PUT", f"{self._repo(repo)}/pulls/{number}/merge", {"merge_method": method})

    def list_check_runs(self, repo: str, sha: str) -> list[dict[str, Any]]:
        payload = self.request(
            "GET", f"{self._repo(repo)}/commits/{sha}/check-runs", params={"per_page": 100}
        )
        runs = payload.get("check_runs") if isinstance(payload, dict) else None
        return runs if isinstance(runs, list) else []

    def put_branch_protection(self, repo: str, branch: str, rules: dict[str, Any]) -> dict[str, Any]:
        return self.request(
            "PUT", f"{self._repo(repo)}/branches/{quote(branch, safe='')}/protection", rules
        )

    def enable_pages(self, repo: str, branch: str, path: str = "/") -> dict[str, Any]:
        return self.request(
            "POST", f"{self._repo(repo)}/pages", {"source": {"branch": branch, "path": path}}
        )
