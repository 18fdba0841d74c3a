from __future__ import annotations

import base64
import itertools
import json
import re
from typing import Any

import httpx
import pytest

from changeforge.config import Settings
from changeforge.github.client import GitHubClient

API_URL = "https://api.github.test"
OWNER = "octo"

_REPO_PATH = re.compile(r"^/repos/(?P<owner>[^/]+)/(?P<repo>[^/]+)(?P<rest>/.*)?$")


def b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _json(status: int, payload: Any) -> httpx.Response:
    return httpx.Response(status, json=payload)


def _error(status: int, message: str) -> httpx.Response:
    return httpx.Response(status, json={"message": message})


class FakeGitHub:
    """In-memory stand-in for the slice of the GitHub REST API the service uses."""

    def __init__(self, owner: str = OWNER) -> None:
        self.owner = owner
        self.repos: set[str] = set()
        self.refs: dict[tuple[str, str], str] = {}
        self.files: dict[tuple[str, str, str], dict[str, str]] = {}
        self.pulls: dict[str, list[dict[str, Any]]] = {}
        self.check_runs: dict[str, list[dict[str, Any]]] = {}
        self.protection: dict[tuple[str, str], dict[str, Any]] = {}
        self.pages: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], tuple[int, str]] = {}
        self.mergeable_state = "clean"
        self._ids = itertools.count(1)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def fail(self, method: str, path_fragment: str, status: int = 500, message: str = "boom") -> None:
        self.failures[(method, path_fragment)] = (status, message)

    def calls_matching(self, method: str, fragment: str) -> list[str]:
        return [path for m, path in self.calls if m == method and fragment in path]

    def seed_repo(self, repo: str) -> None:
        self.repos.add(repo)
        self.refs[(repo, "main")] = f"commit-{next(self._ids)}"
        self.files[(repo, "main", "README.md")] = {
            "sha": f"blob-{next(self._ids)}",
            "content": b64(f"# {repo}\n"),
        }

    def file_text(self, repo: str, branch: str, path: str) -> str | None:
        stored = self.files.get((repo, branch, path))
        if stored is None:
            return None
        return base64.b64decode(stored["content"]).decode("utf-8")

    def open_pulls(self, repo: str) -> list[dict[str, Any]]:
        return [pr for pr in self.pulls.get(repo, []) if pr["state"] == "open"]

    def handle(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        self.calls.append((method, path))
        for (fail_method, fragment), (status, message) in self.failures.items():
            if fail_method == method and fragment in path:
                return _error(status, message)
        body = json.loads(request.content) if request.content else {}

        if method == "POST" and path in ("/user/repos", f"/orgs/{self.owner}/repos"):
            name = body["name"]
            if name in self.repos:
                return _error(422, "name already exists on this account")
            self.seed_repo(name)
            return _json(201, {"name": name, "full_name": f"{self.owner}/{name}"})

        match = _REPO_PATH.match(path)
        if not match or match.group("repo") not in self.repos:
            return _error(404, "Not Found")
        repo = match.group("repo")
        rest = match.group("rest") or ""

        if rest.startswith("/git/ref/heads/") and method == "GET":
            branch = rest[len("/git/ref/heads/") :]
            sha = self.refs.get((repo, branch))
            if sha is None:
                return _error(404, "Not Found")
            return _json(200, {"ref": f"refs/heads/{branch}", "object": {"sha": sha}})

        if rest == "/git/refs" and method == "POST":
            branch = body["ref"][len("refs/heads/") :]
            if (repo, branch) in self.refs:
                return _error(422, "Reference already exists")
            base = next(b for (r, b), sha in self.refs.items() if r == repo and sha == body["sha"])
            self.refs[(repo, branch)] = body["sha"]
            for (r, b, file_path), stored in list(self.files.items()):
                if r == repo and b == base:
                    self.files[(repo, branch, file_path)] = dict(stored)
            return _json(201, {"ref": body["ref"], "object": {"sha": body["sha"]}})

        if rest.startswith("/contents/"):
            file_path = rest[len("/contents/") :]
            if method == "GET":
                branch = request.url.params.get("ref", "main")
                stored = self.files.get((repo, branch, file_path))
                if stored is None:
                    return _error(404, "Not Found")
                return _json(200, {"path": file_path, **stored})
            if method == "PUT":
                branch = body["branch"]
                if (repo, branch) not in self.refs:
                    return _error(404, "Branch not found")
                stored = self.files.get((repo, branch, file_path))
                if stored is not None and not body.get("sha"):
                    return _error(422, "Invalid request. \"sha\" wasn't supplied.")
                if stored is not None and body.get("sha") != stored["sha"]:
                    return _error(409, f"{file_path} does not match {body.get('sha')}")
                self.files[(repo, branch, file_path)] = {
                    "sha": f"blob-{next(self._ids)}",
                    "content": body["content"],
                }
                self.refs[(repo, branch)] = f"commit-{next(self._ids)}"
                return _json(201 if stored is None else 200, {"content": {"path": file_path}})

        if rest == "/pulls" and method == "GET":
            params = request.url.params
            head = params.get("head", "").split(":", 1)[-1]
            matches = [
                pr
                for pr in self.pulls.get(repo, [])
                if pr["state"] == params.get("state", "open")
                and pr["head"]["ref"] == head
                and pr["base"]["ref"] == params.get("base")
            ]
            return _json(200, matches)

        if rest == "/pulls" and method == "POST":
            if any(
                pr["head"]["ref"] == body["head"] and pr["base"]["ref"] == body["base"]
                for pr in self.open_pulls(repo)
            ):
                return _error(422, "A pull request already exists")
            number = len(self.pulls.get(repo, [])) + 1
            pr = {
                "number": number,
                "title": body["title"],
                "body": body["body"],
                "state": "open",
                "merged": False,
                "head": {"ref": body["head"], "sha": self.refs[(repo, body["head"])]},
                "base": {"ref": body["base"]},
                "html_url": f"https://github.test/{self.owner}/{repo}/pull/{number}",
            }
            self.pulls.setdefault(repo, []).append(pr)
            return _json(201, pr)

        pr_match = re.match(r"^/pulls/(\d+)(/merge)?$", rest)
        if pr_match:
            number = int(pr_match.group(1))
            pr = next((p for p in self.pulls.get(repo, []) if p["number"] == number), None)
            if pr is None:
                return _error(404, "Not Found")
            if pr_match.group(2) and method == "PUT":
                pr["state"] = "closed"
                pr["merged"] = True
                pr["merge_method"] = body.get("merge_method")
                return _json(200, {"merged": True})
            return _json(200, {**pr, "mergeable_state": self.mergeable_state})

        runs_match = re.match(r"^/commits/([^/]+)/check-runs$", rest)
        if runs_match:
            runs = self.check_runs.get(runs_match.group(1), [])
            return _json(200, {"total_count": len(runs), "check_runs": runs})

        protection_match = re.match(r"^/branches/([^/]+)/protection$", rest)
        if protection_match and method == "PUT":
            self.protection[(repo, protection_match.group(1))] = body
            return _json(200, body)

        if rest == "/pages" and method == "POST":
            if repo in self.pages:
                return _error(409, "GitHub Pages is already enabled.")
            self.pages.add(repo)
            return _json(201, {"url": f"https://{self.owner}.github.io/{repo}/"})

        return _error(404, "Not Found")


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        github_token="ghp_testtoken",
        github_owner=OWNER,
        github_api_url=API_URL,
        merge_poll_interval_seconds=0,
        _env_file=None,
    )


@pytest.fixture
def client(fake_github: FakeGitHub) -> GitHubClient:
    return GitHubClient(
        token="ghp_testtoken",
        owner=OWNER,
        base_url=API_URL,
        transport=fake_github.transport,
        sleep=lambda _seconds: None,
    )
