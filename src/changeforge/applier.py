"""Idempotent branch, file and pull request mutations."""

from __future__ import annotations

import base64
from dataclasses import dataclass

from changeforge.errors import HostingApiError
from changeforge.github.client import GitHubClient
from changeforge.models import FileChange, PatchCommit, PullRequestRecord, VerifierVerdict
from changeforge.util.logging import get_logger


@dataclass(frozen=True)
class RemoteFile:
    path: str
    sha: str
    content: str | None


def _encode(content: str) -> str:
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


def _decode(payload: str | None) -> str | None:
    if payload is None:
        return None
    return base64.b64decode(payload.replace("\n", "")).decode("utf-8", errors="replace")


def _is_sha_conflict(exc: HostingApiError) -> bool:
    if exc.status_code == 409:
        return True
    return exc.status_code == 422 and "sha" in exc.body.lower()


class ChangeApplier:
    """Applies a task's change to one repository.

    Every primitive reads current state first and only writes what is missing, so
    re-running the same batch converges on the same branches, files and pull requests.
    """

    def __init__(self, client: GitHubClient, repo: str) -> None:
        self.client = client
        self.repo = repo
        self.logger = get_logger("changeforge.applier")

    def ensure_branch_from(self, base: str, branch: str) -> None:
        try:
            self.client.get_ref(self.repo, branch)
            return
        except HostingApiError as exc:
            if not exc.is_not_found:
                raise
        base_ref = self.client.get_ref(self.repo, base)
        try:
            self.client.create_ref(self.repo, branch, base_ref["object"]["sha"])
        except HostingApiError as exc:
            # A concurrent run created it first.
            if exc.status_code == 422 and "already exists" in exc.body.lower():
                self.logger.info("branch.exists repo=%s branch=%s", self.repo, branch)
                return
            raise
        self.logger.info("branch.created repo=%s branch=%s base=%s", self.repo, branch, base)

    def get_file(self, branch: str, path: str) -> RemoteFile | None:
        try:
            payload = self.client.get_contents(self.repo, path, branch)
        except HostingApiError as exc:
            if exc.is_not_found:
                return None
            raise
        if not isinstance(payload, dict) or "sha" not in payload:
            return None
        return RemoteFile(path=path, sha=str(payload["sha"]), content=_decode(payload.get("content")))

    def upsert_file(self, branch: str, path: str, content: str, message: str) -> bool:
        """Create or update a file; returns False when the stored content already matches."""
        for attempt in range(2):
            existing = self.get_file(branch, path)
            if existing is not None and existing.content == content:
                return False
            try:
                self.client.put_contents(
                    self.repo,
                    path,
                    message,
                    _encode(content),
                    branch,
                    sha=existing.sha if existing else None,
                )
                return True
            except HostingApiError as exc:
                if attempt == 0 and _is_sha_conflict(exc):
                    self.logger.warning(
                        "file.conflict repo=%s branch=%s path=%s retrying", self.repo, branch, path
                    )
                    continue
                raise
        return False  # pragma: no cover

    def append_readme_link(self, branch: str, line: str) -> bool:
        existing = self.get_file(branch, "README.md")
        current = existing.content if existing and existing.content else f"# {self.repo}\n\n## Task Links\n"
        entry = line.strip()
        if entry in current:
            return False
        updated = f"{current.rstrip()}\n{entry}\n"
        return self.upsert_file(branch, "README.md", updated, "Update README task links")

    def ensure_pull_request(self, head: str, base: str, title: str, body: str) -> PullRequestRecord:
        existing = self.client.list_pull_requests(self.repo, head, base)
        if existing:
            record = PullRequestRecord.from_api(existing[0])
            self.logger.info("pr.reused repo=%s number=%s head=%s", self.repo, record.number, head)
            return record
        created = self.client.create_pull_request(self.repo, head, base, title, body)
        record = PullRequestRecord.from_api(created)
        self.logger.info("pr.opened repo=%s number=%s head=%s", self.repo, record.number, head)
        return record

    def write_files(self, branch: str, files: list[FileChange]) -> None:
        for change in files:
            self.upsert_file(branch, change.path, change.content, change.message)

    def apply_patch(
        self, patch: PatchCommit, verdict: VerifierVerdict, base: str
    ) -> PullRequestRecord:
        self.ensure_branch_from(base, patch.branch)
        self.write_files(patch.branch, patch.files)
        self.write_files(patch.branch, verdict.test_files)
        if patch.readme_link:
            self.append_readme_link(patch.branch, patch.readme_link)
        return self.ensure_pull_request(patch.branch, base, patch.pr.title, patch.pr.body)
