"""Repository creation, branch protection and site seeding."""

from __future__ import annotations

import html
import re
from typing import Any

from changeforge.applier import ChangeApplier
from changeforge.errors import HostingApiError
from changeforge.github.client import GitHubClient
from changeforge.models import Task
from changeforge.util.logging import get_logger

DEFAULT_REPO_NAME = "openclaw-project"

CI_WORKFLOW_PATH = ".github/workflows/ci.yml"
DEPLOY_WORKFLOW_PATH = ".github/workflows/deploy.yml"


def slugify_repo_name(objective: str | None) -> str:
    slug = (objective or DEFAULT_REPO_NAME).lower()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:50] or DEFAULT_REPO_NAME


def render_index_html(objective: str, tasks: list[Task]) -> str:
    title = html.escape(objective)
    items = "\n    ".join(
        f"<li>{html.escape(task.id)}: {html.escape(task.description)}</li>" for task in tasks
    )
    return f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width,initial-scale=1" />
  <title>{title}</title>
  <style>body{{font-family:sans-serif;padding:48px;max-width:900px;margin:0 auto}}</style>
</head>
<body>
  <h1>{title}</h1>
  <p>Generated by changeforge.</p>
  <h2>Tasks</h2>
  <ul>
    {items}
  </ul>
</body>
</html>
"""


def render_ci_workflow(default_branch: str, check_name: str) -> str:
    return f"""name: CI

on:
  pull_request:
    branches: [ {default_branch} ]

jobs:
  {check_name}:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4

      - name: Basic validation
        run: |
          if [ ! -f index.html ]; then
            echo "Missing index.html"
            exit 1
          fi

      - name: Lint HTML
        run: |
          grep -q "<html" index.html || {{ echo "Invalid HTML"; exit 1; }}
"""


def render_deploy_workflow(default_branch: str) -> str:
    return f"""name: Deploy Pages

on:
  push:
    branches: [ {default_branch} ]

jobs:
  deploy:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
      - name: Trigger Pages
        run: echo "Deploy triggered"
"""


class RepoProvisioner:
    def __init__(
        self,
        client: GitHubClient,
        repo: str,
        default_branch: str = "main",
        required_status_check: str = "build",
    ) -> None:
        self.client = client
        self.repo = repo
        self.default_branch = default_branch
        self.required_status_check = required_status_check
        self.logger = get_logger("changeforge.provisioner")

    @property
    def live_url(self) -> str:
        return f"https://{self.client.owner}.github.io/{self.repo}/"

    def create_repository(self, description: str) -> dict[str, Any]:
        # Not idempotent: an existing repository with this name is a hosting error.
        payload = self.client.create_repository(self.repo, description[:140])
        self.logger.info("repo.created repo=%s", self.repo)
        return payload

    def protection_rules(self) -> dict[str, Any]:
        return {
            "required_status_checks": {"strict": True, "contexts": [self.required_status_check]},
            "enforce_admins": False,
            "required_pull_request_reviews": None,
            "restrictions": None,
            "required_linear_history": False,
            "allow_force_pushes": False,
            "allow_deletions": False,
            "block_creations": False,
            "required_conversation_resolution": False,
            "lock_branch": False,
            "allow_fork_syncing": False,
        }

    def protect_branch(self, branch: str | None = None) -> None:
        target = branch or self.default_branch
        self.client.put_branch_protection(self.repo, target, self.protection_rules())
        self.logger.info(
            "branch.protected repo=%s branch=%s check=%s", self.repo, target, self.required_status_check
        )

    def seed_site(self, applier: ChangeApplier, objective: str, tasks: list[Task], enable_pages: bool) -> None:
        """Commit the landing page and workflows straight to the default branch."""
        branch = self.default_branch
        applier.upsert_file(branch, "index.html", render_index_html(objective, tasks), "Add landing page")
        applier.upsert_file(
            branch,
            CI_WORKFLOW_PATH,
            render_ci_workflow(branch, self.required_status_check),
            "Add CI workflow",
        )
        if enable_pages:
            applier.upsert_file(
                branch, DEPLOY_WORKFLOW_PATH, render_deploy_workflow(branch), "Add deploy workflow"
            )

    def enable_pages(self) -> bool:
        try:
            self.client.enable_pages(self.repo, self.default_branch)
        except HostingApiError as exc:
            # Pages may already be enabled or still pending.
            self.logger.warning("pages.skipped repo=%s status=%s", self.repo, exc.status_code)
            return False
        self.logger.info("pages.enabled repo=%s", self.repo)
        return True
