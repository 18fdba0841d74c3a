"""Collaborator ports for planning, coding and verification.

The orchestrator only talks to these protocols, so planners, coders and verifiers
backed by a model or an external service can be swapped in without touching the
scheduling or mutation logic. The rule-based backends below are deterministic and
are what the service uses when nothing else is configured:

- `RuleBasedPlanner` expands an objective into a short scaffold -> content -> docs chain.
- `DocsStubCoder` writes a markdown task document, links it from the README and
  describes the pull request. The pre-specified entry point always uses it.
- `StaticVerifier` checks the patch is non-empty and stays inside the branch's
  workspace (no absolute or parent-relative paths).
"""

from __future__ import annotations

from typing import Any, Protocol

from pydantic import BaseModel, Field

from changeforge.models import FileChange, PatchCommit, PullRequestSpec, Task, TaskGraph, VerifierVerdict
from changeforge.scheduler import task_to_branch


class Plan(BaseModel):
    objective: str
    task_graph: TaskGraph
    notes: list[str] = Field(default_factory=list)


class PlannerPort(Protocol):
    def plan(self, objective: str, constraints: dict[str, Any]) -> Plan: ...


class CoderPort(Protocol):
    def code(self, objective: str, task: Task) -> PatchCommit: ...


class VerifierPort(Protocol):
    def verify(self, task: Task, patch: PatchCommit) -> VerifierVerdict: ...


class RuleBasedPlanner:
    def plan(self, objective: str, constraints: dict[str, Any]) -> Plan:
        subject = objective.strip()[:80]
        tasks = [
            Task(id="task-1", description=f"Scaffold project structure for {subject}"),
            Task(
                id="task-2",
                description=f"Add core content for {subject}",
                dependencies=["task-1"],
            ),
            Task(
                id="task-3",
                description=f"Document usage of {subject}",
                dependencies=["task-2"],
            ),
        ]
        max_tasks = constraints.get("max_tasks")
        notes = ["rule-based plan"]
        if isinstance(max_tasks, int) and 0 < max_tasks < len(tasks):
            tasks = tasks[:max_tasks]
            notes.append(f"truncated to {max_tasks} tasks")
        return Plan(objective=objective, task_graph=TaskGraph(tasks=tasks), notes=notes)


class DocsStubCoder:
    def code(self, objective: str, task: Task) -> PatchCommit:
        branch = task_to_branch(task.id)
        doc_path = f"tasks/{task.id}.md"
        doc = f"# {task.id}\n\n{task.description}\n\nObjective:\n- {objective}\n"
        return PatchCommit(
            branch=branch,
            files=[FileChange(path=doc_path, content=doc, message=f"Add {task.id} task doc")],
            pr=PullRequestSpec(
                title=f"{task.id}: {task.description}"[:250],
                body=(
                    f"Automated PR for task **{task.id}**.\n\n"
                    f"- Branch: `{branch}`\n- Objective: {objective}\n"
                ),
            ),
            readme_link=f"- [{task.id}]({doc_path}): {task.description}",
        )


class StaticVerifier:
    def verify(self, task: Task, patch: PatchCommit) -> VerifierVerdict:
        if not patch.files:
            return VerifierVerdict(status="fail", notes="patch has no file changes")
        unsafe = [
            change.path
            for change in patch.files
            if change.path.startswith("/") or ".." in change.path.split("/")
        ]
        if unsafe:
            return VerifierVerdict(status="fail", notes=f"unsafe paths: {', '.join(unsafe)}")
        empty = [change.path for change in patch.files if not change.content.strip()]
        if empty:
            return VerifierVerdict(status="fail", notes=f"empty files: {', '.join(empty)}")
        return VerifierVerdict(status="pass")
