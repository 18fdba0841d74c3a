"""Data model for tasks, patches, policy decisions and batch reports."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Task(BaseModel):
    """A single code-change task; read-only once a run starts."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    description: str = Field(min_length=1)
    dependencies: list[str] = Field(default_factory=list)


class TaskGraph(BaseModel):
    tasks: list[Task] = Field(default_factory=list)

    def ids(self) -> list[str]:
        return [task.id for task in self.tasks]


class FileChange(BaseModel):
    path: str
    content: str
    message: str


class PullRequestSpec(BaseModel):
    title: str
    body: str = ""


class PatchCommit(BaseModel):
    """Change produced by the coder for one task."""

    branch: str
    files: list[FileChange] = Field(default_factory=list)
    pr: PullRequestSpec
    readme_link: str | None = None
    tokens_used: int = 0


class VerifierVerdict(BaseModel):
    status: str
    test_files: list[FileChange] = Field(default_factory=list)
    notes: str | None = None


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


class PolicyDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allow_merge: bool
    risk_level: RiskLevel
    reasons: list[str] = Field(default_factory=list)


class BudgetTelemetry(BaseModel):
    """Advisory usage counters; never gate execution on their own."""

    tokens_used: int = 0
    api_calls: int = 0


class CIStatus(BaseModel):
    conclusion: str = "success"


class DiffSummary(BaseModel):
    files: list[str] = Field(default_factory=list)


class PullRequestRecord(BaseModel):
    number: int
    branch: str
    base: str
    state: str = "open"
    head_sha: str | None = None
    html_url: str | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "PullRequestRecord":
        head = payload.get("head") or {}
        base = payload.get("base") or {}
        return cls(
            number=int(payload["number"]),
            branch=str(head.get("ref", "")),
            base=str(base.get("ref", "")),
            state=str(payload.get("state", "open")),
            head_sha=head.get("sha"),
            html_url=payload.get("html_url"),
        )


class WatchState(str, Enum):
    POLLING = "polling"
    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"


class MergeOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    merged: bool
    reason: str | None = None
    state: WatchState | None = None
    polls: int = 0


class TaskStatus(str, Enum):
    PR_OPENED = "pr_opened"
    BLOCKED_BY_POLICY = "blocked_by_policy"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskResult(BaseModel):
    """Outcome record for one task; appended once to the batch report."""

    model_config = ConfigDict(frozen=True)

    task_id: str
    status: TaskStatus
    branch: str | None = None
    pr_number: int | None = None
    pr_url: str | None = None
    verifier: str | None = None
    policy: PolicyDecision | None = None
    merge: MergeOutcome | None = None
    error: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def merged(self) -> bool:
        return bool(self.merge and self.merge.merged)


class PullRequestSummary(BaseModel):
    task_id: str
    branch: str | None = None
    pr_number: int | None = None
    merged: bool = False
    reason: str | None = None
    error: str | None = None


class BatchReport(BaseModel):
    status: str
    repo: str
    live_url: str
    task_graph: TaskGraph
    tasks: list[TaskResult] = Field(default_factory=list)
    budget: BudgetTelemetry = Field(default_factory=BudgetTelemetry)
    plan: dict[str, Any] | None = None
    prs: list[PullRequestSummary] | None = None


class ExecutionOptions(BaseModel):
    auto_merge: bool = False
    enable_pages: bool = False
    ci_conclusion: str = "success"
    tokens_used: int = 0
    api_calls: int = 0

    model_config = ConfigDict(extra="allow")
