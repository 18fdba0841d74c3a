"""Batch orchestration: schedule, gate, apply, merge, report."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from changeforge.agents import CoderPort, DocsStubCoder, PlannerPort, RuleBasedPlanner, StaticVerifier, VerifierPort
from changeforge.aggregator import ResultAggregator
from changeforge.applier import ChangeApplier
from changeforge.cancel import CancelToken
from changeforge.config import Settings
from changeforge.errors import HostingApiError, ValidationError
from changeforge.events import EventBroadcaster
from changeforge.github.client import GitHubClient
from changeforge.models import (
    BatchReport,
    BudgetTelemetry,
    CIStatus,
    DiffSummary,
    ExecutionOptions,
    MergeOutcome,
    Task,
    TaskGraph,
    TaskResult,
    TaskStatus,
)
from changeforge.policy import PolicyGate, PolicyPort, RulePolicy, build_policy_config
from changeforge.provisioner import RepoProvisioner, slugify_repo_name
from changeforge.scheduler import schedule, task_to_branch
from changeforge.util.logging import get_logger
from changeforge.watcher import MergeWatcher, WatchPolicy

AUTO_MERGE_DISABLED = "auto_merge disabled"


@dataclass
class _Run:
    objective: str
    repo: str
    execution: ExecutionOptions
    provisioner: RepoProvisioner
    applier: ChangeApplier
    watcher: MergeWatcher
    gate: PolicyGate
    coder: CoderPort
    aggregator: ResultAggregator
    cancel: CancelToken | None
    calls_at_start: int


class Orchestrator:
    """Runs a batch of change tasks against one freshly provisioned repository.

    Both entry points share the same per-task pipeline: coder -> verifier -> policy
    gate -> branch/files/PR -> optional merge wait. A policy block leaves no artifacts
    behind, and a hosting failure is recorded on the task and the batch moves on.
    Pre-flight problems (validation, dependency cycles) raise before any hosting call.
    """

    def __init__(
        self,
        settings: Settings,
        client: GitHubClient,
        *,
        planner: PlannerPort | None = None,
        coder: CoderPort | None = None,
        verifier: VerifierPort | None = None,
        policy: PolicyPort | None = None,
        broadcaster: EventBroadcaster | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.planner = planner or RuleBasedPlanner()
        self.coder = coder or DocsStubCoder()
        self.stub_coder = DocsStubCoder()
        self.verifier = verifier or StaticVerifier()
        self.policy = policy or RulePolicy()
        self.broadcaster = broadcaster
        self.sleep = sleep
        self.logger = get_logger("changeforge.orchestrator")

    def run_agent(
        self,
        objective: str,
        constraints: dict[str, Any] | None = None,
        execution: ExecutionOptions | None = None,
        cancel: CancelToken | None = None,
    ) -> BatchReport:
        """Plan with the planner port and apply every task the policy allows."""
        if not objective or not objective.strip():
            raise ValidationError("objective required")
        constraints = constraints or {}
        execution = execution or ExecutionOptions()
        plan = self.planner.plan(objective, constraints)
        ordered = schedule(plan.task_graph, strict=self.settings.strict_dependencies)

        run = self._start_run(objective, execution, constraints, self.coder, cancel)
        run.provisioner.create_repository(objective)
        run.provisioner.protect_branch()
        return self._execute(
            run,
            ordered,
            plan.task_graph,
            status="ok",
            plan=plan.model_dump(mode="json"),
            include_prs=False,
        )

    def run_tasks(
        self,
        objective: str,
        tasks: list[Task],
        execution: ExecutionOptions | None = None,
        constraints: dict[str, Any] | None = None,
        cancel: CancelToken | None = None,
    ) -> BatchReport:
        """Apply a caller-supplied task list with documentation stub patches."""
        if not objective or not objective.strip() or not tasks:
            raise ValidationError("objective + tasks[] required")
        cap = self.settings.max_batch_tasks
        if len(tasks) > cap:
            raise ValidationError(f"Too many tasks (cap {cap} in this endpoint).")
        execution = execution or ExecutionOptions(enable_pages=True)
        graph = TaskGraph(tasks=list(tasks))
        ordered = schedule(graph, strict=self.settings.strict_dependencies)

        run = self._start_run(objective, execution, constraints or {}, self.stub_coder, cancel)
        run.provisioner.create_repository(objective)
        run.provisioner.seed_site(run.applier, objective, ordered, execution.enable_pages)
        run.provisioner.protect_branch()
        return self._execute(run, ordered, graph, status="success", plan=None, include_prs=True)

    def _start_run(
        self,
        objective: str,
        execution: ExecutionOptions,
        constraints: dict[str, Any],
        coder: CoderPort,
        cancel: CancelToken | None,
    ) -> _Run:
        repo = slugify_repo_name(objective)
        settings = self.settings
        watch_policy = WatchPolicy(
            interval_seconds=settings.merge_poll_interval_seconds,
            max_attempts=settings.merge_max_attempts,
            backoff=settings.merge_poll_backoff,
            max_interval_seconds=settings.merge_max_interval_seconds,
        )
        self.logger.info("run.started repo=%s auto_merge=%s", repo, execution.auto_merge)
        self._publish({"type": "run_started", "repo": repo, "objective": objective})
        return _Run(
            objective=objective,
            repo=repo,
            execution=execution,
            provisioner=RepoProvisioner(
                self.client,
                repo,
                default_branch=settings.default_branch,
                required_status_check=settings.required_status_check,
            ),
            applier=ChangeApplier(self.client, repo),
            watcher=MergeWatcher(self.client, repo, watch_policy, sleep=self.sleep),
            gate=PolicyGate(self.policy, build_policy_config(settings, constraints)),
            coder=coder,
            aggregator=ResultAggregator(
                BudgetTelemetry(tokens_used=execution.tokens_used, api_calls=execution.api_calls)
            ),
            cancel=cancel,
            calls_at_start=self.client.request_count,
        )

    def _execute(
        self,
        run: _Run,
        ordered: list[Task],
        graph: TaskGraph,
        *,
        status: str,
        plan: dict[str, Any] | None,
        include_prs: bool,
    ) -> BatchReport:
        cancelled = False
        for task in ordered:
            if run.cancel is not None and run.cancel.cancelled:
                cancelled = True
                result = TaskResult(task_id=task.id, status=TaskStatus.CANCELLED, branch=task_to_branch(task.id))
            else:
                result = self._process_task(run, task)
            run.aggregator.add(result)
            self._publish(
                {
                    "type": "task_update",
                    "repo": run.repo,
                    "task_id": result.task_id,
                    "status": result.status.value,
                    "pr_number": result.pr_number,
                    "merged": result.merged,
                }
            )

        if run.execution.enable_pages and not cancelled:
            run.provisioner.enable_pages()
        self._sync_calls(run)
        report = run.aggregator.build(
            status="cancelled" if cancelled else status,
            repo=run.repo,
            live_url=run.provisioner.live_url,
            task_graph=graph,
            plan=plan,
            include_prs=include_prs,
        )
        self.logger.info("run.completed repo=%s counts=%s", run.repo, run.aggregator.counts())
        self._publish({"type": "run_completed", "repo": run.repo, "status": report.status})
        return report

    def _process_task(self, run: _Run, task: Task) -> TaskResult:
        patch = run.coder.code(run.objective, task)
        run.aggregator.add_tokens(patch.tokens_used)
        verdict = self.verifier.verify(task, patch)
        diff = DiffSummary(files=[change.path for change in [*patch.files, *verdict.test_files]])
        self._sync_calls(run)
        decision = run.gate.check(
            task,
            verdict,
            CIStatus(conclusion=run.execution.ci_conclusion),
            diff,
            run.aggregator.budget,
        )
        if not decision.allow_merge:
            return TaskResult(
                task_id=task.id,
                status=TaskStatus.BLOCKED_BY_POLICY,
                verifier=verdict.status,
                policy=decision,
            )

        base = self.settings.default_branch
        try:
            pr = run.applier.apply_patch(patch, verdict, base)
        except HostingApiError as exc:
            self.logger.error("task.failed task=%s error=%s", task.id, exc)
            return TaskResult(
                task_id=task.id,
                status=TaskStatus.FAILED,
                branch=patch.branch,
                verifier=verdict.status,
                policy=decision,
                error=str(exc),
            )

        merge = MergeOutcome(merged=False, reason=AUTO_MERGE_DISABLED)
        if run.execution.auto_merge:
            merge = run.watcher.watch_and_merge(pr.number, run.cancel)
        self.logger.info("task.pr_opened task=%s pr=%s merged=%s", task.id, pr.number, merge.merged)
        return TaskResult(
            task_id=task.id,
            status=TaskStatus.PR_OPENED,
            branch=patch.branch,
            pr_number=pr.number,
            pr_url=pr.html_url,
            verifier=verdict.status,
            policy=decision,
            merge=merge,
        )

    def _sync_calls(self, run: _Run) -> None:
        run.aggregator.set_api_calls(self.client.request_count - run.calls_at_start)

    def _publish(self, event: dict[str, Any]) -> None:
        if self.broadcaster is not None:
            self.broadcaster.publish(event)
