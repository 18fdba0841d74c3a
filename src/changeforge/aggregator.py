"""Collects per-task outcomes into a batch report."""

from __future__ import annotations

from typing import Any

from changeforge.models import (
    BatchReport,
    BudgetTelemetry,
    PullRequestSummary,
    TaskGraph,
    TaskResult,
    TaskStatus,
)


class ResultAggregator:
    def __init__(self, seed: BudgetTelemetry | None = None) -> None:
        self._seed = seed or BudgetTelemetry()
        self._tokens = 0
        self._api_calls = 0
        self.results: list[TaskResult] = []

    def add(self, result: TaskResult) -> TaskResult:
        if any(existing.task_id == result.task_id for existing in self.results):
            raise ValueError(f"Result already recorded for task {result.task_id}")
        self.results.append(result)
        return result

    def add_tokens(self, tokens: int) -> None:
        self._tokens += max(0, tokens)

    def set_api_calls(self, api_calls: int) -> None:
        self._api_calls = api_calls

    @property
    def budget(self) -> BudgetTelemetry:
        return BudgetTelemetry(
            tokens_used=self._seed.tokens_used + self._tokens,
            api_calls=self._seed.api_calls + self._api_calls,
        )

    def counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in TaskStatus}
        for result in self.results:
            counts[result.status.value] += 1
        return counts

    def pr_summaries(self) -> list[PullRequestSummary]:
        return [
            PullRequestSummary(
                task_id=result.task_id,
                branch=result.branch,
                pr_number=result.pr_number,
                merged=result.merged,
                reason=result.merge.reason if result.merge else None,
                error=result.error,
            )
            for result in self.results
            if result.pr_number is not None or result.error
        ]

    def build(
        self,
        *,
        status: str,
        repo: str,
        live_url: str,
        task_graph: TaskGraph,
        plan: dict[str, Any] | None = None,
        include_prs: bool = False,
    ) -> BatchReport:
        return BatchReport(
            status=status,
            repo=repo,
            live_url=live_url,
            task_graph=task_graph,
            tasks=list(self.results),
            budget=self.budget,
            plan=plan,
            prs=self.pr_summaries() if include_prs else None,
        )
