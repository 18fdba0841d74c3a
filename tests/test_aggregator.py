import pytest

from changeforge.aggregator import ResultAggregator
from changeforge.models import (
    BudgetTelemetry,
    MergeOutcome,
    PolicyDecision,
    RiskLevel,
    TaskGraph,
    TaskResult,
    TaskStatus,
)


def test_report_collects_results_and_budget():
    aggregator = ResultAggregator(BudgetTelemetry(tokens_used=10, api_calls=2))
    aggregator.add(
        TaskResult(
            task_id="a",
            status=TaskStatus.PR_OPENED,
            branch="feature/a",
            pr_number=1,
            merge=MergeOutcome(merged=True),
        )
    )
    aggregator.add(
        TaskResult(
            task_id="b",
            status=TaskStatus.BLOCKED_BY_POLICY,
            policy=PolicyDecision(allow_merge=False, risk_level=RiskLevel.HIGH, reasons=["nope"]),
        )
    )
    aggregator.add(TaskResult(task_id="c", status=TaskStatus.FAILED, branch="feature/c", error="boom"))
    aggregator.add_tokens(5)
    aggregator.set_api_calls(7)

    report = aggregator.build(
        status="ok", repo="demo", live_url="https://octo.github.io/demo/", task_graph=TaskGraph(), include_prs=True
    )
    assert [result.task_id for result in report.tasks] == ["a", "b", "c"]
    assert report.budget == BudgetTelemetry(tokens_used=15, api_calls=9)
    assert [(pr.task_id, pr.merged) for pr in report.prs] == [("a", True), ("c", False)]
    assert report.prs[1].error == "boom"
    assert aggregator.counts()["blocked_by_policy"] == 1


def test_each_task_is_recorded_once():
    aggregator = ResultAggregator()
    aggregator.add(TaskResult(task_id="a", status=TaskStatus.CANCELLED))
    with pytest.raises(ValueError):
        aggregator.add(TaskResult(task_id="a", status=TaskStatus.CANCELLED))


def test_task_result_serializes_merged_flag():
    result = TaskResult(task_id="a", status=TaskStatus.PR_OPENED, merge=MergeOutcome(merged=False))
    assert result.model_dump(mode="json")["merged"] is False
