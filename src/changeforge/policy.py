"""Pre-mutation policy gate."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from changeforge.config import Settings
from changeforge.models import (
    BudgetTelemetry,
    CIStatus,
    DiffSummary,
    PolicyDecision,
    RiskLevel,
    Task,
    VerifierVerdict,
)
from changeforge.util.logging import get_logger


@dataclass(frozen=True)
class PolicyConfig:
    max_risk: RiskLevel = RiskLevel.MEDIUM
    max_tokens: int = 120_000
    max_api_calls: int = 400
    max_files: int = 20
    protected_paths: tuple[str, ...] = (".github/",)
    extra: dict[str, Any] = field(default_factory=dict)


class PolicyPort(Protocol):
    def evaluate(
        self,
        task: Task,
        verdict: VerifierVerdict,
        ci: CIStatus,
        diff: DiffSummary,
        budget: BudgetTelemetry,
        config: PolicyConfig,
    ) -> PolicyDecision: ...


def build_policy_config(settings: Settings, constraints: dict[str, Any] | None = None) -> PolicyConfig:
    """Merge service defaults with per-run constraints (`risk`, `budget`)."""
    constraints = constraints or {}
    budget = constraints.get("budget") or {}
    risk = constraints.get("risk") or RiskLevel.MEDIUM.value
    try:
        max_risk = RiskLevel(str(risk).lower())
    except ValueError:
        max_risk = RiskLevel.MEDIUM
    return PolicyConfig(
        max_risk=max_risk,
        max_tokens=int(budget.get("max_tokens", settings.policy_max_tokens)),
        max_api_calls=int(budget.get("max_api_calls", settings.policy_max_api_calls)),
        max_files=int(constraints.get("max_files", settings.policy_max_files)),
        protected_paths=tuple(settings.protected_paths),
        extra={
            key: value
            for key, value in constraints.items()
            if key not in {"risk", "budget", "max_files"}
        },
    )


def _escalate(current: RiskLevel, candidate: RiskLevel) -> RiskLevel:
    return candidate if candidate.rank > current.rank else current


class RulePolicy:
    """Default evaluator: verifier and CI failures block outright, the rest scores risk."""

    def evaluate(
        self,
        task: Task,
        verdict: VerifierVerdict,
        ci: CIStatus,
        diff: DiffSummary,
        budget: BudgetTelemetry,
        config: PolicyConfig,
    ) -> PolicyDecision:
        risk = RiskLevel.LOW
        reasons: list[str] = []
        hard_block = False

        if verdict.status != "pass":
            hard_block = True
            risk = RiskLevel.HIGH
            reasons.append(f"verifier status is '{verdict.status}'")
        if ci.conclusion != "success":
            hard_block = True
            risk = RiskLevel.HIGH
            reasons.append(f"CI conclusion is '{ci.conclusion}'")

        protected = [
            path
            for path in diff.files
            if any(path.startswith(prefix) for prefix in config.protected_paths)
        ]
        if protected:
            risk = RiskLevel.HIGH
            reasons.append(f"touches protected paths: {', '.join(protected)}")
        if len(diff.files) > config.max_files:
            risk = RiskLevel.HIGH
            reasons.append(f"diff touches {len(diff.files)} files (max {config.max_files})")
        elif len(diff.files) > config.max_files // 2:
            risk = _escalate(risk, RiskLevel.MEDIUM)
            reasons.append(f"diff touches {len(diff.files)} files")

        if budget.tokens_used > config.max_tokens:
            risk = _escalate(risk, RiskLevel.MEDIUM)
            reasons.append(f"token budget exceeded ({budget.tokens_used} > {config.max_tokens})")
        if budget.api_calls > config.max_api_calls:
            risk = _escalate(risk, RiskLevel.MEDIUM)
            reasons.append(f"API call budget exceeded ({budget.api_calls} > {config.max_api_calls})")

        if risk.rank > config.max_risk.rank:
            reasons.append(f"risk {risk.value} exceeds allowed {config.max_risk.value}")
        allow = not hard_block and risk.rank <= config.max_risk.rank
        return PolicyDecision(allow_merge=allow, risk_level=risk, reasons=reasons)


class PolicyGate:
    """Runs the policy evaluator before any mutation and reports its decision as-is."""

    def __init__(self, evaluator: PolicyPort, config: PolicyConfig) -> None:
        self.evaluator = evaluator
        self.config = config
        self.logger = get_logger("changeforge.policy")

    def check(
        self,
        task: Task,
        verdict: VerifierVerdict,
        ci: CIStatus,
        diff: DiffSummary,
        budget: BudgetTelemetry,
    ) -> PolicyDecision:
        decision = self.evaluator.evaluate(task, verdict, ci, diff, budget, self.config)
        if decision.allow_merge:
            self.logger.info("policy.allowed task=%s risk=%s", task.id, decision.risk_level.value)
        else:
            self.logger.info(
                "policy.blocked task=%s risk=%s reasons=%s",
                task.id,
                decision.risk_level.value,
                "; ".join(decision.reasons),
            )
        return decision
