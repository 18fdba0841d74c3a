"""CI polling and auto-merge."""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Callable

from changeforge.cancel import CancelToken
from changeforge.errors import HostingApiError
from changeforge.github.client import GitHubClient
from changeforge.models import MergeOutcome, WatchState
from changeforge.util.logging import get_logger

CI_NOT_GREEN = "CI not green"


@dataclass(frozen=True)
class WatchPolicy:
    """Poll budget: wait `interval * backoff**attempt` (capped) before each attempt."""

    interval_seconds: float = 5.0
    max_attempts: int = 20
    backoff: float = 1.0
    max_interval_seconds: float = 30.0

    def delay(self, attempt: int) -> float:
        return min(self.interval_seconds * (self.backoff**attempt), self.max_interval_seconds)


class MergeWatcher:
    """Waits for a pull request's checks to pass, then squash-merges it.

    Terminal states: SATISFIED (merged), TIMED_OUT (budget spent, reason "CI not
    green") and ERRORED (hosting failure or cancellation). None of them raise.
    """

    def __init__(
        self,
        client: GitHubClient,
        repo: str,
        policy: WatchPolicy | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.client = client
        self.repo = repo
        self.policy = policy or WatchPolicy()
        self.sleep = sleep
        self.state = WatchState.POLLING
        self.logger = get_logger("changeforge.watcher")

    def _pause(self, delay: float, cancel: CancelToken | None) -> bool:
        if self.sleep is not None:
            self.sleep(delay)
            return bool(cancel and cancel.cancelled)
        if cancel is not None:
            return cancel.wait(delay)
        time.sleep(delay)
        return False

    def _finish(self, state: WatchState, merged: bool, polls: int, reason: str | None = None) -> MergeOutcome:
        self.state = state
        self.logger.info(
            "merge.%s repo=%s polls=%s reason=%s", state.value, self.repo, polls, reason
        )
        return MergeOutcome(merged=merged, reason=reason, state=state, polls=polls)

    def checks_green(self, pr_number: int) -> bool | None:
        """One poll: True when mergeable and every check run succeeded, None if not yet known."""
        pr = self.client.get_pull_request(self.repo, pr_number)
        if pr.get("mergeable_state") != "clean":
            return None
        head_sha = (pr.get("head") or {}).get("sha")
        if not head_sha:
            return None
        runs = self.client.list_check_runs(self.repo, head_sha)
        if not runs:
            return None
        return all(run.get("conclusion") == "success" for run in runs)

    def watch_and_merge(self, pr_number: int, cancel: CancelToken | None = None) -> MergeOutcome:
        self.state = WatchState.POLLING
        polls = 0
        for attempt in range(self.policy.max_attempts):
            if self._pause(self.policy.delay(attempt), cancel):
                return self._finish(WatchState.ERRORED, False, polls, "cancelled")
            polls += 1
            try:
                if not self.checks_green(pr_number):
                    continue
                self.client.merge_pull_request(self.repo, pr_number, "squash")
            except HostingApiError as exc:
                return self._finish(WatchState.ERRORED, False, polls, str(exc))
            return self._finish(WatchState.SATISFIED, True, polls)
        return self._finish(WatchState.TIMED_OUT, False, polls, CI_NOT_GREEN)
