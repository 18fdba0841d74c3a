"""Shared construction helpers for clients and orchestrators."""

from __future__ import annotations

from typing import Callable

import httpx

from changeforge.agents import CoderPort, PlannerPort, VerifierPort
from changeforge.config import Settings
from changeforge.events import EventBroadcaster
from changeforge.github.client import GitHubClient
from changeforge.orchestrator import Orchestrator
from changeforge.policy import PolicyPort


def build_client(
    settings: Settings,
    transport: httpx.BaseTransport | None = None,
    sleep: Callable[[float], None] | None = None,
) -> GitHubClient:
    settings.require_credentials()
    kwargs = {"sleep": sleep} if sleep is not None else {}
    return GitHubClient(
        token=settings.github_token or "",
        owner=settings.github_owner or "",
        base_url=settings.github_api_url,
        timeout_seconds=settings.github_timeout_seconds,
        owner_is_org=settings.owner_is_org,
        transport=transport,
        **kwargs,
    )


def build_orchestrator(
    settings: Settings,
    *,
    transport: httpx.BaseTransport | None = None,
    broadcaster: EventBroadcaster | None = None,
    planner: PlannerPort | None = None,
    coder: CoderPort | None = None,
    verifier: VerifierPort | None = None,
    policy: PolicyPort | None = None,
    sleep: Callable[[float], None] | None = None,
) -> Orchestrator:
    return Orchestrator(
        settings,
        build_client(settings, transport=transport, sleep=sleep),
        planner=planner,
        coder=coder,
        verifier=verifier,
        policy=policy,
        broadcaster=broadcaster,
        sleep=sleep,
    )
