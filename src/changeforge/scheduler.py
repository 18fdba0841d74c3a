"""Dependency ordering for task graphs."""

from __future__ import annotations

from collections import deque
import re

from changeforge.errors import DependencyCycleError, ValidationError
from changeforge.models import Task, TaskGraph
from changeforge.util.logging import get_logger

logger = get_logger("changeforge.scheduler")

_BRANCH_UNSAFE = re.compile(r"[^a-z0-9\-_]")


def task_to_branch(task_id: str) -> str:
    """Derive the feature branch for a task id."""
    clean = _BRANCH_UNSAFE.sub("-", (task_id or "task").lower())
    clean = re.sub(r"-+", "-", clean)[:40]
    return f"feature/{clean or 'task'}"


def unknown_dependencies(graph: TaskGraph) -> dict[str, list[str]]:
    known = set(graph.ids())
    missing: dict[str, list[str]] = {}
    for task in graph.tasks:
        unresolved = [dep for dep in task.dependencies if dep not in known]
        if unresolved:
            missing[task.id] = unresolved
    return missing


def schedule(graph: TaskGraph, strict: bool = False) -> list[Task]:
    """Order tasks so each one follows everything it depends on.

    Uses Kahn's algorithm with a FIFO queue seeded in input order, so independent
    tasks keep the caller's ordering. Dependencies on ids outside the graph are
    dropped with a warning, or rejected when `strict` is set.

    Raises `DependencyCycleError` when some tasks can never become ready.
    """
    ids = graph.ids()
    if len(set(ids)) != len(ids):
        duplicates = sorted({task_id for task_id in ids if ids.count(task_id) > 1})
        raise ValidationError(f"Task ids must be unique: {', '.join(duplicates)}")

    missing = unknown_dependencies(graph)
    if missing:
        detail = "; ".join(f"{task_id} -> {', '.join(deps)}" for task_id, deps in missing.items())
        if strict:
            raise ValidationError(f"Unknown dependencies: {detail}")
        logger.warning("schedule.unknown_dependencies ignored=%s", detail)

    by_id = {task.id: task for task in graph.tasks}
    in_degree = {task.id: 0 for task in graph.tasks}
    dependents: dict[str, list[str]] = {task.id: [] for task in graph.tasks}
    for task in graph.tasks:
        for dep in dict.fromkeys(task.dependencies):
            if dep not in by_id:
                continue
            in_degree[task.id] += 1
            dependents[dep].append(task.id)

    queue = deque(task_id for task_id in ids if in_degree[task_id] == 0)
    ordered: list[Task] = []
    while queue:
        task_id = queue.popleft()
        ordered.append(by_id[task_id])
        for next_id in dependents[task_id]:
            in_degree[next_id] -= 1
            if in_degree[next_id] == 0:
                queue.append(next_id)

    if len(ordered) != len(graph.tasks):
        stuck = [task_id for task_id in ids if in_degree[task_id] > 0]
        raise DependencyCycleError(stuck)
    logger.info("schedule.ordered tasks=%s", ",".join(task.id for task in ordered))
    return ordered
