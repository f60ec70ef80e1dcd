"""
Lightweight DAG runner for bundle analysis.

Tasks run in dependency order, each receiving the merged results of its
upstream tasks. A failing task is recorded, not raised, and everything
downstream of it is skipped. A cancellation event is checked between tasks.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass
class TaskNode:
    """A single step of an analysis run."""

    name: str
    execute_fn: Callable[[dict[str, Any]], dict[str, Any] | None]
    depends_on: list[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    duration_ms: float = 0.0


class DAG:
    """
    A directed acyclic graph of TaskNodes.

    Usage:
        dag = DAG("bundle_analysis")
        dag.add_task("extract", extract_fn)
        dag.add_task("collect", collect_fn, depends_on=["extract"])
        dag.add_task("suggest", suggest_fn, depends_on=["collect"])
        summary = dag.run({"bundle": bundle})
    """

    def __init__(self, name: str):
        self.name = name
        self.tasks: dict[str, TaskNode] = {}

    def add_task(
        self,
        name: str,
        execute_fn: Callable[[dict[str, Any]], dict[str, Any] | None],
        depends_on: list[str] | None = None,
    ) -> DAG:
        if name in self.tasks:
            raise ValueError(f"Duplicate task name: {name}")
        self.tasks[name] = TaskNode(name=name, execute_fn=execute_fn, depends_on=list(depends_on or []))
        return self

    def execution_order(self) -> list[str]:
        """Kahn's algorithm; ties are broken by insertion order so runs are repeatable."""
        dependents: dict[str, list[str]] = {name: [] for name in self.tasks}
        in_degree: dict[str, int] = {}
        for task in self.tasks.values():
            for dep in task.depends_on:
                if dep not in self.tasks:
                    raise ValueError(f"Task '{task.name}' depends on unknown task '{dep}'")
                dependents[dep].append(task.name)
            in_degree[task.name] = len(task.depends_on)

        ready = deque(name for name, degree in in_degree.items() if degree == 0)
        order: list[str] = []
        while ready:
            current = ready.popleft()
            order.append(current)
            for name in dependents[current]:
                in_degree[name] -= 1
                if in_degree[name] == 0:
                    ready.append(name)

        if len(order) != len(self.tasks):
            raise ValueError("Cycle detected in DAG")
        return order

    def result(self, task_name: str) -> dict[str, Any]:
        return self.tasks[task_name].result

    def run(
        self,
        initial_context: dict[str, Any] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> dict[str, Any]:
        order = self.execution_order()
        context = dict(initial_context or {})
        summary: dict[str, Any] = {"pipeline": self.name, "tasks": {}}

        logger.info("Starting '%s' with %d tasks", self.name, len(self.tasks))

        for task_name in order:
            task = self.tasks[task_name]

            if cancel_event is not None and cancel_event.is_set():
                task.status = TaskStatus.CANCELLED
                summary["tasks"][task_name] = {"status": task.status.value}
                continue

            if any(self.tasks[dep].status != TaskStatus.SUCCESS for dep in task.depends_on):
                task.status = TaskStatus.SKIPPED
                logger.warning("Skipping '%s': an upstream task did not succeed", task_name)
                summary["tasks"][task_name] = {"status": task.status.value}
                continue

            for dep in task.depends_on:
                context.update(self.tasks[dep].result)

            task.status = TaskStatus.RUNNING
            logger.debug("Running task '%s'", task_name)
            start = time.perf_counter()
            try:
                task.result = task.execute_fn(context) or {}
                task.status = TaskStatus.SUCCESS
            except Exception as exc:
                task.status = TaskStatus.FAILED
                task.error = str(exc)
                logger.exception("Task '%s' failed", task_name)
            finally:
                task.duration_ms = (time.perf_counter() - start) * 1000

            summary["tasks"][task_name] = {
                "status": task.status.value,
                "duration_ms": round(task.duration_ms, 2),
                "error": task.error,
            }

        statuses = {t.status for t in self.tasks.values()}
        if statuses == {TaskStatus.SUCCESS}:
            summary["status"] = "completed"
        elif TaskStatus.CANCELLED in statuses:
            summary["status"] = "cancelled"
        else:
            summary["status"] = "failed"
        logger.info("'%s' finished: %s", self.name, summary["status"])
        return summary

