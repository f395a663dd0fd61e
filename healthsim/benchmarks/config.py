from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Sequence

DEFAULT_BATCH_SIZES: tuple[int, ...] = (1000, 5000, 10000, 15000, 25000)
DEFAULT_ACTOR_COUNT = 20
DEFAULT_DEADLINE_SECONDS = 30 * 60.0

PLAN_KEYS = frozenset(
    {
        "batch_sizes",
        "actor_count",
        "deadline_seconds",
        "seed",
        "pause_every",
        "pause_seconds",
    }
)


@dataclass(frozen=True)
class WorkerPolicy:
    """Cooperative pause applied by each actor worker.

    After every ``pause_every`` iterations the worker sleeps ``pause_seconds``
    so a single actor does not flood the node with back-to-back submissions.
    """

    pause_every: int = 100
    pause_seconds: float = 0.01

    def should_pause(self, iteration: int) -> bool:
        return (iteration + 1) % self.pause_every == 0


@dataclass(frozen=True)
class BenchmarkPlan:
    """Complete set of batches the harness will execute in one run."""

    batch_sizes: tuple[int, ...] = DEFAULT_BATCH_SIZES
    actor_count: int = DEFAULT_ACTOR_COUNT
    deadline_seconds: float = DEFAULT_DEADLINE_SECONDS
    seed: int | None = None
    worker_policy: WorkerPolicy = field(default_factory=WorkerPolicy)

    def __iter__(self) -> Iterable[int]:
        return iter(self.batch_sizes)

    def validate(self) -> BenchmarkPlan:
        if not self.batch_sizes:
            raise ValueError("BenchmarkPlan requires at least one batch size")
        if any(size <= 0 for size in self.batch_sizes):
            raise ValueError("Batch sizes must be > 0")
        if any(b <= a for a, b in zip(self.batch_sizes, self.batch_sizes[1:])):
            raise ValueError("Batch sizes must be strictly ascending")
        if self.actor_count < 1:
            raise ValueError("actor_count must be >= 1")
        if self.deadline_seconds < 0:
            raise ValueError("deadline_seconds must be >= 0")
        if self.worker_policy.pause_every <= 0:
            raise ValueError("pause_every must be > 0")
        if self.worker_policy.pause_seconds < 0:
            raise ValueError("pause_seconds must be >= 0")
        return self

    def with_overrides(self, **overrides: Any) -> BenchmarkPlan:
        """Copy of the plan with every non-``None`` override applied."""
        values = {key: value for key, value in overrides.items() if value is not None}
        policy_values = {
            key: values.pop(key) for key in ("pause_every", "pause_seconds") if key in values
        }
        plan = dataclasses.replace(self, **values)
        if policy_values:
            plan = dataclasses.replace(
                plan, worker_policy=dataclasses.replace(plan.worker_policy, **policy_values)
            )
        return plan


def default_benchmark_plan() -> BenchmarkPlan:
    return BenchmarkPlan()


def parse_batch_sizes(value: str | Sequence[int]) -> tuple[int, ...]:
    if isinstance(value, str):
        items = [item.strip() for item in value.split(",") if item.strip()]
        try:
            return tuple(int(item) for item in items)
        except ValueError as exc:
            raise ValueError(f"Invalid batch size list {value!r}") from exc
    return tuple(int(item) for item in value)


def load_plan(path: str | Path | None) -> BenchmarkPlan:
    if not path:
        return default_benchmark_plan()

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Benchmark plan {path} must be a JSON object")

    unknown = set(data) - PLAN_KEYS
    if unknown:
        raise ValueError(f"Unknown benchmark plan keys: {', '.join(sorted(unknown))}")

    if "batch_sizes" in data:
        data["batch_sizes"] = parse_batch_sizes(data["batch_sizes"])
    return default_benchmark_plan().with_overrides(**data).validate()
