from __future__ import annotations

import collections
import threading
import time
from dataclasses import dataclass, field

import pandas as pd

from ..classifier import normalise_reason


@dataclass(frozen=True)
class BatchResult:
    batch_size: int
    attempted: int
    tx_success: int
    view_success: int
    failed: int
    total_latency_ms: float
    wall_clock_s: float
    errors: dict[str, int] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return self.tx_success + self.view_success

    @property
    def success_rate(self) -> float:
        if self.attempted == 0:
            return 0.0
        return self.succeeded / self.attempted * 100.0

    @property
    def average_latency_s(self) -> float:
        if self.tx_success == 0:
            return 0.0
        return self.total_latency_ms / self.tx_success / 1000.0

    @property
    def throughput_per_second(self) -> float:
        if self.wall_clock_s <= 0:
            return 0.0
        return self.attempted / self.wall_clock_s

    def error_histogram(self) -> list[tuple[str, int]]:
        """Failure reasons, most frequent first."""
        return sorted(self.errors.items(), key=lambda item: (-item[1], item[0]))


class MetricsAggregator:
    """Thread-safe counters shared by every actor worker of one batch."""

    def __init__(self, batch_size: int) -> None:
        self._batch_size = batch_size
        self._lock = threading.Lock()
        self._tx_success = 0
        self._view_success = 0
        self._failed = 0
        self._total_latency_ms = 0.0
        self._errors: collections.Counter[str] = collections.Counter()
        self._started_at: float | None = None

    def start(self) -> None:
        self._started_at = time.perf_counter()

    def record_tx_success(self, elapsed_ms: float) -> None:
        with self._lock:
            self._tx_success += 1
            self._total_latency_ms += elapsed_ms

    def record_view_success(self) -> None:
        with self._lock:
            self._view_success += 1

    def record_failure(self, reason: str) -> None:
        reason = normalise_reason(reason)
        with self._lock:
            self._failed += 1
            self._errors[reason] += 1

    @property
    def attempted(self) -> int:
        with self._lock:
            return self._tx_success + self._view_success + self._failed

    def finalize(self) -> BatchResult:
        finished_at = time.perf_counter()
        started_at = self._started_at if self._started_at is not None else finished_at
        with self._lock:
            return BatchResult(
                batch_size=self._batch_size,
                attempted=self._tx_success + self._view_success + self._failed,
                tx_success=self._tx_success,
                view_success=self._view_success,
                failed=self._failed,
                total_latency_ms=self._total_latency_ms,
                wall_clock_s=max(finished_at - started_at, 0.0),
                errors=dict(self._errors),
            )


@dataclass
class RunReport:
    batches: list[BatchResult] = field(default_factory=list)
    planned_batch_sizes: tuple[int, ...] = ()
    timed_out: bool = False

    def __iter__(self):
        return iter(self.batches)

    def __len__(self) -> int:
        return len(self.batches)

    @property
    def completed(self) -> bool:
        return not self.timed_out and len(self.batches) == len(self.planned_batch_sizes)

    def to_dataframe(self) -> pd.DataFrame:
        columns = [
            "batch_size",
            "attempted",
            "tx_success",
            "view_success",
            "failed",
            "success_rate",
            "avg_latency_s",
            "wall_clock_s",
            "throughput_per_s",
        ]
        rows = [
            {
                "batch_size": result.batch_size,
                "attempted": result.attempted,
                "tx_success": result.tx_success,
                "view_success": result.view_success,
                "failed": result.failed,
                "success_rate": result.success_rate,
                "avg_latency_s": result.average_latency_s,
                "wall_clock_s": result.wall_clock_s,
                "throughput_per_s": result.throughput_per_second,
            }
            for result in self.batches
        ]
        return pd.DataFrame(rows, columns=columns)

    def errors_dataframe(self) -> pd.DataFrame:
        rows = [
            {"batch_size": result.batch_size, "reason": reason, "count": count}
            for result in self.batches
            for reason, count in result.error_histogram()
        ]
        return pd.DataFrame(rows, columns=["batch_size", "reason", "count"])


def format_batch_report(result: BatchResult) -> list[str]:
    lines = [
        f"Completed batch of {result.batch_size} transactions ({result.attempted} attempted)",
        f"Success rate: {result.success_rate:.2f}% ({result.succeeded}/{result.attempted})",
        f"Average transaction time (transactional functions): {result.average_latency_s:.4f} seconds",
        f"Total batch time: {result.wall_clock_s:.2f} seconds",
    ]
    if result.failed > 0:
        lines.append("Error distribution:")
        lines.extend(
            f"- {reason}: {count} occurrences" for reason, count in result.error_histogram()
        )
    return lines
