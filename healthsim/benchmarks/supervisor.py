from __future__ import annotations

import logging
import threading
from typing import Callable, Sequence

from .collector import BatchResult, RunReport
from .load import BatchRunner

LOGGER = logging.getLogger("healthsim.benchmark.supervisor")

BatchCallback = Callable[[BatchResult], None]


class RunSupervisor:
    """Executes batches one after another under a single global deadline.

    When the deadline passes the supervisor signals workers to stop issuing new
    actions and returns the batches finalized so far. In-flight calls are left
    to finish on their daemon threads; the supervisor does not wait for them.
    """

    def __init__(
        self,
        runner: BatchRunner,
        batch_sizes: Sequence[int],
        deadline_seconds: float,
        on_batch: BatchCallback | None = None,
    ) -> None:
        self._runner = runner
        self._batch_sizes = tuple(batch_sizes)
        self._deadline_seconds = max(deadline_seconds, 0.0)
        self._on_batch = on_batch
        self._lock = threading.Lock()
        self.stop_event = threading.Event()

    def run(self) -> RunReport:
        report = RunReport(planned_batch_sizes=self._batch_sizes)
        errors: list[BaseException] = []

        def runner() -> None:
            try:
                self._run_batches(report)
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

        thread = threading.Thread(target=runner, name="run-supervisor", daemon=True)
        thread.start()
        thread.join(timeout=self._deadline_seconds)

        with self._lock:
            # A thread still exiting after its last batch has not timed out.
            if thread.is_alive() and len(report.batches) < len(self._batch_sizes):
                self.stop_event.set()
                report.timed_out = True
                LOGGER.warning(
                    "Run deadline of %.0f seconds reached after %d/%d batches",
                    self._deadline_seconds,
                    len(report.batches),
                    len(self._batch_sizes),
                )
            finished = RunReport(
                batches=list(report.batches),
                planned_batch_sizes=self._batch_sizes,
                timed_out=report.timed_out,
            )

        if errors:
            raise errors[0]
        return finished

    def _run_batches(self, report: RunReport) -> None:
        for batch_size in self._batch_sizes:
            if self.stop_event.is_set():
                return
            LOGGER.info("--- Running %d transactions ---", batch_size)
            result = self._runner.run(batch_size, self.stop_event)
            with self._lock:
                if self.stop_event.is_set():
                    return
                report.batches.append(result)
                if self._on_batch is not None:
                    self._on_batch(result)
