from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from ..actions import Action
from ..classifier import normalise_reason
from ..client import RemoteCallError, RemoteServiceClient
from ..directory import Actor
from .collector import MetricsAggregator


@dataclass(frozen=True)
class ExecutionOutcome:
    ok: bool
    elapsed_ms: float = 0.0
    reason: str | None = None
    value: Any = None


class TransactionExecutor:
    """Runs one remote call attempt and records its outcome.

    Failed attempts are final: nothing here retries.
    """

    def __init__(self, client: RemoteServiceClient, metrics: MetricsAggregator) -> None:
        self._client = client
        self._metrics = metrics

    def execute(self, actor: Actor, action: Action) -> ExecutionOutcome:
        if action.read_only:
            return self.execute_view(actor, action)
        return self.execute_transactional(actor, action)

    def execute_transactional(self, actor: Actor, action: Action) -> ExecutionOutcome:
        started = time.perf_counter()
        try:
            pending = self._client.invoke(actor, action.kind.value, *action.args)
            receipt = self._client.wait(pending)
        except RemoteCallError as exc:
            return self._failure(exc.reason)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        self._metrics.record_tx_success(elapsed_ms)
        return ExecutionOutcome(ok=True, elapsed_ms=elapsed_ms, value=receipt)

    def execute_view(self, actor: Actor, action: Action) -> ExecutionOutcome:
        try:
            value = self._client.query(actor, action.kind.value, *action.args)
        except RemoteCallError as exc:
            return self._failure(exc.reason)
        self._metrics.record_view_success()
        return ExecutionOutcome(ok=True, value=value)

    def _failure(self, reason: str) -> ExecutionOutcome:
        reason = normalise_reason(reason)
        self._metrics.record_failure(reason)
        return ExecutionOutcome(ok=False, reason=reason)
