from __future__ import annotations

import logging
import math
import random
import threading
from typing import Callable, Sequence

from ..actions import (
    Action,
    ActionSelector,
    AddFamilyMember,
    AddHealthcareExpert,
    RegisterAsFamilyMember,
    RegisterAsHealthcareExpert,
    RegisterAsPatient,
    RegisterAsResearchInstitute,
    RemoveHealthcareExpert,
    SendHealthData,
)
from ..classifier import ErrorClassifier
from ..client import RemoteServiceClient
from ..directory import Actor, ActorDirectory, LinkKind, Role
from .collector import BatchResult, MetricsAggregator
from .config import WorkerPolicy
from .executor import TransactionExecutor

LOGGER = logging.getLogger("healthsim.benchmark.load")

RngFactory = Callable[[Actor], random.Random]


def partition_actions(total: int, actor_count: int) -> list[int]:
    """Split ``total`` actions over ``actor_count`` actors with ceiling shares.

    Trailing actors receive fewer, possibly zero, actions.
    """
    if actor_count <= 0:
        raise ValueError("actor_count must be > 0")
    if total <= 0:
        return [0] * actor_count
    per_actor = math.ceil(total / actor_count)
    return [
        max(0, min(per_actor, total - index * per_actor)) for index in range(actor_count)
    ]


class ActorWorker:
    """Serialized select, execute and reconcile loop for a single actor."""

    def __init__(
        self,
        actor: Actor,
        iterations: int,
        directory: ActorDirectory,
        selector: ActionSelector,
        executor: TransactionExecutor,
        classifier: ErrorClassifier,
        rng: random.Random,
        policy: WorkerPolicy,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.actor = actor
        self.iterations = iterations
        self._directory = directory
        self._selector = selector
        self._executor = executor
        self._classifier = classifier
        self._rng = rng
        self._policy = policy
        self._stop_event = stop_event or threading.Event()
        self.completed = 0
        self.skipped = 0
        self._failure_logged = False

    def run(self) -> None:
        with self._directory.claim(self.actor.address):
            for iteration in range(self.iterations):
                if self._stop_event.is_set():
                    LOGGER.debug(
                        "actor %s stopping after %d/%d iterations",
                        self.actor.address,
                        iteration,
                        self.iterations,
                    )
                    return
                self._run_iteration(iteration)
                self.completed += 1
                if self._policy.should_pause(iteration):
                    self._stop_event.wait(self._policy.pause_seconds)

    def _run_iteration(self, iteration: int) -> None:
        action = self._selector.select(self.actor, self._rng, iteration)
        if action is None:
            self.skipped += 1
            LOGGER.debug("actor %s: no eligible action, skipping", self.actor.address)
            return

        outcome = self._executor.execute(self.actor, action)
        if outcome.ok:
            self._apply_success(action)
        else:
            self._reconcile(outcome.reason or "")

    def _apply_success(self, action: Action) -> None:
        address = self.actor.address
        if isinstance(action, RegisterAsPatient):
            self._directory.set_flag(address, Role.PATIENT)
        elif isinstance(action, RegisterAsHealthcareExpert):
            self._directory.set_flag(address, Role.EXPERT)
        elif isinstance(action, RegisterAsResearchInstitute):
            self._directory.set_flag(address, Role.INSTITUTE)
        elif isinstance(action, RegisterAsFamilyMember):
            self._directory.set_flag(address, Role.FAMILY_MEMBER)
        elif isinstance(action, AddHealthcareExpert):
            self._directory.add_link(address, LinkKind.EXPERT, action.expert)
        elif isinstance(action, RemoveHealthcareExpert):
            self._directory.remove_link(address, LinkKind.EXPERT, action.expert)
        elif isinstance(action, AddFamilyMember):
            self._directory.add_link(address, LinkKind.FAMILY, action.family_member)
        elif isinstance(action, SendHealthData):
            self._directory.set_flag(address, Role.SUBMITTED_HEALTH_DATA)

    def _reconcile(self, reason: str) -> None:
        if not self._failure_logged:
            self._failure_logged = True
            LOGGER.warning("Transaction error for %s: %s", self.actor.address, reason)

        role = self._classifier.role_for(reason)
        if role is not None:
            LOGGER.debug("actor %s already holds %s, updating local state", self.actor.address, role.name)
            self._directory.set_flag(self.actor.address, role)


class BatchRunner:
    """Fans one batch out over the actor population and joins on completion.

    Workers are spread round-robin over ``max_workers`` daemon threads; each
    thread drives its workers one after another. By default every actor with
    a non-zero share gets its own thread.
    """

    def __init__(
        self,
        client: RemoteServiceClient,
        directory: ActorDirectory,
        policy: WorkerPolicy | None = None,
        classifier: ErrorClassifier | None = None,
        seed: int | None = None,
        max_workers: int | None = None,
    ) -> None:
        if max_workers is not None and max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        self._client = client
        self._directory = directory
        self._policy = policy or WorkerPolicy()
        self._classifier = classifier or ErrorClassifier()
        self._seed = seed
        self._max_workers = max_workers
        self._selector = ActionSelector(directory)
        self._batch_counter = 0
        self.last_workers: list[ActorWorker] = []

    def run(self, batch_size: int, stop_event: threading.Event | None = None) -> BatchResult:
        stop_event = stop_event or threading.Event()
        self._batch_counter += 1
        metrics = MetricsAggregator(batch_size)
        executor = TransactionExecutor(self._client, metrics)

        actors = self._directory.actors
        shares = partition_actions(batch_size, len(actors))
        workers = [
            ActorWorker(
                actor=actor,
                iterations=share,
                directory=self._directory,
                selector=self._selector,
                executor=executor,
                classifier=self._classifier,
                rng=self._rng_for(actor),
                policy=self._policy,
                stop_event=stop_event,
            )
            for actor, share in zip(actors, shares)
            if share > 0
        ]
        self.last_workers = workers

        LOGGER.info(
            "Running %d transactions across %d actors", batch_size, len(workers)
        )
        metrics.start()
        errors = self._join(self._spawn(workers))
        if errors:
            raise errors[0]
        return metrics.finalize()

    def _rng_for(self, actor: Actor) -> random.Random:
        if self._seed is None:
            return random.Random()
        return random.Random(f"{self._seed}:{self._batch_counter}:{actor.address}")

    def _spawn(self, workers: Sequence[ActorWorker]) -> list[tuple[threading.Thread, list[BaseException]]]:
        lane_count = min(self._max_workers or len(workers), len(workers))
        lanes: list[list[ActorWorker]] = [workers[i::lane_count] for i in range(lane_count)]
        threads = []
        for index, lane in enumerate(lanes):
            errors: list[BaseException] = []
            thread = threading.Thread(
                target=_drive_lane,
                args=(lane, errors),
                name=f"actor-lane-{index}",
                daemon=True,
            )
            thread.start()
            threads.append((thread, errors))
        return threads

    @staticmethod
    def _join(threads: Sequence[tuple[threading.Thread, list[BaseException]]]) -> list[BaseException]:
        errors: list[BaseException] = []
        for thread, lane_errors in threads:
            thread.join()
            errors.extend(lane_errors)
        return errors


def _drive_lane(workers: Sequence[ActorWorker], errors: list[BaseException]) -> None:
    for worker in workers:
        try:
            worker.run()
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("worker for %s failed", worker.actor.address)
            errors.append(exc)
            return
