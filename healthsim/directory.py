from __future__ import annotations

import collections
import contextlib
import enum
import random
import threading
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Sequence


class Role(str, enum.Enum):
    """Boolean role flags tracked for each actor."""

    PATIENT = "is_patient"
    EXPERT = "is_expert"
    INSTITUTE = "is_institute"
    FAMILY_MEMBER = "is_family_member"
    SUBMITTED_HEALTH_DATA = "submitted_health_data"


class LinkKind(str, enum.Enum):
    EXPERT = "linked_experts"
    FAMILY = "linked_family"


@dataclass(frozen=True)
class Actor:
    """Signing identity driving calls against the contract.

    ``private_key`` is ``None`` for accounts managed (unlocked) by the node.
    """

    address: str
    private_key: str | None = None
    label: str = ""

    @property
    def short(self) -> str:
        return self.address[:6]


@dataclass
class ActorState:
    is_patient: bool = False
    is_expert: bool = False
    is_institute: bool = False
    is_family_member: bool = False
    submitted_health_data: bool = False
    linked_experts: set[str] = field(default_factory=set)
    linked_family: set[str] = field(default_factory=set)

    def has(self, role: Role) -> bool:
        return bool(getattr(self, role.value))

    def copy(self) -> ActorState:
        return ActorState(
            is_patient=self.is_patient,
            is_expert=self.is_expert,
            is_institute=self.is_institute,
            is_family_member=self.is_family_member,
            submitted_health_data=self.submitted_health_data,
            linked_experts=set(self.linked_experts),
            linked_family=set(self.linked_family),
        )


class ActorDirectory:
    """Fixed actor population plus the locally believed role state of each actor.

    Each actor's slot is written only by the worker driving that actor. Writes
    and whole-directory scans share one lock so that a scan never observes a
    link set while it is being resized.
    """

    def __init__(self, actors: Sequence[Actor]) -> None:
        if not actors:
            raise ValueError("ActorDirectory requires at least one actor")
        addresses = [actor.address for actor in actors]
        if len(set(addresses)) != len(addresses):
            raise ValueError("Actor addresses must be unique")

        self._actors = list(actors)
        self._by_address = {actor.address: actor for actor in self._actors}
        self._states = {actor.address: ActorState() for actor in self._actors}
        self._lock = threading.Lock()

        self._owners: dict[str, int] = {}
        self._write_counts: collections.Counter[str] = collections.Counter()
        self.conflicting_writes = 0

    def __len__(self) -> int:
        return len(self._actors)

    def __iter__(self) -> Iterator[Actor]:
        return iter(self._actors)

    def __contains__(self, address: object) -> bool:
        return address in self._by_address

    @property
    def actors(self) -> list[Actor]:
        return list(self._actors)

    def actor(self, address: str) -> Actor:
        return self._by_address[address]

    def get(self, address: str) -> ActorState:
        """Live state of one actor; only its owning worker should mutate it."""
        return self._states[address]

    def snapshot(self, address: str) -> ActorState:
        with self._lock:
            return self._states[address].copy()

    def set_flag(self, address: str, role: Role) -> None:
        with self._lock:
            self._note_write(address)
            setattr(self._states[address], role.value, True)

    def add_link(self, address: str, kind: LinkKind, target: str) -> None:
        if target == address:
            raise ValueError(f"Actor {address} cannot link to itself")
        if target not in self._by_address:
            raise KeyError(target)
        with self._lock:
            self._note_write(address)
            getattr(self._states[address], kind.value).add(target)

    def remove_link(self, address: str, kind: LinkKind, target: str) -> bool:
        with self._lock:
            links = getattr(self._states[address], kind.value)
            if target not in links:
                return False
            self._note_write(address)
            links.discard(target)
            return True

    def find_with_role(
        self,
        role: Role,
        excluding: Iterable[str] = (),
        rng: random.Random | None = None,
    ) -> Actor | None:
        """Uniform random choice among actors holding ``role`` and not excluded."""
        excluded = set(excluding)
        with self._lock:
            eligible = [
                actor
                for actor in self._actors
                if actor.address not in excluded
                and self._states[actor.address].has(role)
            ]
        if not eligible:
            return None
        return (rng or random).choice(eligible)

    def find_linking_patient(self, expert: str) -> Actor | None:
        """First patient, in population order, that has linked ``expert``."""
        with self._lock:
            for actor in self._actors:
                state = self._states[actor.address]
                if state.is_patient and expert in state.linked_experts:
                    return actor
        return None

    def count_with_role(self, role: Role) -> int:
        with self._lock:
            return sum(1 for state in self._states.values() if state.has(role))

    def write_counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._write_counts)

    @contextlib.contextmanager
    def claim(self, address: str) -> Iterator[ActorState]:
        """Mark the calling thread as the single writer of ``address``.

        Writes to a claimed slot from any other thread, and a second claim on a
        slot that is already held, are counted in ``conflicting_writes``.
        """
        ident = threading.get_ident()
        with self._lock:
            if address in self._owners:
                self.conflicting_writes += 1
            self._owners[address] = ident
        try:
            yield self._states[address]
        finally:
            with self._lock:
                if self._owners.get(address) == ident:
                    del self._owners[address]

    def _note_write(self, address: str) -> None:
        owner = self._owners.get(address)
        if owner is not None and owner != threading.get_ident():
            self.conflicting_writes += 1
        self._write_counts[address] += 1
