"""Shared fixtures: an in-memory stand-in for the HealthDataSharing contract."""

import collections
import random
import threading
import time

import matplotlib
import pytest

matplotlib.use("Agg")

from healthsim.client import PendingCall, RemoteCallError
from healthsim.directory import Actor, ActorDirectory


def make_actors(count):
    return [
        Actor(address="0x" + f"{index + 1:040x}", label="deployer" if index == 0 else "generated")
        for index in range(count)
    ]


class FakeServiceClient:
    """Applies the contract's registration rules in memory.

    ``reject`` maps an operation name to a reason it is always rejected with.
    ``delay`` sleeps inside ``wait`` so concurrent workers overlap.
    Overlapping calls for the same identity are counted in ``overlaps``.
    """

    def __init__(self, reject=None, delay=0.0):
        self.reject = dict(reject or {})
        self.delay = delay
        self.calls = []
        self.overlaps = 0
        self.patients = set()
        self.experts = set()
        self.institutes = set()
        self.family_members = set()
        self.patient_experts = collections.defaultdict(set)
        self.patient_family = collections.defaultdict(set)
        self.health_data = collections.defaultdict(list)
        self.messages = collections.defaultdict(list)
        self.consent = {}
        self._in_flight = collections.Counter()
        self._lock = threading.Lock()
        self._counter = 0

    def invoke(self, actor, operation, *args):
        self._enter(actor.address)
        with self._lock:
            self.calls.append((actor.address, operation, args))
            self._counter += 1
            handle = self._counter
        try:
            if operation in self.reject:
                raise RemoteCallError(self.reject[operation])
            with self._lock:
                self._apply(actor.address, operation, args)
        except RemoteCallError:
            self._leave(actor.address)
            raise
        return PendingCall(actor=actor.address, operation=operation, handle=handle)

    def wait(self, pending):
        try:
            if self.delay:
                time.sleep(self.delay)
            return {"status": 1, "transactionHash": pending.handle}
        finally:
            self._leave(pending.actor)

    def query(self, actor, operation, *args):
        self._enter(actor.address)
        try:
            with self._lock:
                self.calls.append((actor.address, operation, args))
            if operation in self.reject:
                raise RemoteCallError(self.reject[operation])
            if operation != "viewNotifications":
                raise RemoteCallError(f"unknown view {operation}")
            return list(self.messages[actor.address])
        finally:
            self._leave(actor.address)

    def operations(self, address=None):
        return [op for addr, op, _ in self.calls if address is None or addr == address]

    def _enter(self, address):
        with self._lock:
            if self._in_flight[address]:
                self.overlaps += 1
            self._in_flight[address] += 1

    def _leave(self, address):
        with self._lock:
            self._in_flight[address] -= 1

    def _apply(self, sender, operation, args):
        if operation == "registerAsPatient":
            _require(sender not in self.patients, "Patient is already registered")
            self.patients.add(sender)
        elif operation == "registerAsHealthcareExpert":
            _require(sender not in self.experts, "Expert is already registered")
            self.experts.add(sender)
        elif operation == "registerAsResearchInstitute":
            _require(sender not in self.institutes, "Institute is already registered")
            self.institutes.add(sender)
        elif operation == "registerAsFamilyMember":
            _require(sender not in self.family_members, "Family member is already registered")
            self.family_members.add(sender)
        elif operation == "addHealthcareExpert":
            (expert,) = args
            _require(sender in self.patients, "Only registered patients can add experts")
            _require(expert in self.experts, "Expert is not registered")
            _require(expert not in self.patient_experts[sender], "Expert already added")
            self.patient_experts[sender].add(expert)
        elif operation == "removeHealthcareExpert":
            (expert,) = args
            _require(expert in self.patient_experts[sender], "Expert not added")
            self.patient_experts[sender].discard(expert)
        elif operation == "addFamilyMember":
            (family,) = args
            _require(sender in self.patients, "Only registered patients can add family members")
            _require(family in self.family_members, "Family member is not registered")
            self.patient_family[sender].add(family)
        elif operation == "sendHealthData":
            _require(sender in self.patients, "Only registered patients can send health data")
            self.health_data[sender].append(args[0])
        elif operation == "sendMessageToPatient":
            patient, text = args
            _require(sender in self.patient_experts[patient], "Expert not authorized by patient")
            self.messages[patient].append(text)
        elif operation == "setConsentToRI":
            _require(sender in self.patients, "Only registered patients can set consent")
            self.consent[sender] = args[0]
        elif operation == "checkHealthDataTime":
            pass
        else:
            raise RemoteCallError(f"no method {operation}")


def _require(condition, reason):
    if not condition:
        raise RemoteCallError(f"execution reverted: {reason}\n    at HealthDataSharing")


class ScriptedRandom(random.Random):
    """Random source returning queued values for ``random`` and ``randrange``."""

    def __init__(self, floats=(), ints=()):
        super().__init__(0)
        self.floats = list(floats)
        self.ints = list(ints)

    def random(self):
        return self.floats.pop(0) if self.floats else 0.99

    def randrange(self, start, stop=None, step=1):
        if self.ints:
            return self.ints.pop(0)
        return 0 if stop is None else start

    def choice(self, seq):
        return seq[0]


@pytest.fixture
def actors():
    return make_actors(5)


@pytest.fixture
def directory(actors):
    return ActorDirectory(actors)


@pytest.fixture
def client():
    return FakeServiceClient()
