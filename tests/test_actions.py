"""Tests for the action selection policy."""

import random

import pytest
from conftest import ScriptedRandom

from healthsim.actions import (
    PATIENT_ACTIONS,
    ActionKind,
    ActionSelector,
    AddFamilyMember,
    AddHealthcareExpert,
    CheckHealthDataTime,
    RegisterAsFamilyMember,
    RegisterAsHealthcareExpert,
    RegisterAsPatient,
    RegisterAsResearchInstitute,
    RemoveHealthcareExpert,
    SendHealthData,
    SendMessageToPatient,
    SetConsentToRI,
    ViewNotifications,
)
from healthsim.client import DEFAULT_ABI_PATH, load_abi
from healthsim.directory import LinkKind, Role

REGISTRATION_ROLES = (Role.PATIENT, Role.EXPERT, Role.INSTITUTE, Role.FAMILY_MEMBER)


def register(directory, actor, *roles):
    for role in roles or REGISTRATION_ROLES:
        directory.set_flag(actor.address, role)


@pytest.fixture
def selector(directory):
    return ActionSelector(directory)


class TestRegistrationSteps:
    def test_patient_registration_first(self, selector, actors):
        action = selector.select(actors[0], ScriptedRandom(floats=[0.39]))
        assert action == RegisterAsPatient()

    def test_expert_registration_payload(self, selector, actors):
        rng = ScriptedRandom(floats=[0.4, 0.29], ints=[2, 7])
        action = selector.select(actors[1], rng)
        assert isinstance(action, RegisterAsHealthcareExpert)
        assert action.name == f"Expert {actors[1].address[:6]}"
        assert action.specialization == "Pediatrics"
        assert action.years_of_experience == 7
        assert action.args == (action.name, "Pediatrics", 7)

    def test_institute_registration(self, selector, actors):
        action = selector.select(actors[2], ScriptedRandom(floats=[0.9, 0.9, 0.1]))
        assert action == RegisterAsResearchInstitute(name=f"Institute {actors[2].short}")

    def test_family_registration(self, selector, actors):
        action = selector.select(actors[2], ScriptedRandom(floats=[0.9, 0.9, 0.9, 0.19]))
        assert action == RegisterAsFamilyMember(name=f"Family {actors[2].short}")

    def test_unregistered_actor_falls_back_to_health_check(self, selector, actors):
        action = selector.select(actors[0], ScriptedRandom(floats=[0.9, 0.9, 0.9, 0.9]))
        assert action == CheckHealthDataTime()

    def test_held_roles_do_not_consume_draws(self, selector, directory, actors):
        register(directory, actors[0], Role.PATIENT, Role.EXPERT)
        action = selector.select(actors[0], ScriptedRandom(floats=[0.1]))
        assert isinstance(action, RegisterAsResearchInstitute)

    def test_real_random_registration_payload_ranges(self, selector, actors):
        rng = random.Random(11)
        for _ in range(200):
            action = selector.select(actors[3], rng)
            if isinstance(action, RegisterAsHealthcareExpert):
                assert 1 <= action.years_of_experience <= 20
                assert action.specialization in {"Cardiology", "Neurology", "Pediatrics", "Oncology"}


class TestPatientActions:
    def test_six_way_menu(self):
        assert len(PATIENT_ACTIONS) == 6
        assert ActionKind.VIEW_NOTIFICATIONS in PATIENT_ACTIONS

    def test_patient_menu_used_while_other_roles_missing(self, selector, directory, actors):
        register(directory, actors[0], Role.PATIENT)
        rng = ScriptedRandom(floats=[0.9, 0.9, 0.9], ints=[1])
        action = selector.select(actors[0], rng, iteration=12)
        assert action == SendHealthData(data=f"Health data sample 12 from {actors[0].short}")

    def test_add_expert_targets_other_expert(self, selector, directory, actors):
        register(directory, actors[0])
        register(directory, actors[3], Role.EXPERT)
        action = selector.select(actors[0], ScriptedRandom(ints=[0]))
        assert action == AddHealthcareExpert(expert=actors[3].address)

    def test_add_expert_never_targets_self_or_linked(self, selector, directory, actors):
        register(directory, actors[0])
        register(directory, actors[1], Role.EXPERT)
        directory.add_link(actors[0].address, LinkKind.EXPERT, actors[1].address)
        assert selector.select(actors[0], ScriptedRandom(ints=[0])) is None

    def test_add_expert_with_random_source(self, selector, directory, actors):
        for actor in actors:
            register(directory, actor)
        rng = random.Random(5)
        for _ in range(100):
            action = selector._patient_action(ActionKind.ADD_HEALTHCARE_EXPERT, actors[2], rng, 0)
            assert action.expert != actors[2].address

    def test_remove_expert_skipped_without_links(self, selector, directory, actors):
        register(directory, actors[0])
        assert selector.select(actors[0], ScriptedRandom(ints=[2])) is None

    def test_remove_expert_picks_linked(self, selector, directory, actors):
        register(directory, actors[0])
        directory.add_link(actors[0].address, LinkKind.EXPERT, actors[4].address)
        directory.add_link(actors[0].address, LinkKind.EXPERT, actors[2].address)
        action = selector.select(actors[0], ScriptedRandom(ints=[2]))
        assert action == RemoveHealthcareExpert(expert=actors[2].address)

    def test_add_family_requires_other_family_member(self, selector, directory, actors):
        register(directory, actors[0])
        assert selector.select(actors[0], ScriptedRandom(ints=[3])) is None
        register(directory, actors[1], Role.FAMILY_MEMBER)
        action = selector.select(actors[0], ScriptedRandom(ints=[3]))
        assert action == AddFamilyMember(family_member=actors[1].address)

    def test_consent_is_a_coin_flip(self, selector, directory, actors):
        register(directory, actors[0])
        assert selector.select(actors[0], ScriptedRandom(floats=[0.7], ints=[4])) == SetConsentToRI(True)
        assert selector.select(actors[0], ScriptedRandom(floats=[0.2], ints=[4])) == SetConsentToRI(False)

    def test_view_notifications_is_read_only(self, selector, directory, actors):
        register(directory, actors[0])
        action = selector.select(actors[0], ScriptedRandom(ints=[5]))
        assert action == ViewNotifications()
        assert action.read_only
        assert not AddHealthcareExpert(expert="0x1").read_only


class TestExpertActions:
    def test_message_goes_to_linking_patient(self, selector, directory, actors):
        register(directory, actors[1], Role.EXPERT, Role.INSTITUTE, Role.FAMILY_MEMBER)
        register(directory, actors[3], Role.PATIENT)
        directory.add_link(actors[3].address, LinkKind.EXPERT, actors[1].address)
        action = selector.select(actors[1], ScriptedRandom(floats=[0.9]))
        assert action == SendMessageToPatient(
            patient=actors[3].address, message=f"Message from expert {actors[1].short}"
        )

    def test_message_skipped_without_linking_patient(self, selector, directory, actors):
        register(directory, actors[1], Role.EXPERT, Role.INSTITUTE, Role.FAMILY_MEMBER)
        assert selector.select(actors[1], ScriptedRandom(floats=[0.9])) is None


class TestOperationCatalog:
    def test_every_action_kind_exists_in_bundled_abi(self):
        names = {entry["name"] for entry in load_abi(DEFAULT_ABI_PATH) if entry.get("type") == "function"}
        assert {kind.value for kind in ActionKind} <= names

    def test_view_notifications_is_a_view_function(self):
        entries = {entry["name"]: entry for entry in load_abi(DEFAULT_ABI_PATH) if entry.get("type") == "function"}
        assert entries["viewNotifications"]["stateMutability"] == "view"
        assert entries["checkHealthDataTime"]["stateMutability"] == "nonpayable"
