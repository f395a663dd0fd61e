from __future__ import annotations

import enum
import random
from dataclasses import dataclass
from typing import ClassVar, Union

from .directory import Actor, ActorDirectory, Role

SPECIALIZATIONS: tuple[str, ...] = ("Cardiology", "Neurology", "Pediatrics", "Oncology")

# Registration probabilities, evaluated in order while the role is missing.
REGISTRATION_STEPS: tuple[tuple[Role, float], ...] = (
    (Role.PATIENT, 0.4),
    (Role.EXPERT, 0.3),
    (Role.INSTITUTE, 0.2),
    (Role.FAMILY_MEMBER, 0.2),
)


class ActionKind(str, enum.Enum):
    REGISTER_AS_PATIENT = "registerAsPatient"
    REGISTER_AS_HEALTHCARE_EXPERT = "registerAsHealthcareExpert"
    REGISTER_AS_RESEARCH_INSTITUTE = "registerAsResearchInstitute"
    REGISTER_AS_FAMILY_MEMBER = "registerAsFamilyMember"
    ADD_HEALTHCARE_EXPERT = "addHealthcareExpert"
    REMOVE_HEALTHCARE_EXPERT = "removeHealthcareExpert"
    ADD_FAMILY_MEMBER = "addFamilyMember"
    SEND_HEALTH_DATA = "sendHealthData"
    SEND_MESSAGE_TO_PATIENT = "sendMessageToPatient"
    SET_CONSENT_TO_RI = "setConsentToRI"
    CHECK_HEALTH_DATA_TIME = "checkHealthDataTime"
    VIEW_NOTIFICATIONS = "viewNotifications"


@dataclass(frozen=True)
class RegisterAsPatient:
    kind: ClassVar[ActionKind] = ActionKind.REGISTER_AS_PATIENT
    read_only: ClassVar[bool] = False

    @property
    def args(self) -> tuple:
        return ()


@dataclass(frozen=True)
class RegisterAsHealthcareExpert:
    name: str
    specialization: str
    years_of_experience: int

    kind: ClassVar[ActionKind] = ActionKind.REGISTER_AS_HEALTHCARE_EXPERT
    read_only: ClassVar[bool] = False

    @property
    def args(self) -> tuple:
        return (self.name, self.specialization, self.years_of_experience)


@dataclass(frozen=True)
class RegisterAsResearchInstitute:
    name: str

    kind: ClassVar[ActionKind] = ActionKind.REGISTER_AS_RESEARCH_INSTITUTE
    read_only: ClassVar[bool] = False

    @property
    def args(self) -> tuple:
        return (self.name,)


@dataclass(frozen=True)
class RegisterAsFamilyMember:
    name: str

    kind: ClassVar[ActionKind] = ActionKind.REGISTER_AS_FAMILY_MEMBER
    read_only: ClassVar[bool] = False

    @property
    def args(self) -> tuple:
        return (self.name,)


@dataclass(frozen=True)
class AddHealthcareExpert:
    expert: str

    kind: ClassVar[ActionKind] = ActionKind.ADD_HEALTHCARE_EXPERT
    read_only: ClassVar[bool] = False

    @property
    def args(self) -> tuple:
        return (self.expert,)


@dataclass(frozen=True)
class RemoveHealthcareExpert:
    expert: str

    kind: ClassVar[ActionKind] = ActionKind.REMOVE_HEALTHCARE_EXPERT
    read_only: ClassVar[bool] = False

    @property
    def args(self) -> tuple:
        return (self.expert,)


@dataclass(frozen=True)
class AddFamilyMember:
    family_member: str

    kind: ClassVar[ActionKind] = ActionKind.ADD_FAMILY_MEMBER
    read_only: ClassVar[bool] = False

    @property
    def args(self) -> tuple:
        return (self.family_member,)


@dataclass(frozen=True)
class SendHealthData:
    data: str

    kind: ClassVar[ActionKind] = ActionKind.SEND_HEALTH_DATA
    read_only: ClassVar[bool] = False

    @property
    def args(self) -> tuple:
        return (self.data,)


@dataclass(frozen=True)
class SendMessageToPatient:
    patient: str
    message: str

    kind: ClassVar[ActionKind] = ActionKind.SEND_MESSAGE_TO_PATIENT
    read_only: ClassVar[bool] = False

    @property
    def args(self) -> tuple:
        return (self.patient, self.message)


@dataclass(frozen=True)
class SetConsentToRI:
    consent: bool

    kind: ClassVar[ActionKind] = ActionKind.SET_CONSENT_TO_RI
    read_only: ClassVar[bool] = False

    @property
    def args(self) -> tuple:
        return (self.consent,)


@dataclass(frozen=True)
class CheckHealthDataTime:
    kind: ClassVar[ActionKind] = ActionKind.CHECK_HEALTH_DATA_TIME
    read_only: ClassVar[bool] = False

    @property
    def args(self) -> tuple:
        return ()


@dataclass(frozen=True)
class ViewNotifications:
    kind: ClassVar[ActionKind] = ActionKind.VIEW_NOTIFICATIONS
    read_only: ClassVar[bool] = True

    @property
    def args(self) -> tuple:
        return ()


Action = Union[
    RegisterAsPatient,
    RegisterAsHealthcareExpert,
    RegisterAsResearchInstitute,
    RegisterAsFamilyMember,
    AddHealthcareExpert,
    RemoveHealthcareExpert,
    AddFamilyMember,
    SendHealthData,
    SendMessageToPatient,
    SetConsentToRI,
    CheckHealthDataTime,
    ViewNotifications,
]

PATIENT_ACTIONS: tuple[ActionKind, ...] = (
    ActionKind.ADD_HEALTHCARE_EXPERT,
    ActionKind.SEND_HEALTH_DATA,
    ActionKind.REMOVE_HEALTHCARE_EXPERT,
    ActionKind.ADD_FAMILY_MEMBER,
    ActionKind.SET_CONSENT_TO_RI,
    ActionKind.VIEW_NOTIFICATIONS,
)


class ActionSelector:
    """Picks the next action for an actor from its locally believed state.

    ``select`` returns ``None`` when the chosen action has no eligible target;
    the caller skips the iteration without issuing a call.
    """

    def __init__(self, directory: ActorDirectory) -> None:
        self._directory = directory

    def select(
        self, actor: Actor, rng: random.Random, iteration: int = 0
    ) -> Action | None:
        state = self._directory.get(actor.address)

        for role, probability in REGISTRATION_STEPS:
            if not state.has(role) and rng.random() < probability:
                return self._registration(role, actor, rng)

        if state.is_patient:
            kind = PATIENT_ACTIONS[rng.randrange(len(PATIENT_ACTIONS))]
            return self._patient_action(kind, actor, rng, iteration)

        if state.is_expert:
            patient = self._directory.find_linking_patient(actor.address)
            if patient is None:
                return None
            return SendMessageToPatient(
                patient=patient.address,
                message=f"Message from expert {actor.short}",
            )

        return CheckHealthDataTime()

    def _registration(self, role: Role, actor: Actor, rng: random.Random) -> Action:
        if role is Role.PATIENT:
            return RegisterAsPatient()
        if role is Role.EXPERT:
            return RegisterAsHealthcareExpert(
                name=f"Expert {actor.short}",
                specialization=SPECIALIZATIONS[rng.randrange(len(SPECIALIZATIONS))],
                years_of_experience=rng.randint(1, 20),
            )
        if role is Role.INSTITUTE:
            return RegisterAsResearchInstitute(name=f"Institute {actor.short}")
        if role is Role.FAMILY_MEMBER:
            return RegisterAsFamilyMember(name=f"Family {actor.short}")
        raise ValueError(f"No registration action for role {role}")

    def _patient_action(
        self, kind: ActionKind, actor: Actor, rng: random.Random, iteration: int
    ) -> Action | None:
        state = self._directory.get(actor.address)

        if kind is ActionKind.ADD_HEALTHCARE_EXPERT:
            expert = self._directory.find_with_role(
                Role.EXPERT,
                excluding={actor.address, *state.linked_experts},
                rng=rng,
            )
            if expert is None:
                return None
            return AddHealthcareExpert(expert=expert.address)

        if kind is ActionKind.SEND_HEALTH_DATA:
            return SendHealthData(
                data=f"Health data sample {iteration} from {actor.short}"
            )

        if kind is ActionKind.REMOVE_HEALTHCARE_EXPERT:
            if not state.linked_experts:
                return None
            return RemoveHealthcareExpert(expert=min(state.linked_experts))

        if kind is ActionKind.ADD_FAMILY_MEMBER:
            family = self._directory.find_with_role(
                Role.FAMILY_MEMBER, excluding={actor.address}, rng=rng
            )
            if family is None:
                return None
            return AddFamilyMember(family_member=family.address)

        if kind is ActionKind.SET_CONSENT_TO_RI:
            return SetConsentToRI(consent=rng.random() > 0.5)

        if kind is ActionKind.VIEW_NOTIFICATIONS:
            return ViewNotifications()

        raise ValueError(f"{kind} is not a patient action")
