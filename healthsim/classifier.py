from __future__ import annotations

import enum
from typing import Sequence

from .directory import Role

NO_REASON = "<no reason>"


class PreconditionKind(str, enum.Enum):
    ALREADY_PATIENT = "already-patient"
    ALREADY_EXPERT = "already-expert"
    ALREADY_INSTITUTE = "already-institute"
    ALREADY_FAMILY_MEMBER = "already-family-member"
    UNKNOWN = "unknown"


# Revert phrases emitted by the contract when a registration is repeated.
# Anything not listed here is classified as UNKNOWN.
KNOWN_REJECTIONS: tuple[tuple[str, PreconditionKind], ...] = (
    ("Patient is already registered", PreconditionKind.ALREADY_PATIENT),
    ("Expert is already registered", PreconditionKind.ALREADY_EXPERT),
    ("Institute is already registered", PreconditionKind.ALREADY_INSTITUTE),
    ("Family member is already registered", PreconditionKind.ALREADY_FAMILY_MEMBER),
)

RECONCILED_ROLES: dict[PreconditionKind, Role] = {
    PreconditionKind.ALREADY_PATIENT: Role.PATIENT,
    PreconditionKind.ALREADY_EXPERT: Role.EXPERT,
    PreconditionKind.ALREADY_INSTITUTE: Role.INSTITUTE,
    PreconditionKind.ALREADY_FAMILY_MEMBER: Role.FAMILY_MEMBER,
}


def normalise_reason(message: str | None) -> str:
    """First line of a rejection message, trimmed."""
    if not message:
        return NO_REASON
    return message.split("\n", 1)[0].strip() or NO_REASON


class ErrorClassifier:
    def __init__(
        self,
        rejections: Sequence[tuple[str, PreconditionKind]] = KNOWN_REJECTIONS,
    ) -> None:
        self._rejections = tuple(rejections)

    def classify(self, reason: str) -> PreconditionKind:
        for phrase, kind in self._rejections:
            if phrase in reason:
                return kind
        return PreconditionKind.UNKNOWN

    def role_for(self, reason: str) -> Role | None:
        """Role the actor must already hold for the remote side to reject ``reason``."""
        return RECONCILED_ROLES.get(self.classify(reason))
