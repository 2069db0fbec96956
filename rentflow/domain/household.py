"""Household cluster: the unit an application belongs to"""

import enum
from dataclasses import dataclass, field
from typing import List, Optional

from rentflow.domain.exceptions import HouseholdError


class MemberRole(str, enum.Enum):
    PRIMARY = "primary"
    CO_APPLICANT = "co_applicant"
    COSIGNER = "cosigner"


class MemberState(str, enum.Enum):
    INVITED = "invited"
    ACTIVE = "active"
    LEFT = "left"


@dataclass
class Member:
    user_id: str
    role: MemberRole = MemberRole.CO_APPLICANT
    state: MemberState = MemberState.INVITED

    def __post_init__(self) -> None:
        self.role = MemberRole(self.role)
        self.state = MemberState(self.state)


@dataclass
class Household:
    """
    Set of members applying together.

    At most one active member holds the primary role; ``make_primary`` is the
    only way to move it.
    """

    household_id: str
    members: List[Member] = field(default_factory=list)
    display_name: Optional[str] = None

    def get(self, user_id: str) -> Optional[Member]:
        return next((m for m in self.members if m.user_id == user_id), None)

    @property
    def primary(self) -> Optional[Member]:
        return next(
            (m for m in self.members if m.role == MemberRole.PRIMARY and m.state == MemberState.ACTIVE),
            None,
        )

    @property
    def active_members(self) -> List[Member]:
        return [m for m in self.members if m.state == MemberState.ACTIVE]

    def add_member(
        self,
        user_id: str,
        role: MemberRole = MemberRole.CO_APPLICANT,
        state: MemberState = MemberState.INVITED,
    ) -> Member:
        existing = self.get(user_id)
        if existing and existing.state != MemberState.LEFT:
            raise HouseholdError(f"{user_id} is already in household {self.household_id}")

        role = MemberRole(role)
        state = MemberState(state)
        if role == MemberRole.PRIMARY and state == MemberState.ACTIVE and self.primary is not None:
            raise HouseholdError("Household already has an active primary; use make_primary")

        if existing:
            existing.role = role
            existing.state = state
            return existing

        member = Member(user_id=user_id, role=role, state=state)
        self.members.append(member)
        return member

    def activate(self, user_id: str) -> Member:
        """Accept an invite"""
        member = self._require(user_id)
        if member.state != MemberState.INVITED:
            raise HouseholdError(f"{user_id} has no pending invite")
        if member.role == MemberRole.PRIMARY and self.primary is not None:
            member.role = MemberRole.CO_APPLICANT
        member.state = MemberState.ACTIVE
        return member

    def make_primary(self, user_id: str) -> Member:
        """Promote an active member; the previous primary becomes a co-applicant"""
        member = self._require(user_id)
        if member.state != MemberState.ACTIVE:
            raise HouseholdError(f"Only active members can be primary, {user_id} is {member.state.value}")

        current = self.primary
        if current is not None and current is not member:
            current.role = MemberRole.CO_APPLICANT
        member.role = MemberRole.PRIMARY
        return member

    def leave(self, user_id: str) -> Member:
        member = self._require(user_id)
        if member.state == MemberState.LEFT:
            raise HouseholdError(f"{user_id} already left")
        member.state = MemberState.LEFT
        return member

    def _require(self, user_id: str) -> Member:
        member = self.get(user_id)
        if member is None:
            raise HouseholdError(f"{user_id} is not in household {self.household_id}")
        return member
