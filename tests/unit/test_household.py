"""Unit tests for household membership"""

import pytest
from rentflow.domain.exceptions import HouseholdError
from rentflow.domain.household import Household, MemberRole, MemberState


@pytest.fixture
def household() -> Household:
    h = Household(household_id="hh1", display_name="Unit 4B")
    h.add_member("alex", MemberRole.PRIMARY, MemberState.ACTIVE)
    h.add_member("sam", MemberRole.CO_APPLICANT, MemberState.ACTIVE)
    h.add_member("pat", MemberRole.COSIGNER)
    return h


def _active_primaries(h: Household):
    return [m for m in h.members if m.role == MemberRole.PRIMARY and m.state == MemberState.ACTIVE]


def test_make_primary_demotes_previous(household: Household):
    household.make_primary("sam")

    assert household.primary.user_id == "sam"
    assert household.get("alex").role == MemberRole.CO_APPLICANT
    assert len(_active_primaries(household)) == 1


def test_make_primary_requires_active_member(household: Household):
    with pytest.raises(HouseholdError):
        household.make_primary("pat")

    assert household.primary.user_id == "alex"


def test_second_active_primary_rejected(household: Household):
    with pytest.raises(HouseholdError):
        household.add_member("jo", MemberRole.PRIMARY, MemberState.ACTIVE)


def test_activating_invited_primary_keeps_single_primary(household: Household):
    household.add_member("jo", MemberRole.PRIMARY, MemberState.INVITED)

    member = household.activate("jo")

    assert member.role == MemberRole.CO_APPLICANT
    assert len(_active_primaries(household)) == 1


def test_leave_and_rejoin(household: Household):
    household.leave("alex")

    assert household.primary is None
    assert [m.user_id for m in household.active_members] == ["sam"]

    household.add_member("alex", MemberRole.PRIMARY, MemberState.ACTIVE)
    assert household.primary.user_id == "alex"


def test_duplicate_member_rejected(household: Household):
    with pytest.raises(HouseholdError):
        household.add_member("sam")


def test_unknown_member(household: Household):
    with pytest.raises(HouseholdError):
        household.leave("nobody")
