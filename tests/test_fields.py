import pytest

from members.errors import InvalidDate, InvalidInput, NotFound, Unauthorized
from members.fields import update_profile, validate_dynamic_data
from state.models import CustomFieldDefinition

DEFS = [
    CustomFieldDefinition(key="baptism_date", label="Baptism Date", type="date"),
    CustomFieldDefinition(key="volunteer", label="Volunteer", type="boolean"),
    CustomFieldDefinition(key="household_size", label="Household", type="number"),
]


def test_valid_data_is_normalised():
    clean = validate_dynamic_data(
        {"baptism_date": "2015-05-20T00:00:00", "volunteer": True, "household_size": 4, "campus": "Main"},
        DEFS,
    )
    assert clean == {"baptism_date": "2015-05-20", "volunteer": True, "household_size": 4, "campus": "Main"}


def test_none_values_are_dropped():
    assert validate_dynamic_data({"volunteer": None}, DEFS) == {}


@pytest.mark.parametrize("data", [
    {"shoe_size": 10},
    {"baptism_date": "last spring"},
    {"volunteer": "yes"},
    {"household_size": True},
    {"household_size": "4"},
    {"campus": 7},
])
def test_invalid_data_rejected(data):
    with pytest.raises(InvalidInput):
        validate_dynamic_data(data, DEFS)


def test_unsupported_definition_type():
    with pytest.raises(InvalidInput):
        validate_dynamic_data({}, [CustomFieldDefinition(key="x", label="X", type="blob")])


def test_member_updates_own_profile(ctx, member):
    updated = update_profile(ctx, member("p3"), "p3", full_name="Michael Guitar", dynamic_data={"baptism_date": "2010-04-04"})
    assert updated.full_name == "Michael Guitar"
    assert updated.dynamic_data == {"campus": "Solar House Church", "baptism_date": "2010-04-04"}
    assert ctx.store.event_log[-1].kind == "profile_updated"


def test_profile_rejects_bad_input(ctx, member):
    with pytest.raises(InvalidDate):
        update_profile(ctx, member("p3"), "p3", dob="tomorrow")
    with pytest.raises(InvalidInput):
        update_profile(ctx, member("p3"), "p3", full_name="   ")


def test_only_super_admin_edits_others(ctx, member):
    with pytest.raises(Unauthorized):
        update_profile(ctx, member("p2"), "p3", full_name="Hijacked")
    updated = update_profile(ctx, member("p1"), "p3", full_name="Mike G.")
    assert updated.full_name == "Mike G."
    with pytest.raises(NotFound):
        update_profile(ctx, member("p1"), "ghost", full_name="Nobody")


def test_profile_rejects_future_birthdate(ctx, member):
    with pytest.raises(InvalidDate):
        update_profile(ctx, member("p3"), "p3", dob="2024-06-02")
    assert ctx.store.get_member("p3").dob.isoformat() == "1998-02-10"
