import pytest

from members.directory import directory, dashboard_stats, group_by_privilege
from members.errors import Unauthorized
from state.models import MemberStatus, Role


def test_directory_lists_approved_members_by_name(ctx, member):
    rows = directory(ctx, member("p4"))
    assert [r["full_name"] for r in rows] == [
        "Jessica Student",
        "Kara Kids",
        "Mike Guitar",
        "Pastor John",
        "Sarah Worship",
        "Timmy Kid",
    ]
    by_id = {r["id"]: r for r in rows}
    assert by_id["p5"]["age_group"] == "YOUTH"
    assert by_id["p4"]["age_group"] == "KIDS"
    assert by_id["p1"]["age_group_label"] == "Young Adult (23+)"
    assert by_id["p2"]["ministry"] == "Worship"


def test_directory_search_matches_name_or_email(ctx, member):
    assert [r["id"] for r in directory(ctx, member("p1"), "GUITAR")] == ["p3"]
    assert [r["id"] for r in directory(ctx, member("p1"), "uni.example")] == ["p5"]


@pytest.mark.parametrize("viewer", ["p6", "p7"])
def test_directory_denied_unless_approved(ctx, member, viewer):
    with pytest.raises(Unauthorized):
        directory(ctx, member(viewer))


def test_directory_survives_bad_birthdate(ctx, member):
    ctx.store.update_member_fields("p3", dob=None)
    row = next(r for r in directory(ctx, member("p1")) if r["id"] == "p3")
    assert row["age_group"] is None


def test_dashboard_stats(ctx):
    assert dashboard_stats(ctx) == {"total": 6, "youth": 1, "kids": 1, "pending": 1}


def test_group_by_privilege(ctx):
    grouped = group_by_privilege(ctx.store.list_members(MemberStatus.APPROVED))
    assert list(grouped) == [Role.SUPER_ADMIN, Role.MINISTRY_HEAD, Role.SG_LEADER, Role.MEMBER]
    assert {m.id for m in grouped[Role.MINISTRY_HEAD]} == {"p2", "p8"}
