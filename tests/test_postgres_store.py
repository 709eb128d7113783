import copy
from contextlib import contextmanager
from datetime import date

import pytest

from members import approval
from state.context import CoreContext
from state.models import Member, MemberStatus, Ministry, Role, RoleAssignment
from state.repository import PostgresBackedDB
from state.seed import load_dev_seed
from tests.fixtures import FIXED_TODAY


class FakeTables:
    """Just enough of profiles/user_roles for the statements the store issues."""

    def __init__(self):
        self.profiles = {}
        self.roles = {}
        self.statements = []
        self.fail_on = None
        self.down = False

    def add(self, member_id, status, roles):
        self.profiles[member_id] = {
            "id": member_id,
            "full_name": f"Member {member_id}",
            "email": f"{member_id}@example.com",
            "dob": date(2000, 1, 1),
            "manual_group_override": None,
            "status": status,
            "avatar_url": None,
            "dynamic_data": {},
        }
        self.roles[member_id] = [{"role": r, "assigned_ministry": m} for r, m in roles]


class FakeCursor:
    def __init__(self, tables):
        self.tables = tables
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=()):
        sql = " ".join(sql.split())
        t = self.tables
        t.statements.append(sql)
        if t.fail_on and sql.startswith(t.fail_on):
            raise RuntimeError("connection reset")
        self._rows = []
        if sql.startswith("select id from profiles where id = %s for update"):
            if params[0] in t.profiles:
                self._rows = [{"id": params[0]}]
        elif sql.startswith("select id, full_name"):
            row = t.profiles.get(params[0])
            self._rows = [dict(row)] if row else []
        elif sql.startswith("update profiles set "):
            assignments = sql[len("update profiles set "):sql.index(", updated_at")]
            names = [a.split(" = ")[0] for a in assignments.split(", ")]
            t.profiles[params[-1]].update(zip(names, params[:-1]))
        elif sql.startswith("delete from user_roles"):
            t.roles[params[0]] = []
        elif sql.startswith("insert into user_roles"):
            t.roles.setdefault(params[0], []).append({"role": params[1], "assigned_ministry": params[2]})
        elif sql.startswith("select role, assigned_ministry"):
            self._rows = list(t.roles.get(params[0], []))
        else:
            raise AssertionError(f"unexpected statement: {sql}")

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)


class FakeConnection:
    def __init__(self, tables):
        self.tables = tables

    def cursor(self, row_factory=None):
        return FakeCursor(self.tables)

    @contextmanager
    def transaction(self):
        saved = copy.deepcopy((self.tables.profiles, self.tables.roles))
        try:
            yield
        except Exception:
            self.tables.profiles, self.tables.roles = saved
            raise


class FakePool:
    def __init__(self, tables):
        self.tables = tables

    @contextmanager
    def connection(self):
        if self.tables.down:
            raise RuntimeError("pool exhausted")
        yield FakeConnection(self.tables)


@pytest.fixture
def tables():
    t = FakeTables()
    t.add("p1", "approved", [("SUPER_ADMIN", "None")])
    t.add("p6", "pending", [("MEMBER", "None"), ("MEMBER", "Kids")])
    return t


@pytest.fixture
def pg_store(tables):
    return PostgresBackedDB(pool=FakePool(tables))


def test_persistent_store_is_never_seeded(pg_store, tables):
    assert load_dev_seed(pg_store) is False
    assert tables.statements == []
    assert pg_store.members == {}
    assert set(tables.profiles) == {"p1", "p6"}


def test_status_and_roles_commit_together(pg_store, tables):
    updated = pg_store.update_member_fields(
        "p6", status=MemberStatus.APPROVED, roles=[RoleAssignment(Role.SG_LEADER, Ministry.KIDS)],
    )
    assert updated.status == MemberStatus.APPROVED
    assert updated.roles == [RoleAssignment(Role.SG_LEADER, Ministry.KIDS)]
    assert tables.profiles["p6"]["status"] == "approved"
    assert tables.roles["p6"] == [{"role": "SG_LEADER", "assigned_ministry": "Kids"}]


def test_failed_role_write_rolls_back_status(pg_store, tables):
    tables.fail_on = "insert into user_roles"
    with pytest.raises(RuntimeError):
        pg_store.update_member_fields(
            "p6", status=MemberStatus.APPROVED, roles=[RoleAssignment(Role.SG_LEADER, Ministry.KIDS)],
        )
    assert tables.profiles["p6"]["status"] == "pending"
    assert len(tables.roles["p6"]) == 2


def test_update_result_comes_from_the_committed_transaction(pg_store, tables, monkeypatch):
    # a later lookup failing must not turn a committed write into "not found"
    monkeypatch.setattr(pg_store, "get_member", lambda member_id: None)
    updated = pg_store.update_member_fields("p6", status=MemberStatus.DENIED)
    assert updated is not None
    assert updated.status == MemberStatus.DENIED
    assert updated.roles == [RoleAssignment(Role.MEMBER, Ministry.NONE), RoleAssignment(Role.MEMBER, Ministry.KIDS)]


def test_cached_member_survives_pool_outage(pg_store, tables):
    pg_store.update_member_fields("p6", status=MemberStatus.APPROVED)
    tables.down = True
    cached = pg_store.get_member("p6")
    assert cached is not None
    assert cached.status == MemberStatus.APPROVED


def test_update_unknown_member_returns_none(pg_store):
    assert pg_store.update_member_fields("ghost", status=MemberStatus.DENIED) is None


def test_approve_through_postgres_store(pg_store, tables):
    ctx = CoreContext(store=pg_store, clock=lambda: FIXED_TODAY, correlation_id="pg-cid")
    admin = Member(
        id="p1", full_name="Admin", email="p1@example.com", dob=date(1980, 1, 1),
        roles=[RoleAssignment(Role.SUPER_ADMIN, Ministry.NONE)], status=MemberStatus.APPROVED,
    )
    updated = approval.approve(ctx, admin, "p6", Role.SG_LEADER, Ministry.KIDS)
    assert updated.status == MemberStatus.APPROVED
    # primary replaced, secondary kept
    assert tables.roles["p6"] == [
        {"role": "SG_LEADER", "assigned_ministry": "Kids"},
        {"role": "MEMBER", "assigned_ministry": "Kids"},
    ]
    assert pg_store.event_log[-1].kind == "member_approved"
