from __future__ import annotations
from typing import Dict, List, Optional, Any, Iterable
import dataclasses
import logging
import threading
from datetime import datetime
from psycopg_pool import ConnectionPool
from psycopg.types.json import Json
from psycopg.rows import dict_row
from .models import (
    EventLogEntry,
    Member,
    MemberStatus,
    RoleAssignment,
    Role,
    Ministry,
    AgeGroup,
    Song,
    PreferredKey,
    TrainingRecord,
    CustomFieldDefinition,
)
import config

_NOW = datetime.utcnow

# Fields a caller may change through update_member_fields; everything else is identity.
MUTABLE_MEMBER_FIELDS = frozenset({
    "full_name",
    "dob",
    "status",
    "roles",
    "manual_group_override",
    "avatar_url",
    "dynamic_data",
})


class InMemoryDB:
    # True when members outlive the process; the development seed skips such stores
    persistent = False

    def __init__(self):
        self.event_log: List[EventLogEntry] = []
        self.members: Dict[str, Member] = {}
        self.songs: Dict[str, Song] = {}
        self.preferred_keys: Dict[str, PreferredKey] = {}
        self.training_records: Dict[str, TrainingRecord] = {}
        self.custom_fields: Dict[str, CustomFieldDefinition] = {}
        self._lock = threading.RLock()

    # Event log
    def append_event(self, entry: EventLogEntry):
        with self._lock:
            self.event_log.append(entry)

    # Members
    def save_member(self, member: Member):
        with self._lock:
            member.updated_at = _NOW()
            self.members[member.id] = member

    def get_member(self, member_id: str) -> Optional[Member]:
        return self.members.get(member_id)

    def find_member_by_email(self, email: str) -> Optional[Member]:
        needle = email.strip().lower()
        for m in self.members.values():
            if m.email.lower() == needle:
                return m
        return None

    def list_members(self, status: Optional[MemberStatus] = None) -> List[Member]:
        with self._lock:
            members = [m for m in self.members.values() if status is None or m.status == status]
        members.sort(key=lambda m: ((m.full_name or "").lower(), m.id))
        return members

    def update_member_fields(self, member_id: str, **fields: Any) -> Optional[Member]:
        """Apply all fields in one step; readers never observe a half-applied update."""
        unknown = set(fields) - MUTABLE_MEMBER_FIELDS
        if unknown:
            raise ValueError(f"cannot update member fields: {sorted(unknown)}")
        with self._lock:
            current = self.members.get(member_id)
            if current is None:
                return None
            if "roles" in fields:
                fields["roles"] = list(fields["roles"])
            updated = dataclasses.replace(current, updated_at=_NOW(), **fields)
            self.members[member_id] = updated
            return updated

    # Songs / preferred keys
    def save_song(self, song: Song):
        with self._lock:
            self.songs[song.id] = song

    def get_song(self, song_id: str) -> Optional[Song]:
        return self.songs.get(song_id)

    def list_songs(self) -> List[Song]:
        with self._lock:
            songs = list(self.songs.values())
        songs.sort(key=lambda s: (s.title.lower(), s.id))
        return songs

    def save_preferred_key(self, key: PreferredKey):
        with self._lock:
            self.preferred_keys[key.id] = key

    def list_preferred_keys(self, song_id: Optional[str] = None) -> List[PreferredKey]:
        with self._lock:
            return [k for k in self.preferred_keys.values() if song_id is None or k.song_id == song_id]

    # Training
    def save_training_record(self, record: TrainingRecord):
        with self._lock:
            self.training_records[record.id] = record

    def find_training_record(self, member_id: str, module_name: str) -> Optional[TrainingRecord]:
        for rec in self.training_records.values():
            if rec.member_id == member_id and rec.module_name == module_name:
                return rec
        return None

    def list_training_records(self, member_id: Optional[str] = None) -> List[TrainingRecord]:
        with self._lock:
            return [r for r in self.training_records.values() if member_id is None or r.member_id == member_id]

    # Custom field definitions
    def set_custom_fields(self, definitions: Iterable[CustomFieldDefinition]):
        with self._lock:
            self.custom_fields = {d.key: d for d in definitions}

    def list_custom_fields(self) -> List[CustomFieldDefinition]:
        return list(self.custom_fields.values())


class PostgresBackedDB(InMemoryDB):
    """Hybrid DB that keeps member profiles and role assignments in Postgres
    while the song library, training and audit log stay in memory."""

    persistent = True

    def __init__(self, conninfo: Optional[str] = None, pool: Optional[ConnectionPool] = None):
        super().__init__()
        self._logger = logging.getLogger("state.postgres")
        if pool is None:
            pool = ConnectionPool(
                conninfo,
                min_size=1,
                max_size=5,
                kwargs={"autocommit": True},
            )
        self._pool = pool

    @staticmethod
    def _row_to_member(row: dict, role_rows: List[dict]) -> Member:
        override = row.get("manual_group_override")
        return Member(
            id=str(row["id"]),
            full_name=row["full_name"] or "",
            email=row["email"] or "",
            dob=row["dob"],
            manual_group_override=AgeGroup.parse(override) if override else None,
            roles=[
                RoleAssignment(Role.parse(r["role"]), Ministry.parse(r["assigned_ministry"]))
                for r in role_rows
            ],
            status=MemberStatus(row["status"] or "pending"),
            avatar_url=row.get("avatar_url"),
            dynamic_data=row.get("dynamic_data") or {},
        )

    def _fetch_roles(self, cur, member_id: str) -> List[dict]:
        cur.execute(
            """
            select role, assigned_ministry
            from user_roles
            where user_id = %s
            order by id
            """,
            (member_id,),
        )
        return cur.fetchall()

    def get_member(self, member_id: str) -> Optional[Member]:
        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    select id, full_name, email, dob, manual_group_override,
                           status, avatar_url, dynamic_data
                    from profiles
                    where id = %s
                    """,
                    (member_id,),
                )
                row = cur.fetchone()
                if not row:
                    return None
                member = self._row_to_member(row, self._fetch_roles(cur, member_id))
                self.members[member.id] = member
                return member
        except Exception:  # noqa: BLE001 - fallback to memory
            self._logger.exception("Falling back to in-memory member lookup")
        return super().get_member(member_id)

    def list_members(self, status: Optional[MemberStatus] = None) -> List[Member]:
        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
                where = ""
                params: list[Any] = []
                if status is not None:
                    where = " where status = %s"
                    params.append(status.value)
                cur.execute(
                    f"""
                    select id, full_name, email, dob, manual_group_override,
                           status, avatar_url, dynamic_data
                    from profiles{where}
                    order by full_name asc
                    """,
                    params,
                )
                rows = cur.fetchall()
                members = [self._row_to_member(r, self._fetch_roles(cur, str(r["id"]))) for r in rows]
                return members
        except Exception:  # noqa: BLE001 - fallback to memory
            self._logger.exception("Falling back to in-memory member listing")
        return super().list_members(status)

    def find_member_by_email(self, email: str) -> Optional[Member]:
        try:
            with self._pool.connection() as conn, conn.cursor() as cur:
                cur.execute("select id from profiles where lower(email) = %s", (email.strip().lower(),))
                row = cur.fetchone()
            return self.get_member(str(row[0])) if row else None
        except Exception:  # noqa: BLE001 - fallback to memory
            self._logger.exception("Falling back to in-memory email lookup")
        return super().find_member_by_email(email)

    def save_member(self, member: Member):
        override = member.manual_group_override.value if member.manual_group_override else None
        try:
            with self._pool.connection() as conn:
                with conn.transaction(), conn.cursor() as cur:
                    cur.execute(
                        """
                        insert into profiles (
                            id, full_name, email, dob, manual_group_override,
                            status, avatar_url, dynamic_data
                        ) values (%s, %s, %s, %s, %s, %s, %s, %s)
                        on conflict (id) do update set
                            full_name = excluded.full_name,
                            email = excluded.email,
                            dob = excluded.dob,
                            manual_group_override = excluded.manual_group_override,
                            status = excluded.status,
                            avatar_url = excluded.avatar_url,
                            dynamic_data = excluded.dynamic_data,
                            updated_at = now()
                        """,
                        (
                            member.id,
                            member.full_name,
                            member.email,
                            member.dob,
                            override,
                            member.status.value,
                            member.avatar_url,
                            Json(member.dynamic_data),
                        ),
                    )
                    cur.execute("delete from user_roles where user_id = %s", (member.id,))
                    for ra in member.roles:
                        cur.execute(
                            "insert into user_roles (user_id, role, assigned_ministry) values (%s, %s, %s)",
                            (member.id, ra.role.value, ra.ministry.value),
                        )
        except Exception:
            self._logger.exception("Member save failed for %s", member.id)
            raise
        super().save_member(member)

    def update_member_fields(self, member_id: str, **fields: Any) -> Optional[Member]:
        unknown = set(fields) - MUTABLE_MEMBER_FIELDS
        if unknown:
            raise ValueError(f"cannot update member fields: {sorted(unknown)}")
        columns = {k: v for k, v in fields.items() if k != "roles"}
        if "status" in columns:
            columns["status"] = columns["status"].value
        if columns.get("manual_group_override") is not None:
            columns["manual_group_override"] = columns["manual_group_override"].value
        if "dynamic_data" in columns:
            columns["dynamic_data"] = Json(columns["dynamic_data"])
        try:
            with self._pool.connection() as conn:
                # status and role rows change together or not at all
                with conn.transaction(), conn.cursor(row_factory=dict_row) as cur:
                    cur.execute("select id from profiles where id = %s for update", (member_id,))
                    if cur.fetchone() is None:
                        return None
                    if columns:
                        assignments = ", ".join(f"{col} = %s" for col in columns)
                        cur.execute(
                            f"update profiles set {assignments}, updated_at = now() where id = %s",
                            (*columns.values(), member_id),
                        )
                    if "roles" in fields:
                        cur.execute("delete from user_roles where user_id = %s", (member_id,))
                        for ra in fields["roles"]:
                            cur.execute(
                                """
                                insert into user_roles (user_id, role, assigned_ministry)
                                values (%s, %s, %s)
                                """,
                                (member_id, ra.role.value, ra.ministry.value),
                            )
                    # read back under the row lock; callers get the committed row, not a later lookup
                    cur.execute(
                        """
                        select id, full_name, email, dob, manual_group_override,
                               status, avatar_url, dynamic_data
                        from profiles
                        where id = %s
                        """,
                        (member_id,),
                    )
                    updated = self._row_to_member(cur.fetchone(), self._fetch_roles(cur, member_id))
        except Exception:
            self._logger.exception("Member update failed for %s", member_id)
            raise
        self.members[member_id] = updated
        return updated


def create_store(conninfo: Optional[str] = None) -> InMemoryDB:
    logger = logging.getLogger("state.repository")
    if not logging.getLogger().handlers:
        logging.basicConfig(level=config.log_level(), format="%(levelname)s %(name)s: %(message)s")
    conninfo = conninfo or config.database_url()
    if conninfo:
        try:
            logger.info("Using PostgresBackedDB for member profiles")
            return PostgresBackedDB(conninfo)
        except Exception:  # noqa: BLE001
            logger.exception("Unable to initialise PostgresBackedDB; falling back to in-memory store")
    else:
        logger.info("DATABASE_URL not set; using in-memory store")
    return InMemoryDB()
