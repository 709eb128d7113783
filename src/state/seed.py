from __future__ import annotations
from datetime import date
from hashlib import sha256
import dataclasses
import json
import logging
from state.repository import InMemoryDB
from state.models import (
    Member,
    MemberStatus,
    RoleAssignment,
    Role,
    Ministry,
    AgeGroup,
    Song,
    PreferredKey,
    TrainingRecord,
    TrainingStatus,
    CustomFieldDefinition,
)

logger = logging.getLogger("state.seed")


def reset_db_state(store: InMemoryDB):
    """Clear dynamic collections for reproducible reseed (tests)."""
    store.event_log.clear()
    store.members.clear()
    store.songs.clear()
    store.preferred_keys.clear()
    store.training_records.clear()
    store.custom_fields.clear()
    if hasattr(store, "_dev_seed_loaded"):
        delattr(store, "_dev_seed_loaded")


def _member(mid, name, email, dob, role, ministry, status=MemberStatus.APPROVED, override=None, **data):
    return Member(
        id=mid,
        full_name=name,
        email=email,
        dob=dob,
        manual_group_override=override,
        roles=[RoleAssignment(role, ministry)],
        status=status,
        dynamic_data=data,
    )


def load_dev_seed(store: InMemoryDB) -> bool:
    """Load a small deterministic congregation.

    Stable IDs, fixed dates, no randomness; a second call is a no-op.
    Persistent stores are never seeded. Returns True when data was loaded.
    """
    if store.persistent:
        logger.warning("Refusing to load development seed into persistent store %s", type(store).__name__)
        return False
    if getattr(store, "_dev_seed_loaded", False):
        return False

    store.set_custom_fields([
        CustomFieldDefinition(key="baptism_date", label="Baptism Date", type="date"),
        CustomFieldDefinition(key="campus", label="Daughter Church", type="text"),
    ])

    members = [
        _member("p1", "Pastor John", "john@jrm-trece.example", date(1980, 5, 15), Role.SUPER_ADMIN, Ministry.NONE,
                baptism_date="2000-01-01", campus="Trece Martires (Main)"),
        _member("p2", "Sarah Worship", "sarah@jrm-trece.example", date(1995, 8, 20), Role.MINISTRY_HEAD, Ministry.WORSHIP,
                campus="Conchu - House Church"),
        _member("p3", "Mike Guitar", "mike@jrm-trece.example", date(1998, 2, 10), Role.SG_LEADER, Ministry.WORSHIP,
                campus="Solar House Church"),
        _member("p4", "Timmy Kid", "timmy@example.com", date(2015, 6, 1), Role.MEMBER, Ministry.NONE,
                campus="Golden Horizon"),
        _member("p5", "Jessica Student", "jess@uni.example", date(1999, 1, 1), Role.MEMBER, Ministry.NONE,
                override=AgeGroup.YOUTH, baptism_date="2015-05-20", campus="Trece Martires (Main)"),
        _member("p6", "Grace Newcomer", "grace@example.com", date(2008, 3, 3), Role.MEMBER, Ministry.NONE,
                status=MemberStatus.PENDING),
        _member("p7", "Former Member", "former@example.com", date(1970, 11, 30), Role.MEMBER, Ministry.NONE,
                status=MemberStatus.DENIED),
        _member("p8", "Kara Kids", "kara@jrm-trece.example", date(1990, 9, 9), Role.MINISTRY_HEAD, Ministry.KIDS,
                campus="Trece Martires (Main)"),
    ]
    for m in members:
        store.save_member(m)

    songs = [
        Song(id="s1", title="Way Maker", artist="Sinach", original_key="E", bpm=68,
             lyrics_url="https://genius.com/Sinach-way-maker-lyrics"),
        Song(id="s2", title="Build My Life", artist="Housefires", original_key="G", bpm=72,
             youtube_link="https://youtube.com/watch?v=12345"),
        Song(id="s3", title="Goodness of God", artist="Bethel Music", original_key="A", bpm=63),
    ]
    for s in songs:
        store.save_song(s)
    for k in [
        PreferredKey(id="k1", song_id="s1", leader_id="p2", preferred_key="D", capo_position=2),
        PreferredKey(id="k2", song_id="s1", leader_id="p3", preferred_key="E", capo_position=0),
        PreferredKey(id="k3", song_id="s2", leader_id="p2", preferred_key="F#", capo_position=1),
    ]:
        store.save_preferred_key(k)

    # alternate statuses by member index so the matrix shows every state
    cycle = [TrainingStatus.COMPLETED, TrainingStatus.IN_PROGRESS, TrainingStatus.NOT_STARTED]
    for idx, m in enumerate(members):
        if m.status != MemberStatus.APPROVED:
            continue
        for offset, module in enumerate(("EGPR", "T4T")):
            status = cycle[(idx + offset) % len(cycle)]
            store.save_training_record(TrainingRecord(
                id=f"tr_{m.id}_{offset + 1}",
                member_id=m.id,
                module_name=module,
                status=status,
                completion_date=date(2024, 1, 1) if status == TrainingStatus.COMPLETED else None,
            ))

    store._dev_seed_loaded = True
    return True


def snapshot_hash(store: InMemoryDB) -> str:
    """Produce a stable hash of seeded state for reproducibility tests."""
    def _plain(obj):
        d = dataclasses.asdict(obj)
        d.pop("created_at", None)
        d.pop("updated_at", None)
        return d

    payload = {
        "members": [_plain(m) for m in store.members.values()],
        "songs": [_plain(s) for s in store.songs.values()],
        "preferred_keys": [_plain(k) for k in store.preferred_keys.values()],
        "training": [_plain(r) for r in store.training_records.values()],
        "custom_fields": [_plain(f) for f in store.custom_fields.values()],
    }
    # Sort for deterministic ordering
    def _sort(obj):
        if isinstance(obj, list):
            return sorted((_sort(o) for o in obj), key=lambda x: str(x))
        if isinstance(obj, dict):
            return {k: _sort(obj[k]) for k in sorted(obj.keys())}
        return obj
    normalized = _sort(payload)
    ser = json.dumps(normalized, separators=(",", ":"), sort_keys=True, default=str)
    return sha256(ser.encode()).hexdigest()
