from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, List, Dict, Any
import uuid

ISO8601 = str

# Core domain lightweight models (store-agnostic)

def _now() -> datetime:
    return datetime.utcnow()


class Role(str, Enum):
    """Privilege set, highest first. The order is for display grouping only."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MINISTRY_HEAD = "MINISTRY_HEAD"
    SG_LEADER = "SG_LEADER"
    MEMBER = "MEMBER"

    @property
    def rank(self) -> int:
        # 0 is the most privileged
        return list(Role).index(self)

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Role":
        if isinstance(raw, Role):
            return raw
        if not raw:
            return cls.MEMBER
        clean = raw.strip().lower()
        aliases = {
            "superadmin": cls.SUPER_ADMIN,
            "super_admin": cls.SUPER_ADMIN,
            "ministryhead": cls.MINISTRY_HEAD,
            "ministry_head": cls.MINISTRY_HEAD,
            "sgleader": cls.SG_LEADER,
            "sg_leader": cls.SG_LEADER,
        }
        if clean in aliases:
            return aliases[clean]
        try:
            return cls(clean.upper())
        except ValueError:
            raise ValueError(f"unknown role: {raw!r}") from None


class Ministry(str, Enum):
    WORSHIP = "Worship"
    KIDS = "Kids"
    USHERING = "Ushering"
    NONE = "None"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Ministry":
        if isinstance(raw, Ministry):
            return raw
        if not raw:
            return cls.NONE
        for m in cls:
            if m.value.lower() == raw.strip().lower():
                return m
        raise ValueError(f"unknown ministry: {raw!r}")


class AgeGroup(str, Enum):
    KIDS = "KIDS"
    YOUTH = "YOUTH"
    YOUNG_ADULT = "YOUNG_ADULT"
    ADULT = "ADULT"

    @property
    def label(self) -> str:
        return _AGE_GROUP_LABELS[self]

    @classmethod
    def parse(cls, raw: "AgeGroup | str") -> "AgeGroup":
        """Accept the member name ("YOUTH") or the display label ("Youth (13-22)")."""
        if isinstance(raw, AgeGroup):
            return raw
        text = str(raw).strip()
        for g in cls:
            if text.upper() == g.value or text == g.label:
                return g
        raise ValueError(f"unknown age group: {raw!r}")


_AGE_GROUP_LABELS = {
    AgeGroup.KIDS: "Kids (0-12)",
    AgeGroup.YOUTH: "Youth (13-22)",
    AgeGroup.YOUNG_ADULT: "Young Adult (23+)",
    AgeGroup.ADULT: "Adult",
}


class MemberStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class TrainingStatus(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


@dataclass(frozen=True)
class RoleAssignment:
    role: Role
    ministry: Ministry = Ministry.NONE

    def as_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "ministry": self.ministry.value}


@dataclass
class Member:
    id: str
    full_name: str
    email: str
    dob: Optional[date]
    manual_group_override: Optional[AgeGroup] = None
    roles: List[RoleAssignment] = field(default_factory=list)
    status: MemberStatus = MemberStatus.PENDING
    avatar_url: Optional[str] = None  # opaque blob-store URL
    # supplementary attributes (campus, custom fields), validated at the store boundary
    dynamic_data: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def primary_role(self) -> Optional[RoleAssignment]:
        return self.roles[0] if self.roles else None


@dataclass
class Song:
    id: str
    title: str
    artist: str
    original_key: str
    bpm: Optional[int] = None
    lyrics_url: Optional[str] = None
    youtube_link: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)


@dataclass
class PreferredKey:
    id: str
    song_id: str
    leader_id: str
    preferred_key: str
    capo_position: Optional[int] = None


@dataclass
class TrainingRecord:
    id: str
    member_id: str
    module_name: str
    status: TrainingStatus = TrainingStatus.NOT_STARTED
    completion_date: Optional[date] = None


@dataclass
class CustomFieldDefinition:
    key: str
    label: str
    type: str  # text | date | boolean | number


@dataclass
class EventLogEntry:
    id: str
    timestamp: datetime
    correlation_id: str
    actor: str
    kind: str  # member_registered, member_approved, member_denied, authz_denied, song_created, etc.
    data: Dict[str, Any]

# Utility factories

def new_id() -> str:
    return uuid.uuid4().hex
