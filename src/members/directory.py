from __future__ import annotations
from typing import Any, Dict, List, TYPE_CHECKING
import logging
from state.models import Member, MemberStatus, Role, AgeGroup
from authz.engine import Action, require, highest_role
from members.age_group import member_group
from members.errors import InvalidDate

if TYPE_CHECKING:
    from state.context import CoreContext

logger = logging.getLogger("members.directory")


def directory_entry(member: Member, group: AgeGroup | None) -> Dict[str, Any]:
    primary = member.primary_role
    return {
        "id": member.id,
        "full_name": member.full_name,
        "email": member.email,
        "avatar_url": member.avatar_url,
        "role": primary.role.value if primary else Role.MEMBER.value,
        "ministry": primary.ministry.value if primary else None,
        "age_group": group.value if group else None,
        "age_group_label": group.label if group else None,
        "campus": member.dynamic_data.get("campus"),
    }


def _safe_group(ctx: "CoreContext", member: Member) -> AgeGroup | None:
    # one bad birthdate should not take the whole listing down
    try:
        return member_group(member, ctx.today())
    except InvalidDate:
        logger.warning("member %s has an unusable birthdate", member.id)
        return None


def directory(ctx: "CoreContext", viewer: Member, search: str = "") -> List[Dict[str, Any]]:
    require(ctx, viewer, Action.VIEW_DIRECTORY)
    needle = (search or "").strip().lower()
    rows = []
    for m in ctx.store.list_members(MemberStatus.APPROVED):
        if needle and needle not in (m.full_name or "").lower() and needle not in (m.email or "").lower():
            continue
        rows.append(directory_entry(m, _safe_group(ctx, m)))
    return rows


def group_by_privilege(members: List[Member]) -> Dict[Role, List[Member]]:
    grouped: Dict[Role, List[Member]] = {r: [] for r in Role}
    for m in members:
        grouped[highest_role(m)].append(m)
    return {r: ms for r, ms in grouped.items() if ms}


def dashboard_stats(ctx: "CoreContext") -> Dict[str, int]:
    stats = {"total": 0, "youth": 0, "kids": 0, "pending": 0}
    for m in ctx.store.list_members():
        if m.status == MemberStatus.PENDING:
            stats["pending"] += 1
            continue
        if m.status == MemberStatus.DENIED:
            continue
        stats["total"] += 1
        group = _safe_group(ctx, m)
        if group == AgeGroup.YOUTH:
            stats["youth"] += 1
        elif group == AgeGroup.KIDS:
            stats["kids"] += 1
    return stats
