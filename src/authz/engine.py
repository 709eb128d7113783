from __future__ import annotations
from enum import Enum
from typing import Dict, Any, Optional, Tuple, TYPE_CHECKING
from state.models import Member, MemberStatus, Ministry, Role
from state.event_log import log
from members.errors import Unauthorized
from observability import metrics

if TYPE_CHECKING:
    from state.context import CoreContext


class Action(str, Enum):
    VIEW_DIRECTORY = "view_directory"
    EDIT_SONG_LIBRARY = "edit_song_library"
    APPROVE_MEMBERS = "approve_members"
    MANAGE_ROLES = "manage_roles"
    VIEW_ADMIN_SETTINGS = "view_admin_settings"


# Static policy map
# action -> rule; a rule is satisfied when a single role assignment matches
# every key it names ("roles", "ministry"), or when the member's status
# matches ("status"). Higher rank never implies a lower rule.
POLICY: Dict[Action, Dict[str, Any]] = {
    Action.VIEW_DIRECTORY: {"status": MemberStatus.APPROVED},
    Action.EDIT_SONG_LIBRARY: {
        "roles": {Role.SUPER_ADMIN, Role.ADMIN, Role.MINISTRY_HEAD},
        "ministry": Ministry.WORSHIP,
    },
    Action.APPROVE_MEMBERS: {"roles": {Role.SUPER_ADMIN}},
    Action.MANAGE_ROLES: {"roles": {Role.SUPER_ADMIN}},
    Action.VIEW_ADMIN_SETTINGS: {"roles": {Role.SUPER_ADMIN}},
}


def can(member: Optional[Member], action: Action | str) -> Tuple[bool, str]:
    try:
        action = Action(action)
    except ValueError:
        return False, f"default_deny: action {action} not in policy"
    if member is None:
        return False, "no_actor"
    rule = POLICY[action]
    if "status" in rule:
        if member.status == rule["status"]:
            return True, "allow"
        return False, f"status_{member.status.value}"
    roles = rule.get("roles")
    ministry = rule.get("ministry")
    for ra in member.roles:
        if roles is not None and ra.role not in roles:
            continue
        if ministry is not None and ra.ministry != ministry:
            continue
        return True, "allow"
    need = sorted(r.value for r in roles) if roles else []
    if ministry is not None:
        return False, f"missing_role: need one of {need} in ministry {ministry.value}"
    return False, f"missing_role: need one of {need}"


def can_perform(member: Optional[Member], action: Action | str) -> bool:
    allowed, _ = can(member, action)
    return allowed


def require(ctx: "CoreContext", member: Optional[Member], action: Action):
    """Raise Unauthorized (and audit the denial) unless member may perform action."""
    allowed, reason = can(member, action)
    if allowed:
        return
    actor_id = member.id if member else "anonymous"
    metrics.inc("authz_denied", label=Action(action).value)
    log(ctx, "authz_denied", actor_id, {"action": Action(action).value, "reason": reason})
    raise Unauthorized(f"{actor_id} may not {Action(action).value}: {reason}")


def highest_role(member: Member) -> Role:
    """Most privileged role held; used to group members for display, never to grant access."""
    if not member.roles:
        return Role.MEMBER
    return min((ra.role for ra in member.roles), key=lambda r: r.rank)
