"""Member approval workflow.

Status lifecycle::

    pending --approve--> approved --deny--> denied
    pending --deny-----> denied

Re-approving an approved member changes their primary role and is otherwise a
no-op; denying a denied member is a no-op. There is no way back from denied:
reinstating someone is a manual data edit outside this module.
"""
from __future__ import annotations
from datetime import date
from typing import Any, Dict, List, Optional, Union
import logging
from state.context import CoreContext
from state.event_log import log
from state.models import Member, MemberStatus, Ministry, Role, RoleAssignment, new_id
from authz.engine import Action, require
from members.age_group import parse_birthdate
from members.errors import InvalidInput, InvalidTransition, NotFound
from members.fields import validate_dynamic_data
from observability import metrics

logger = logging.getLogger("members.approval")

TRANSITIONS = {
    (MemberStatus.PENDING, MemberStatus.APPROVED),
    (MemberStatus.PENDING, MemberStatus.DENIED),
    (MemberStatus.APPROVED, MemberStatus.APPROVED),
    (MemberStatus.APPROVED, MemberStatus.DENIED),
    (MemberStatus.DENIED, MemberStatus.DENIED),
}


def check_transition(current: MemberStatus, target: MemberStatus):
    if (current, target) not in TRANSITIONS:
        raise InvalidTransition(f"cannot move member from {current.value} to {target.value}")


def _parse_assignment(role: Union[Role, str], ministry: Union[Ministry, str, None]) -> RoleAssignment:
    try:
        return RoleAssignment(Role.parse(role), Ministry.parse(ministry))
    except ValueError as e:
        raise InvalidInput(str(e)) from None


def register(
    ctx: CoreContext,
    full_name: str,
    email: str,
    dob: Union[date, str],
    dynamic_data: Optional[Dict[str, Any]] = None,
) -> Member:
    """Create a member awaiting approval with the default MEMBER role."""
    full_name = (full_name or "").strip()
    email = (email or "").strip()
    if not full_name:
        raise InvalidInput("full_name is required")
    if "@" not in email:
        raise InvalidInput(f"invalid email: {email!r}")
    if ctx.store.find_member_by_email(email):
        raise InvalidInput(f"email already registered: {email}")
    data = validate_dynamic_data(dynamic_data or {}, ctx.store.list_custom_fields())
    member = Member(
        id=new_id(),
        full_name=full_name,
        email=email,
        dob=parse_birthdate(dob, ctx.today()),
        roles=[RoleAssignment(Role.MEMBER, Ministry.NONE)],
        status=MemberStatus.PENDING,
        dynamic_data=data,
    )
    ctx.store.save_member(member)
    log(ctx, "member_registered", member.id, {"email": email})
    metrics.inc("members_registered")
    ctx.changes.publish("member_registered", {"member_id": member.id})
    return member


def approve(
    ctx: CoreContext,
    actor: Member,
    member_id: str,
    role: Union[Role, str] = Role.MEMBER,
    ministry: Union[Ministry, str, None] = Ministry.NONE,
) -> Member:
    require(ctx, actor, Action.APPROVE_MEMBERS)
    assignment = _parse_assignment(role, ministry)
    target = ctx.store.get_member(member_id)
    if target is None or target.status not in (MemberStatus.PENDING, MemberStatus.APPROVED):
        raise NotFound(f"no pending or approved member {member_id}")
    check_transition(target.status, MemberStatus.APPROVED)
    # the primary assignment is replaced, secondary ones are kept
    roles = [assignment] + list(target.roles[1:])
    updated = ctx.store.update_member_fields(member_id, status=MemberStatus.APPROVED, roles=roles)
    if updated is None:
        raise NotFound(f"member {member_id} disappeared during approval")
    logger.info("member %s approved by %s as %s/%s", member_id, actor.id, assignment.role.value, assignment.ministry.value)
    log(ctx, "member_approved", actor.id, {
        "member_id": member_id,
        "previous_status": target.status.value,
        "role": assignment.as_dict(),
    })
    metrics.inc("member_transitions", label="approved")
    ctx.changes.publish("member_approved", {"member_id": member_id, "role": assignment.as_dict()})
    return updated


def deny(ctx: CoreContext, actor: Member, member_id: str) -> Member:
    """Deny a pending member or revoke an approved one. Role assignments are left as they are."""
    require(ctx, actor, Action.APPROVE_MEMBERS)
    target = ctx.store.get_member(member_id)
    if target is None:
        raise NotFound(f"member {member_id} not found")
    check_transition(target.status, MemberStatus.DENIED)
    if target.status == MemberStatus.DENIED:
        return target
    updated = ctx.store.update_member_fields(member_id, status=MemberStatus.DENIED)
    if updated is None:
        raise NotFound(f"member {member_id} disappeared during denial")
    logger.info("member %s denied by %s (was %s)", member_id, actor.id, target.status.value)
    log(ctx, "member_denied", actor.id, {"member_id": member_id, "previous_status": target.status.value})
    metrics.inc("member_transitions", label="denied")
    ctx.changes.publish("member_denied", {"member_id": member_id})
    return updated


def pending_members(ctx: CoreContext, actor: Member) -> List[Member]:
    require(ctx, actor, Action.VIEW_ADMIN_SETTINGS)
    return ctx.store.list_members(MemberStatus.PENDING)


def active_members(ctx: CoreContext, actor: Member, search: str = "") -> List[Member]:
    require(ctx, actor, Action.VIEW_ADMIN_SETTINGS)
    needle = (search or "").strip().lower()
    members = ctx.store.list_members(MemberStatus.APPROVED)
    if not needle:
        return members
    return [m for m in members if needle in (m.full_name or "").lower() or needle in (m.email or "").lower()]
