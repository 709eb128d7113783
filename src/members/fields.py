from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, TYPE_CHECKING
from state.models import CustomFieldDefinition, Member
from state.event_log import log
from members.errors import InvalidInput, NotFound
from members.age_group import parse_birthdate
from authz.engine import Action, require

if TYPE_CHECKING:
    from state.context import CoreContext

FIELD_TYPES = ("text", "date", "boolean", "number")

# Attributes every deployment carries regardless of configured custom fields.
BUILTIN_KEYS = {"campus": "text"}


def _coerce(key: str, kind: str, value: Any) -> Any:
    if value is None:
        return None
    if kind == "text":
        if not isinstance(value, str):
            raise InvalidInput(f"{key}: expected text")
        return value
    if kind == "date":
        try:
            return datetime.strptime(str(value)[:10], "%Y-%m-%d").date().isoformat()
        except ValueError:
            raise InvalidInput(f"{key}: expected YYYY-MM-DD date") from None
    if kind == "boolean":
        if not isinstance(value, bool):
            raise InvalidInput(f"{key}: expected boolean")
        return value
    if kind == "number":
        # bool is an int subclass but never a valid number here
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidInput(f"{key}: expected number")
        return value
    raise InvalidInput(f"{key}: unknown field type {kind!r}")


def validate_dynamic_data(data: Dict[str, Any], definitions: Iterable[CustomFieldDefinition]) -> Dict[str, Any]:
    """Check supplementary attributes against the deployment's closed key set.

    Returns a normalised copy (dates as ISO strings, None values dropped).
    """
    allowed = dict(BUILTIN_KEYS)
    for d in definitions:
        if d.type not in FIELD_TYPES:
            raise InvalidInput(f"field {d.key} has unsupported type {d.type!r}")
        allowed[d.key] = d.type
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise InvalidInput(f"unknown profile fields: {unknown}")
    clean: Dict[str, Any] = {}
    for key, value in data.items():
        coerced = _coerce(key, allowed[key], value)
        if coerced is not None:
            clean[key] = coerced
    return clean


def update_profile(
    ctx: "CoreContext",
    actor: Member,
    member_id: str,
    *,
    full_name: Optional[str] = None,
    dob: Any = None,
    dynamic_data: Optional[Dict[str, Any]] = None,
) -> Member:
    """Members edit their own profile; SUPER_ADMIN (manage_roles) may edit anyone's."""
    if actor.id != member_id:
        require(ctx, actor, Action.MANAGE_ROLES)
    current = ctx.store.get_member(member_id)
    if current is None:
        raise NotFound(f"member {member_id} not found")
    changes: Dict[str, Any] = {}
    if full_name is not None:
        if not full_name.strip():
            raise InvalidInput("full_name cannot be blank")
        changes["full_name"] = full_name.strip()
    if dob is not None:
        changes["dob"] = parse_birthdate(dob, ctx.today())
    if dynamic_data is not None:
        merged = {**current.dynamic_data, **dynamic_data}
        changes["dynamic_data"] = validate_dynamic_data(merged, ctx.store.list_custom_fields())
    if not changes:
        return current
    updated = ctx.store.update_member_fields(member_id, **changes)
    log(ctx, "profile_updated", actor.id, {"member_id": member_id, "fields": sorted(changes)})
    ctx.changes.publish("member_updated", {"member_id": member_id, "fields": sorted(changes)})
    return updated
