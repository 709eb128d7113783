from __future__ import annotations
from datetime import date, datetime
from functools import lru_cache
from typing import Optional, Union, TYPE_CHECKING
from state.models import AgeGroup, Member
from state.event_log import log
from members.errors import InvalidDate, InvalidInput, NotFound
from authz.engine import Action, require

if TYPE_CHECKING:
    from state.context import CoreContext

DateLike = Union[date, datetime, str]

# Inclusive upper ages for the computed buckets; anything older is YOUNG_ADULT.
# ADULT is never computed, only set through an override.
KIDS_MAX_AGE = 12
YOUTH_MAX_AGE = 22


def parse_dob(dob: Optional[DateLike]) -> date:
    if dob is None or dob == "":
        raise InvalidDate("birthdate is missing")
    if isinstance(dob, datetime):
        return dob.date()
    if isinstance(dob, date):
        return dob
    if isinstance(dob, str):
        try:
            return datetime.strptime(dob.strip()[:10], "%Y-%m-%d").date()
        except ValueError:
            raise InvalidDate(f"malformed birthdate: {dob!r}") from None
    raise InvalidDate(f"unsupported birthdate type: {type(dob).__name__}")


def parse_birthdate(dob: Optional[DateLike], today: date) -> date:
    """parse_dob for values about to be stored: a future birthdate is rejected up front."""
    born = parse_dob(dob)
    if born > today:
        raise InvalidDate(f"birthdate {born.isoformat()} is in the future")
    return born


def age_in_years(dob: DateLike, today: Optional[date] = None) -> int:
    """Completed years between dob and today. The birthday itself counts."""
    born = parse_dob(dob)
    today = today or date.today()
    if born > today:
        raise InvalidDate(f"birthdate {born.isoformat()} is in the future")
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def bucket_for_age(age: int) -> AgeGroup:
    if age <= KIDS_MAX_AGE:
        return AgeGroup.KIDS
    if age <= YOUTH_MAX_AGE:
        return AgeGroup.YOUTH
    return AgeGroup.YOUNG_ADULT


@lru_cache(maxsize=4096)
def _computed_group(born: date, today: date) -> AgeGroup:
    return bucket_for_age(age_in_years(born, today))


def parse_group(raw: Union[AgeGroup, str]) -> AgeGroup:
    try:
        return AgeGroup.parse(raw)
    except ValueError as e:
        raise InvalidInput(str(e)) from None


def classify(dob: Optional[DateLike], override: Optional[Union[AgeGroup, str]] = None, today: Optional[date] = None) -> AgeGroup:
    if override:
        return parse_group(override)
    return _computed_group(parse_dob(dob), today or date.today())


def member_group(member: Member, today: Optional[date] = None) -> AgeGroup:
    return classify(member.dob, member.manual_group_override, today)


def set_override(ctx: "CoreContext", actor: Member, member_id: str, group: Optional[Union[AgeGroup, str]]) -> Member:
    """Set (or clear with None) a member's manual age-group override."""
    require(ctx, actor, Action.MANAGE_ROLES)
    parsed = parse_group(group) if group else None
    updated = ctx.store.update_member_fields(member_id, manual_group_override=parsed)
    if updated is None:
        raise NotFound(f"member {member_id} not found")
    log(ctx, "age_group_override_set", actor.id, {"member_id": member_id, "override": parsed.value if parsed else None})
    ctx.changes.publish("member_updated", {"member_id": member_id, "fields": ["manual_group_override"]})
    return updated
