from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING
from state.models import Member, MemberStatus, TrainingRecord, TrainingStatus, new_id
from state.event_log import log
from authz.engine import Action, require
from members.errors import InvalidInput, NotFound
import config

if TYPE_CHECKING:
    from state.context import CoreContext


def training_matrix(ctx: "CoreContext", modules: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
    """One row per approved member with a status per module (default Not Started)."""
    modules = tuple(modules or config.training_modules())
    rows = []
    for m in ctx.store.list_members(MemberStatus.APPROVED):
        by_module = {r.module_name: r for r in ctx.store.list_training_records(m.id)}
        statuses = {}
        for name in modules:
            rec = by_module.get(name)
            statuses[name] = (rec.status if rec else TrainingStatus.NOT_STARTED).value
        rows.append({"member_id": m.id, "full_name": m.full_name, "modules": statuses})
    return rows


def set_training_status(
    ctx: "CoreContext",
    actor: Member,
    member_id: str,
    module_name: str,
    status: TrainingStatus | str,
) -> TrainingRecord:
    require(ctx, actor, Action.VIEW_ADMIN_SETTINGS)
    module_name = (module_name or "").strip()
    if not module_name:
        raise InvalidInput("module_name is required")
    try:
        status = TrainingStatus(status)
    except ValueError:
        raise InvalidInput(f"unknown training status: {status!r}") from None
    if ctx.store.get_member(member_id) is None:
        raise NotFound(f"member {member_id} not found")
    rec = ctx.store.find_training_record(member_id, module_name)
    if rec is None:
        rec = TrainingRecord(id=new_id(), member_id=member_id, module_name=module_name)
    rec.status = status
    rec.completion_date = ctx.today() if status == TrainingStatus.COMPLETED else None
    ctx.store.save_training_record(rec)
    log(ctx, "training_status_set", actor.id, {"member_id": member_id, "module": module_name, "status": status.value})
    return rec
