from __future__ import annotations
from typing import Dict, Any, TYPE_CHECKING
from .models import EventLogEntry, new_id
from datetime import datetime

if TYPE_CHECKING:
    from .context import CoreContext


def log(ctx: "CoreContext", kind: str, actor: str, data: Dict[str, Any]):
    entry = EventLogEntry(
        id=new_id(),
        timestamp=datetime.utcnow(),
        correlation_id=ctx.correlation_id or "-",
        actor=actor,
        kind=kind,
        data=data
    )
    ctx.store.append_event(entry)
    return entry
