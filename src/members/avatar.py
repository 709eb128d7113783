from __future__ import annotations
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, TYPE_CHECKING
from state.models import Member
from state.event_log import log
from members.errors import InvalidInput, NotFound
from authz.engine import Action, require

if TYPE_CHECKING:
    from state.context import CoreContext

AVATAR_BUCKET = "avatars"
ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}


class BlobStore(Protocol):
    def upload(self, bucket: str, path: str, data: bytes) -> None: ...

    def public_url(self, bucket: str, path: str) -> str: ...


class LocalBlobStore:
    """Writes objects under root/<bucket>/<path>; base_url is where root is served."""

    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def upload(self, bucket: str, path: str, data: bytes) -> None:
        target = self.root / bucket / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/{bucket}/{path}"


def avatar_object_path(member_id: str, filename: str, now: Optional[datetime] = None) -> str:
    # timestamped so a re-upload never hits a cached URL
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in ALLOWED_EXTENSIONS:
        raise InvalidInput(f"unsupported avatar file type: {filename!r}")
    now = now or datetime.utcnow()
    return f"{member_id}/{int(now.timestamp() * 1000)}.{ext}"


def set_avatar(
    ctx: "CoreContext",
    actor: Member,
    member_id: str,
    blob_store: BlobStore,
    filename: str,
    data: bytes,
) -> Member:
    if actor.id != member_id:
        require(ctx, actor, Action.MANAGE_ROLES)
    if not data:
        raise InvalidInput("avatar upload is empty")
    if ctx.store.get_member(member_id) is None:
        raise NotFound(f"member {member_id} not found")
    path = avatar_object_path(member_id, filename)
    blob_store.upload(AVATAR_BUCKET, path, data)
    url = blob_store.public_url(AVATAR_BUCKET, path)
    updated = ctx.store.update_member_fields(member_id, avatar_url=url)
    log(ctx, "avatar_updated", actor.id, {"member_id": member_id, "path": path})
    ctx.changes.publish("member_updated", {"member_id": member_id, "fields": ["avatar_url"]})
    return updated
