from __future__ import annotations
import dataclasses
import uuid
from datetime import datetime, date
from typing import Any, Dict, Optional
from fastapi import FastAPI, File, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import config
from authz.engine import Action, can_perform
from members import approval
from members.age_group import member_group, set_override
from members.avatar import LocalBlobStore, set_avatar
from members.directory import directory, dashboard_stats
from members.errors import CoreError, InvalidDate, InvalidInput, InvalidTransition, NotFound, Unauthorized
from members.fields import update_profile
from observability.logging import configure_logging, structured_log
from state.context import CoreContext, build_context
from state.models import Member
from state.seed import load_dev_seed
from training.tracker import training_matrix, set_training_status
from worship.songs import list_songs, create_song, set_preferred_key, song_view

app = FastAPI(title="Church Member Core")

configure_logging()
CTX = build_context()
# Demo congregation for in-memory runs; persistent stores are skipped by load_dev_seed
if config.dev_seed_enabled():
    load_dev_seed(CTX.store)
# Served from CHURCH_CORE_AVATAR_BASE_URL by the front web server
BLOBS = LocalBlobStore(config.avatar_dir(), config.avatar_base_url())
CTX.changes.subscribe(lambda kind, data: structured_log(kind, None, data))

_STATUS_FOR_ERROR = {
    InvalidDate: 400,
    InvalidInput: 400,
    Unauthorized: 403,
    NotFound: 404,
    InvalidTransition: 409,
}


@app.exception_handler(CoreError)
def _core_error(request: Request, exc: CoreError):
    status = next((code for kind, code in _STATUS_FOR_ERROR.items() if isinstance(exc, kind)), 400)
    return JSONResponse(status_code=status, content={"error": exc.code, "detail": str(exc)})


def _ctx() -> CoreContext:
    # same store and channel, fresh correlation id per request
    return dataclasses.replace(CTX, correlation_id=uuid.uuid4().hex)


def _actor(ctx: CoreContext, member_id: Optional[str]) -> Member:
    if not member_id:
        raise HTTPException(status_code=401, detail="X-Member-Id header required")
    member = ctx.store.get_member(member_id)
    if member is None:
        raise HTTPException(status_code=401, detail=f"Unknown member: {member_id}")
    return member


def _member_out(ctx: CoreContext, m: Member) -> Dict[str, Any]:
    try:
        group = member_group(m, ctx.today())
    except InvalidDate:
        group = None
    return {
        "id": m.id,
        "full_name": m.full_name,
        "email": m.email,
        "dob": m.dob.isoformat() if m.dob else None,
        "status": m.status.value,
        "roles": [ra.as_dict() for ra in m.roles],
        "manual_group_override": m.manual_group_override.value if m.manual_group_override else None,
        "age_group": group.value if group else None,
        "avatar_url": m.avatar_url,
        "dynamic_data": m.dynamic_data,
    }


@app.get("/health")
def health():
    return {"ok": True, "time": datetime.utcnow().isoformat()}


class RegisterRequest(BaseModel):
    full_name: str
    email: str
    dob: str
    dynamic_data: Dict[str, Any] = {}


@app.post("/register", status_code=201)
def register(req: RegisterRequest):
    ctx = _ctx()
    member = approval.register(ctx, req.full_name, req.email, req.dob, req.dynamic_data)
    return _member_out(ctx, member)


@app.get("/me")
def me(x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    actor = _actor(ctx, x_member_id)
    out = _member_out(ctx, actor)
    out["permissions"] = [a.value for a in Action if can_perform(actor, a)]
    return out


class ProfileUpdate(BaseModel):
    full_name: str | None = None
    dob: str | None = None
    dynamic_data: Dict[str, Any] | None = None


@app.patch("/members/{member_id}")
def patch_member(member_id: str, req: ProfileUpdate, x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    actor = _actor(ctx, x_member_id)
    updated = update_profile(ctx, actor, member_id, full_name=req.full_name, dob=req.dob, dynamic_data=req.dynamic_data)
    return _member_out(ctx, updated)


@app.put("/members/{member_id}/avatar")
async def upload_avatar(member_id: str, file: UploadFile = File(...), x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    actor = _actor(ctx, x_member_id)
    data = await file.read()
    updated = set_avatar(ctx, actor, member_id, BLOBS, file.filename or "", data)
    return _member_out(ctx, updated)


@app.get("/members")
def list_directory(search: str = "", x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    viewer = _actor(ctx, x_member_id)
    return {"members": directory(ctx, viewer, search)}


@app.get("/members/{member_id}/age-group")
def age_group(member_id: str, x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    viewer = _actor(ctx, x_member_id)
    if viewer.id != member_id and not can_perform(viewer, Action.VIEW_DIRECTORY):
        raise Unauthorized(f"{viewer.id} may not view {member_id}")
    member = ctx.store.get_member(member_id)
    if member is None:
        raise NotFound(f"member {member_id} not found")
    group = member_group(member, ctx.today())
    return {
        "member_id": member_id,
        "age_group": group.value,
        "label": group.label,
        "overridden": member.manual_group_override is not None,
    }


@app.get("/dashboard")
def dashboard(x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    viewer = _actor(ctx, x_member_id)
    if not can_perform(viewer, Action.VIEW_DIRECTORY):
        raise Unauthorized(f"{viewer.id} may not view the dashboard")
    return dashboard_stats(ctx)


# ---- Admin settings ----

@app.get("/admin/pending")
def admin_pending(x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    actor = _actor(ctx, x_member_id)
    return {"members": [_member_out(ctx, m) for m in approval.pending_members(ctx, actor)]}


@app.get("/admin/members")
def admin_members(search: str = "", x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    actor = _actor(ctx, x_member_id)
    return {"members": [_member_out(ctx, m) for m in approval.active_members(ctx, actor, search)]}


class ApproveRequest(BaseModel):
    role: str = "MEMBER"
    ministry: str | None = "None"


@app.post("/admin/members/{member_id}/approve")
def admin_approve(member_id: str, req: ApproveRequest, x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    actor = _actor(ctx, x_member_id)
    updated = approval.approve(ctx, actor, member_id, req.role, req.ministry)
    return _member_out(ctx, updated)


@app.post("/admin/members/{member_id}/deny")
def admin_deny(member_id: str, x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    actor = _actor(ctx, x_member_id)
    updated = approval.deny(ctx, actor, member_id)
    return _member_out(ctx, updated)


class OverrideRequest(BaseModel):
    age_group: str | None = None


@app.put("/admin/members/{member_id}/override")
def admin_override(member_id: str, req: OverrideRequest, x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    actor = _actor(ctx, x_member_id)
    updated = set_override(ctx, actor, member_id, req.age_group)
    return _member_out(ctx, updated)


# ---- Worship ----

@app.get("/songs")
def songs(search: str = ""):
    return {"songs": list_songs(_ctx(), search)}


@app.post("/songs", status_code=201)
def new_song(body: Dict[str, Any], x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    actor = _actor(ctx, x_member_id)
    song = create_song(ctx, actor, body)
    return song_view(ctx, song)


@app.post("/songs/{song_id}/keys", status_code=201)
def new_preferred_key(song_id: str, body: Dict[str, Any], x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    actor = _actor(ctx, x_member_id)
    key = set_preferred_key(ctx, actor, {**body, "song_id": song_id})
    return dataclasses.asdict(key)


# ---- Training ----

@app.get("/training")
def training(x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    viewer = _actor(ctx, x_member_id)
    if not can_perform(viewer, Action.VIEW_DIRECTORY):
        raise Unauthorized(f"{viewer.id} may not view training progress")
    return {"rows": training_matrix(ctx)}


class TrainingUpdate(BaseModel):
    status: str


@app.put("/training/{member_id}/{module_name}")
def training_update(member_id: str, module_name: str, req: TrainingUpdate, x_member_id: str | None = Header(default=None)):
    ctx = _ctx()
    actor = _actor(ctx, x_member_id)
    rec = set_training_status(ctx, actor, member_id, module_name, req.status)
    return {
        "member_id": rec.member_id,
        "module_name": rec.module_name,
        "status": rec.status.value,
        "completion_date": rec.completion_date.isoformat() if isinstance(rec.completion_date, date) else None,
    }
