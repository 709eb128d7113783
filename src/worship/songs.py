from __future__ import annotations
from typing import Any, Dict, List, Optional, TYPE_CHECKING
import re
from pydantic import BaseModel, Field, ValidationError, field_validator
from state.models import Member, Song, PreferredKey, new_id
from state.event_log import log
from authz.engine import Action, require
from members.errors import InvalidInput, NotFound

if TYPE_CHECKING:
    from state.context import CoreContext

_KEY_PAT = re.compile(r"^[A-G](#|b)?m?$")


def is_accidental(key: str) -> bool:
    """Sharp or flat keys get a distinct badge in the song list."""
    return "#" in key or "b" in key[1:]


def _check_key(value: str) -> str:
    value = value.strip()
    if not _KEY_PAT.match(value):
        raise ValueError(f"not a musical key: {value!r}")
    return value


class SongArgs(BaseModel):
    title: str = Field(min_length=1)
    artist: str = ""
    original_key: str
    bpm: Optional[int] = Field(default=None, gt=0, le=400)
    lyrics_url: Optional[str] = None
    youtube_link: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("original_key")
    @classmethod
    def _key(cls, v: str) -> str:
        return _check_key(v)


class PreferredKeyArgs(BaseModel):
    song_id: str
    leader_id: str
    preferred_key: str
    capo_position: Optional[int] = Field(default=None, ge=0, le=11)

    @field_validator("preferred_key")
    @classmethod
    def _key(cls, v: str) -> str:
        return _check_key(v)


def _parse(schema, raw: Dict[str, Any]):
    try:
        return schema(**raw)
    except ValidationError as e:
        raise InvalidInput(f"validation_error:{e}") from None


def song_view(ctx: "CoreContext", song: Song) -> Dict[str, Any]:
    keys = []
    for k in ctx.store.list_preferred_keys(song.id):
        leader = ctx.store.get_member(k.leader_id)
        keys.append({
            "id": k.id,
            "leader_id": k.leader_id,
            "leader_name": leader.full_name if leader else None,
            "preferred_key": k.preferred_key,
            "capo_position": k.capo_position,
            "accidental": is_accidental(k.preferred_key),
        })
    return {
        "id": song.id,
        "title": song.title,
        "artist": song.artist,
        "original_key": song.original_key,
        "bpm": song.bpm,
        "lyrics_url": song.lyrics_url,
        "youtube_link": song.youtube_link,
        "tags": list(song.tags),
        "preferred_keys": keys,
    }


def list_songs(ctx: "CoreContext", search: str = "") -> List[Dict[str, Any]]:
    needle = (search or "").strip().lower()
    songs = [
        s for s in ctx.store.list_songs()
        if not needle or needle in s.title.lower() or needle in (s.artist or "").lower()
    ]
    return [song_view(ctx, s) for s in songs]


def create_song(ctx: "CoreContext", actor: Member, raw: Dict[str, Any]) -> Song:
    require(ctx, actor, Action.EDIT_SONG_LIBRARY)
    args = _parse(SongArgs, raw)
    song = Song(id=new_id(), **args.model_dump())
    ctx.store.save_song(song)
    log(ctx, "song_created", actor.id, {"song_id": song.id, "title": song.title})
    return song


def set_preferred_key(ctx: "CoreContext", actor: Member, raw: Dict[str, Any]) -> PreferredKey:
    """Record a leader's key for a song. A leader may hold several keys per song."""
    require(ctx, actor, Action.EDIT_SONG_LIBRARY)
    args = _parse(PreferredKeyArgs, raw)
    if ctx.store.get_song(args.song_id) is None:
        raise NotFound(f"song {args.song_id} not found")
    if ctx.store.get_member(args.leader_id) is None:
        raise NotFound(f"leader {args.leader_id} not found")
    key = PreferredKey(id=new_id(), **args.model_dump())
    ctx.store.save_preferred_key(key)
    log(ctx, "preferred_key_set", actor.id, {"song_id": key.song_id, "leader_id": key.leader_id, "key": key.preferred_key})
    return key
