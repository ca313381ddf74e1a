from typing import Optional

from fastapi import APIRouter, Depends

from database import PLAYLISTS, VIDEOS, DocumentStore, get_db, objid
from errors import Forbidden, NotFoundError, ValidationError
from responses import ok
from schemas import PlaylistRequest
from security import get_current_user, get_optional_user
from views import compose_playlist, compose_user_playlists

router = APIRouter(prefix="/playlists", tags=["Playlists"])


def owned_playlist(db: DocumentStore, playlist_id: str, user: dict) -> dict:
    playlist = db.find_one(PLAYLISTS, {"_id": objid(playlist_id, "playlist ID")})
    if not playlist:
        raise NotFoundError("Playlist not found")
    if playlist["owner"] != user["_id"]:
        raise Forbidden("You are not allowed to modify this playlist")
    return playlist


@router.post("")
def create_playlist(payload: PlaylistRequest, user: dict = Depends(get_current_user), db: DocumentStore = Depends(get_db)):
    name = (payload.name or "").strip()
    if not name:
        raise ValidationError("Playlist name is required")
    playlist = db.insert(PLAYLISTS, {
        "name": name,
        "description": (payload.description or "").strip(),
        "videos": [],
        "owner": user["_id"],
    })
    return ok(compose_playlist(db, playlist["_id"], user["_id"]), "Playlist created successfully", status_code=201)


@router.get("/user/{user_id}")
def user_playlists(user_id: str, user: dict = Depends(get_current_user), db: DocumentStore = Depends(get_db)):
    if objid(user_id, "user ID") != user["_id"]:
        raise Forbidden("You can only view your own playlists")
    return ok(compose_user_playlists(db, user["_id"], user["_id"]), "Playlists fetched successfully")


@router.get("/{playlist_id}")
def get_playlist(
    playlist_id: str,
    viewer: Optional[dict] = Depends(get_optional_user),
    db: DocumentStore = Depends(get_db),
):
    return ok(compose_playlist(db, playlist_id, viewer["_id"] if viewer else None), "Playlist fetched successfully")


@router.patch("/add/{video_id}/{playlist_id}")
def add_to_playlist(
    video_id: str,
    playlist_id: str,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    playlist = owned_playlist(db, playlist_id, user)
    video = db.find_one(VIDEOS, {"_id": objid(video_id, "video ID")})
    if not video or not (video.get("is_published") or video.get("owner") == user["_id"]):
        raise NotFoundError("Video not found")
    if video["_id"] in playlist.get("videos", []):
        raise ValidationError("Video already exists in playlist")
    db.update(PLAYLISTS, {"_id": playlist["_id"]}, add_to_set={"videos": video["_id"]})
    return ok(compose_playlist(db, playlist["_id"], user["_id"]), "Video added to playlist successfully")


@router.patch("/remove/{video_id}/{playlist_id}")
def remove_from_playlist(
    video_id: str,
    playlist_id: str,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    playlist = owned_playlist(db, playlist_id, user)
    vid = objid(video_id, "video ID")
    if vid not in playlist.get("videos", []):
        raise ValidationError("Video does not exist in playlist")
    db.update(PLAYLISTS, {"_id": playlist["_id"]}, pull={"videos": vid})
    return ok(compose_playlist(db, playlist["_id"], user["_id"]), "Video removed from playlist successfully")


@router.patch("/{playlist_id}")
def update_playlist(
    playlist_id: str,
    payload: PlaylistRequest,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    playlist = owned_playlist(db, playlist_id, user)
    changes = {}
    if payload.name is not None:
        if not payload.name.strip():
            raise ValidationError("Playlist name cannot be empty")
        changes["name"] = payload.name.strip()
    if payload.description is not None:
        changes["description"] = payload.description.strip()
    if not changes:
        raise ValidationError("At least one field is required to update")
    db.update(PLAYLISTS, {"_id": playlist["_id"]}, set=changes)
    return ok(compose_playlist(db, playlist["_id"], user["_id"]), "Playlist updated successfully")


@router.delete("/{playlist_id}")
def delete_playlist(playlist_id: str, user: dict = Depends(get_current_user), db: DocumentStore = Depends(get_db)):
    playlist = owned_playlist(db, playlist_id, user)
    db.delete(PLAYLISTS, {"_id": playlist["_id"]})
    return ok({}, "Playlist deleted successfully")
