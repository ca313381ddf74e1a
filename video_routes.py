from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, UploadFile

from cleanup import remove_video
from config import get_settings
from database import USERS, VIDEOS, DocumentStore, get_db, objid, to_str_id
from errors import ApiError, Forbidden, NotFoundError, ValidationError
from media import MediaStorage, get_media
from pagination import PageRequest, SortSpec
from responses import ok
from schemas import VideoSummary, VideoUpdateRequest
from security import get_current_user, get_optional_user
from views import VIDEO_SORT_FIELDS, VideoFilter, compose_video_page, compose_video_view

logger = structlog.get_logger(__name__)
settings = get_settings()

router = APIRouter(prefix="/videos", tags=["Videos"])


def owned_video(db: DocumentStore, video_id: str, user: dict) -> dict:
    video = db.find_one(VIDEOS, {"_id": objid(video_id, "video ID")})
    if not video:
        raise NotFoundError("Video not found")
    if video.get("owner") != user["_id"]:
        raise Forbidden("You are not allowed to modify this video")
    return video


def summary(video: dict, owner: dict) -> VideoSummary:
    owner_summary = {k: owner.get(k) for k in ("_id", "username", "full_name", "avatar")}
    return VideoSummary(**to_str_id({**video, "owner": owner_summary}))


@router.get("")
def list_videos(
    query: Optional[str] = None,
    user_id: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_type: Optional[str] = None,
    page: int = 1,
    limit: int = settings.default_page_limit,
    viewer: Optional[dict] = Depends(get_optional_user),
    db: DocumentStore = Depends(get_db),
):
    request = PageRequest.parse(page, limit, settings.videos_max_limit)
    sort = SortSpec.parse(sort_by, sort_type, VIDEO_SORT_FIELDS)
    filter = VideoFilter(
        text=query.strip() if query and query.strip() else None,
        owner_id=objid(user_id, "user ID") if user_id else None,
    )
    result = compose_video_page(db, filter, request, sort, viewer["_id"] if viewer else None)
    return ok(result, "Videos fetched successfully")


@router.post("")
async def publish_video(
    title: str = Form(...),
    description: str = Form(""),
    duration: float = Form(0),
    video_file: Optional[UploadFile] = File(None),
    thumbnail: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
    media: MediaStorage = Depends(get_media),
):
    title = title.strip()
    if not title:
        raise ValidationError("Title is required")
    if len(title) > 120:
        raise ValidationError("Title must be at most 120 characters")
    if duration < 0:
        raise ValidationError("Duration cannot be negative")
    if video_file is None or not video_file.filename:
        raise ValidationError("Video file is required")
    if thumbnail is None or not thumbnail.filename:
        raise ValidationError("Thumbnail is required")

    video_url = await media.save(video_file, "videos")
    try:
        thumb_url = await media.save(thumbnail, "thumbnails")
    except ApiError:
        media.discard(video_url)
        raise

    try:
        video = db.insert(VIDEOS, {
            "title": title,
            "description": description.strip(),
            "video_file": video_url,
            "thumbnail": thumb_url,
            "duration": duration,
            "views": 0,
            "is_published": False,
            "owner": user["_id"],
        })
    except ApiError:
        media.discard(video_url)
        media.discard(thumb_url)
        raise
    logger.info("video_uploaded", video_id=str(video["_id"]), owner=str(user["_id"]))
    return ok(summary(video, user), "Video uploaded successfully", status_code=201)


@router.get("/{video_id}")
def get_video(
    video_id: str,
    viewer: Optional[dict] = Depends(get_optional_user),
    db: DocumentStore = Depends(get_db),
):
    viewer_id = viewer["_id"] if viewer else None
    video = compose_video_view(db, video_id, viewer_id)
    if viewer_id is not None:
        # Move the video to the most recent end of the history.
        vid = objid(video.id)
        db.update(USERS, {"_id": viewer_id}, pull={"watch_history": vid})
        db.update(USERS, {"_id": viewer_id}, push={"watch_history": vid})
    return ok(video, "Video fetched successfully")


@router.patch("/{video_id}")
def update_video(
    video_id: str,
    payload: VideoUpdateRequest,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    video = owned_video(db, video_id, user)
    changes = {}
    if payload.title is not None:
        if not payload.title.strip():
            raise ValidationError("Title cannot be empty")
        changes["title"] = payload.title.strip()
    if payload.description is not None:
        changes["description"] = payload.description.strip()
    if not changes:
        raise ValidationError("At least one field is required to update")
    updated = db.update(VIDEOS, {"_id": video["_id"]}, set=changes)
    return ok(summary(updated, user), "Video updated successfully")


@router.patch("/{video_id}/thumbnail")
async def update_thumbnail(
    video_id: str,
    thumbnail: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
    media: MediaStorage = Depends(get_media),
):
    video = owned_video(db, video_id, user)
    if thumbnail is None or not thumbnail.filename:
        raise ValidationError("Thumbnail is required")
    thumb_url = await media.save(thumbnail, "thumbnails")
    updated = db.update(VIDEOS, {"_id": video["_id"]}, set={"thumbnail": thumb_url})
    media.discard(video.get("thumbnail"))
    return ok(summary(updated, user), "Thumbnail updated successfully")


@router.delete("/{video_id}")
def delete_video(
    video_id: str,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
    media: MediaStorage = Depends(get_media),
):
    video = owned_video(db, video_id, user)
    cleanup = remove_video(db, media, video)
    return ok({"media_cleanup": cleanup}, "Video deleted successfully")


@router.patch("/{video_id}/publish")
def toggle_publish(
    video_id: str,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    video = owned_video(db, video_id, user)
    updated = db.update(VIDEOS, {"_id": video["_id"]}, set={"is_published": not video.get("is_published", False)})
    state = "published" if updated["is_published"] else "unpublished"
    return ok(summary(updated, user), f"Video {state} successfully")
