from typing import Optional

from fastapi import APIRouter, Depends

from cleanup import remove_comment
from config import get_settings
from database import COMMENTS, VIDEOS, DocumentStore, get_db, objid, to_str_id
from errors import Forbidden, NotFoundError, ValidationError
from pagination import PageRequest, SortSpec
from responses import ok
from schemas import CommentView, ContentRequest
from security import get_current_user, get_optional_user
from views import COMMENT_SORT_FIELDS, CommentFilter, compose_comment_page

settings = get_settings()

router = APIRouter(prefix="/comments", tags=["Comments"])


def comment_view(comment: dict, owner: dict) -> CommentView:
    owner_summary = {k: owner.get(k) for k in ("_id", "username", "full_name", "avatar")}
    return CommentView(**to_str_id({**comment, "owner": owner_summary}))


def clean_content(content: str) -> str:
    content = content.strip()
    if not content:
        raise ValidationError("Comment content is required")
    return content


@router.get("")
def list_comments(
    video_id: Optional[str] = None,
    user_id: Optional[str] = None,
    query: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_type: Optional[str] = None,
    page: int = 1,
    limit: int = settings.default_page_limit,
    viewer: Optional[dict] = Depends(get_optional_user),
    db: DocumentStore = Depends(get_db),
):
    request = PageRequest.parse(page, limit, settings.comments_max_limit)
    sort = SortSpec.parse(sort_by, sort_type, COMMENT_SORT_FIELDS)
    filter = CommentFilter(
        video_id=objid(video_id, "video ID") if video_id else None,
        owner_id=objid(user_id, "user ID") if user_id else None,
        text=query.strip() if query and query.strip() else None,
    )
    result = compose_comment_page(db, filter, request, sort, viewer["_id"] if viewer else None)
    return ok(result, "Comments fetched successfully")


@router.post("/{video_id}")
def add_comment(
    video_id: str,
    payload: ContentRequest,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    content = clean_content(payload.content)
    video = db.find_one(VIDEOS, {"_id": objid(video_id, "video ID")})
    if not video or not (video.get("is_published") or video.get("owner") == user["_id"]):
        raise NotFoundError("Video not found")
    comment = db.insert(COMMENTS, {"content": content, "video": video["_id"], "owner": user["_id"]})
    return ok(comment_view(comment, user), "Comment added successfully", status_code=201)


@router.patch("/c/{comment_id}")
def update_comment(
    comment_id: str,
    payload: ContentRequest,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    content = clean_content(payload.content)
    comment = db.find_one(COMMENTS, {"_id": objid(comment_id, "comment ID")})
    if not comment:
        raise NotFoundError("Comment not found")
    if comment["owner"] != user["_id"]:
        raise Forbidden("You are not allowed to edit this comment")
    updated = db.update(COMMENTS, {"_id": comment["_id"]}, set={"content": content})
    return ok(comment_view(updated, user), "Comment updated successfully")


@router.delete("/c/{comment_id}")
def delete_comment(
    comment_id: str,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    comment = db.find_one(COMMENTS, {"_id": objid(comment_id, "comment ID")})
    if not comment:
        raise NotFoundError("Comment not found")
    if comment["owner"] != user["_id"]:
        # The owner of the video may moderate comments under it.
        video = db.find_one(VIDEOS, {"_id": comment["video"]})
        if not video or video.get("owner") != user["_id"]:
            raise Forbidden("You are not allowed to delete this comment")
    remove_comment(db, comment)
    return ok({}, "Comment deleted successfully")
