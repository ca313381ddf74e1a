from typing import Optional

from fastapi import APIRouter, Depends

from config import get_settings
from database import DocumentStore, get_db
from pagination import PageRequest, SortSpec
from responses import ok
from security import get_current_user
from views import VIDEO_SORT_FIELDS, compose_channel_stats, compose_channel_videos

settings = get_settings()

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/stats")
def channel_stats(user: dict = Depends(get_current_user), db: DocumentStore = Depends(get_db)):
    return ok(compose_channel_stats(db, user["_id"]), "Channel stats fetched successfully")


@router.get("/videos")
def channel_videos(
    sort_by: Optional[str] = None,
    sort_type: Optional[str] = None,
    page: int = 1,
    limit: int = settings.default_page_limit,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    request = PageRequest.parse(page, limit, settings.videos_max_limit)
    sort = SortSpec.parse(sort_by, sort_type, VIDEO_SORT_FIELDS)
    return ok(compose_channel_videos(db, user["_id"], request, sort), "Channel videos fetched successfully")
