"""
Like / dislike toggles.

A user holds at most one reaction per target: liking removes an existing
dislike and vice versa, and repeating the same reaction removes it.
"""
from typing import NamedTuple

import structlog
from fastapi import APIRouter, Depends

from database import COMMENTS, DISLIKES, LIKES, TWEETS, VIDEOS, DocumentStore, get_db, objid
from errors import NotFoundError
from responses import ok
from security import get_current_user

logger = structlog.get_logger(__name__)

likes_router = APIRouter(prefix="/likes", tags=["Likes"])
dislikes_router = APIRouter(prefix="/dislikes", tags=["Dislikes"])


class Reaction(NamedTuple):
    collection: str
    actor_field: str
    noun: str


LIKE = Reaction(LIKES, "liked_by", "like")
DISLIKE = Reaction(DISLIKES, "disliked_by", "dislike")

TARGETS = {
    "video": (VIDEOS, "Video"),
    "comment": (COMMENTS, "Comment"),
    "tweet": (TWEETS, "Tweet"),
}


def toggle(db: DocumentStore, user: dict, target: str, target_id: str, own: Reaction, opposite: Reaction):
    collection, label = TARGETS[target]
    tid = objid(target_id, f"{target} ID")
    found = db.find_one(collection, {"_id": tid})
    if not found:
        raise NotFoundError(f"{label} not found")
    if target == "video" and not (found.get("is_published") or found.get("owner") == user["_id"]):
        raise NotFoundError(f"{label} not found")

    if db.delete(own.collection, {target: tid, own.actor_field: user["_id"]}):
        return ok({f"is_{own.noun}d": False}, f"{label} {own.noun} removed successfully")

    db.delete(opposite.collection, {target: tid, opposite.actor_field: user["_id"]})
    created = db.ensure(own.collection, {target: tid, own.actor_field: user["_id"]})
    logger.info("reaction_added", target=target, target_id=target_id, reaction=own.noun, created=created)
    return ok({f"is_{own.noun}d": True}, f"{label} {own.noun}d successfully", status_code=201 if created else 200)


def _register(router: APIRouter, own: Reaction, opposite: Reaction):
    @router.post("/toggle/v/{video_id}")
    def toggle_video(video_id: str, user: dict = Depends(get_current_user), db: DocumentStore = Depends(get_db)):
        return toggle(db, user, "video", video_id, own, opposite)

    @router.post("/toggle/c/{comment_id}")
    def toggle_comment(comment_id: str, user: dict = Depends(get_current_user), db: DocumentStore = Depends(get_db)):
        return toggle(db, user, "comment", comment_id, own, opposite)

    @router.post("/toggle/t/{tweet_id}")
    def toggle_tweet(tweet_id: str, user: dict = Depends(get_current_user), db: DocumentStore = Depends(get_db)):
        return toggle(db, user, "tweet", tweet_id, own, opposite)


_register(likes_router, LIKE, DISLIKE)
_register(dislikes_router, DISLIKE, LIKE)
