"""
Cascading deletes.

The primary document is always deleted first. Dependent documents follow,
and stored media files are removed last, one by one: a media failure is
logged and reported back but never undoes or blocks the deletion.
"""
from __future__ import annotations

from typing import Dict

import structlog

from database import (
    COMMENTS, DISLIKES, LIKES, PLAYLISTS, SUBSCRIPTIONS, TWEETS, USERS, VIDEOS, DocumentStore,
)
from media import MediaStorage

logger = structlog.get_logger(__name__)


def _drop_reactions(db: DocumentStore, target: str, target_id) -> None:
    db.delete_many(LIKES, {target: target_id})
    db.delete_many(DISLIKES, {target: target_id})


def remove_comment(db: DocumentStore, comment: dict) -> None:
    db.delete(COMMENTS, {"_id": comment["_id"]})
    _drop_reactions(db, "comment", comment["_id"])


def remove_tweet(db: DocumentStore, tweet: dict) -> None:
    db.delete(TWEETS, {"_id": tweet["_id"]})
    _drop_reactions(db, "tweet", tweet["_id"])


def remove_video(db: DocumentStore, media: MediaStorage, video: dict) -> Dict[str, bool]:
    """Delete a video and everything hanging off it; returns which media files were removed."""
    vid = video["_id"]
    db.delete(VIDEOS, {"_id": vid})
    for comment in db.find(COMMENTS, {"video": vid}):
        remove_comment(db, comment)
    _drop_reactions(db, "video", vid)
    db.update_many(PLAYLISTS, {"videos": vid}, pull={"videos": vid})
    db.update_many(USERS, {"watch_history": vid}, pull={"watch_history": vid})

    cleanup = {
        "video_file": media.discard(video.get("video_file")),
        "thumbnail": media.discard(video.get("thumbnail")),
    }
    logger.info("video_deleted", video_id=str(vid), media_cleanup=cleanup)
    return cleanup


def remove_account(db: DocumentStore, media: MediaStorage, user: dict) -> Dict[str, bool]:
    uid = user["_id"]
    db.delete(USERS, {"_id": uid})

    cleanup: Dict[str, bool] = {}
    for video in db.find(VIDEOS, {"owner": uid}):
        result = remove_video(db, media, video)
        cleanup[str(video["_id"])] = all(result.values())
    for comment in db.find(COMMENTS, {"owner": uid}):
        remove_comment(db, comment)
    for tweet in db.find(TWEETS, {"owner": uid}):
        remove_tweet(db, tweet)
    db.delete_many(LIKES, {"liked_by": uid})
    db.delete_many(DISLIKES, {"disliked_by": uid})
    db.delete_many(SUBSCRIPTIONS, {"subscriber": uid})
    db.delete_many(SUBSCRIPTIONS, {"channel": uid})
    db.delete_many(PLAYLISTS, {"owner": uid})

    cleanup["avatar"] = media.discard(user.get("avatar"))
    cleanup["cover_image"] = media.discard(user.get("cover_image"))
    logger.info("account_deleted", user_id=str(uid), media_cleanup=cleanup)
    return cleanup
