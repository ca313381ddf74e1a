"""
View composer.

Builds the denormalized, viewer-relative read models the API returns: an
entity plus its owner summary, aggregate counts and "does the viewer like /
subscribe to this" flags. Each read model is one composed ``Query`` so counts
and flags come from the same read.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

from bson import ObjectId

from database import (
    COMMENTS, DISLIKES, LIKES, PLAYLISTS, SUBSCRIPTIONS, TWEETS, USERS, VIDEOS, DocumentStore, objid,
    to_str_id,
)
from errors import NotFoundError, ValidationError
from pagination import Page, PageRequest, SortSpec, paginate
from query import DESC, AnyOf, Contains, Eq, Present, Query
from schemas import (
    OWNER_FIELDS, VIDEO_SUMMARY_FIELDS, ChannelProfile, ChannelStats, ChannelVideo, CommentView, PlaylistView,
    SubscribedChannelView, SubscriberView, TweetView, VideoSummary, VideoView,
)


COMMENT_SORT_FIELDS = ("created_at", "updated_at", "content")
VIDEO_SORT_FIELDS = ("created_at", "updated_at", "title", "views", "duration")
CHANNEL_VIDEO_FIELDS = (
    "title", "description", "thumbnail", "duration", "views", "is_published", "created_at", "updated_at",
)

NEWEST_FIRST = SortSpec("created_at", DESC)


def visible_to(viewer_id: Optional[ObjectId], prefix: str = ""):
    """Published videos, plus the viewer's own unpublished ones."""
    published = Eq(f"{prefix}is_published", True)
    if viewer_id is None:
        return published
    return AnyOf((published, Eq(f"{prefix}owner", viewer_id)))


def with_reactions(query: Query, target: str, viewer_id: Optional[ObjectId]) -> Query:
    """Like/dislike counts and viewer flags for documents referenced from likes/dislikes as ``target``."""
    return (
        query
        .count(LIKES, target, "likes_count")
        .count(DISLIKES, target, "dislikes_count")
        .flag(LIKES, target, "liked_by", viewer_id, "is_liked")
        .flag(DISLIKES, target, "disliked_by", viewer_id, "is_disliked")
    )


def with_owner(query: Query) -> Query:
    return query.join_one(USERS, "owner", fields=OWNER_FIELDS)


def comment_thread(viewer_id: Optional[ObjectId]) -> Query:
    return with_reactions(with_owner(Query()), "comment", viewer_id).sort(("created_at", DESC), ("_id", DESC))


def video_summaries(viewer_id: Optional[ObjectId]) -> Query:
    return with_owner(Query().match(visible_to(viewer_id))).project(*VIDEO_SUMMARY_FIELDS)


def _in_order(docs: List[dict], ids: List[Any]) -> List[dict]:
    position = {vid: i for i, vid in enumerate(ids)}
    return sorted(docs, key=lambda d: position.get(d["_id"], len(position)))


# -------------------- Videos --------------------

def compose_video_view(store: DocumentStore, video_id: Any, viewer_id: Optional[ObjectId] = None) -> VideoView:
    """Fetch a video for display and count the view.

    Unpublished videos are only visible to their owner; to anybody else they
    do not exist. Each successful call adds exactly one view: the increment
    only matches a document the viewer may see. Counts come from a second
    read, so they may be a moment newer than ``views``.
    """
    vid = objid(video_id, "video ID")
    video = store.update(VIDEOS, {"_id": vid, "is_published": True}, inc={"views": 1})
    if video is None and viewer_id is not None:
        video = store.update(VIDEOS, {"_id": vid, "owner": viewer_id}, inc={"views": 1})
    if video is None:
        raise NotFoundError("Video not found")

    query = with_reactions(
        with_owner(Query(VIDEOS).match(Eq("_id", vid), visible_to(viewer_id))), "video", viewer_id
    )
    query = (
        query
        .count(COMMENTS, "video", "comments_count")
        .join_many(COMMENTS, "_id", "video", "comments", comment_thread(viewer_id))
    )
    rows = store.aggregate(query)
    if not rows:
        raise NotFoundError("Video not found")
    return VideoView(**to_str_id(rows[0]))


@dataclass(frozen=True)
class VideoFilter:
    text: Optional[str] = None
    owner_id: Optional[ObjectId] = None


def compose_video_page(store: DocumentStore, filter: VideoFilter, request: PageRequest, sort: SortSpec,
                       viewer_id: Optional[ObjectId] = None) -> Page[VideoSummary]:
    conditions = [visible_to(viewer_id)]
    if filter.owner_id is not None:
        conditions.append(Eq("owner", filter.owner_id))
    if filter.text:
        conditions.append(AnyOf((Contains("title", filter.text), Contains("description", filter.text))))
    query = Query(VIDEOS).match(*conditions)
    page = paginate(store, query, sort, request, enrich=with_owner(Query()))
    return page.map(lambda row: VideoSummary(**to_str_id(row)))


def compose_channel_videos(store: DocumentStore, owner_id: ObjectId, request: PageRequest,
                           sort: SortSpec) -> Page[ChannelVideo]:
    """All of a channel's videos, published or not, for its owner's dashboard."""
    query = Query(VIDEOS).match(Eq("owner", owner_id))
    page = paginate(store, query, sort, request, enrich=Query().project(*CHANNEL_VIDEO_FIELDS))
    return page.map(lambda row: ChannelVideo(**to_str_id(row)))


def compose_channel_stats(store: DocumentStore, channel_id: ObjectId) -> ChannelStats:
    totals = store.aggregate(
        Query(VIDEOS)
        .match(Eq("owner", channel_id))
        .count(LIKES, "video", "likes_count")
        .total(total_views="views", total_likes="likes_count")
    )
    row = totals[0] if totals else {}
    return ChannelStats(
        total_videos=store.count(VIDEOS, {"owner": channel_id}),
        total_views=row.get("total_views", 0),
        total_subscribers=store.count(SUBSCRIPTIONS, {"channel": channel_id}),
        total_likes=row.get("total_likes", 0),
    )


# -------------------- Comments --------------------

@dataclass(frozen=True)
class CommentFilter:
    video_id: Optional[ObjectId] = None
    owner_id: Optional[ObjectId] = None
    text: Optional[str] = None


def compose_comment_page(store: DocumentStore, filter: CommentFilter, request: PageRequest, sort: SortSpec,
                         viewer_id: Optional[ObjectId] = None) -> Page[CommentView]:
    if sort.field not in COMMENT_SORT_FIELDS:
        raise ValidationError(f"Invalid sort field. Allowed fields: {', '.join(COMMENT_SORT_FIELDS)}")
    conditions = []
    if filter.video_id is not None:
        conditions.append(Eq("video", filter.video_id))
    if filter.owner_id is not None:
        conditions.append(Eq("owner", filter.owner_id))
    if filter.text:
        conditions.append(Contains("content", filter.text))
    query = Query(COMMENTS).match(*conditions)
    enrich = with_reactions(with_owner(Query()), "comment", viewer_id)
    page = paginate(store, query, sort, request, enrich=enrich)
    return page.map(lambda row: CommentView(**to_str_id(row)))


# -------------------- Channels --------------------

def compose_channel_profile(store: DocumentStore, username: Optional[str],
                            viewer_id: Optional[ObjectId] = None) -> ChannelProfile:
    if not username or not username.strip():
        raise ValidationError("Username is required")
    query = (
        Query(USERS)
        .match(Eq("username", username.strip().lower()))
        .count(SUBSCRIPTIONS, "channel", "subscribers_count")
        .count(SUBSCRIPTIONS, "subscriber", "channels_subscribed_to_count")
        .flag(SUBSCRIPTIONS, "channel", "subscriber", viewer_id, "is_subscribed")
        .project("username", "full_name", "avatar", "cover_image",
                 "subscribers_count", "channels_subscribed_to_count", "is_subscribed")
    )
    rows = store.aggregate(query)
    if not rows:
        raise NotFoundError("Channel not found")
    return ChannelProfile(**to_str_id(rows[0]))


def compose_subscribers(store: DocumentStore, channel_id: ObjectId, request: PageRequest) -> Page[SubscriberView]:
    query = Query(SUBSCRIPTIONS).match(Eq("channel", channel_id))
    enrich = Query().join_one(USERS, "subscriber", fields=OWNER_FIELDS)
    page = paginate(store, query, NEWEST_FIRST, request, enrich=enrich)
    return page.map(lambda row: SubscriberView(
        id=str(row["_id"]),
        subscriber=to_str_id(row.get("subscriber")) if isinstance(row.get("subscriber"), dict) else None,
        subscribed_at=row.get("created_at"),
    ))


def compose_subscribed_channels(store: DocumentStore, subscriber_id: ObjectId,
                                request: PageRequest) -> Page[SubscribedChannelView]:
    query = Query(SUBSCRIPTIONS).match(Eq("subscriber", subscriber_id))
    enrich = Query().join_one(USERS, "channel", fields=OWNER_FIELDS)
    page = paginate(store, query, NEWEST_FIRST, request, enrich=enrich)
    return page.map(lambda row: SubscribedChannelView(
        id=str(row["_id"]),
        channel=to_str_id(row.get("channel")) if isinstance(row.get("channel"), dict) else None,
        subscribed_at=row.get("created_at"),
    ))


# -------------------- Tweets --------------------

def compose_tweet_page(store: DocumentStore, owner_id: ObjectId, request: PageRequest,
                       viewer_id: Optional[ObjectId] = None) -> Page[TweetView]:
    query = Query(TWEETS).match(Eq("owner", owner_id))
    enrich = with_reactions(with_owner(Query()), "tweet", viewer_id)
    page = paginate(store, query, NEWEST_FIRST, request, enrich=enrich)
    return page.map(lambda row: TweetView(**to_str_id(row)))


# -------------------- Playlists --------------------

def _playlist_query(viewer_id: Optional[ObjectId]) -> Query:
    return with_owner(Query(PLAYLISTS)).join_many(VIDEOS, "videos", "_id", "video_docs", video_summaries(viewer_id))


def _playlist_view(row: dict) -> PlaylistView:
    videos = _in_order(row.get("video_docs", []), row.get("videos", []))
    return PlaylistView(
        id=str(row["_id"]),
        name=row["name"],
        description=row.get("description", ""),
        owner=to_str_id(row["owner"]) if isinstance(row.get("owner"), dict) else None,
        videos=[VideoSummary(**to_str_id(v)) for v in videos],
        total_videos=len(videos),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def compose_playlist(store: DocumentStore, playlist_id: Any, viewer_id: Optional[ObjectId] = None) -> PlaylistView:
    """A playlist with its videos in playlist order; other people's unpublished videos are left out."""
    pid = objid(playlist_id, "playlist ID")
    rows = store.aggregate(Query(PLAYLISTS).match(Eq("_id", pid)).extend(_playlist_query(viewer_id)))
    if not rows:
        raise NotFoundError("Playlist not found")
    return _playlist_view(rows[0])


def compose_user_playlists(store: DocumentStore, owner_id: ObjectId,
                           viewer_id: Optional[ObjectId] = None) -> List[PlaylistView]:
    query = Query(PLAYLISTS).match(Eq("owner", owner_id)).sort(("created_at", DESC), ("_id", DESC))
    rows = store.aggregate(query.extend(_playlist_query(viewer_id)))
    return [_playlist_view(row) for row in rows]


# -------------------- Users --------------------

def compose_watch_history(store: DocumentStore, user_id: ObjectId) -> List[VideoSummary]:
    """Watched videos, most recent first."""
    query = (
        Query(USERS)
        .match(Eq("_id", user_id))
        .join_many(VIDEOS, "watch_history", "_id", "history", video_summaries(user_id))
    )
    rows = store.aggregate(query)
    if not rows:
        return []
    history = list(reversed(rows[0].get("watch_history", [])))
    return [VideoSummary(**to_str_id(v)) for v in _in_order(rows[0].get("history", []), history)]


def compose_liked_videos(store: DocumentStore, user_id: ObjectId, request: PageRequest) -> Page[VideoSummary]:
    """Videos the user liked, most recently liked first."""
    query = (
        Query(LIKES)
        .match(Eq("liked_by", user_id), Present("video"))
        .join_one(VIDEOS, "video", fields=VIDEO_SUMMARY_FIELDS)
        .match(visible_to(user_id, prefix="video."))
    )
    enrich = Query().join_one(USERS, "video.owner", as_field="owner", fields=OWNER_FIELDS)
    page = paginate(store, query, NEWEST_FIRST, request, enrich=enrich)
    return page.map(lambda row: VideoSummary(**to_str_id({**row["video"], "owner": row.get("owner")})))
