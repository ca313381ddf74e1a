"""
Schemas for the video sharing backend.

Request bodies are validated with these models, and every response shape is
an explicit model enumerating exactly the fields it exposes. Stored documents
reference each other by ObjectId; ``database.to_str_id`` turns them into the
plain dicts these models are built from.

Collections:
- User -> users
- Video -> videos
- Comment -> comments
- Tweet -> tweets
- Like / Dislike -> likes / dislikes
- Subscription -> subscriptions
- Playlist -> playlists
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

OWNER_FIELDS = ("username", "full_name", "avatar")
VIDEO_SUMMARY_FIELDS = (
    "title", "description", "thumbnail", "video_file", "duration", "views", "is_published", "owner",
    "created_at", "updated_at",
)


# -------------------- Requests --------------------

class LoginRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[EmailStr] = None
    password: str


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str
    confirm_password: str


class UpdateAccountRequest(BaseModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    username: Optional[str] = None


class VideoUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=120)
    description: Optional[str] = None


class ContentRequest(BaseModel):
    content: str = Field(..., max_length=1000)


class PlaylistRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None


# -------------------- Responses --------------------

class OwnerSummary(BaseModel):
    id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar: Optional[str] = None


class UserProfile(BaseModel):
    id: str
    username: str
    email: str
    full_name: str
    avatar: Optional[str] = None
    cover_image: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuthTokens(BaseModel):
    user: Optional[UserProfile] = None
    access_token: str
    refresh_token: str


class ChannelProfile(BaseModel):
    id: str
    username: str
    full_name: str
    avatar: Optional[str] = None
    cover_image: Optional[str] = None
    subscribers_count: int
    channels_subscribed_to_count: int
    is_subscribed: bool


class CommentView(BaseModel):
    id: str
    content: str
    video: Optional[str] = None
    owner: Optional[OwnerSummary] = None
    likes_count: int = 0
    dislikes_count: int = 0
    is_liked: bool = False
    is_disliked: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class VideoSummary(BaseModel):
    id: str
    title: str
    description: str = ""
    thumbnail: Optional[str] = None
    video_file: Optional[str] = None
    duration: float = 0
    views: int = 0
    is_published: bool = False
    owner: Optional[OwnerSummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class VideoView(VideoSummary):
    likes_count: int = 0
    dislikes_count: int = 0
    comments_count: int = 0
    comments: List[CommentView] = Field(default_factory=list)
    is_liked: bool = False
    is_disliked: bool = False


class ChannelVideo(BaseModel):
    id: str
    title: str
    description: str = ""
    thumbnail: Optional[str] = None
    duration: float = 0
    views: int = 0
    is_published: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TweetView(BaseModel):
    id: str
    content: str
    owner: Optional[OwnerSummary] = None
    likes_count: int = 0
    dislikes_count: int = 0
    is_liked: bool = False
    is_disliked: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PlaylistView(BaseModel):
    id: str
    name: str
    description: str = ""
    owner: Optional[OwnerSummary] = None
    videos: List[VideoSummary] = Field(default_factory=list)
    total_videos: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SubscriberView(BaseModel):
    id: str
    subscriber: Optional[OwnerSummary] = None
    subscribed_at: Optional[datetime] = None


class SubscribedChannelView(BaseModel):
    id: str
    channel: Optional[OwnerSummary] = None
    subscribed_at: Optional[datetime] = None


class ChannelStats(BaseModel):
    total_videos: int = 0
    total_views: int = 0
    total_subscribers: int = 0
    total_likes: int = 0

