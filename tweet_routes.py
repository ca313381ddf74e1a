from typing import Optional

from fastapi import APIRouter, Depends

from cleanup import remove_tweet
from config import get_settings
from database import TWEETS, USERS, DocumentStore, get_db, objid, to_str_id
from errors import Forbidden, NotFoundError, ValidationError
from pagination import PageRequest
from responses import ok
from schemas import ContentRequest, TweetView
from security import get_current_user, get_optional_user
from views import compose_tweet_page

settings = get_settings()

router = APIRouter(prefix="/tweets", tags=["Tweets"])


def tweet_view(tweet: dict, owner: dict) -> TweetView:
    owner_summary = {k: owner.get(k) for k in ("_id", "username", "full_name", "avatar")}
    return TweetView(**to_str_id({**tweet, "owner": owner_summary}))


def owned_tweet(db: DocumentStore, tweet_id: str, user: dict) -> dict:
    tweet = db.find_one(TWEETS, {"_id": objid(tweet_id, "tweet ID")})
    if not tweet:
        raise NotFoundError("Tweet not found")
    if tweet["owner"] != user["_id"]:
        raise Forbidden("You are not allowed to modify this tweet")
    return tweet


def clean_content(content: str) -> str:
    content = content.strip()
    if not content:
        raise ValidationError("Tweet content is required")
    return content


@router.post("")
def create_tweet(payload: ContentRequest, user: dict = Depends(get_current_user), db: DocumentStore = Depends(get_db)):
    tweet = db.insert(TWEETS, {"content": clean_content(payload.content), "owner": user["_id"]})
    return ok(tweet_view(tweet, user), "Tweet created successfully", status_code=201)


@router.get("/user")
def my_tweets(
    page: int = 1,
    limit: int = settings.default_page_limit,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    request = PageRequest.parse(page, limit, settings.tweets_max_limit)
    return ok(compose_tweet_page(db, user["_id"], request, user["_id"]), "Tweets fetched successfully")


@router.get("/c/{channel_id}")
def channel_tweets(
    channel_id: str,
    page: int = 1,
    limit: int = settings.default_page_limit,
    viewer: Optional[dict] = Depends(get_optional_user),
    db: DocumentStore = Depends(get_db),
):
    request = PageRequest.parse(page, limit, settings.tweets_max_limit)
    channel = db.find_one(USERS, {"_id": objid(channel_id, "channel ID")})
    if not channel:
        raise NotFoundError("Channel not found")
    page_ = compose_tweet_page(db, channel["_id"], request, viewer["_id"] if viewer else None)
    return ok(page_, "Tweets fetched successfully")


@router.patch("/{tweet_id}")
def update_tweet(
    tweet_id: str,
    payload: ContentRequest,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    content = clean_content(payload.content)
    tweet = owned_tweet(db, tweet_id, user)
    updated = db.update(TWEETS, {"_id": tweet["_id"]}, set={"content": content})
    return ok(tweet_view(updated, user), "Tweet updated successfully")


@router.delete("/{tweet_id}")
def delete_tweet(tweet_id: str, user: dict = Depends(get_current_user), db: DocumentStore = Depends(get_db)):
    remove_tweet(db, owned_tweet(db, tweet_id, user))
    return ok({}, "Tweet deleted successfully")
