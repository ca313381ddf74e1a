import structlog
from fastapi import APIRouter, Depends

from config import get_settings
from database import SUBSCRIPTIONS, USERS, DocumentStore, get_db, objid
from errors import NotFoundError, ValidationError
from pagination import PageRequest
from responses import ok
from security import get_current_user
from views import compose_subscribed_channels, compose_subscribers

logger = structlog.get_logger(__name__)
settings = get_settings()

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


def existing_user(db: DocumentStore, user_id: str, label: str) -> dict:
    user = db.find_one(USERS, {"_id": objid(user_id, f"{label.lower()} ID")})
    if not user:
        raise NotFoundError(f"{label} not found")
    return user


@router.post("/c/{channel_id}")
def toggle_subscription(
    channel_id: str,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    channel = existing_user(db, channel_id, "Channel")
    if channel["_id"] == user["_id"]:
        raise ValidationError("You cannot subscribe to your own channel")

    key = {"subscriber": user["_id"], "channel": channel["_id"]}
    if db.delete(SUBSCRIPTIONS, key):
        return ok({"is_subscribed": False}, "Unsubscribed successfully")
    created = db.ensure(SUBSCRIPTIONS, key)
    logger.info("subscribed", channel=channel_id, subscriber=str(user["_id"]), created=created)
    return ok({"is_subscribed": True}, "Subscribed successfully", status_code=201 if created else 200)


@router.get("/c/{channel_id}")
def channel_subscribers(
    channel_id: str,
    page: int = 1,
    limit: int = settings.default_page_limit,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    request = PageRequest.parse(page, limit, settings.subscriptions_max_limit)
    channel = existing_user(db, channel_id, "Channel")
    return ok(compose_subscribers(db, channel["_id"], request), "Subscribers fetched successfully")


@router.get("/u/{subscriber_id}")
def subscribed_channels(
    subscriber_id: str,
    page: int = 1,
    limit: int = settings.default_page_limit,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    request = PageRequest.parse(page, limit, settings.subscriptions_max_limit)
    subscriber = existing_user(db, subscriber_id, "Subscriber")
    return ok(compose_subscribed_channels(db, subscriber["_id"], request), "Subscribed channels fetched successfully")
