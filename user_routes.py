"""
User routes: registration, login/token handling, account management, channel profile, history.
"""
from __future__ import annotations

import re
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as InvalidValue

from cleanup import remove_account
from config import get_settings
from database import USERS, DocumentStore, DuplicateError, get_db, objid, to_str_id
from errors import ConflictError, NotFoundError, Unauthorized, ValidationError
from media import MediaStorage, get_media
from pagination import PageRequest
from responses import ok
from schemas import AuthTokens, ChangePasswordRequest, LoginRequest, RefreshRequest, UpdateAccountRequest, UserProfile
from security import (
    ACCESS_COOKIE, REFRESH_COOKIE, create_access_token, create_refresh_token, decode_token, get_current_user,
    get_optional_user, hash_password, verify_password,
)
from views import compose_channel_profile, compose_liked_videos, compose_watch_history

logger = structlog.get_logger(__name__)
settings = get_settings()

router = APIRouter(prefix="/users", tags=["Users"])

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]{3,20}$")
FULL_NAME_RE = re.compile(r"^[a-zA-Z ]{3,50}$")
EMAIL = TypeAdapter(EmailStr)
PASSWORD_RE = re.compile(r"^(?=.*[A-Za-z])(?=.*\d)[A-Za-z\d@$!%*?&]{6,}$")

PASSWORD_RULE = "Password must be at least 6 characters and include at least one letter and one number"


# -------------------- Helpers --------------------

def profile(user: dict) -> UserProfile:
    return UserProfile(**to_str_id(user))


def check_username(username: str) -> str:
    if not USERNAME_RE.match(username):
        raise ValidationError("Username must be alphanumeric and 3-20 characters long")
    return username.lower()


def check_full_name(full_name: str) -> str:
    if not FULL_NAME_RE.match(full_name):
        raise ValidationError("Full name must contain only letters and spaces")
    return full_name


def check_email(email: str) -> str:
    try:
        email = EMAIL.validate_python(email)
    except InvalidValue:
        raise ValidationError("Invalid email format")
    return email.lower()


def check_password(password: str) -> str:
    if not PASSWORD_RE.match(password):
        raise ValidationError(PASSWORD_RULE)
    return password


def issue_tokens(db: DocumentStore, user: dict, message: str, include_user: bool = True):
    access_token = create_access_token(user)
    refresh_token = create_refresh_token(user)
    user = db.update(USERS, {"_id": user["_id"]}, set={"refresh_token": refresh_token})
    tokens = AuthTokens(
        user=profile(user) if include_user else None,
        access_token=access_token,
        refresh_token=refresh_token,
    )
    response = ok(tokens, message)
    cookie = {"httponly": True, "secure": settings.cookie_secure, "samesite": "lax"}
    response.set_cookie(ACCESS_COOKIE, access_token, max_age=settings.access_token_expire_minutes * 60, **cookie)
    response.set_cookie(REFRESH_COOKIE, refresh_token, max_age=settings.refresh_token_expire_days * 86400, **cookie)
    return response


async def replace_image(db: DocumentStore, media: MediaStorage, user: dict, upload: Optional[UploadFile],
                        field: str, folder: str, label: str):
    if upload is None or not upload.filename:
        raise ValidationError(f"{label} is required")
    url = await media.save(upload, folder)
    updated = db.update(USERS, {"_id": user["_id"]}, set={field: url})
    media.discard(user.get(field))
    return profile(updated)


def remove_image(db: DocumentStore, media: MediaStorage, user: dict, field: str, label: str):
    if not user.get(field):
        raise NotFoundError(f"{label} not found")
    updated = db.update(USERS, {"_id": user["_id"]}, unset=[field])
    media.discard(user[field])
    return profile(updated)


# -------------------- Auth --------------------

@router.post("/register")
async def register(
    username: str = Form(...),
    full_name: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None),
    db: DocumentStore = Depends(get_db),
    media: MediaStorage = Depends(get_media),
):
    username, full_name, email = username.strip(), full_name.strip(), email.strip()
    if not all([username, full_name, email, password]):
        raise ValidationError("All fields are required")
    username = check_username(username)
    full_name = check_full_name(full_name)
    email = check_email(email)
    check_password(password)

    # Uniqueness checks
    if db.find_one(USERS, {"username": username}) or db.find_one(USERS, {"email": email}):
        raise ConflictError("User with this username or email already exists")

    user_doc = {
        "username": username,
        "full_name": full_name,
        "email": email,
        "password_hash": hash_password(password),
        "avatar": await media.save(avatar, "avatars") if avatar is not None and avatar.filename else "",
        "cover_image": await media.save(cover_image, "covers") if cover_image is not None and cover_image.filename else "",
        "watch_history": [],
    }
    try:
        user = db.insert(USERS, user_doc)
    except DuplicateError:
        media.discard(user_doc["avatar"])
        media.discard(user_doc["cover_image"])
        raise ConflictError("User with this username or email already exists")
    logger.info("user_registered", user_id=str(user["_id"]), username=username)
    return ok(profile(user), "User created successfully", status_code=201)


@router.post("/login")
def login(payload: LoginRequest, db: DocumentStore = Depends(get_db)):
    if not (payload.username or payload.email):
        raise ValidationError("username or email is required")
    if payload.username:
        user = db.find_one(USERS, {"username": payload.username.strip().lower()})
    else:
        user = db.find_one(USERS, {"email": payload.email.strip().lower()})
    if not user:
        raise NotFoundError("User does not exist")
    if not verify_password(payload.password, user.get("password_hash", "")):
        logger.info("login_failed", user_id=str(user["_id"]))
        raise Unauthorized("Invalid user credentials")
    return issue_tokens(db, user, "User logged in successfully")


@router.post("/refresh-token")
def refresh_access_token(
    request: Request,
    payload: Optional[RefreshRequest] = None,
    db: DocumentStore = Depends(get_db),
):
    incoming = request.cookies.get(REFRESH_COOKIE) or (payload.refresh_token if payload else None)
    if not incoming:
        raise Unauthorized("Unauthorized request")
    claims = decode_token(incoming, "refresh")
    user = db.find_one(USERS, {"_id": objid(claims["sub"])})
    if not user:
        raise Unauthorized("Invalid refresh token")
    if user.get("refresh_token") != incoming:
        raise Unauthorized("Refresh token is expired or invalid")
    return issue_tokens(db, user, "Access token refreshed successfully", include_user=False)


@router.post("/logout")
def logout(user: dict = Depends(get_current_user), db: DocumentStore = Depends(get_db)):
    db.update(USERS, {"_id": user["_id"]}, unset=["refresh_token"])
    response = ok(None, "User logged out successfully")
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)
    return response


# -------------------- Account --------------------

@router.get("/current-user")
def current_user(user: dict = Depends(get_current_user)):
    return ok(profile(user), "Current user fetched successfully")


@router.patch("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    if not (payload.old_password and payload.new_password and payload.confirm_password):
        raise ValidationError("All fields are required")
    if payload.new_password != payload.confirm_password:
        raise ValidationError("New password and confirm password do not match")
    if payload.new_password == payload.old_password:
        raise ValidationError("New password cannot be the same as old password")
    check_password(payload.new_password)
    if not verify_password(payload.old_password, user.get("password_hash", "")):
        raise ValidationError("Invalid old password")
    db.update(USERS, {"_id": user["_id"]}, set={"password_hash": hash_password(payload.new_password)})
    return ok({}, "Password changed successfully")


@router.patch("/update-account")
def update_account(
    payload: UpdateAccountRequest,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    if not (payload.full_name or payload.email or payload.username):
        raise ValidationError("At least one field is required to update")
    changes = {}
    if payload.full_name:
        changes["full_name"] = check_full_name(payload.full_name.strip())
    if payload.email:
        email = check_email(payload.email.strip())
        if email != user["email"] and db.find_one(USERS, {"email": email}):
            raise ConflictError("Email already exists")
        changes["email"] = email
    if payload.username:
        username = check_username(payload.username.strip())
        if username != user["username"] and db.find_one(USERS, {"username": username}):
            raise ConflictError("Username already exists")
        changes["username"] = username
    try:
        updated = db.update(USERS, {"_id": user["_id"]}, set=changes)
    except DuplicateError:
        raise ConflictError("Username or email already exists")
    return ok(profile(updated), "User details updated successfully")


@router.patch("/update-avatar")
async def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
    media: MediaStorage = Depends(get_media),
):
    updated = await replace_image(db, media, user, avatar, "avatar", "avatars", "Avatar image")
    return ok(updated, "User avatar updated successfully")


@router.patch("/update-cover-image")
async def update_cover_image(
    cover_image: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
    media: MediaStorage = Depends(get_media),
):
    updated = await replace_image(db, media, user, cover_image, "cover_image", "covers", "Cover image")
    return ok(updated, "User cover image updated successfully")


@router.patch("/delete-avatar")
def delete_avatar(
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
    media: MediaStorage = Depends(get_media),
):
    return ok(remove_image(db, media, user, "avatar", "Avatar"), "User avatar deleted successfully")


@router.patch("/delete-cover-image")
def delete_cover_image(
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
    media: MediaStorage = Depends(get_media),
):
    return ok(remove_image(db, media, user, "cover_image", "Cover image"), "User cover image deleted successfully")


@router.delete("/delete-account")
def delete_account(
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
    media: MediaStorage = Depends(get_media),
):
    cleanup = remove_account(db, media, user)
    response = ok({"media_cleanup": cleanup}, "User account deleted successfully")
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)
    return response


# -------------------- Channel & history --------------------

@router.get("/c/{username}")
def channel_profile(
    username: str,
    viewer: Optional[dict] = Depends(get_optional_user),
    db: DocumentStore = Depends(get_db),
):
    channel = compose_channel_profile(db, username, viewer["_id"] if viewer else None)
    return ok(channel, "Channel profile fetched successfully")


@router.get("/watch-history")
def watch_history(user: dict = Depends(get_current_user), db: DocumentStore = Depends(get_db)):
    return ok(compose_watch_history(db, user["_id"]), "User watch history fetched successfully")


@router.get("/liked-videos")
def liked_videos(
    page: int = 1,
    limit: int = settings.default_page_limit,
    user: dict = Depends(get_current_user),
    db: DocumentStore = Depends(get_db),
):
    request = PageRequest.parse(page, limit, settings.videos_max_limit)
    return ok(compose_liked_videos(db, user["_id"], request), "Liked videos fetched successfully")
