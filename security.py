"""
Password hashing, JWT issuing/verification and the request identity dependencies.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Optional

import jwt
import structlog
from bson import ObjectId
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from config import get_settings
from database import USERS, DocumentStore, get_db, utcnow
from errors import Unauthorized

logger = structlog.get_logger(__name__)
settings = get_settings()

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)
bearer = HTTPBearer(auto_error=False)


# -------------------- Passwords --------------------

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


# -------------------- Tokens --------------------

def create_access_token(user: dict) -> str:
    expire = utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": str(user["_id"]),
        "username": user.get("username"),
        "email": user.get("email"),
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(payload, settings.access_token_secret, algorithm=settings.jwt_algorithm)


def create_refresh_token(user: dict) -> str:
    expire = utcnow() + timedelta(days=settings.refresh_token_expire_days)
    # jti keeps rotated tokens distinct even within the same second
    payload = {"sub": str(user["_id"]), "type": "refresh", "jti": str(ObjectId()), "exp": expire}
    return jwt.encode(payload, settings.refresh_token_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, kind: str = "access") -> dict:
    secret = settings.access_token_secret if kind == "access" else settings.refresh_token_secret
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token has expired")
    except jwt.PyJWTError:
        raise Unauthorized("Invalid token")
    if payload.get("type") != kind or not ObjectId.is_valid(payload.get("sub", "")):
        raise Unauthorized("Invalid token")
    return payload


# -------------------- Dependencies --------------------

def _request_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(ACCESS_COOKIE)


def _resolve_user(db: DocumentStore, token: str) -> dict:
    payload = decode_token(token, "access")
    user = db.find_one(USERS, {"_id": ObjectId(payload["sub"])})
    if not user:
        raise Unauthorized("Invalid access token")
    return user


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: DocumentStore = Depends(get_db),
) -> dict:
    token = _request_token(request, credentials)
    if not token:
        raise Unauthorized("Access token is required")
    return _resolve_user(db, token)


def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: DocumentStore = Depends(get_db),
) -> Optional[dict]:
    """Like ``get_current_user`` but anonymous requests, and stale tokens, resolve to None."""
    token = _request_token(request, credentials)
    if not token:
        return None
    try:
        return _resolve_user(db, token)
    except Unauthorized as e:
        logger.info("anonymous_fallback", reason=e.message)
        return None
