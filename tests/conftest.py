import os
import tempfile

# Settings are read once at import time, so the environment has to be ready first.
os.environ.setdefault("VIDSHARE_DATABASE_BACKEND", "memory")
os.environ.setdefault("VIDSHARE_BCRYPT_ROUNDS", "4")
os.environ.setdefault("VIDSHARE_UPLOAD_DIR", tempfile.mkdtemp(prefix="vidshare-uploads-"))
os.environ.setdefault("VIDSHARE_ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient

from database import get_db
from main import app
from media import MediaStorage, get_media
from memory_store import MemoryStore

API = "/api/v1"
PASSWORD = "secret123"


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def media(tmp_path):
    return MediaStorage(str(tmp_path / "uploads"), "/static")


@pytest.fixture
def client(store, media):
    app.dependency_overrides[get_db] = lambda: store
    app.dependency_overrides[get_media] = lambda: media
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def register(client, username, password=PASSWORD, **extra):
    data = {
        "username": username,
        "full_name": extra.pop("full_name", "Test User"),
        "email": extra.pop("email", f"{username}@example.com"),
        "password": password,
    }
    r = client.post(f"{API}/users/register", data=data, **extra)
    assert r.status_code == 201, r.text
    return r.json()["data"]


def login(client, username, password=PASSWORD):
    r = client.post(f"{API}/users/login", json={"username": username, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["data"]


def auth(tokens):
    return {"Authorization": f"Bearer {tokens['access_token']}"}


@pytest.fixture
def make_user(client):
    """Register and log in a user; returns ``(profile, headers)``."""
    def _make(username):
        profile = register(client, username)
        return profile, auth(login(client, username))
    return _make


@pytest.fixture
def upload_video(client):
    """Upload a video as the given user, optionally publishing it."""
    def _upload(headers, title="A video", description="", duration=12.5, publish=True):
        r = client.post(
            f"{API}/videos",
            data={"title": title, "description": description, "duration": str(duration)},
            files={
                "video_file": ("clip.mp4", b"\x00\x01video", "video/mp4"),
                "thumbnail": ("thumb.jpg", b"\xff\xd8thumb", "image/jpeg"),
            },
            headers=headers,
        )
        assert r.status_code == 201, r.text
        video = r.json()["data"]
        if publish:
            r = client.patch(f"{API}/videos/{video['id']}/publish", headers=headers)
            assert r.status_code == 200, r.text
            video = r.json()["data"]
        return video
    return _upload
