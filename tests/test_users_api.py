import os

from conftest import API, PASSWORD, auth, login, register

from database import USERS


def test_register_and_login(client):
    profile = register(client, "Alice_1", full_name="Alice Smith")
    assert profile["username"] == "alice_1"
    assert "password_hash" not in profile
    assert "refresh_token" not in profile

    r = client.post(f"{API}/users/login", json={"email": "ALICE_1@example.com", "password": PASSWORD})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["statusCode"] == 200
    assert body["data"]["user"]["id"] == profile["id"]
    assert "access_token=" in r.headers["set-cookie"]


def test_register_with_avatar_stores_file(client, media):
    r = client.post(
        f"{API}/users/register",
        data={"username": "bob", "full_name": "Bob Jones", "email": "bob@example.com", "password": PASSWORD},
        files={"avatar": ("me.png", b"\x89PNG", "image/png")},
    )
    assert r.status_code == 201, r.text
    avatar = r.json()["data"]["avatar"]
    assert avatar.startswith("/static/avatars/") and avatar.endswith(".png")
    assert os.path.exists(media.path_for(avatar))


def test_register_validation_and_conflicts(client):
    bad = {"username": "ab", "full_name": "Al Smith", "email": "al@example.com", "password": PASSWORD}
    r = client.post(f"{API}/users/register", data=bad)
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert r.json()["data"] is None

    weak = {**bad, "username": "alsmith", "password": "lettersonly"}
    assert client.post(f"{API}/users/register", data=weak).status_code == 400

    register(client, "alsmith", email="al@example.com")
    dup = {**bad, "username": "ALSMITH", "email": "new@example.com"}
    r = client.post(f"{API}/users/register", data=dup)
    assert r.status_code == 409

    missing = client.post(f"{API}/users/register", data={"username": "zed"})
    assert missing.status_code == 400
    assert missing.json()["errors"]


def test_register_rejects_malformed_email(client):
    form = {"username": "xavier", "full_name": "Xavier Y", "password": PASSWORD}
    for email in ("x@y..com", "no-at-sign", "bad@-host.com"):
        r = client.post(f"{API}/users/register", data={**form, "email": email})
        assert r.status_code == 400
        assert r.json()["message"] == "Invalid email format"


def test_login_failures(client):
    register(client, "carol")
    r = client.post(f"{API}/users/login", json={"username": "nobody", "password": PASSWORD})
    assert r.status_code == 404
    r = client.post(f"{API}/users/login", json={"username": "carol", "password": "wrong123"})
    assert r.status_code == 401
    r = client.post(f"{API}/users/login", json={"password": PASSWORD})
    assert r.status_code == 400


def test_current_user_requires_token(client):
    assert client.get(f"{API}/users/current-user").status_code == 401
    bad = client.get(f"{API}/users/current-user", headers={"Authorization": "Bearer nonsense"})
    assert bad.status_code == 401
    assert bad.json()["message"] == "Invalid token"

    register(client, "dave")
    r = client.get(f"{API}/users/current-user", headers=auth(login(client, "dave")))
    assert r.status_code == 200
    assert r.json()["data"]["username"] == "dave"


def test_refresh_token_rotates(client):
    register(client, "erin")
    tokens = login(client, "erin")
    r = client.post(f"{API}/users/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert r.status_code == 200, r.text
    fresh = r.json()["data"]
    assert fresh["refresh_token"] != tokens["refresh_token"]

    # The old refresh token was replaced.
    reused = client.post(f"{API}/users/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert reused.status_code == 401
    assert client.post(f"{API}/users/refresh-token", json={}).status_code == 401


def test_logout_invalidates_refresh_token(client, store):
    register(client, "frank")
    tokens = login(client, "frank")
    r = client.post(f"{API}/users/logout", headers=auth(tokens))
    assert r.status_code == 200
    assert "refresh_token" not in store.find_one(USERS, {"username": "frank"})
    r = client.post(f"{API}/users/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert r.status_code == 401


def test_change_password(client):
    register(client, "gina")
    headers = auth(login(client, "gina"))
    url = f"{API}/users/change-password"
    mismatch = {"old_password": PASSWORD, "new_password": "newpass1", "confirm_password": "newpass2"}
    assert client.patch(url, json=mismatch, headers=headers).status_code == 400
    wrong_old = {"old_password": "nope1234", "new_password": "newpass1", "confirm_password": "newpass1"}
    assert client.patch(url, json=wrong_old, headers=headers).status_code == 400

    good = {"old_password": PASSWORD, "new_password": "newpass1", "confirm_password": "newpass1"}
    assert client.patch(url, json=good, headers=headers).status_code == 200
    login(client, "gina", "newpass1")


def test_update_account(client):
    register(client, "hank")
    register(client, "ivy")
    headers = auth(login(client, "hank"))
    url = f"{API}/users/update-account"
    assert client.patch(url, json={}, headers=headers).status_code == 400
    assert client.patch(url, json={"username": "ivy"}, headers=headers).status_code == 409
    assert client.patch(url, json={"email": "ivy@example.com"}, headers=headers).status_code == 409
    assert client.patch(url, json={"email": "x@y..com"}, headers=headers).status_code == 400

    r = client.patch(url, json={"full_name": "Hank Hill", "email": "HANK2@example.com"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["full_name"] == "Hank Hill"
    assert r.json()["data"]["email"] == "hank2@example.com"


def test_avatar_replace_and_delete(client, media):
    register(client, "jill")
    headers = auth(login(client, "jill"))
    assert client.patch(f"{API}/users/delete-avatar", headers=headers).status_code == 404
    assert client.patch(f"{API}/users/update-avatar", headers=headers).status_code == 400

    r = client.patch(f"{API}/users/update-avatar", files={"avatar": ("a.jpg", b"one", "image/jpeg")},
                     headers=headers)
    first = r.json()["data"]["avatar"]
    r = client.patch(f"{API}/users/update-avatar", files={"avatar": ("b.jpg", b"two", "image/jpeg")},
                     headers=headers)
    second = r.json()["data"]["avatar"]
    assert first != second
    assert not os.path.exists(media.path_for(first))
    assert os.path.exists(media.path_for(second))

    r = client.patch(f"{API}/users/delete-avatar", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["avatar"] is None
    assert not os.path.exists(media.path_for(second))


def test_cover_image_update_and_delete(client):
    register(client, "kate")
    headers = auth(login(client, "kate"))
    r = client.patch(f"{API}/users/update-cover-image",
                     files={"cover_image": ("c.jpg", b"cover", "image/jpeg")}, headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["cover_image"].startswith("/static/covers/")
    assert client.patch(f"{API}/users/delete-cover-image", headers=headers).status_code == 200
    assert client.patch(f"{API}/users/delete-cover-image", headers=headers).status_code == 404


def test_channel_profile_route(client, make_user):
    liam, liam_headers = make_user("liam")
    mia, mia_headers = make_user("mia")
    client.post(f"{API}/subscriptions/c/{liam['id']}", headers=mia_headers)

    r = client.get(f"{API}/users/c/liam", headers=mia_headers)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["subscribers_count"] == 1
    assert data["is_subscribed"] is True
    assert "email" not in data

    anonymous = client.get(f"{API}/users/c/liam").json()["data"]
    assert anonymous["is_subscribed"] is False
    assert client.get(f"{API}/users/c/nobody").status_code == 404


def test_watch_history_and_liked_videos(client, make_user, upload_video):
    _, owner_headers = make_user("nora")
    _, viewer_headers = make_user("omar")
    first = upload_video(owner_headers, title="first")
    second = upload_video(owner_headers, title="second")

    for video in (first, second, first):
        assert client.get(f"{API}/videos/{video['id']}", headers=viewer_headers).status_code == 200
    history = client.get(f"{API}/users/watch-history", headers=viewer_headers).json()["data"]
    assert [v["title"] for v in history] == ["first", "second"]

    client.post(f"{API}/likes/toggle/v/{second['id']}", headers=viewer_headers)
    r = client.get(f"{API}/users/liked-videos", headers=viewer_headers)
    page = r.json()["data"]
    assert page["total_count"] == 1
    assert page["items"][0]["title"] == "second"
    assert client.get(f"{API}/users/liked-videos?limit=51", headers=viewer_headers).status_code == 400


def test_delete_account_cascades(client, store, make_user, upload_video):
    paul, paul_headers = make_user("paul")
    quinn, quinn_headers = make_user("quinn")
    video = upload_video(paul_headers)
    client.post(f"{API}/comments/{video['id']}", json={"content": "mine"}, headers=quinn_headers)
    client.post(f"{API}/comments/{video['id']}", json={"content": "own video"}, headers=paul_headers)
    client.post(f"{API}/subscriptions/c/{paul['id']}", headers=quinn_headers)
    client.post(f"{API}/tweets", json={"content": "hello"}, headers=paul_headers)

    r = client.delete(f"{API}/users/delete-account", headers=paul_headers)
    assert r.status_code == 200
    assert r.json()["data"]["media_cleanup"][video["id"]] is True

    assert store.find_one(USERS, {"username": "paul"}) is None
    assert store.count("videos", {}) == 0
    assert store.count("comments", {}) == 0
    assert store.count("subscriptions", {}) == 0
    assert store.count("tweets", {}) == 0
    assert client.get(f"{API}/users/current-user", headers=paul_headers).status_code == 401
    assert client.get(f"{API}/users/current-user", headers=quinn_headers).status_code == 200
