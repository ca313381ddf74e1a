from datetime import timedelta

from conftest import API

from database import COMMENTS, utcnow


def test_add_comment_to_video(client, make_user, upload_video):
    _, owner_headers = make_user("alice")
    bob, bob_headers = make_user("bob")
    video = upload_video(owner_headers)
    r = client.post(f"{API}/comments/{video['id']}", json={"content": "  first!  "}, headers=bob_headers)
    assert r.status_code == 201
    comment = r.json()["data"]
    assert comment["content"] == "first!"
    assert comment["owner"]["id"] == bob["id"]
    assert comment["video"] == video["id"]


def test_add_comment_rejections(client, make_user, upload_video):
    _, owner_headers = make_user("carol")
    _, other_headers = make_user("dave")
    private = upload_video(owner_headers, publish=False)
    assert client.post(f"{API}/comments/{private['id']}", json={"content": "hi"},
                       headers=other_headers).status_code == 404
    public = upload_video(owner_headers)
    assert client.post(f"{API}/comments/{public['id']}", json={"content": "   "},
                       headers=other_headers).status_code == 400
    assert client.post(f"{API}/comments/{public['id']}", json={"content": "x" * 1001},
                       headers=other_headers).status_code == 400
    assert client.post(f"{API}/comments/{public['id']}", json={"content": "hi"}).status_code == 401


def test_list_comments_paginates_newest_first(client, store, make_user, upload_video):
    _, headers = make_user("erin")
    video = upload_video(headers)
    start = utcnow()
    for i in range(15):
        r = client.post(f"{API}/comments/{video['id']}", json={"content": f"c{i}"}, headers=headers)
        store.update(COMMENTS, {"_id": store.find_one(COMMENTS, {"content": f"c{i}"})["_id"]},
                     set={"created_at": start + timedelta(seconds=i)})
        assert r.status_code == 201

    r = client.get(f"{API}/comments", params={"video_id": video["id"], "page": 3, "limit": 5})
    page = r.json()["data"]
    assert [c["content"] for c in page["items"]] == ["c4", "c3", "c2", "c1", "c0"]
    assert page["total_count"] == 15
    assert page["total_pages"] == 3
    assert page["has_next"] is False
    assert page["has_prev"] is True

    r = client.get(f"{API}/comments", params={"video_id": video["id"], "page": 1, "limit": 10})
    page = r.json()["data"]
    assert len(page["items"]) == 10
    assert page["items"][0]["content"] == "c14"
    assert page["total_pages"] == 2
    assert page["has_next"] is True
    assert page["has_prev"] is False

    r = client.get(f"{API}/comments", params={"video_id": video["id"], "query": "C1"})
    assert {c["content"] for c in r.json()["data"]["items"]} == {"c1", "c10", "c11", "c12", "c13", "c14"}


def test_list_comments_parameter_errors(client):
    assert client.get(f"{API}/comments", params={"sort_by": "owner"}).status_code == 400
    assert client.get(f"{API}/comments", params={"limit": 101}).status_code == 400
    assert client.get(f"{API}/comments", params={"video_id": "bad"}).status_code == 400
    empty = client.get(f"{API}/comments")
    assert empty.status_code == 200
    assert empty.json()["data"]["items"] == []


def test_update_comment_owner_only(client, make_user, upload_video):
    _, owner_headers = make_user("frank")
    _, other_headers = make_user("gina")
    video = upload_video(owner_headers)
    comment = client.post(f"{API}/comments/{video['id']}", json={"content": "typo"},
                          headers=other_headers).json()["data"]
    url = f"{API}/comments/c/{comment['id']}"
    assert client.patch(url, json={"content": "hijack"}, headers=owner_headers).status_code == 403
    r = client.patch(url, json={"content": "fixed"}, headers=other_headers)
    assert r.status_code == 200
    assert r.json()["data"]["content"] == "fixed"


def test_delete_comment_by_author_or_video_owner(client, store, make_user, upload_video):
    _, owner_headers = make_user("hank")
    _, author_headers = make_user("ivy")
    _, stranger_headers = make_user("jack")
    video = upload_video(owner_headers)
    first = client.post(f"{API}/comments/{video['id']}", json={"content": "one"},
                        headers=author_headers).json()["data"]
    second = client.post(f"{API}/comments/{video['id']}", json={"content": "two"},
                         headers=author_headers).json()["data"]
    client.post(f"{API}/likes/toggle/c/{first['id']}", headers=stranger_headers)

    assert client.delete(f"{API}/comments/c/{first['id']}", headers=stranger_headers).status_code == 403
    assert client.delete(f"{API}/comments/c/{first['id']}", headers=author_headers).status_code == 200
    assert store.count("likes", {}) == 0
    assert client.delete(f"{API}/comments/c/{second['id']}", headers=owner_headers).status_code == 200
    assert client.delete(f"{API}/comments/c/{second['id']}", headers=owner_headers).status_code == 404
