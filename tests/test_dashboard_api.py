from conftest import API


def test_dashboard_stats(client, make_user, upload_video):
    me, headers = make_user("alice")
    _, fan_headers = make_user("bob")
    video = upload_video(headers)
    upload_video(headers, publish=False)
    client.get(f"{API}/videos/{video['id']}", headers=fan_headers)
    client.get(f"{API}/videos/{video['id']}")
    client.post(f"{API}/likes/toggle/v/{video['id']}", headers=fan_headers)
    client.post(f"{API}/subscriptions/c/{me['id']}", headers=fan_headers)

    r = client.get(f"{API}/dashboard/stats", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"] == {"total_videos": 2, "total_views": 2, "total_subscribers": 1, "total_likes": 1}


def test_dashboard_stats_for_empty_channel(client, make_user):
    _, headers = make_user("carol")
    data = client.get(f"{API}/dashboard/stats", headers=headers).json()["data"]
    assert data == {"total_videos": 0, "total_views": 0, "total_subscribers": 0, "total_likes": 0}
    assert client.get(f"{API}/dashboard/stats").status_code == 401


def test_dashboard_videos_include_unpublished(client, make_user, upload_video):
    _, headers = make_user("dave")
    upload_video(headers, title="b", duration=30)
    upload_video(headers, title="a", duration=10, publish=False)

    r = client.get(f"{API}/dashboard/videos", params={"sort_by": "duration", "sort_type": "asc"}, headers=headers)
    page = r.json()["data"]
    assert [v["title"] for v in page["items"]] == ["a", "b"]
    assert page["items"][0]["is_published"] is False
    assert "owner" not in page["items"][0]
    assert client.get(f"{API}/dashboard/videos", params={"sort_by": "owner"}, headers=headers).status_code == 400
