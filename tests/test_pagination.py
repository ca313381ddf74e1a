from datetime import timedelta

import pytest
from bson import ObjectId

from database import COMMENTS, utcnow
from errors import ValidationError
from pagination import Page, PageRequest, SortSpec, paginate
from query import ASC, DESC, Eq, Query


def seed_comments(store, video, count, same_time=False):
    start = utcnow()
    for i in range(count):
        doc = store.insert(COMMENTS, {"content": f"c{i}", "video": video, "owner": ObjectId()})
        created = start if same_time else start + timedelta(seconds=i)
        store.update(COMMENTS, {"_id": doc["_id"]}, set={"created_at": created})


def test_fifteen_comments_third_page(store):
    video = ObjectId()
    seed_comments(store, video, 15)
    query = Query(COMMENTS).match(Eq("video", video))
    page = paginate(store, query, SortSpec("created_at", DESC), PageRequest(3, 5))
    assert [c["content"] for c in page.items] == ["c4", "c3", "c2", "c1", "c0"]
    assert page.total_count == 15
    assert page.total_pages == 3
    assert page.current_page == 3
    assert page.has_next is False
    assert page.has_prev is True


def test_pages_concatenate_without_gaps_under_ties(store):
    video = ObjectId()
    seed_comments(store, video, 11, same_time=True)
    query = Query(COMMENTS).match(Eq("video", video))
    sort = SortSpec("created_at", ASC)
    seen = []
    for number in range(1, 5):
        seen.extend(c["_id"] for c in paginate(store, query, sort, PageRequest(number, 3)).items)
    assert len(seen) == 11
    assert len(set(seen)) == 11


def test_page_past_the_end_is_empty(store):
    video = ObjectId()
    seed_comments(store, video, 4)
    page = paginate(store, Query(COMMENTS).match(Eq("video", video)), SortSpec("created_at", DESC),
                    PageRequest(9, 10))
    assert page.items == []
    assert page.total_count == 4
    assert page.has_next is False


def test_no_matches():
    page = Page.build([], 0, PageRequest(1, 10))
    assert page.total_pages == 0
    assert page.has_next is False
    assert page.has_prev is False


@pytest.mark.parametrize("page,limit", [(0, 10), (-1, 10), (1, 0), (1, 101), ("x", 10)])
def test_invalid_page_or_limit_is_rejected(page, limit):
    with pytest.raises(ValidationError):
        PageRequest.parse(page, limit, 100)


def test_limit_at_maximum_is_accepted():
    assert PageRequest.parse(2, 100, 100).skip == 100


def test_sort_field_must_be_allowed():
    with pytest.raises(ValidationError) as exc:
        SortSpec.parse("password", "asc", ("created_at", "content"))
    assert "Allowed fields" in exc.value.message


def test_sort_type_must_be_asc_or_desc():
    with pytest.raises(ValidationError):
        SortSpec.parse("created_at", "sideways", ("created_at",))


def test_sort_defaults_and_tie_break():
    sort = SortSpec.parse(None, None, ("created_at",))
    assert sort.keys() == (("created_at", DESC), ("_id", DESC))
    assert SortSpec.parse("created_at", "ASC", ("created_at",)).direction == ASC
