import pytest
from bson import ObjectId

from query import ASC, DESC, AnyOf, Contains, Eq, Present, Query


def test_match_without_conditions_adds_no_stage():
    q = Query("videos").match()
    assert q.stages == ()
    assert q.to_pipeline() == []


def test_queries_are_immutable():
    base = Query("videos")
    extended = base.match(Eq("is_published", True))
    assert base.stages == ()
    assert len(extended.stages) == 1


def test_contains_escapes_regex_metacharacters():
    assert Contains("title", "a.b*").to_mongo() == {"title": {"$regex": r"a\.b\*", "$options": "i"}}


def test_multiple_conditions_compile_to_and():
    q = Query("videos").match(Eq("owner", 1), Present("title"))
    assert q.to_pipeline() == [
        {"$match": {"$and": [{"owner": 1}, {"title": {"$exists": True, "$ne": None}}]}}
    ]


def test_any_of_compiles_to_or():
    cond = AnyOf((Eq("is_published", True), Eq("owner", 7)))
    assert cond.to_mongo() == {"$or": [{"is_published": True}, {"owner": 7}]}


def test_join_one_projects_fields_and_unwraps_first():
    pipeline = Query("videos").join_one("users", "owner", fields=("username",)).to_pipeline()
    assert pipeline == [
        {"$lookup": {
            "from": "users", "localField": "owner", "foreignField": "_id", "as": "owner",
            "pipeline": [{"$project": {"username": 1}}],
        }},
        {"$addFields": {"owner": {"$first": "$owner"}}},
    ]


def test_count_uses_size_of_lookup():
    pipeline = Query("videos").count("likes", "video", "likes_count").to_pipeline()
    assert pipeline[0]["$lookup"]["foreignField"] == "video"
    assert pipeline[1] == {"$addFields": {"likes_count": {"$size": "$likes_count"}}}


def test_flag_for_anonymous_viewer_is_literal_false():
    pipeline = Query("videos").flag("likes", "video", "liked_by", None, "is_liked").to_pipeline()
    assert pipeline == [{"$addFields": {"is_liked": {"$literal": False}}}]


def test_flag_for_viewer_matches_actor():
    viewer = ObjectId()
    lookup, add = Query("videos").flag("likes", "video", "liked_by", viewer, "is_liked").to_pipeline()
    assert lookup["$lookup"]["pipeline"][0] == {"$match": {"liked_by": viewer}}
    assert add == {"$addFields": {"is_liked": {"$gt": [{"$size": "$is_liked"}, 0]}}}


def test_join_many_nests_sub_query():
    sub = Query().sort(("created_at", DESC))
    pipeline = Query("videos").join_many("comments", "_id", "video", "comments", sub).to_pipeline()
    assert pipeline == [{"$lookup": {
        "from": "comments", "localField": "_id", "foreignField": "video", "as": "comments",
        "pipeline": [{"$sort": {"created_at": -1}}],
    }}]


def test_page_pipeline_counts_before_window_and_enriches_after():
    q = (
        Query("comments")
        .match(Eq("video", 1))
        .sort(("created_at", DESC), ("_id", DESC))
        .window(20, 10)
        .project("content")
    )
    pipeline = q.to_page_pipeline()
    assert pipeline[0] == {"$match": {"video": 1}}
    assert pipeline[1] == {"$sort": {"created_at": -1, "_id": -1}}
    assert pipeline[2] == {"$facet": {
        "items": [{"$skip": 20}, {"$limit": 10}, {"$project": {"content": 1}}],
        "total": [{"$count": "count"}],
    }}


def test_page_pipeline_requires_window():
    with pytest.raises(ValueError):
        Query("videos").sort(("title", ASC)).to_page_pipeline()


def test_total_groups_everything():
    pipeline = Query("videos").total(total_views="views").to_pipeline()
    assert pipeline == [
        {"$group": {"_id": None, "total_views": {"$sum": "$views"}}},
        {"$project": {"_id": 0}},
    ]
