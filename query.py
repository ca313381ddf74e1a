"""
Query builder for joined and annotated read models.

A ``Query`` is an immutable list of stages over one collection:

    Query("videos")
        .match(Eq("_id", video_id))
        .join_one("users", "owner", fields=OWNER_FIELDS)
        .count("likes", "video", "likes_count")
        .flag("likes", "video", "liked_by", viewer_id, "is_liked")

``to_pipeline()`` compiles it to a MongoDB aggregation pipeline; the memory
store evaluates the same stages directly. Everything a read model needs comes
back from one round trip.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

ASC = 1
DESC = -1


# ── Conditions ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Eq:
    field: str
    value: Any

    def to_mongo(self) -> dict:
        return {self.field: self.value}


@dataclass(frozen=True)
class In:
    field: str
    values: Tuple[Any, ...]

    def to_mongo(self) -> dict:
        return {self.field: {"$in": list(self.values)}}


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match; the text is taken literally."""
    field: str
    text: str

    def to_mongo(self) -> dict:
        return {self.field: {"$regex": re.escape(self.text), "$options": "i"}}


@dataclass(frozen=True)
class Present:
    field: str

    def to_mongo(self) -> dict:
        return {self.field: {"$exists": True, "$ne": None}}


@dataclass(frozen=True)
class AnyOf:
    conditions: Tuple[Any, ...]

    def to_mongo(self) -> dict:
        return {"$or": [c.to_mongo() for c in self.conditions]}


# ── Stages ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Match:
    conditions: Tuple[Any, ...]


@dataclass(frozen=True)
class JoinOne:
    source: str
    local_field: str
    as_field: str
    fields: Tuple[str, ...]
    foreign_field: str = "_id"


@dataclass(frozen=True)
class JoinMany:
    source: str
    local_field: str
    foreign_field: str
    as_field: str
    query: "Query"


@dataclass(frozen=True)
class Count:
    source: str
    foreign_field: str
    as_field: str
    local_field: str = "_id"


@dataclass(frozen=True)
class Flag:
    source: str
    foreign_field: str
    actor_field: str
    actor: Any
    as_field: str
    local_field: str = "_id"


@dataclass(frozen=True)
class Sort:
    keys: Tuple[Tuple[str, int], ...]


@dataclass(frozen=True)
class Window:
    skip: int
    limit: int


@dataclass(frozen=True)
class Project:
    fields: Tuple[str, ...]


@dataclass(frozen=True)
class Total:
    sums: Tuple[Tuple[str, str], ...]


class Query:
    def __init__(self, collection: Optional[str] = None, stages: Tuple[Any, ...] = ()):
        self.collection = collection
        self.stages = tuple(stages)

    def __repr__(self) -> str:
        return f"Query({self.collection!r}, {len(self.stages)} stages)"

    def _then(self, stage) -> "Query":
        return Query(self.collection, self.stages + (stage,))

    def match(self, *conditions) -> "Query":
        if not conditions:
            return self
        return self._then(Match(tuple(conditions)))

    def join_one(self, source: str, local_field: str, as_field: Optional[str] = None,
                 fields: Tuple[str, ...] = (), foreign_field: str = "_id") -> "Query":
        """Replace ``local_field`` (or set ``as_field``) with the single referenced document."""
        return self._then(JoinOne(source, local_field, as_field or local_field, tuple(fields), foreign_field))

    def join_many(self, source: str, local_field: str, foreign_field: str, as_field: str,
                  query: Optional["Query"] = None) -> "Query":
        """Attach every ``source`` document whose ``foreign_field`` matches ``local_field``.

        ``query`` is applied to the joined documents (match, join_one, sort, project).
        When ``local_field`` holds a list, any element matches.
        """
        return self._then(JoinMany(source, local_field, foreign_field, as_field, query or Query()))

    def count(self, source: str, foreign_field: str, as_field: str, local_field: str = "_id") -> "Query":
        return self._then(Count(source, foreign_field, as_field, local_field))

    def flag(self, source: str, foreign_field: str, actor_field: str, actor: Any, as_field: str,
             local_field: str = "_id") -> "Query":
        """True when ``source`` holds a document pointing here whose ``actor_field`` is ``actor``."""
        return self._then(Flag(source, foreign_field, actor_field, actor, as_field, local_field))

    def sort(self, *keys: Tuple[str, int]) -> "Query":
        return self._then(Sort(tuple(keys)))

    def window(self, skip: int, limit: int) -> "Query":
        return self._then(Window(skip, limit))

    def project(self, *fields: str) -> "Query":
        return self._then(Project(tuple(fields)))

    def total(self, **sums: str) -> "Query":
        """Collapse to a single document of ``{as_field: sum(field)}``."""
        return self._then(Total(tuple(sums.items())))

    def extend(self, other: "Query") -> "Query":
        return Query(self.collection, self.stages + other.stages)

    # ── MongoDB compilation ──────────────────────────────────────────────

    def to_pipeline(self) -> List[dict]:
        pipeline: List[dict] = []
        for stage in self.stages:
            pipeline.extend(compile_stage(stage))
        return pipeline

    def split_window(self) -> Tuple["Query", Optional[Window], "Query"]:
        for i, stage in enumerate(self.stages):
            if isinstance(stage, Window):
                return Query(self.collection, self.stages[:i]), stage, Query(self.collection, self.stages[i + 1:])
        return self, None, Query(self.collection)

    def to_page_pipeline(self) -> List[dict]:
        """Pipeline yielding ``{"items": [...], "total": [{"count": n}]}`` in one document."""
        before, window, after = self.split_window()
        if window is None:
            raise ValueError("page pipeline needs a window stage")
        items = [{"$skip": window.skip}, {"$limit": window.limit}] + after.to_pipeline()
        return before.to_pipeline() + [{"$facet": {"items": items, "total": [{"$count": "count"}]}}]


def _lookup(source: str, local_field: str, foreign_field: str, as_field: str, pipeline: List[dict]) -> dict:
    lookup = {
        "from": source,
        "localField": local_field,
        "foreignField": foreign_field,
        "as": as_field,
    }
    if pipeline:
        lookup["pipeline"] = pipeline
    return {"$lookup": lookup}


def _where(conditions) -> dict:
    if len(conditions) == 1:
        return conditions[0].to_mongo()
    return {"$and": [c.to_mongo() for c in conditions]}


def compile_stage(stage) -> List[dict]:
    if isinstance(stage, Match):
        return [{"$match": _where(stage.conditions)}]
    if isinstance(stage, JoinOne):
        pipeline = [{"$project": {f: 1 for f in stage.fields}}] if stage.fields else []
        return [
            _lookup(stage.source, stage.local_field, stage.foreign_field, stage.as_field, pipeline),
            {"$addFields": {stage.as_field: {"$first": f"${stage.as_field}"}}},
        ]
    if isinstance(stage, JoinMany):
        return [_lookup(stage.source, stage.local_field, stage.foreign_field, stage.as_field,
                        stage.query.to_pipeline())]
    if isinstance(stage, Count):
        return [
            _lookup(stage.source, stage.local_field, stage.foreign_field, stage.as_field,
                    [{"$project": {"_id": 1}}]),
            {"$addFields": {stage.as_field: {"$size": f"${stage.as_field}"}}},
        ]
    if isinstance(stage, Flag):
        if stage.actor is None:
            return [{"$addFields": {stage.as_field: {"$literal": False}}}]
        pipeline = [{"$match": {stage.actor_field: stage.actor}}, {"$limit": 1}, {"$project": {"_id": 1}}]
        return [
            _lookup(stage.source, stage.local_field, stage.foreign_field, stage.as_field, pipeline),
            {"$addFields": {stage.as_field: {"$gt": [{"$size": f"${stage.as_field}"}, 0]}}},
        ]
    if isinstance(stage, Sort):
        return [{"$sort": {name: direction for name, direction in stage.keys}}]
    if isinstance(stage, Window):
        return [{"$skip": stage.skip}, {"$limit": stage.limit}]
    if isinstance(stage, Project):
        return [{"$project": {f: 1 for f in stage.fields}}]
    if isinstance(stage, Total):
        group = {"_id": None}
        for as_field, source_field in stage.sums:
            group[as_field] = {"$sum": f"${source_field}"}
        return [{"$group": group}, {"$project": {"_id": 0}}]
    raise TypeError(f"unknown query stage: {stage!r}")
