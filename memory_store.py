"""
In-process document store.

Implements the same interface and query stages as ``MongoStore`` so the
service runs without a MongoDB server (``VIDSHARE_DATABASE_BACKEND=memory``)
and tests run against real store semantics. Every operation holds one lock,
which gives the per-document atomicity the toggle handlers rely on.
"""
from __future__ import annotations

import copy
import threading
from collections import defaultdict
from typing import Any, Dict, List, Optional

from bson import ObjectId

from database import INDEXES, DocumentStore, DuplicateError, utcnow
from query import (
    DESC, AnyOf, Contains, Count, Eq, Flag, In, JoinMany, JoinOne, Match, Present, Project, Sort, Total,
    Window,
)


def _get(doc: Any, path: str) -> Any:
    value = doc
    for part in path.split("."):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return None
    return value


def _equals(value: Any, expected: Any) -> bool:
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _matches(doc: dict, filter: Dict[str, Any]) -> bool:
    return all(_equals(_get(doc, field), expected) for field, expected in filter.items())


def _test(condition, doc: dict) -> bool:
    if isinstance(condition, Eq):
        return _equals(_get(doc, condition.field), condition.value)
    if isinstance(condition, In):
        value = _get(doc, condition.field)
        if isinstance(value, list):
            return any(v in condition.values for v in value)
        return value in condition.values
    if isinstance(condition, Contains):
        value = _get(doc, condition.field)
        return isinstance(value, str) and condition.text.lower() in value.lower()
    if isinstance(condition, Present):
        return _get(doc, condition.field) is not None
    if isinstance(condition, AnyOf):
        return any(_test(c, doc) for c in condition.conditions)
    raise TypeError(f"unknown condition: {condition!r}")


def _sort_key(value: Any):
    # Missing values sort first, as in MongoDB.
    if value is None:
        return (0, 0)
    return (1, value)


def _sorted(docs: List[dict], keys) -> List[dict]:
    docs = list(docs)
    for field, direction in reversed(keys):
        docs.sort(key=lambda d: _sort_key(_get(d, field)), reverse=direction == DESC)
    return docs


def _pick(doc: dict, fields) -> dict:
    if not fields:
        return copy.deepcopy(doc)
    picked = {"_id": doc["_id"]}
    for field in fields:
        if field in doc:
            picked[field] = copy.deepcopy(doc[field])
    return picked


class MemoryStore(DocumentStore):
    name = "memory"

    def __init__(self, indexes=INDEXES):
        self._collections: Dict[str, List[dict]] = defaultdict(list)
        self._indexes = [spec for spec in indexes if spec.unique]
        self._lock = threading.RLock()

    # ── Unique indexes ───────────────────────────────────────────────────

    def _check_unique(self, collection: str, doc: dict, ignore_id: Optional[ObjectId] = None) -> None:
        for spec in self._indexes:
            if spec.collection != collection:
                continue
            if spec.partial and doc.get(spec.partial) is None:
                continue
            key = tuple(doc.get(field) for field, _ in spec.keys)
            for other in self._collections[collection]:
                if other["_id"] == ignore_id:
                    continue
                if spec.partial and other.get(spec.partial) is None:
                    continue
                if tuple(other.get(field) for field, _ in spec.keys) == key:
                    raise DuplicateError(f"duplicate key for {collection}.{spec.name}")

    def ensure_indexes(self) -> None:
        pass

    def collection_names(self) -> List[str]:
        with self._lock:
            return sorted(name for name, docs in self._collections.items() if docs)

    # ── Documents ────────────────────────────────────────────────────────

    def insert(self, collection, doc):
        with self._lock:
            now = utcnow()
            stored = copy.deepcopy(doc)
            stored.setdefault("_id", ObjectId())
            stored["created_at"] = now
            stored["updated_at"] = now
            self._check_unique(collection, stored)
            self._collections[collection].append(stored)
            return copy.deepcopy(stored)

    def _first(self, collection, filter) -> Optional[dict]:
        return next((d for d in self._collections[collection] if _matches(d, filter)), None)

    def find_one(self, collection, filter):
        with self._lock:
            doc = self._first(collection, filter)
            return copy.deepcopy(doc) if doc is not None else None

    def find(self, collection, filter, sort=()):
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._collections[collection] if _matches(d, filter)]
        return _sorted(docs, tuple(sort)) if sort else docs

    def update(self, collection, filter, *, set=None, inc=None, unset=(), add_to_set=None, push=None, pull=None):
        with self._lock:
            current = self._first(collection, filter)
            if current is None:
                return None
            doc = copy.deepcopy(current)
            for field, value in (set or {}).items():
                doc[field] = copy.deepcopy(value)
            for field, amount in (inc or {}).items():
                doc[field] = doc.get(field, 0) + amount
            for field in unset:
                doc.pop(field, None)
            for field, value in (add_to_set or {}).items():
                values = doc.setdefault(field, [])
                if value not in values:
                    values.append(value)
            for field, value in (push or {}).items():
                doc.setdefault(field, []).append(value)
            for field, value in (pull or {}).items():
                doc[field] = [v for v in doc.get(field, []) if v != value]
            doc["updated_at"] = utcnow()
            self._check_unique(collection, doc, ignore_id=doc["_id"])
            current.clear()
            current.update(doc)
            return copy.deepcopy(doc)

    def update_many(self, collection, filter, *, pull=None):
        modified = 0
        with self._lock:
            for doc in self._collections[collection]:
                if not _matches(doc, filter):
                    continue
                for field, value in (pull or {}).items():
                    kept = [v for v in doc.get(field, []) if v != value]
                    if len(kept) != len(doc.get(field, [])):
                        doc[field] = kept
                        modified += 1
        return modified

    def delete(self, collection, filter):
        with self._lock:
            doc = self._first(collection, filter)
            if doc is None:
                return False
            self._collections[collection].remove(doc)
            return True

    def delete_many(self, collection, filter):
        with self._lock:
            docs = self._collections[collection]
            kept = [d for d in docs if not _matches(d, filter)]
            removed = len(docs) - len(kept)
            self._collections[collection] = kept
            return removed

    def count(self, collection, filter):
        with self._lock:
            return sum(1 for d in self._collections[collection] if _matches(d, filter))

    def ensure(self, collection, key):
        with self._lock:
            if self._first(collection, key) is not None:
                return False
            try:
                self.insert(collection, key)
            except DuplicateError:
                return False
            return True

    # ── Queries ──────────────────────────────────────────────────────────

    def _run(self, stages, docs: List[dict]) -> List[dict]:
        for stage in stages:
            docs = self._apply(stage, docs)
        return docs

    def _source(self, collection: str) -> List[dict]:
        return self._collections[collection]

    def _apply(self, stage, docs: List[dict]) -> List[dict]:
        if isinstance(stage, Match):
            return [d for d in docs if all(_test(c, d) for c in stage.conditions)]
        if isinstance(stage, JoinOne):
            source = self._source(stage.source)
            for d in docs:
                key = _get(d, stage.local_field)
                found = None
                if key is not None:
                    found = next((s for s in source if _equals(_get(s, stage.foreign_field), key)), None)
                if found is None:
                    d.pop(stage.as_field, None)
                else:
                    d[stage.as_field] = _pick(found, stage.fields)
            return docs
        if isinstance(stage, JoinMany):
            source = self._source(stage.source)
            for d in docs:
                key = _get(d, stage.local_field)
                keys = key if isinstance(key, list) else [key]
                joined = [
                    copy.deepcopy(s) for s in source
                    if any(_equals(_get(s, stage.foreign_field), k) for k in keys)
                ]
                d[stage.as_field] = self._run(stage.query.stages, joined)
            return docs
        if isinstance(stage, Count):
            source = self._source(stage.source)
            for d in docs:
                key = _get(d, stage.local_field)
                d[stage.as_field] = sum(1 for s in source if _equals(_get(s, stage.foreign_field), key))
            return docs
        if isinstance(stage, Flag):
            source = self._source(stage.source)
            for d in docs:
                if stage.actor is None:
                    d[stage.as_field] = False
                    continue
                key = _get(d, stage.local_field)
                d[stage.as_field] = any(
                    _equals(_get(s, stage.foreign_field), key) and _get(s, stage.actor_field) == stage.actor
                    for s in source
                )
            return docs
        if isinstance(stage, Sort):
            return _sorted(docs, stage.keys)
        if isinstance(stage, Window):
            return docs[stage.skip:stage.skip + stage.limit]
        if isinstance(stage, Project):
            return [_pick(d, stage.fields) for d in docs]
        if isinstance(stage, Total):
            if not docs:
                return []
            return [{as_field: sum(_get(d, field) or 0 for d in docs) for as_field, field in stage.sums}]
        raise TypeError(f"unknown query stage: {stage!r}")

    def aggregate(self, query):
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._source(query.collection)]
            return self._run(query.stages, docs)

    def aggregate_page(self, query):
        before, window, after = query.split_window()
        if window is None:
            raise ValueError("page query needs a window stage")
        with self._lock:
            docs = self._run(before.stages, [copy.deepcopy(d) for d in self._source(query.collection)])
            items = self._run(after.stages, docs[window.skip:window.skip + window.limit])
        return items, len(docs)
