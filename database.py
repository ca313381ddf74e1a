"""
Entity store.

Handlers talk to a ``DocumentStore``; ``MongoStore`` backs it with pymongo and
``memory_store.MemoryStore`` keeps everything in process. Filters are plain
equality dicts (a scalar matches an array field containing it); anything
richer goes through ``query.Query``.

Collections:
- users, videos, comments, tweets, likes, dislikes, subscriptions, playlists
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import get_settings
from errors import UpstreamFailure, ValidationError
from query import Query

logger = structlog.get_logger(__name__)

USERS = "users"
VIDEOS = "videos"
COMMENTS = "comments"
TWEETS = "tweets"
LIKES = "likes"
DISLIKES = "dislikes"
SUBSCRIPTIONS = "subscriptions"
PLAYLISTS = "playlists"

COLLECTIONS = (USERS, VIDEOS, COMMENTS, TWEETS, LIKES, DISLIKES, SUBSCRIPTIONS, PLAYLISTS)


class DuplicateError(Exception):
    """A write would violate a unique index."""


@dataclass(frozen=True)
class IndexSpec:
    collection: str
    keys: Tuple[Tuple[str, int], ...]
    unique: bool = False
    # Only documents that carry this field are indexed.
    partial: Optional[str] = None

    @property
    def name(self) -> str:
        return "_".join(f"{field}_{direction}" for field, direction in self.keys)


def _reaction_indexes(collection: str, actor_field: str) -> List[IndexSpec]:
    return [
        IndexSpec(collection, ((target, ASCENDING), (actor_field, ASCENDING)), unique=True, partial=target)
        for target in ("video", "comment", "tweet")
    ]


INDEXES: List[IndexSpec] = [
    IndexSpec(USERS, (("username", ASCENDING),), unique=True),
    IndexSpec(USERS, (("email", ASCENDING),), unique=True),
    IndexSpec(VIDEOS, (("owner", ASCENDING), ("created_at", DESCENDING))),
    IndexSpec(VIDEOS, (("is_published", ASCENDING), ("created_at", DESCENDING))),
    IndexSpec(COMMENTS, (("video", ASCENDING), ("created_at", DESCENDING))),
    IndexSpec(TWEETS, (("owner", ASCENDING), ("created_at", DESCENDING))),
    IndexSpec(SUBSCRIPTIONS, (("subscriber", ASCENDING), ("channel", ASCENDING)), unique=True),
    IndexSpec(SUBSCRIPTIONS, (("channel", ASCENDING),)),
    IndexSpec(PLAYLISTS, (("owner", ASCENDING),)),
    *_reaction_indexes(LIKES, "liked_by"),
    *_reaction_indexes(DISLIKES, "disliked_by"),
]


# -------------------- Helpers --------------------

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def objid(id_str: Any, label: str = "id") -> ObjectId:
    """Parse a client supplied id; malformed ids are a validation error."""
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label}")


def to_str_id(doc):
    """Copy a stored document for output: ``_id`` becomes ``id`` and ObjectIds become strings."""
    if isinstance(doc, list):
        return [to_str_id(item) for item in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if not isinstance(doc, dict):
        return doc
    d = {}
    for k, v in doc.items():
        d["id" if k == "_id" else k] = to_str_id(v)
    return d


# -------------------- Store interface --------------------

class DocumentStore:
    """Operations every backend provides."""

    name = "abstract"

    def ensure_indexes(self) -> None:
        raise NotImplementedError

    def collection_names(self) -> List[str]:
        raise NotImplementedError

    def insert(self, collection: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a copy of ``doc`` stamped with ``_id``/``created_at``/``updated_at``; return it."""
        raise NotImplementedError

    def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def find(self, collection: str, filter: Dict[str, Any],
             sort: Iterable[Tuple[str, int]] = ()) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def update(self, collection: str, filter: Dict[str, Any], *,
               set: Optional[Dict[str, Any]] = None,
               inc: Optional[Dict[str, int]] = None,
               unset: Iterable[str] = (),
               add_to_set: Optional[Dict[str, Any]] = None,
               push: Optional[Dict[str, Any]] = None,
               pull: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Update the first match and return it as it is after the update, or None."""
        raise NotImplementedError

    def update_many(self, collection: str, filter: Dict[str, Any], *,
                    pull: Optional[Dict[str, Any]] = None) -> int:
        raise NotImplementedError

    def delete(self, collection: str, filter: Dict[str, Any]) -> bool:
        """Delete the first match; True when something was deleted."""
        raise NotImplementedError

    def delete_many(self, collection: str, filter: Dict[str, Any]) -> int:
        raise NotImplementedError

    def count(self, collection: str, filter: Dict[str, Any]) -> int:
        raise NotImplementedError

    def ensure(self, collection: str, key: Dict[str, Any]) -> bool:
        """Idempotent upsert of a relationship record; True only when this call created it."""
        raise NotImplementedError

    def aggregate(self, query: Query) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def aggregate_page(self, query: Query) -> Tuple[List[Dict[str, Any]], int]:
        """Run a query containing a window; return the windowed items and the pre-window total."""
        raise NotImplementedError


class MongoStore(DocumentStore):
    name = "mongo"

    def __init__(self, uri: str, database_name: str):
        self.client = MongoClient(uri, tz_aware=True)
        self.db = self.client[database_name]

    def _wrap(self, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except DuplicateKeyError as e:
            raise DuplicateError(str(e)) from e
        except PyMongoError as e:
            logger.error("mongo_error", error=str(e))
            raise UpstreamFailure("Database request failed") from e

    def ensure_indexes(self) -> None:
        for spec in INDEXES:
            options = {"name": spec.name, "unique": spec.unique}
            if spec.partial:
                options["partialFilterExpression"] = {spec.partial: {"$exists": True}}
            self._wrap(self.db[spec.collection].create_index, list(spec.keys), **options)
        logger.info("indexes_ready", count=len(INDEXES))

    def collection_names(self) -> List[str]:
        return self._wrap(self.db.list_collection_names)

    def insert(self, collection, doc):
        now = utcnow()
        stored = {**doc, "created_at": now, "updated_at": now}
        stored["_id"] = self._wrap(self.db[collection].insert_one, stored).inserted_id
        return stored

    def find_one(self, collection, filter):
        return self._wrap(self.db[collection].find_one, filter)

    def find(self, collection, filter, sort=()):
        def run():
            cursor = self.db[collection].find(filter)
            if sort:
                cursor = cursor.sort(list(sort))
            return list(cursor)
        return self._wrap(run)

    def update(self, collection, filter, *, set=None, inc=None, unset=(), add_to_set=None, push=None, pull=None):
        ops: Dict[str, Any] = {"$set": {**(set or {}), "updated_at": utcnow()}}
        if inc:
            ops["$inc"] = inc
        if unset:
            ops["$unset"] = {field: "" for field in unset}
        if add_to_set:
            ops["$addToSet"] = add_to_set
        if push:
            ops["$push"] = push
        if pull:
            ops["$pull"] = pull
        return self._wrap(
            self.db[collection].find_one_and_update, filter, ops, return_document=ReturnDocument.AFTER
        )

    def update_many(self, collection, filter, *, pull=None):
        ops: Dict[str, Any] = {}
        if pull:
            ops["$pull"] = pull
        if not ops:
            return 0
        return self._wrap(self.db[collection].update_many, filter, ops).modified_count

    def delete(self, collection, filter):
        return self._wrap(self.db[collection].delete_one, filter).deleted_count == 1

    def delete_many(self, collection, filter):
        return self._wrap(self.db[collection].delete_many, filter).deleted_count

    def count(self, collection, filter):
        return self._wrap(self.db[collection].count_documents, filter)

    def ensure(self, collection, key):
        now = utcnow()
        try:
            result = self._wrap(
                self.db[collection].update_one,
                key,
                {"$setOnInsert": {**key, "created_at": now, "updated_at": now}},
                upsert=True,
            )
        except DuplicateError:
            # A concurrent upsert for the same key won the race.
            return False
        return result.upserted_id is not None

    def aggregate(self, query):
        return self._wrap(lambda: list(self.db[query.collection].aggregate(query.to_pipeline())))

    def aggregate_page(self, query):
        rows = self._wrap(lambda: list(self.db[query.collection].aggregate(query.to_page_pipeline())))
        facet = rows[0] if rows else {"items": [], "total": []}
        total = facet["total"][0]["count"] if facet["total"] else 0
        return facet["items"], total


# -------------------- Dependency --------------------

_store: Optional[DocumentStore] = None


def create_store() -> DocumentStore:
    settings = get_settings()
    if settings.database_backend == "memory":
        from memory_store import MemoryStore
        return MemoryStore()
    return MongoStore(settings.mongo_uri, settings.database_name)


def get_db() -> DocumentStore:
    """FastAPI dependency returning the process wide store."""
    global _store
    if _store is None:
        _store = create_store()
    return _store
