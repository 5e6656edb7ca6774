"""
MongoDB access for the showcase API.

The handlers coordinate only through the store: unique indexes turn racing
inserts into duplicate-key rejections, and single-document conditional updates
act as compare-and-swap. Both are exposed here as plain return values.
"""
import os
from datetime import datetime, timezone
from enum import Enum
from typing import Any, NamedTuple, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from errors import StoreError, ValidationFailedError
from logging_config import get_logger

logger = get_logger(__name__)

USERS = "users"
PROJECTS = "projects"
COLLABORATION_REQUESTS = "projectCollaborationRequests"
USER_BADGES = "userBadges"

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise StoreError("Database not configured")
    return db


def now() -> datetime:
    """Current UTC time at the millisecond precision BSON dates store."""
    ts = datetime.now(timezone.utc)
    return ts.replace(microsecond=ts.microsecond // 1000 * 1000)


def oid(id_str: Any, message: str = "Invalid id format") -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    if not isinstance(id_str, str) or not ObjectId.is_valid(id_str):
        raise ValidationFailedError(message)
    return ObjectId(id_str)


def serialize(doc: Any) -> Any:
    """Convert a stored document into JSON-friendly data (``_id`` becomes ``id``)."""
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, list):
        return [serialize(item) for item in doc]
    if not isinstance(doc, dict):
        return doc
    out = {}
    for key, value in doc.items():
        if key == "_id":
            out["id"] = str(value)
        else:
            out[key] = serialize(value)
    return out


def ensure_indexes(database: Database) -> None:
    """Create the uniqueness constraints the concurrency safeguards rely on."""
    requests = database[COLLABORATION_REQUESTS]
    requests.create_index(
        [("projectId", ASCENDING), ("requesterId", ASCENDING)],
        name="one_pending_per_requester",
        unique=True,
        partialFilterExpression={"status": "pending"},
    )
    requests.create_index([("projectId", ASCENDING), ("createdAt", DESCENDING)])
    database[USER_BADGES].create_index(
        [("userId", ASCENDING), ("badgeType", ASCENDING)],
        name="one_badge_per_type",
        unique=True,
    )
    database[USERS].create_index([("createdAt", ASCENDING)])
    logger.info("indexes_ensured", database=database.name)


# --------- Insert outcome ---------

class InsertOutcome(str, Enum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


class InsertResult(NamedTuple):
    outcome: InsertOutcome
    inserted_id: Optional[ObjectId] = None

    @property
    def inserted(self) -> bool:
        return self.outcome is InsertOutcome.INSERTED


def insert_unique(database: Database, collection: str, data: dict) -> InsertResult:
    """Insert ``data``; a unique-index rejection is an ``ALREADY_EXISTS`` outcome."""
    try:
        new_id = database[collection].insert_one(data).inserted_id
    except DuplicateKeyError:
        logger.info("insert_rejected_duplicate", collection=collection)
        return InsertResult(InsertOutcome.ALREADY_EXISTS)
    return InsertResult(InsertOutcome.INSERTED, new_id)


# --------- Conditional update ---------

def compare_and_set(
    database: Database,
    collection: str,
    doc_id: ObjectId,
    expected: dict,
    changes: dict,
) -> bool:
    """Apply ``changes`` only if the stored document still matches ``expected``.

    Returns True when the update matched, i.e. this caller won the transition.
    """
    res = database[collection].update_one({"_id": doc_id, **expected}, {"$set": changes})
    return res.matched_count == 1
