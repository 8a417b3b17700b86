"""
MongoDB access helpers.

The client is created from Settings at startup; request handlers receive the
database through the get_db dependency so tests can swap in an in-memory one.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import Settings
from errors import InternalError, ValidationFailed

logger = logging.getLogger(__name__)

_db: Optional[Database] = None


def connect(settings: Settings) -> Optional[Database]:
    global _db
    if not settings.database_url:
        logger.warning("DATABASE_URL is not set; database features are unavailable")
        _db = None
        return None
    client = MongoClient(settings.database_url, tz_aware=True)
    _db = client[settings.database_name]
    logger.info("MongoDB client configured for database %s", settings.database_name)
    return _db


def get_db() -> Database:
    if _db is None:
        raise InternalError("Database not configured")
    return _db


def now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(db: Database, collection_name: str, data: Dict[str, Any]) -> ObjectId:
    stamp = now()
    doc = {**data, "created_at": stamp, "updated_at": stamp}
    return db[collection_name].insert_one(doc).inserted_id


def get_documents(db: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, newest_first: bool = True) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {}).sort(
        [("created_at", DESCENDING if newest_first else ASCENDING), ("_id", DESCENDING if newest_first else ASCENDING)]
    )
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def parse_object_id(value: Any, field: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationFailed(
            f"Valid {field} is required",
            errors=[{"loc": [field], "msg": "Invalid object id", "type": "value_error.object_id"}],
        )


def serialize(value: Any) -> Any:
    """Make a stored document JSON-friendly: ObjectIds to str, _id to id."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            if key == "_id":
                out["id"] = serialize(item)
            else:
                out[key] = serialize(item)
        return out
    if isinstance(value, list):
        return [serialize(item) for item in value]
    return value


def ensure_indexes(db: Database) -> None:
    db["user"].create_index("email", unique=True)
    db["product"].create_index("slug", unique=True)
    db["category"].create_index("slug", unique=True)
    db["order"].create_index("batch_id")
    db["order"].create_index("user")
    db["print_order"].create_index("user")
