import os
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient

from errors import InvalidRequest

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

_client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL, tz_aware=True)
    db = _client[DATABASE_NAME]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(ObjectId())


def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise InvalidRequest(f"Invalid ID format: {id_str}")


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    """Turn a raw document into model input: ``_id`` becomes a string ``id``."""
    if not doc:
        return None
    doc["id"] = str(doc.pop("_id"))
    return doc


def create_document(collection, data: dict) -> str:
    """Insert ``data`` stamped with createdAt/updatedAt and return the new id."""
    now = utcnow()
    if data.get("createdAt") is None:
        data["createdAt"] = now
    data["updatedAt"] = now
    result = collection.insert_one(data)
    return str(result.inserted_id)


def get_documents(collection, filter_dict: Optional[dict] = None, sort=None, limit: Optional[int] = None):
    cursor = collection.find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
