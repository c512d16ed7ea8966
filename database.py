"""
Database helpers

MongoDB connection plus the small set of helpers every route module uses.
Collections are named after the lowercased schema class (User -> "user").
The handle is injected into routes through `get_db` so it can be swapped.
"""

import math
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from pymongo import ASCENDING, DESCENDING, MongoClient

from config import DATABASE_NAME, DATABASE_URL
from errors import ServiceUnavailable, ValidationFailed

client = MongoClient(DATABASE_URL, tz_aware=True) if DATABASE_URL else None
db = client[DATABASE_NAME] if client is not None else None


def get_db():
    if db is None:
        raise ServiceUnavailable()
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # pymongo hands back naive UTC datetimes unless the client is tz aware
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationFailed("Invalid id format")


def is_object_id(value: str) -> bool:
    return ObjectId.is_valid(value)


def create_document(database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude_none=True)
    else:
        data_dict = {k: v for k, v in data.items() if v is not None}
    now = now_utc()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(database, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, sort: Optional[List[Tuple[str, int]]] = None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def update_document(database, collection_name: str, filter_dict: dict, set_fields: dict, unset_fields: Iterable[str] = ()):
    update = {"$set": {**set_fields, "updated_at": now_utc()}}
    unset = list(unset_fields)
    if unset:
        update["$unset"] = {name: "" for name in unset}
    return database[collection_name].update_one(filter_dict, update)


def paginate(database, collection_name: str, query: dict, page: int, limit: int, sort: List[Tuple[str, int]]) -> Tuple[List[dict], dict]:
    """Offset pagination; the count is a second query with no snapshot guarantee."""
    items = list(
        database[collection_name].find(query).sort(sort).skip((page - 1) * limit).limit(limit)
    )
    total = database[collection_name].count_documents(query)
    meta = {
        "totalPages": math.ceil(total / limit) if limit else 0,
        "currentPage": page,
        "total": total,
    }
    return items, meta


def _public_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return to_public(value)
    if isinstance(value, list):
        return [_public_value(v) for v in value]
    return value


def to_public(doc: Optional[dict], exclude: Iterable[str] = ()) -> Optional[dict]:
    """Render a stored document for the API: `_id` -> `id`, snake_case -> camelCase."""
    if doc is None:
        return None
    hidden = set(exclude)
    out = {}
    for key, value in doc.items():
        if key in hidden:
            continue
        if key == "_id":
            out["id"] = str(value)
            continue
        out[to_camel(key)] = _public_value(value)
    return out


def ensure_indexes(database) -> None:
    database["user"].create_index("email", unique=True, sparse=True)
    database["user"].create_index("mobile_number", unique=True, sparse=True)
    database["user"].create_index("customer_id", unique=True, sparse=True)
    database["admin"].create_index("username", unique=True)
    database["plan"].create_index("plan_id", unique=True)
    database["payment"].create_index("razorpay_order_id")
    database["payment"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["media"].create_index([("type", ASCENDING), ("is_published", ASCENDING), ("created_at", DESCENDING)])
    database["media"].create_index("tags")
