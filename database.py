"""
MongoDB access for the portfolio platform.

``db`` is the module-level database handle; route code always goes through
``collection()`` or the helpers below so the handle can be swapped (tests
replace it with a mongomock database).
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument

from config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()
client = MongoClient(settings.DATABASE_URL, connect=False, serverSelectionTimeoutMS=5000)
db = client[settings.DATABASE_NAME]

# Collections holding documents owned by an account through ``userId``
OWNED_COLLECTIONS = ("project", "image", "music", "skill", "contact", "cv", "analytics", "visitorsession")


def collection(name: str):
    return db[name]


def _as_document(data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True)
    return dict(data)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping ``createdAt``/``updatedAt``. Returns the new id."""
    doc = _as_document(data)
    now = datetime.utcnow()
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
    skip: int = 0,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def update_document(collection_name: str, filter_dict: Dict[str, Any], changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """``$set`` the given fields on one document and return it after the update."""
    return db[collection_name].find_one_and_update(
        filter_dict,
        {"$set": {**changes, "updatedAt": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )


def to_oid(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(str(id_str))
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid ID")


def _plain(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def to_public(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Shape a stored document for a response: string ids, no password hash."""
    if not doc:
        return doc
    doc = {k: v for k, v in doc.items() if k != "password"}
    if "_id" in doc:
        doc["id"] = doc.pop("_id")
    return _plain(doc)


def ensure_indexes() -> None:
    db["user"].create_index([("username", ASCENDING)], unique=True)
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["visitorsession"].create_index([("userId", ASCENDING), ("sessionId", ASCENDING)], unique=True)
    db["analytics"].create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
    for name in ("project", "image", "music", "skill", "contact", "cv"):
        db[name].create_index([("userId", ASCENDING)])
    logger.info("Database indexes ensured on %s", db.name)
