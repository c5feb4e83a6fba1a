"""Portfolio ownership: default profile shape, visibility, default account, cascade delete."""
import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException
from pymongo import ASCENDING

import database
from schemas import ADMIN_ROLE, PortfolioData
from services import storage

logger = logging.getLogger(__name__)

# Remote assets that go away with an account: collection -> resource type on the media host
_REMOTE_ASSETS = {"image": "image", "music": "video", "cv": "raw"}


def default_portfolio_data(username: str, email: Optional[str] = None) -> Dict[str, Any]:
    data = PortfolioData(full_name=username or "User", title="Developer", contact_email=email)
    return data.model_dump(by_alias=True)


def complete_portfolio_data(partial: Optional[Dict[str, Any]], username: str, email: Optional[str] = None) -> Dict[str, Any]:
    """Lay a partial (legacy) profile over the defaults, nested objects included."""
    merged = default_portfolio_data(username, email)
    for key, value in (partial or {}).items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    if not merged.get("fullName"):
        merged["fullName"] = username or "User"
    return merged


def needs_backfill(user: Dict[str, Any]) -> bool:
    data = user.get("portfolioData")
    return not data or not data.get("fullName")


def backfill_user_profile(user: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in missing profile fields at login. Never blocks the caller."""
    if not needs_backfill(user):
        return user
    logger.info("Backfilling portfolio data for %s", user.get("username"))
    data = complete_portfolio_data(user.get("portfolioData"), user.get("username"), user.get("email"))
    user = {**user, "portfolioData": data}
    try:
        database.update_document("user", {"_id": user["_id"]}, {"portfolioData": data})
    except Exception:
        logger.exception("Portfolio backfill failed for %s", user.get("username"))
    return user


def migrate_user_profiles() -> int:
    """Batch backfill for every account lacking a complete profile. Returns the count migrated."""
    pending = database.get_documents(
        "user",
        {"$or": [{"portfolioData": {"$exists": False}}, {"portfolioData.fullName": {"$exists": False}}]},
    )
    for user in pending:
        data = complete_portfolio_data(user.get("portfolioData"), user.get("username"), user.get("email"))
        database.update_document("user", {"_id": user["_id"]}, {"portfolioData": data})
    if pending:
        logger.info("Migrated portfolio data for %d accounts", len(pending))
    return len(pending)


def find_default_user() -> Optional[Dict[str, Any]]:
    users = database.collection("user")
    user = users.find_one({"isDefaultUser": True})
    if not user:
        user = users.find_one({"role": ADMIN_ROLE}, sort=[("createdAt", ASCENDING)])
    return user


def resolve_portfolio_owner(username: Optional[str] = None) -> Dict[str, Any]:
    if username:
        user = database.collection("user").find_one({"username": username})
        if not user:
            raise HTTPException(status_code=404, detail="Portfolio not found")
        return user
    user = find_default_user()
    if not user:
        raise HTTPException(status_code=404, detail="No default portfolio found")
    return user


def is_owner(owner: Dict[str, Any], viewer: Optional[Dict[str, Any]]) -> bool:
    return bool(viewer) and viewer["id"] == str(owner["_id"])


def ensure_visible(owner: Dict[str, Any], viewer: Optional[Dict[str, Any]] = None) -> None:
    data = owner.get("portfolioData") or {}
    if data.get("isPublic", True) or is_owner(owner, viewer):
        return
    raise HTTPException(status_code=403, detail="This portfolio is private")


def visible_owner(username: Optional[str], viewer: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    owner = resolve_portfolio_owner(username)
    ensure_visible(owner, viewer)
    return owner


def public_profile(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "username": user["username"],
        "portfolioData": user.get("portfolioData"),
        "createdAt": user.get("createdAt"),
    }


def account_view(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "username": user["username"],
        "email": user["email"],
        "role": user.get("role"),
        "portfolioData": user.get("portfolioData"),
        "isDefaultUser": user.get("isDefaultUser", False),
    }


def set_default_user(username: str) -> Dict[str, Any]:
    users = database.collection("user")
    target = users.find_one({"username": username})
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    # two writes, not a transaction
    users.update_many({"isDefaultUser": True}, {"$set": {"isDefaultUser": False}})
    return database.update_document("user", {"_id": target["_id"]}, {"isDefaultUser": True})


def delete_account_cascade(user_id) -> Dict[str, int]:
    """Remove an account and everything it owns. Remote deletes are best-effort."""
    oid = database.to_oid(user_id)
    removed: Dict[str, int] = {}
    for name, resource_type in _REMOTE_ASSETS.items():
        for doc in database.get_documents(name, {"userId": oid}):
            if doc.get("publicId"):
                storage.discard_remote(doc["publicId"], resource_type)
    for project in database.get_documents("project", {"userId": oid, "thumbnailPublicId": {"$ne": None}}):
        storage.discard_remote(project["thumbnailPublicId"], "image")
    for name in database.OWNED_COLLECTIONS:
        removed[name] = database.collection(name).delete_many({"userId": oid}).deleted_count
    database.collection("user").delete_one({"_id": oid})
    logger.info("Deleted account %s and owned records %s", oid, removed)
    return removed
