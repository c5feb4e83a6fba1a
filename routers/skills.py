import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

import database
from schemas import Document, Proficiency, Skill, SkillCategory
from security import get_current_admin, get_optional_user, owned_document
from services import portfolio

router = APIRouter(prefix="/skills", tags=["Skills"])


class SkillCreate(Document):
    name: str = Field(..., min_length=1)
    category: SkillCategory
    proficiency: Proficiency
    icon: Optional[str] = None
    color: Optional[str] = None
    description: Optional[str] = None


class SkillUpdate(Document):
    name: Optional[str] = None
    category: Optional[SkillCategory] = None
    proficiency: Optional[Proficiency] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    description: Optional[str] = None


def _name_taken(name: str, exclude_id=None) -> bool:
    # unique across the whole collection, case-insensitive
    query = {"name": {"$regex": f"^{re.escape(name)}$", "$options": "i"}}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    return database.collection("skill").find_one(query) is not None


def _skills(query: dict, limit: Optional[int] = None, sort=(("category", 1), ("name", 1))) -> list:
    return [database.to_public(d) for d in database.get_documents("skill", query, limit=limit, sort=sort)]


@router.get("/categories")
def list_categories(username: Optional[str] = None, viewer: Optional[dict] = Depends(get_optional_user)):
    owner = portfolio.visible_owner(username, viewer)
    return sorted(database.collection("skill").distinct("category", {"userId": owner["_id"]}))


@router.get("/search")
def search_skills(q: Optional[str] = None, username: Optional[str] = None, viewer: Optional[dict] = Depends(get_optional_user)):
    if not q:
        return []
    owner = portfolio.visible_owner(username, viewer)
    query = {"userId": owner["_id"], "name": {"$regex": re.escape(q), "$options": "i"}}
    return _skills(query, limit=10, sort=(("name", 1),))


@router.get("/category/{category}")
def list_by_category(category: SkillCategory, username: Optional[str] = None, viewer: Optional[dict] = Depends(get_optional_user)):
    owner = portfolio.visible_owner(username, viewer)
    return _skills({"userId": owner["_id"], "category": category}, sort=(("name", 1),))


@router.get("")
def list_skills(username: Optional[str] = None, viewer: Optional[dict] = Depends(get_optional_user)):
    owner = portfolio.visible_owner(username, viewer)
    return _skills({"userId": owner["_id"]})


@router.post("", status_code=201)
def create_skill(payload: SkillCreate, user: dict = Depends(get_current_admin)):
    name = payload.name.strip()
    if _name_taken(name):
        raise HTTPException(status_code=409, detail="Skill already exists")
    skill = Skill(**{**payload.model_dump(), "name": name}, user_id=database.to_oid(user["id"]))
    skill_id = database.create_document("skill", skill)
    return database.to_public(database.collection("skill").find_one({"_id": database.to_oid(skill_id)}))


@router.put("/{id}")
def update_skill(payload: SkillUpdate, skill: dict = Depends(owned_document("skill", "Skill", gate=get_current_admin))):
    changes = payload.model_dump(exclude_unset=True)
    for field in ("name", "category", "proficiency"):
        if not changes.get(field):
            changes.pop(field, None)
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if changes["name"] != skill["name"] and _name_taken(changes["name"], exclude_id=skill["_id"]):
            raise HTTPException(status_code=409, detail="Skill with this name already exists")
    updated = database.update_document("skill", {"_id": skill["_id"]}, changes)
    return database.to_public(updated)


@router.delete("/{id}")
def delete_skill(skill: dict = Depends(owned_document("skill", "Skill", gate=get_current_admin))):
    database.collection("skill").delete_one({"_id": skill["_id"]})
    return {"message": "Skill deleted successfully"}
