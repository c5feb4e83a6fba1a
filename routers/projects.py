from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import Field

import database
from schemas import Document, Project
from security import get_current_user, get_optional_user, owned_document
from services import portfolio, storage

router = APIRouter(prefix="/projects", tags=["Projects"])

# featured first, then explicit order, then newest
PROJECT_SORT = [("featured", -1), ("order", 1), ("createdAt", -1)]
NULLABLE_FIELDS = ("thumbnail", "liveLink", "githubLink")


class ProjectCreate(Document):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    skills: List[str] = []
    thumbnail: Optional[str] = None
    live_link: Optional[str] = None
    github_link: Optional[str] = None
    featured: bool = False
    order: int = 0


class ProjectUpdate(Document):
    title: Optional[str] = None
    description: Optional[str] = None
    skills: Optional[List[str]] = None
    thumbnail: Optional[str] = None
    live_link: Optional[str] = None
    github_link: Optional[str] = None
    featured: Optional[bool] = None
    order: Optional[int] = None


def split_csv(value: Optional[str]) -> List[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


def projects_of(owner_id) -> list:
    return [database.to_public(p) for p in database.get_documents("project", {"userId": owner_id}, sort=PROJECT_SORT)]


def _created(project_id: str):
    doc = database.collection("project").find_one({"_id": database.to_oid(project_id)})
    return {"message": "Project created successfully", "project": database.to_public(doc)}


@router.get("")
def list_projects(viewer: Optional[dict] = Depends(get_optional_user)):
    if viewer:
        return projects_of(database.to_oid(viewer["id"]))
    owner = portfolio.visible_owner(None, viewer)
    return projects_of(owner["_id"])


@router.get("/default")
def list_default_projects(viewer: Optional[dict] = Depends(get_optional_user)):
    owner = portfolio.visible_owner(None, viewer)
    return projects_of(owner["_id"])


@router.get("/user/{username}")
def list_user_projects(username: str, viewer: Optional[dict] = Depends(get_optional_user)):
    owner = portfolio.visible_owner(username, viewer)
    return projects_of(owner["_id"])


@router.get("/{id}")
def get_project(id: str, username: Optional[str] = None, viewer: Optional[dict] = Depends(get_optional_user)):
    project = database.collection("project").find_one({"_id": database.to_oid(id)})
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    owner = database.collection("user").find_one({"_id": project["userId"]})
    if not owner:
        raise HTTPException(status_code=404, detail="Project not found")
    if username and owner["username"] != username:
        raise HTTPException(status_code=404, detail="Project not found in this portfolio")
    portfolio.ensure_visible(owner, viewer)
    return {**database.to_public(project), "owner": {"id": str(owner["_id"]), "username": owner["username"]}}


@router.post("", status_code=201)
def create_project(payload: ProjectCreate, user: dict = Depends(get_current_user)):
    project = Project(**payload.model_dump(), user_id=database.to_oid(user["id"]))
    return _created(database.create_document("project", project))


@router.post("/create", status_code=201)
def create_project_with_thumbnail(
    title: str = Form(...),
    description: str = Form(...),
    skills: Optional[str] = Form(None),
    live_link: Optional[str] = Form(None, alias="liveLink"),
    github_link: Optional[str] = Form(None, alias="githubLink"),
    featured: bool = Form(False),
    order: int = Form(0),
    thumbnail: UploadFile = File(...),
    user: dict = Depends(get_current_user),
):
    stored = storage.store_upload(thumbnail, storage.PROJECT_THUMBNAIL)
    project = Project(
        title=title,
        description=description,
        skills=split_csv(skills),
        thumbnail=stored.url,
        thumbnail_public_id=stored.public_id,
        live_link=live_link,
        github_link=github_link,
        featured=featured,
        order=order,
        user_id=database.to_oid(user["id"]),
    )
    return _created(database.create_document("project", project))


@router.put("/{id}")
def update_project(payload: ProjectUpdate, project: dict = Depends(owned_document("project", "Project"))):
    changes = {
        k: v for k, v in payload.model_dump(by_alias=True, exclude_unset=True).items()
        if v is not None or k in NULLABLE_FIELDS
    }
    updated = database.update_document("project", {"_id": project["_id"]}, changes)
    return {"message": "Project updated successfully", "project": database.to_public(updated)}


@router.delete("/{id}")
def delete_project(project: dict = Depends(owned_document("project", "Project"))):
    if project.get("thumbnailPublicId"):
        storage.discard_remote(project["thumbnailPublicId"], "image")
    database.collection("project").delete_one({"_id": project["_id"]})
    return {"message": "Project deleted successfully"}
