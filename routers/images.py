import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

import database
from schemas import Document, Image, ImageType
from security import get_current_admin, get_optional_user, owned_document
from services import portfolio, storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["Images"])


class ImageUpdate(Document):
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    project_id: Optional[str] = None
    is_active: Optional[bool] = None


def _split_tags(tags: Optional[str]) -> List[str]:
    return [t.strip() for t in (tags or "").split(",") if t.strip()]


def _find_images(query: dict, limit: int, page: int) -> List[dict]:
    docs = database.get_documents("image", query, limit=limit, skip=(page - 1) * limit, sort=[("createdAt", -1)])
    return [database.to_public(d) for d in docs]


def _owned_project(project_id: str, owner_id) -> dict:
    project = database.collection("project").find_one({"_id": database.to_oid(project_id)})
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    if project["userId"] != owner_id:
        raise HTTPException(status_code=403, detail="Not authorized to attach images to this project")
    return project


@router.get("")
def list_images(
    type: Optional[ImageType] = None,
    username: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    page: int = Query(1, ge=1),
    viewer: Optional[dict] = Depends(get_optional_user),
):
    owner = portfolio.visible_owner(username, viewer)
    query = {"userId": owner["_id"]}
    if type:
        query["type"] = type
    if type == "profile":
        query["isActive"] = True

    total = database.collection("image").count_documents(query)
    images = _find_images(query, limit, page)
    return {
        "images": images,
        "pagination": {
            "current": page,
            "total": -(-total // limit),
            "count": len(images),
            "totalImages": total,
        },
    }


@router.get("/gallery")
def list_gallery(
    username: Optional[str] = None,
    limit: int = Query(20, ge=1, le=200),
    page: int = Query(1, ge=1),
    viewer: Optional[dict] = Depends(get_optional_user),
):
    owner = portfolio.visible_owner(username, viewer)
    return _find_images({"userId": owner["_id"], "type": "gallery"}, limit, page)


@router.get("/projects")
def list_project_images(
    username: Optional[str] = None,
    project_id: Optional[str] = Query(None, alias="projectId"),
    limit: int = Query(20, ge=1, le=200),
    page: int = Query(1, ge=1),
    viewer: Optional[dict] = Depends(get_optional_user),
):
    owner = portfolio.visible_owner(username, viewer)
    query = {"userId": owner["_id"], "type": "project"}
    if project_id:
        query["projectId"] = database.to_oid(project_id)
    return _find_images(query, limit, page)


@router.get("/profile")
def get_profile_image(username: Optional[str] = None, viewer: Optional[dict] = Depends(get_optional_user)):
    owner = portfolio.visible_owner(username, viewer)
    image = database.collection("image").find_one(
        {"userId": owner["_id"], "type": "profile", "isActive": True},
        sort=[("createdAt", -1)],
    )
    return database.to_public(image)


@router.post("/upload/{kind}", status_code=201)
def upload_image(
    kind: str,
    image: UploadFile = File(...),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    project_id: Optional[str] = Form(None, alias="projectId"),
    user: dict = Depends(get_current_admin),
):
    profile = storage.IMAGE_PROFILES.get(kind)
    if profile is None:
        raise HTTPException(status_code=400, detail=f"Unknown image kind '{kind}'")

    owner_id = database.to_oid(user["id"])
    linked_project = None
    if kind == "project" and project_id:
        linked_project = _owned_project(project_id, owner_id)

    stored = storage.store_upload(image, profile)

    if kind == "profile":
        # deactivate the previous picture first; two writes, not a transaction
        database.collection("image").update_many(
            {"userId": owner_id, "type": "profile", "isActive": True},
            {"$set": {"isActive": False}},
        )

    record = Image(
        url=stored.url,
        public_id=stored.public_id,
        filename=stored.original_name,
        description=description or ("Profile Picture" if kind == "profile" else ""),
        tags=["profile"] if kind == "profile" else _split_tags(tags),
        type=kind,
        project_id=linked_project["_id"] if linked_project else None,
        is_active=True,
        uploaded_by=owner_id,
        user_id=owner_id,
    )
    image_id = database.create_document("image", record)

    if kind == "profile":
        database.collection("user").update_one(
            {"_id": owner_id},
            {"$set": {"portfolioData.profilePicture": {"url": stored.url, "publicId": stored.public_id}}},
        )

    doc = database.collection("image").find_one({"_id": database.to_oid(image_id)})
    return {
        "message": f"{kind.capitalize()} image uploaded successfully",
        "image": database.to_public(doc),
        "cloudinaryUrl": stored.url,
    }


@router.put("/{id}")
def update_image(payload: ImageUpdate, image: dict = Depends(owned_document("image", "Image"))):
    changes = {k: v for k, v in payload.model_dump(by_alias=True, exclude_unset=True).items() if v is not None}
    if "projectId" in changes:
        changes["projectId"] = _owned_project(changes["projectId"], image["userId"])["_id"]
    if changes.get("isActive") and image.get("type") == "profile":
        database.collection("image").update_many(
            {"userId": image["userId"], "type": "profile", "_id": {"$ne": image["_id"]}},
            {"$set": {"isActive": False}},
        )
        database.collection("user").update_one(
            {"_id": image["userId"]},
            {"$set": {"portfolioData.profilePicture": {"url": image["url"], "publicId": image["publicId"]}}},
        )
    updated = database.update_document("image", {"_id": image["_id"]}, changes)
    return {"message": "Image updated successfully", "image": database.to_public(updated)}


@router.delete("/{id}")
def delete_image(image: dict = Depends(owned_document("image", "Image"))):
    if not storage.discard_remote(image.get("publicId"), "image"):
        logger.warning("Image %s removed locally; remote copy may remain", image["_id"])
    database.collection("image").delete_one({"_id": image["_id"]})
    if image.get("type") == "profile" and image.get("isActive"):
        database.collection("user").update_one(
            {"_id": image["userId"]},
            {"$set": {"portfolioData.profilePicture": {"url": "", "publicId": ""}}},
        )
    return {"message": "Image deleted successfully", "imageId": str(image["_id"])}
