from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

import database
from schemas import CV
from security import get_current_admin, get_optional_user, owned_document
from services import portfolio, storage

router = APIRouter(prefix="/cv", tags=["CV"])


def _active_cv(owner: dict) -> dict:
    cv = database.collection("cv").find_one({"userId": owner["_id"], "isActive": True}, sort=[("createdAt", -1)])
    if not cv:
        raise HTTPException(status_code=404, detail="CV not found")
    data = owner.get("portfolioData") or {}
    return {**database.to_public(cv), "owner": {"username": owner["username"], "fullName": data.get("fullName")}}


def activate_cv(cv: dict) -> dict:
    cvs = database.collection("cv")
    # deactivate-all then activate-one; not a transaction
    cvs.update_many({"userId": cv["userId"]}, {"$set": {"isActive": False}})
    return database.update_document("cv", {"_id": cv["_id"]}, {"isActive": True})


@router.get("")
def get_default_cv(viewer: Optional[dict] = Depends(get_optional_user)):
    owner = portfolio.visible_owner(None, viewer)
    return _active_cv(owner)


@router.get("/user/{user_id}")
def get_user_cv(user_id: str, viewer: Optional[dict] = Depends(get_optional_user)):
    owner = database.collection("user").find_one({"_id": database.to_oid(user_id)})
    if not owner:
        raise HTTPException(status_code=404, detail="Portfolio not found")
    portfolio.ensure_visible(owner, viewer)
    return _active_cv(owner)


@router.post("/upload", status_code=201)
def upload_cv(
    cv: UploadFile = File(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    user: dict = Depends(get_current_admin),
):
    stored = storage.store_upload(cv, storage.CV_DOCUMENT)
    owner_id = database.to_oid(user["id"])
    cvs = database.collection("cv")
    version = cvs.count_documents({"userId": owner_id}) + 1

    cvs.update_many({"userId": owner_id, "isActive": True}, {"$set": {"isActive": False}})
    record = CV(
        filename=stored.public_id,
        original_name=stored.original_name,
        url=stored.url,
        public_id=stored.public_id,
        file_size=stored.size,
        title=title or "CV",
        description=description or "",
        version=version,
        is_active=True,
        user_id=owner_id,
    )
    cv_id = database.create_document("cv", record)
    return {"message": "CV uploaded successfully", "cv": database.to_public(cvs.find_one({"_id": database.to_oid(cv_id)}))}


@router.get("/all")
def list_cvs(user: dict = Depends(get_current_admin)):
    docs = database.get_documents("cv", {"userId": database.to_oid(user["id"])}, sort=[("createdAt", -1)])
    return [database.to_public(d) for d in docs]


@router.put("/active/{id}")
def set_active_cv(cv: dict = Depends(owned_document("cv", "CV", gate=get_current_admin))):
    updated = activate_cv(cv)
    return {"message": "CV set as active successfully", "cv": database.to_public(updated)}


@router.delete("/{id}")
def delete_cv(cv: dict = Depends(owned_document("cv", "CV", gate=get_current_admin))):
    storage.discard_remote(cv.get("publicId"), storage.CV_DOCUMENT.resource_type)
    database.collection("cv").delete_one({"_id": cv["_id"]})
    return {"message": "CV deleted successfully"}
