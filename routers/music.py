import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

import database
from schemas import Document, Music
from security import get_current_admin, get_optional_user, owned_document
from services import portfolio, storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/music", tags=["Music"])


class MusicUpdate(Document):
    title: Optional[str] = None
    artist: Optional[str] = None
    duration: Optional[float] = None


@router.get("/default")
def get_default_music(username: Optional[str] = None, viewer: Optional[dict] = Depends(get_optional_user)):
    owner = portfolio.visible_owner(username, viewer)
    tracks = database.collection("music")
    track = tracks.find_one({"userId": owner["_id"], "isDefault": True})
    if not track:
        track = tracks.find_one({"userId": owner["_id"]}, sort=[("createdAt", -1)])
    if not track:
        raise HTTPException(status_code=404, detail="No default music found")
    return database.to_public(track)


@router.get("")
def list_music(user: dict = Depends(get_current_admin)):
    docs = database.get_documents("music", {"userId": database.to_oid(user["id"])}, sort=[("createdAt", -1)])
    return [database.to_public(d) for d in docs]


@router.post("/upload", status_code=201)
def upload_music(
    title: str = Form(...),
    artist: str = Form(...),
    duration: Optional[float] = Form(None),
    music_file: UploadFile = File(..., alias="musicFile"),
    user: dict = Depends(get_current_admin),
):
    if not title.strip():
        raise HTTPException(status_code=400, detail="Title is required")
    if not artist.strip():
        raise HTTPException(status_code=400, detail="Artist is required")

    stored = storage.store_upload(music_file, storage.MUSIC_FILE)
    owner_id = database.to_oid(user["id"])
    # the first track of an account becomes its background track
    is_first = database.collection("music").count_documents({"userId": owner_id}) == 0
    track = Music(
        title=title.strip(),
        artist=artist.strip(),
        url=stored.url,
        public_id=stored.public_id,
        duration=duration,
        is_default=is_first,
        uploaded_by=owner_id,
        user_id=owner_id,
    )
    music_id = database.create_document("music", track)
    logger.info("Stored music %s for %s", stored.public_id, user["username"])
    doc = database.collection("music").find_one({"_id": database.to_oid(music_id)})
    return {"message": "Music uploaded successfully", "music": database.to_public(doc)}


@router.put("/default/{id}")
def set_default_music(track: dict = Depends(owned_document("music", "Music", gate=get_current_admin))):
    tracks = database.collection("music")
    # deactivate-all then activate-one; not a transaction
    tracks.update_many({"userId": track["userId"]}, {"$set": {"isDefault": False}})
    updated = database.update_document("music", {"_id": track["_id"]}, {"isDefault": True})
    return {"message": "Default music set successfully", "music": database.to_public(updated)}


@router.put("/{id}")
def update_music(payload: MusicUpdate, track: dict = Depends(owned_document("music", "Music", gate=get_current_admin))):
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    updated = database.update_document("music", {"_id": track["_id"]}, changes)
    return {"message": "Music updated", "music": database.to_public(updated)}


@router.delete("/{id}")
def delete_music(track: dict = Depends(owned_document("music", "Music", gate=get_current_admin))):
    storage.discard_remote(track.get("publicId"), storage.MUSIC_FILE.resource_type)
    database.collection("music").delete_one({"_id": track["_id"]})
    return {"message": "Music deleted successfully"}
