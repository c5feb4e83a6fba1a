"""Upload adapter: multipart file in, durable media-host URL and id out."""
import io
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import cloudinary
import cloudinary.uploader
from fastapi import HTTPException, UploadFile
from pydantic import BaseModel

logger = logging.getLogger(__name__)

MB = 1024 * 1024


class UploadProfile(BaseModel):
    folder: str
    allowed_formats: Tuple[str, ...]
    max_bytes: int
    resource_type: str = "image"
    transformation: Optional[List[Dict[str, Any]]] = None


class StoredFile(BaseModel):
    url: str
    public_id: str
    size: int
    original_name: str


GALLERY_IMAGE = UploadProfile(
    folder="portfolio-gallery",
    allowed_formats=("jpg", "png", "jpeg", "webp"),
    max_bytes=5 * MB,
    transformation=[{"width": 1200, "height": 800, "crop": "limit"}, {"quality": "auto"}],
)
PROJECT_IMAGE = UploadProfile(
    folder="portfolio-projects",
    allowed_formats=("jpg", "png", "jpeg", "webp"),
    max_bytes=3 * MB,
    transformation=[{"width": 800, "height": 600, "crop": "limit"}, {"quality": "auto"}],
)
PROFILE_PICTURE = UploadProfile(
    folder="portfolio-profile",
    allowed_formats=("jpg", "png", "jpeg"),
    max_bytes=2 * MB,
    transformation=[{"width": 400, "height": 400, "crop": "fill", "gravity": "face"}, {"quality": "auto"}],
)
PROJECT_THUMBNAIL = UploadProfile(
    folder="portfolio/projects",
    allowed_formats=("jpg", "jpeg", "png", "gif", "webp"),
    max_bytes=5 * MB,
    transformation=[{"width": 800, "height": 600, "crop": "limit"}],
)
MUSIC_FILE = UploadProfile(
    folder="portfolio/music",
    allowed_formats=("mp3", "wav", "flac", "aac", "m4a", "ogg"),
    max_bytes=50 * MB,
    resource_type="video",  # the media host files audio under video
)
CV_DOCUMENT = UploadProfile(
    folder="portfolio/cv",
    allowed_formats=("pdf",),
    max_bytes=10 * MB,
    resource_type="raw",
)

IMAGE_PROFILES = {
    "gallery": GALLERY_IMAGE,
    "project": PROJECT_IMAGE,
    "profile": PROFILE_PICTURE,
}


def configure_storage(settings) -> None:
    cloudinary.config(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
        secure=True,
    )
    if not settings.CLOUDINARY_CLOUD_NAME:
        logger.warning("CLOUDINARY_CLOUD_NAME not set; uploads will fail")


def file_format(filename: Optional[str]) -> str:
    return os.path.splitext(filename or "")[1].lstrip(".").lower()


def store_upload(file: Optional[UploadFile], profile: UploadProfile) -> StoredFile:
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    fmt = file_format(file.filename)
    if fmt not in profile.allowed_formats:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file format '{fmt or 'unknown'}'. Allowed: {', '.join(profile.allowed_formats)}",
        )

    content = file.file.read(profile.max_bytes + 1)
    if len(content) > profile.max_bytes:
        raise HTTPException(status_code=413, detail=f"File too large. Limit is {profile.max_bytes // MB}MB")
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    options: Dict[str, Any] = {
        "folder": profile.folder,
        "resource_type": profile.resource_type,
        "allowed_formats": list(profile.allowed_formats),
        "timeout": 60,
    }
    if profile.transformation:
        options["transformation"] = profile.transformation

    try:
        result = cloudinary.uploader.upload(io.BytesIO(content), **options)
    except Exception as exc:
        logger.error("Upload to %s failed: %s", profile.folder, exc)
        raise HTTPException(status_code=502, detail={"message": "Failed to upload file", "error": str(exc)})

    return StoredFile(
        url=result["secure_url"],
        public_id=result["public_id"],
        size=int(result.get("bytes") or len(content)),
        original_name=file.filename,
    )


def discard_remote(public_id: Optional[str], resource_type: str = "image") -> bool:
    """Delete a stored object. Failures are logged and reported as ``False``."""
    if not public_id:
        return False
    try:
        result = cloudinary.uploader.destroy(public_id, resource_type=resource_type, invalidate=True)
    except Exception as exc:
        logger.error("Remote delete of %s failed: %s", public_id, exc)
        return False
    outcome = (result or {}).get("result")
    if outcome in ("ok", "not found"):
        return True
    logger.warning("Remote delete of %s returned %r", public_id, outcome)
    return False
