"""Avatar storage on the local media directory.

Files are keyed per profile (``avatars/<profile_id>/avatar.<ext>``) and
overwritten on re-upload, so a profile has at most one avatar on disk.
"""
import os

import structlog
from fastapi import HTTPException, UploadFile, status

from settings import Settings

logger = structlog.get_logger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
}


def avatar_path(settings: Settings, profile_id: str, ext: str) -> str:
    return os.path.join(settings.media_root, "avatars", profile_id, f"avatar.{ext}")


def public_url(settings: Settings, profile_id: str, ext: str) -> str:
    base = settings.app_base_url.rstrip("/")
    prefix = "/" + settings.media_url.strip("/")
    return f"{base}{prefix}/avatars/{profile_id}/avatar.{ext}"


async def save_avatar(settings: Settings, profile_id: str, file: UploadFile) -> str:
    """Write the uploaded image and return its public URL."""
    content_type = file.content_type
    ext = ALLOWED_IMAGE_TYPES.get(content_type or "")
    if ext is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unsupported file type: {content_type}"
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty")
    if len(content) > settings.max_avatar_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Avatar exceeds {settings.max_avatar_bytes} bytes",
        )

    target = avatar_path(settings, profile_id, ext)
    directory = os.path.dirname(target)
    os.makedirs(directory, exist_ok=True)

    # Drop a previous avatar saved under another extension
    for name in os.listdir(directory):
        if name.startswith("avatar.") and name != os.path.basename(target):
            os.unlink(os.path.join(directory, name))

    with open(target, "wb") as handle:
        handle.write(content)

    logger.info("Avatar stored", profile_id=profile_id, bytes=len(content), content_type=content_type)
    return public_url(settings, profile_id, ext)
