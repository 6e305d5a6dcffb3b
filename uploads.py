import os
import logging
import secrets
import time
from typing import Iterable, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from auth import get_current_user

logger = logging.getLogger(__name__)

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")

MB = 1024 * 1024
AVATAR_MAX_BYTES = 5 * MB
MESSAGE_ATTACHMENT_MAX_BYTES = 5 * MB
GENERIC_MAX_BYTES = 10 * MB

MESSAGE_ATTACHMENT_TYPES = (
    "image/jpeg",
    "image/png",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)
GENERIC_EXTENSIONS = (
    ".jpeg", ".jpg", ".png", ".gif", ".pdf", ".doc", ".docx", ".xls", ".xlsx",
    ".txt", ".zip", ".rar", ".mp4", ".mov",
)

router = APIRouter(prefix="/api/attachments", tags=["attachments"])


def save_upload(
    file: UploadFile,
    subdir: str = "",
    allowed_types: Optional[Iterable[str]] = None,
    allowed_extensions: Optional[Iterable[str]] = None,
    max_bytes: int = GENERIC_MAX_BYTES,
    prefix: str = "",
) -> dict:
    """Validate and store an upload, returning its attachment metadata."""
    mimetype = file.content_type or "application/octet-stream"
    original = os.path.basename(file.filename or "upload")
    ext = os.path.splitext(original)[1].lower()

    if allowed_types is not None and not any(
        mimetype == t or (t.endswith("/") and mimetype.startswith(t)) for t in allowed_types
    ):
        raise HTTPException(status_code=400, detail="Invalid file type")
    if allowed_extensions is not None and ext not in allowed_extensions:
        raise HTTPException(status_code=400, detail="File type not supported!")

    content = file.file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise HTTPException(status_code=400, detail=f"File too large! Max {max_bytes // MB}MB allowed.")

    target_dir = os.path.join(UPLOAD_DIR, subdir) if subdir else UPLOAD_DIR
    os.makedirs(target_dir, exist_ok=True)
    file_name = f"{prefix}{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"
    with open(os.path.join(target_dir, file_name), "wb") as out:
        out.write(content)

    public_path = "/" + "/".join(p for p in ("uploads", subdir, file_name) if p)
    return {
        "filePath": public_path,
        "fileName": file_name,
        "originalName": original,
        "mimetype": mimetype,
        "size": len(content),
    }


def delete_upload(public_path: Optional[str]) -> None:
    """Remove a previously stored upload; unknown or foreign paths are ignored."""
    if not public_path or not public_path.startswith("/uploads/"):
        return
    local = os.path.join(UPLOAD_DIR, public_path[len("/uploads/"):])
    try:
        os.remove(local)
    except OSError:
        logger.warning("Could not delete old upload %s", local)


@router.post("/upload/single")
def upload_single(file: UploadFile = File(...), user: dict = Depends(get_current_user)):
    saved = save_upload(file, allowed_extensions=GENERIC_EXTENSIONS, max_bytes=GENERIC_MAX_BYTES)
    logger.info("User %s uploaded %s", user["id"], saved["fileName"])
    return {"message": "File uploaded successfully!", **saved}
