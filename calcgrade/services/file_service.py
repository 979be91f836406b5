# calcgrade/services/file_service.py
import logging
import os
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from calcgrade.core.config import settings
from calcgrade.models.assignment import Assignment
from calcgrade.models.file_upload import FileUpload
from calcgrade.models.submission import Submission
from calcgrade.models.user import User
from calcgrade.services.exceptions import ConflictError, NotFoundError, ServiceError
from calcgrade.services.storage_client import StorageClient

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES = {
    "application/pdf": ".pdf",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "text/plain": ".txt",
}


def build_storage_path(user_id: int, original_name: str, mime_type: str) -> str:
    """{user_id}/{uuid}{ext}; the extension comes from the file name, else from the MIME type."""
    ext = os.path.splitext(original_name or "")[1].lower() or SUPPORTED_MIME_TYPES.get(mime_type, "")
    return f"{user_id}/{uuid.uuid4()}{ext}"


def upload_file(
    db: Session,
    storage: StorageClient,
    *,
    user: User,
    original_name: str,
    mime_type: str,
    data: bytes,
) -> FileUpload:
    mime_type = (mime_type or "").lower()
    if mime_type not in SUPPORTED_MIME_TYPES:
        raise ServiceError(f"Unsupported file type: {mime_type or 'unknown'}")
    if not data:
        raise ServiceError("Uploaded file is empty")
    if len(data) > settings.MAX_FILE_SIZE:
        raise ServiceError(
            f"File too large: {len(data)} bytes (max {settings.MAX_FILE_SIZE} bytes)"
        )

    storage_path = build_storage_path(user.id, original_name, mime_type)
    storage.upload(storage_path, data, mime_type)

    file_upload = FileUpload(
        user_id=user.id,
        original_name=original_name or os.path.basename(storage_path),
        storage_path=storage_path,
        mime_type=mime_type,
        file_size=len(data),
        file_metadata={"bucket": storage.bucket},
    )
    db.add(file_upload)
    db.commit()
    db.refresh(file_upload)

    logger.info(f"User {user.id} uploaded file {file_upload.id} -> {storage_path}")
    return file_upload


def get_file(db: Session, file_id: int) -> Optional[FileUpload]:
    return db.get(FileUpload, file_id)


def get_owned_file(db: Session, *, user: User, file_id: int) -> FileUpload:
    file_upload = get_file(db, file_id)
    if file_upload is None or file_upload.user_id != user.id:
        raise NotFoundError("File not found")
    return file_upload


def delete_file(db: Session, storage: StorageClient, *, user: User, file_id: int) -> None:
    file_upload = get_owned_file(db, user=user, file_id=file_id)

    referenced = (
        db.query(Submission).filter(Submission.file_upload_id == file_upload.id).first()
        or db.query(Assignment).filter(Assignment.file_upload_id == file_upload.id).first()
    )
    if referenced is not None:
        raise ConflictError("File is still referenced by a submission or assignment")

    storage.remove(file_upload.storage_path)
    db.delete(file_upload)
    db.commit()
    logger.info(f"User {user.id} deleted file {file_id}")
