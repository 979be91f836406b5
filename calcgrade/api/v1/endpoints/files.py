# calcgrade/api/v1/endpoints/files.py
from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session

from calcgrade.core.security import get_current_user
from calcgrade.db.session import get_db
from calcgrade.models.user import User
from calcgrade.schemas.file_upload import FileUploadPublic
from calcgrade.services import file_service
from calcgrade.services.storage_client import StorageClient, get_storage_client

router = APIRouter(prefix="/files", tags=["files"])


@router.post("", response_model=FileUploadPublic, status_code=status.HTTP_201_CREATED)
def upload_file(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage_client),
    current_user: User = Depends(get_current_user),
):
    """
    上传作业文件（PDF / 图片 / 纯文本，最大 10MB）到对象存储。
    """
    data = file.file.read()
    return file_service.upload_file(
        db,
        storage,
        user=current_user,
        original_name=file.filename or "",
        mime_type=file.content_type or "",
        data=data,
    )


@router.get("/{file_id}", response_model=FileUploadPublic)
def get_file(
    file_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return file_service.get_owned_file(db, user=current_user, file_id=file_id)


@router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_file(
    file_id: int,
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage_client),
    current_user: User = Depends(get_current_user),
):
    file_service.delete_file(db, storage, user=current_user, file_id=file_id)
