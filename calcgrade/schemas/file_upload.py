# calcgrade/schemas/file_upload.py
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class FileUploadPublic(BaseModel):
    id: int
    user_id: int
    original_name: str
    storage_path: str
    mime_type: str
    file_size: int
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="file_metadata")
    created_at: datetime | None = None

    model_config = {"from_attributes": True, "populate_by_name": True}
