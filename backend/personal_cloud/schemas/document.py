from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field

from personal_cloud.utils.formatting import format_size


class DocumentOut(BaseModel):
    # storage_path is internal and deliberately absent
    id: int
    file_name: str
    content_type: str
    file_size: int
    folder_path: Optional[str] = None
    uploaded_at: datetime

    class Config:
        from_attributes = True

    @computed_field
    @property
    def file_size_formatted(self) -> str:
        return format_size(self.file_size)


class ImageDetailsOut(DocumentOut):
    download_url: str


class RenameRequest(BaseModel):
    new_name: str = Field(..., max_length=1000)


class MoveRequest(BaseModel):
    folder_path: Optional[str] = Field(default=None, max_length=1000)


class FolderListOut(BaseModel):
    folders: List[str]


class StorageUsageOut(BaseModel):
    used_bytes: int
    max_bytes: int
    percentage_used: float
    used_formatted: str
    max_formatted: str
    is_premium: bool


class DeleteResult(BaseModel):
    ok: bool
    deleted: bool
