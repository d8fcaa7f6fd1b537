"""文件与文件夹操作的请求/响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.packages.drive.api.v1.schemas.common import ResponseEnvelope


class RenameBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class TargetBody(BaseModel):
    """移动/复制的目标文件夹，``None`` 表示根目录。"""

    target_folder_id: Optional[int] = None


class FolderCreateBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: Optional[int] = None


class BatchDeleteBody(BaseModel):
    file_ids: list[int] = Field(..., min_length=1)


class FileItem(BaseModel):
    id: int
    name: str
    storage_key: str
    size: int
    mime_type: str
    md5_hash: Optional[str] = None
    folder_id: Optional[int] = None
    storage_source_id: int
    uploaded_by: Optional[int] = None
    create_time: Optional[str] = None
    update_time: Optional[str] = None


class FolderItem(BaseModel):
    id: int
    name: str
    path: str
    parent_id: Optional[int] = None
    created_by: Optional[int] = None
    create_time: Optional[str] = None
    update_time: Optional[str] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool


class FileListData(BaseModel):
    folder: Optional[FolderItem] = None
    folders: list[FolderItem]
    files: list[FileItem]
    pagination: Pagination


FileListResponse = ResponseEnvelope[FileListData]
FileResponse = ResponseEnvelope[FileItem]
FolderResponse = ResponseEnvelope[FolderItem]
MutationResponse = ResponseEnvelope[Any]
