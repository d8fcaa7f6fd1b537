"""分享相关的请求与响应模型。"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from app.packages.drive.api.v1.schemas.common import ResponseEnvelope


class ShareCreateRequest(BaseModel):
    file_id: Optional[int] = Field(default=None, ge=1)
    folder_id: Optional[int] = Field(default=None, ge=1)
    password: Optional[str] = Field(default=None, max_length=128)
    expires_at: Optional[datetime] = None
    download_limit: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _exactly_one_target(self) -> "ShareCreateRequest":
        if (self.file_id is None) == (self.folder_id is None):
            raise ValueError("必须且只能指定一个文件或文件夹")
        return self


class ShareStatusRequest(BaseModel):
    is_active: bool


class SharePasswordRequest(BaseModel):
    password: Optional[str] = None


class ShareItem(BaseModel):
    id: int
    share_token: str
    type: str
    name: Optional[str] = None
    original_file_id: Optional[int] = None
    original_folder_id: Optional[int] = None
    require_password: bool
    expires_at: Optional[str] = None
    is_expired: bool
    download_limit: Optional[int] = None
    download_count: int
    view_count: int
    is_active: bool
    created_by: Optional[int] = None
    create_time: Optional[str] = None
    share_path: str


ShareResponse = ResponseEnvelope[ShareItem]
ShareListResponse = ResponseEnvelope[dict]
PublicShareResponse = ResponseEnvelope[Any]
