"""存储源相关的请求与响应模型。"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from app.packages.drive.api.v1.schemas.common import ResponseEnvelope


class StorageSourceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: str = Field(..., description="local / r2 / qiniu / minio / upyun / telegram / cloudinary / github / custom")
    config: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    quota_limit: Optional[int] = Field(default=None, gt=0)
    is_active: bool = True

    @field_validator("type")
    @classmethod
    def _normalize_type(cls, value: str) -> str:
        return value.strip().lower()


class StorageSourceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    priority: Optional[int] = None
    quota_limit: Optional[int] = Field(default=None, gt=0)
    is_active: Optional[bool] = None


class StorageTestRequest(BaseModel):
    type: str
    config: Dict[str, Any] = Field(default_factory=dict)


class StorageSourceItem(BaseModel):
    id: int
    name: str
    type: str
    config: Dict[str, Any]
    priority: int
    quota_used: int
    quota_limit: int
    is_active: bool
    created_by: Optional[int] = None
    create_time: Optional[str] = None
    update_time: Optional[str] = None


class StorageSourceDetail(StorageSourceItem):
    file_count: int
    usage_percent: float
    remaining: int


StorageSourceListResponse = ResponseEnvelope[list[StorageSourceItem]]
StorageSourceResponse = ResponseEnvelope[StorageSourceItem]
StorageSourceDetailResponse = ResponseEnvelope[StorageSourceDetail]
StorageTestResponse = ResponseEnvelope[Dict[str, Any]]
