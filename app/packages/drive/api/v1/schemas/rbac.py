"""角色与权限相关的请求与响应模型。"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from app.packages.drive.api.v1.schemas.common import ResponseEnvelope


class RoleAssignRequest(BaseModel):
    user_id: int = Field(..., ge=1)
    role_id: int = Field(..., ge=1)
    expires_at: Optional[datetime] = Field(default=None, description="为空表示永久有效")


class RoleRevokeRequest(BaseModel):
    user_id: int = Field(..., ge=1)
    role_id: int = Field(..., ge=1)


class RoleItem(BaseModel):
    id: int
    name: str
    display_name: str
    description: Optional[str] = None
    priority: int
    is_system: bool
    permissions: list[str]


RoleListResponse = ResponseEnvelope[list[RoleItem]]
RbacResponse = ResponseEnvelope[Any]
