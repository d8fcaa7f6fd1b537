"""用户管理相关的请求与响应模型。"""

from typing import Any

from pydantic import BaseModel, Field

from app.packages.drive.api.v1.schemas.common import ResponseEnvelope


class UserBatchDeleteRequest(BaseModel):
    user_ids: list[int] = Field(..., min_length=1)


UserListResponse = ResponseEnvelope[dict]
UserMutationResponse = ResponseEnvelope[Any]
