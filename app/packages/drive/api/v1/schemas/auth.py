"""认证相关的请求与响应模型。"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.packages.drive.api.v1.schemas.common import ResponseEnvelope


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=128)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    nickname: Optional[str] = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    """登录请求的字段校验规则。"""

    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1, max_length=128)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)


class ResetPasswordRequest(BaseModel):
    """凭邮箱验证码重置密码。"""

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    code: str = Field(..., pattern=r"^\d{6}$")
    new_password: str = Field(..., min_length=1, max_length=128, alias="newPassword")


class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=1, max_length=50)
    nickname: Optional[str] = Field(default=None, max_length=100)
    avatar_url: Optional[str] = Field(
        default=None,
        max_length=512,
        pattern=r"^(https?://\S+)?$",
        alias="avatarUrl",
    )


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(..., min_length=1, max_length=128, alias="currentPassword")
    new_password: str = Field(..., min_length=1, max_length=128, alias="newPassword")
    confirm_password: str = Field(..., min_length=1, max_length=128, alias="confirmPassword")


class RegisterResponseData(BaseModel):
    user_id: int
    username: str
    roles: list[str]


class TokenResponseData(BaseModel):
    """登录成功后签发的令牌信息。"""

    access_token: str
    token_type: Literal["bearer"]


class ProfileData(BaseModel):
    user_id: int
    username: str
    email: Optional[str] = None
    nickname: Optional[str] = None
    avatar_url: Optional[str] = None
    is_owner: bool
    roles: list[str]
    permissions: list[str]


RegisterResponse = ResponseEnvelope[RegisterResponseData]
TokenResponse = ResponseEnvelope[TokenResponseData]
LogoutResponse = ResponseEnvelope[None]
ProfileResponse = ResponseEnvelope[ProfileData]
