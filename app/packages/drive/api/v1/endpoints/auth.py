"""认证相关路由定义。"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.packages.drive.api.v1.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    LogoutResponse,
    ProfileResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TokenResponse,
)
from app.packages.drive.api.v1.schemas.common import GenericResponse
from app.packages.drive.core.dependencies import get_current_active_user, get_current_session_id, get_db
from app.packages.drive.models.user import User
from app.packages.drive.services.auth_service import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> RegisterResponse:
    """注册新账号，默认赋予 viewer 角色。"""
    return auth_service.register_user(
        db,
        username=payload.username,
        password=payload.password,
        email=payload.email,
        nickname=payload.nickname,
    )


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> TokenResponse:
    """校验凭证并签发访问令牌。"""
    return auth_service.login(db, username=payload.username, password=payload.password)


@router.post("/logout", response_model=LogoutResponse)
def logout(session_id: str = Depends(get_current_session_id)) -> LogoutResponse:
    """退出登录：删除服务端会话，前端同时删除本地缓存的令牌。"""
    return auth_service.logout(session_id)


@router.get("/me", response_model=ProfileResponse)
def me(db: Session = Depends(get_db), current_user: User = Depends(get_current_active_user)) -> ProfileResponse:
    return auth_service.build_profile(db, current_user)


@router.post("/forgot-password", response_model=GenericResponse)
def forgot_password(payload: ForgotPasswordRequest, db: Session = Depends(get_db)) -> GenericResponse:
    """申请重置密码验证码，邮箱是否注册都返回相同结果。"""
    return auth_service.forgot_password(db, email=payload.email)


@router.post("/reset-password", response_model=GenericResponse)
def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)) -> GenericResponse:
    return auth_service.reset_password(db, email=payload.email, code=payload.code, new_password=payload.new_password)
