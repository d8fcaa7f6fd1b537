"""个人设置路由：资料查看与修改、修改密码。"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.packages.drive.api.v1.schemas.auth import ChangePasswordRequest, ProfileUpdateRequest
from app.packages.drive.api.v1.schemas.common import GenericResponse
from app.packages.drive.core.dependencies import get_current_active_user, get_db
from app.packages.drive.models.user import User
from app.packages.drive.services.auth_service import auth_service

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/profile", response_model=GenericResponse)
def get_profile(current_user: User = Depends(get_current_active_user)) -> GenericResponse:
    return auth_service.get_settings_profile(current_user)


@router.put("/profile", response_model=GenericResponse)
def update_profile(
    payload: ProfileUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> GenericResponse:
    """修改用户名、昵称与头像，用户名需全局唯一。"""
    return auth_service.update_profile(
        db,
        current_user,
        username=payload.username,
        nickname=payload.nickname,
        avatar_url=payload.avatar_url,
    )


@router.post("/password", response_model=GenericResponse)
def change_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> GenericResponse:
    return auth_service.change_password(
        db,
        current_user,
        current_password=payload.current_password,
        new_password=payload.new_password,
        confirm_password=payload.confirm_password,
    )
