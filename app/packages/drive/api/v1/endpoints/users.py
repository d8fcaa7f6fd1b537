"""用户管理路由。"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.packages.drive.api.v1.schemas.common import GenericResponse
from app.packages.drive.api.v1.schemas.users import (
    UserBatchDeleteRequest,
    UserListResponse,
    UserMutationResponse,
)
from app.packages.drive.core.dependencies import get_db, require_permissions
from app.packages.drive.models.user import User
from app.packages.drive.services.user_service import user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=UserListResponse)
def list_users(
    keyword: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("users.view")),
):
    return user_service.list_users(db, keyword=keyword, page=page, page_size=page_size)


@router.get("/{user_id}", response_model=GenericResponse)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("users.view")),
):
    return user_service.get_user(db, user_id)


@router.delete("/{user_id}", response_model=UserMutationResponse)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions("users.manage")),
):
    """删除单个用户，不能删除自己，Owner 返回 403。"""
    return user_service.delete_user(db, user_id=user_id, current_user=current_user)


@router.post("/batch-delete", response_model=UserMutationResponse)
def batch_delete_users(
    payload: UserBatchDeleteRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions("users.manage")),
):
    """批量删除用户，Owner 与当前登录用户不可删除。"""
    return user_service.batch_delete(db, user_ids=payload.user_ids, current_user=current_user)
