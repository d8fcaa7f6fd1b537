"""角色与权限路由。"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.packages.drive.api.v1.schemas.rbac import (
    RbacResponse,
    RoleAssignRequest,
    RoleListResponse,
    RoleRevokeRequest,
)
from app.packages.drive.core.dependencies import get_db, require_permissions
from app.packages.drive.models.user import User
from app.packages.drive.services.rbac_service import rbac_service

router = APIRouter(prefix="/rbac", tags=["rbac"])


@router.get("/roles", response_model=RoleListResponse)
def list_roles(db: Session = Depends(get_db), _: User = Depends(require_permissions("users.view"))):
    return rbac_service.list_roles(db)


@router.get("/permissions", response_model=RbacResponse)
def list_permissions(db: Session = Depends(get_db), _: User = Depends(require_permissions("users.view"))):
    """按资源分组列出全部权限。"""
    return rbac_service.list_permissions(db)


@router.post("/assign", response_model=RbacResponse)
def assign_role(
    payload: RoleAssignRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions("users.assign_roles")),
):
    return rbac_service.assign_role(
        db,
        user_id=payload.user_id,
        role_id=payload.role_id,
        expires_at=payload.expires_at,
        granted_by=current_user.id,
    )


@router.post("/revoke", response_model=RbacResponse)
def revoke_role(
    payload: RoleRevokeRequest,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("users.assign_roles")),
):
    return rbac_service.revoke_role(db, user_id=payload.user_id, role_id=payload.role_id)


@router.get("/users/{user_id}/permissions", response_model=RbacResponse)
def get_user_permissions(
    user_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("users.view")),
):
    return rbac_service.describe_user(db, user_id=user_id)
