"""权限服务：计算用户的有效权限并提供角色分配管理。

有效权限 = 用户所有未过期角色的权限并集；``is_owner`` 用户跳过细粒度校验。
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from app.packages.drive.core.constants import HTTP_STATUS_OK
from app.packages.drive.core.exceptions import Forbidden, NotFound, ValidationFailed
from app.packages.drive.core.guards import forbid_if_owner_role, forbid_if_owner_user, is_owner_user
from app.packages.drive.core.logger import logger
from app.packages.drive.core.responses import create_response
from app.packages.drive.core.timezone import format_datetime, is_past, to_local
from app.packages.drive.crud.roles import permission_crud, role_crud
from app.packages.drive.crud.users import user_crud
from app.packages.drive.models.base import role_permissions, user_roles
from app.packages.drive.models.permission import Permission
from app.packages.drive.models.role import Role
from app.packages.drive.models.user import User


class RbacService:
    # ----------------------------
    # 权限计算
    # ----------------------------
    def get_user_roles(self, db: Session, user_id: int) -> List[Role]:
        """返回用户当前有效（未过期）的角色，按优先级从高到低排列。"""
        rows = (
            db.query(Role, user_roles.c.expires_at)
            .join(user_roles, user_roles.c.role_id == Role.id)
            .filter(user_roles.c.user_id == user_id)
            .order_by(Role.priority.desc(), Role.id.asc())
            .all()
        )
        return [role for role, expires_at in rows if not is_past(expires_at)]

    def get_user_permissions(self, db: Session, user_id: int) -> Set[str]:
        rows = (
            db.query(Permission.name, user_roles.c.expires_at)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .join(user_roles, user_roles.c.role_id == role_permissions.c.role_id)
            .filter(user_roles.c.user_id == user_id)
            .all()
        )
        return {name for name, expires_at in rows if not is_past(expires_at)}

    def has_permissions(self, db: Session, user: User, keys: Iterable[str]) -> bool:
        """全部满足才返回 ``True``。"""
        if is_owner_user(user):
            return True
        required = {key for key in keys if key}
        if not required:
            return True
        return required.issubset(self.get_user_permissions(db, user.id))

    def has_any_permission(self, db: Session, user: User, keys: Iterable[str]) -> bool:
        if is_owner_user(user):
            return True
        candidates = {key for key in keys if key}
        if not candidates:
            return True
        return bool(candidates & self.get_user_permissions(db, user.id))

    def ensure_permissions(self, db: Session, user: User, keys: Iterable[str]) -> None:
        required = list(keys)
        if not self.has_permissions(db, user, required):
            logger.info("Permission denied for user %s, required=%s", user.id, required)
            raise Forbidden("权限不足")

    # ----------------------------
    # 角色与权限查询
    # ----------------------------
    def list_roles(self, db: Session) -> Dict[str, Any]:
        roles = role_crud.list_with_permissions(db)
        data = [self._serialize_role(role) for role in roles]
        return create_response("获取角色列表成功", data, HTTP_STATUS_OK)

    def list_permissions(self, db: Session) -> Dict[str, Any]:
        grouped: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
        for permission in permission_crud.list_all(db):
            grouped.setdefault(permission.resource, []).append(self._serialize_permission(permission))
        data = [{"resource": resource, "permissions": items} for resource, items in grouped.items()]
        return create_response("获取权限列表成功", data, HTTP_STATUS_OK)

    def describe_user(self, db: Session, *, user_id: int) -> Dict[str, Any]:
        user = user_crud.get(db, user_id)
        if user is None:
            raise NotFound("用户不存在")
        data = {
            "user_id": user.id,
            "username": user.username,
            "is_owner": user.is_owner,
            "roles": [role.name for role in self.get_user_roles(db, user.id)],
            "permissions": sorted(self.get_user_permissions(db, user.id)),
        }
        return create_response("获取用户权限成功", data, HTTP_STATUS_OK)

    # ----------------------------
    # 角色分配
    # ----------------------------
    def assign_role(
        self,
        db: Session,
        *,
        user_id: int,
        role_id: int,
        expires_at: Optional[datetime] = None,
        granted_by: Optional[int] = None,
    ) -> Dict[str, Any]:
        user = user_crud.get(db, user_id)
        if user is None:
            raise NotFound("用户不存在")
        forbid_if_owner_user(user, message="不能修改Owner用户的角色")

        role = role_crud.get(db, role_id)
        if role is None:
            raise NotFound("角色不存在")
        forbid_if_owner_role(role, message="Owner角色不能分配给其他用户")

        if expires_at is not None and is_past(expires_at):
            raise ValidationFailed("过期时间必须晚于当前时间")

        # 已存在的分配视为续期：替换过期时间与授权人
        db.execute(
            user_roles.delete().where(user_roles.c.user_id == user.id, user_roles.c.role_id == role.id)
        )
        db.execute(
            user_roles.insert().values(
                user_id=user.id,
                role_id=role.id,
                granted_by=granted_by,
                expires_at=to_local(expires_at),
            )
        )
        db.commit()
        logger.info("Role %s granted to user %s by %s", role.name, user.id, granted_by)

        data = {
            "user_id": user.id,
            "role": role.name,
            "expires_at": format_datetime(expires_at),
        }
        return create_response("分配角色成功", data, HTTP_STATUS_OK)

    def revoke_role(self, db: Session, *, user_id: int, role_id: int) -> Dict[str, Any]:
        user = user_crud.get(db, user_id)
        if user is None:
            raise NotFound("用户不存在")
        forbid_if_owner_user(user, message="不能修改Owner用户的角色")

        result = db.execute(
            user_roles.delete().where(user_roles.c.user_id == user.id, user_roles.c.role_id == role_id)
        )
        if not result.rowcount:
            db.rollback()
            raise NotFound("用户未拥有该角色")
        db.commit()
        logger.info("Role %s revoked from user %s", role_id, user.id)
        return create_response("移除角色成功", None, HTTP_STATUS_OK)

    # ----------------------------
    # 序列化
    # ----------------------------
    @staticmethod
    def _serialize_permission(permission: Permission) -> Dict[str, Any]:
        return {
            "id": permission.id,
            "name": permission.name,
            "display_name": permission.display_name,
            "resource": permission.resource,
            "action": permission.action,
            "description": permission.description,
        }

    def _serialize_role(self, role: Role) -> Dict[str, Any]:
        return {
            "id": role.id,
            "name": role.name,
            "display_name": role.display_name,
            "description": role.description,
            "priority": role.priority,
            "is_system": role.is_system,
            "permissions": sorted(permission.name for permission in role.permissions),
        }


rbac_service = RbacService()
