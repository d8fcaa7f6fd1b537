"""用户服务：用户列表、详情与删除。"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.packages.drive.core.constants import HTTP_STATUS_BAD_REQUEST, HTTP_STATUS_OK
from app.packages.drive.core.exceptions import Forbidden, NotFound, ValidationFailed
from app.packages.drive.core.guards import forbid_if_owner_user
from app.packages.drive.core.logger import logger
from app.packages.drive.core.responses import create_response
from app.packages.drive.core.session import revoke_user_sessions
from app.packages.drive.core.timezone import format_datetime, is_past
from app.packages.drive.crud.users import user_crud
from app.packages.drive.models.base import user_roles
from app.packages.drive.models.file import File
from app.packages.drive.models.folder import Folder
from app.packages.drive.models.role import Role
from app.packages.drive.models.share import Share
from app.packages.drive.models.user import User


class UserService:
    def list_users(
        self,
        db: Session,
        *,
        keyword: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict[str, Any]:
        page = max(page, 1)
        page_size = max(page_size, 1)
        items, total = user_crud.list_paginated(
            db,
            keyword=keyword,
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        payload = {
            "total": total,
            "items": [self._serialize(db, item) for item in items],
            "page": page,
            "page_size": page_size,
        }
        return create_response("获取用户列表成功", payload, HTTP_STATUS_OK)

    def batch_delete(self, db: Session, *, user_ids: Iterable[int], current_user: User) -> Dict[str, Any]:
        """批量软删除；包含 Owner 或当前用户时整批拒绝。"""
        ids = list(dict.fromkeys(int(item) for item in user_ids))
        if not ids:
            raise ValidationFailed("请选择要删除的用户")
        if current_user.id in ids:
            raise ValidationFailed("不能删除当前登录用户")

        users = user_crud.get_many(db, ids)
        for user in users:
            forbid_if_owner_user(user, message="不能删除Owner用户", code=HTTP_STATUS_BAD_REQUEST)

        self._remove(db, users)
        deleted = sorted(user.id for user in users)
        return create_response(f"成功删除 {len(deleted)} 个用户", {"deleted": deleted}, HTTP_STATUS_OK)

    def get_user(self, db: Session, user_id: int) -> Dict[str, Any]:
        """用户详情，附带角色以及上传文件、创建目录、创建分享的数量。"""
        user = user_crud.get(db, user_id)
        if user is None:
            raise NotFound("用户不存在")
        data = self._serialize(db, user)
        data["avatar_url"] = user.avatar_url
        data["update_time"] = format_datetime(user.update_time)
        data["stats"] = {
            "files_uploaded": db.query(func.count(File.id)).filter(File.uploaded_by == user.id).scalar() or 0,
            "folders_created": db.query(func.count(Folder.id)).filter(Folder.created_by == user.id).scalar() or 0,
            "shares_created": db.query(func.count(Share.id)).filter(Share.created_by == user.id).scalar() or 0,
        }
        return create_response("获取用户详情成功", data, HTTP_STATUS_OK)

    def delete_user(self, db: Session, *, user_id: int, current_user: User) -> Dict[str, Any]:
        """删除单个用户：不能删除自己，Owner 受保护。"""
        user = user_crud.get(db, user_id)
        if user is None:
            raise NotFound("用户不存在")
        if user.id == current_user.id:
            raise Forbidden("不能删除自己的账号")
        forbid_if_owner_user(user, message="不能删除Owner用户")

        self._remove(db, [user])
        return create_response("用户删除成功", {"deleted": [user.id]}, HTTP_STATUS_OK)

    @staticmethod
    def _remove(db: Session, users: List[User]) -> None:
        # 软删除账号并停用其分享，提交后再吊销会话
        ids = [user.id for user in users]
        for user in users:
            user_crud.soft_delete(db, user, auto_commit=False)
        if ids:
            db.query(Share).filter(Share.created_by.in_(ids), Share.is_active.is_(True)).update(
                {Share.is_active: False}, synchronize_session=False
            )
        db.commit()

        for user in users:
            revoked = revoke_user_sessions(user.id)
            logger.info("User %s deleted, %s sessions revoked", user.id, revoked)

    def _serialize(self, db: Session, user: User) -> Dict[str, Any]:
        assignments = (
            db.query(Role.name, Role.display_name, user_roles.c.expires_at)
            .join(user_roles, user_roles.c.role_id == Role.id)
            .filter(user_roles.c.user_id == user.id)
            .order_by(Role.priority.desc())
            .all()
        )
        return {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "nickname": user.nickname,
            "is_owner": user.is_owner,
            "is_active": user.is_active,
            "roles": [
                {
                    "name": name,
                    "display_name": display_name,
                    "expires_at": format_datetime(expires_at),
                    "expired": is_past(expires_at),
                }
                for name, display_name, expires_at in assignments
            ],
            "create_time": format_datetime(user.create_time),
        }


user_service = UserService()
